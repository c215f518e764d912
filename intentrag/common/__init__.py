"""
intentrag Common Module

Shared infrastructure: configuration, data models, errors and the adapters
for the remote capabilities (LLM, embedding, vector store, keyword index,
rerank).
"""

from .config import IntentRagConfig, load_config
from .errors import (
    BackendError,
    ChannelConfigurationError,
    IntentTreeError,
    RerankError,
    RetrievalError,
    ScoringError,
)
from .models import (
    RetrievalResult,
    RetrievedChunk,
    SearchChannelResult,
    SearchChannelType,
    SearchContext,
)

__all__ = [
    "IntentRagConfig",
    "load_config",
    "BackendError",
    "ChannelConfigurationError",
    "IntentTreeError",
    "RerankError",
    "RetrievalError",
    "ScoringError",
    "RetrievalResult",
    "RetrievedChunk",
    "SearchChannelResult",
    "SearchChannelType",
    "SearchContext",
]
