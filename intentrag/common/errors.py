"""
Error taxonomy for the retrieval engine.

Only ``IntentTreeError`` is surfaced to callers of ``RetrievalEngine.retrieve``.
The others are raised by adapters and channels and converted to degraded
results (empty channel output, no intents, un-reranked order) by the layer
that owns the fan-out.
"""

from typing import Optional


class RetrievalError(Exception):
    """Base class for intentrag errors."""


class IntentTreeError(RetrievalError):
    """The intent tree could not be loaded or is structurally invalid."""


class ChannelConfigurationError(RetrievalError):
    """A channel was invoked with an intent it cannot serve (e.g. no collection)."""

    def __init__(self, message: str, intent_code: Optional[str] = None):
        super().__init__(message)
        self.intent_code = intent_code


class BackendError(RetrievalError):
    """A remote capability (vector store, keyword index, ...) failed."""

    def __init__(self, backend: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{backend}: {message}")
        self.backend = backend
        self.status_code = status_code


class ScoringError(BackendError):
    """The intent scoring capability failed or returned garbage."""

    def __init__(self, message: str):
        super().__init__("intent-scorer", message)


class RerankError(BackendError):
    """The rerank capability failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__("rerank", message, status_code=status_code)
