"""
Retriever - Multi-Channel Context Retrieval

Fans a question out to several search channels and collapses the union into
a ranked context grouped by intent.

Key Components:
- SearchChannel: IntentDirected / Keyword / GlobalVector channels
- ChannelOrchestrator: concurrent fan-out with per-channel timeouts
- PostProcessorPipeline: dedup -> optional filters -> rerank
- ResultAssembler: groups chunks by intent and renders the context

Pipeline:
1. Resolve intents for the question (and its sub-questions)
2. Run every channel invocation concurrently
3. Deduplicate, filter and rerank the union
4. Group by intent and render the LLM context
"""

from .channels import GlobalVectorChannel, IntentDirectedChannel, KeywordChannel, SearchChannel
from .orchestrator import ChannelOrchestrator
from .postprocessors import (
    DeduplicationPostProcessor,
    PostProcessor,
    PostProcessorPipeline,
    RerankCandidateLimiter,
    RerankPostProcessor,
    ScoreMarginPostProcessor,
)
from .assembler import MULTI_CHANNEL_KEY, ResultAssembler
from .engine import RetrievalEngine, build_engine

__all__ = [
    "SearchChannel",
    "IntentDirectedChannel",
    "KeywordChannel",
    "GlobalVectorChannel",
    "ChannelOrchestrator",
    "PostProcessor",
    "PostProcessorPipeline",
    "DeduplicationPostProcessor",
    "ScoreMarginPostProcessor",
    "RerankCandidateLimiter",
    "RerankPostProcessor",
    "MULTI_CHANNEL_KEY",
    "ResultAssembler",
    "RetrievalEngine",
    "build_engine",
]
