"""
Post-Processor Pipeline

Ordered stages that collapse the union of channel results into the final
ranked chunk list. Stages run by ascending ``order`` (registration order on
ties) and each receives the previous stage's output. A stage that raises is
logged and skipped: the chunk list passes through unchanged.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from ..common.models import (
    RetrievedChunk,
    SearchChannelResult,
    SearchChannelType,
    SearchContext,
)

logger = logging.getLogger("intentrag.retriever.postprocessors")

SCORE_MARGIN_RATIO = 0.75
RERANK_LIMIT_MULTIPLIER = 2

# Lower value wins when the same chunk arrives from several channels
CHANNEL_PRIORITY: Dict[SearchChannelType, int] = {
    SearchChannelType.INTENT_DIRECTED: 1,
    SearchChannelType.KEYWORD: 2,
    SearchChannelType.VECTOR_GLOBAL: 3,
}
UNKNOWN_CHANNEL_PRIORITY = 99


class PostProcessor(ABC):
    """A pipeline stage."""

    name: str = "postprocessor"
    order: int = 100

    def is_enabled(self, context: SearchContext) -> bool:
        return True

    @abstractmethod
    async def process(
        self,
        chunks: List[RetrievedChunk],
        channel_results: Sequence[SearchChannelResult],
        context: SearchContext,
    ) -> List[RetrievedChunk]:
        """Transform the chunk list."""


class DeduplicationPostProcessor(PostProcessor):
    """
    Merges the channel results into one list with one entry per chunk.

    Channel results are visited in priority order (intent-directed, keyword,
    global). The first occurrence fixes a chunk's position; a later duplicate
    replaces the stored instance only with a strictly higher score. Chunks
    already in the incoming list are merged after the channel results, so
    running the stage twice changes nothing.
    """

    name = "deduplication"
    order = 1

    async def process(self, chunks, channel_results, context):
        ordered = sorted(
            channel_results,
            key=lambda r: CHANNEL_PRIORITY.get(r.channel_type, UNKNOWN_CHANNEL_PRIORITY),
        )
        merged: Dict[str, RetrievedChunk] = {}
        for result in ordered:
            for chunk in result.chunks:
                _merge(merged, chunk)
        for chunk in chunks:
            _merge(merged, chunk)
        return list(merged.values())


def _merge(merged: Dict[str, RetrievedChunk], chunk: RetrievedChunk) -> None:
    key = chunk.dedup_key
    existing = merged.get(key)
    if existing is None or chunk.score > existing.score:
        merged[key] = chunk


class ScoreMarginPostProcessor(PostProcessor):
    """
    Drops chunks scoring below ``ratio`` x the best score.

    Scores are compared raw across channels. Keyword hits carry unbounded
    BM25 scores while vector hits carry cosine similarity in [0, 1], so on a
    mixed candidate list a single keyword hit can push every vector hit under
    the margin. Enable this stage only when the active channels score on a
    shared scale, or place it after rerank has rescored the candidates.
    """

    name = "score_margin"
    order = 5

    def __init__(self, ratio: float = SCORE_MARGIN_RATIO, enabled_by_default: bool = False):
        self._ratio = ratio
        self._default = enabled_by_default

    def is_enabled(self, context):
        return context.flag(self.name, self._default)

    async def process(self, chunks, channel_results, context):
        if not chunks:
            return chunks
        top = max(c.score for c in chunks)
        if top <= 0:
            return chunks
        threshold = top * self._ratio
        return [c for c in chunks if c.score >= threshold]


class RerankCandidateLimiter(PostProcessor):
    """Keeps the ``top_k x multiplier`` best candidates before rerank, in their current order."""

    name = "rerank_limit"
    order = 8

    def __init__(self, multiplier: int = RERANK_LIMIT_MULTIPLIER, enabled_by_default: bool = False):
        self._multiplier = multiplier
        self._default = enabled_by_default

    def is_enabled(self, context):
        return context.flag(self.name, self._default)

    async def process(self, chunks, channel_results, context):
        limit = max(context.top_k, 1) * self._multiplier
        if len(chunks) <= limit:
            return chunks
        best = sorted(range(len(chunks)), key=lambda i: chunks[i].score, reverse=True)[:limit]
        return [chunks[i] for i in sorted(best)]


class RerankPostProcessor(PostProcessor):
    """
    Final ordering by the rerank capability, truncated to ``top_k``.

    The output is never padded. When the capability fails or times out the
    input order is kept (truncated to ``top_k``).
    """

    name = "rerank"
    order = 10

    def __init__(self, rerank_client, timeout: Optional[float] = 10.0):
        self._client = rerank_client
        self._timeout = timeout

    async def process(self, chunks, channel_results, context):
        if not chunks:
            return []

        top_k = context.top_k
        try:
            reranked = await asyncio.wait_for(
                self._client.rerank(context.main_question, list(chunks), top_k),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Rerank degraded: timed out after %ss, keeping input order", self._timeout)
            return list(chunks[:top_k])
        except Exception as e:
            logger.warning("Rerank degraded: %s, keeping input order", e)
            return list(chunks[:top_k])

        return list(reranked[:top_k])


class PostProcessorPipeline:
    def __init__(self, processors: Sequence[PostProcessor] = ()):
        self._processors: List[PostProcessor] = []
        for processor in processors:
            self.register(processor)

    def register(self, processor: PostProcessor) -> "PostProcessorPipeline":
        self._processors.append(processor)
        return self

    @property
    def processors(self) -> List[PostProcessor]:
        """Registered stages in execution order."""
        return sorted(self._processors, key=lambda p: p.order)

    async def run(
        self,
        channel_results: Sequence[SearchChannelResult],
        context: SearchContext,
    ) -> List[RetrievedChunk]:
        """
        Run the enabled stages over the channel results.

        With no stage registered the flat union of the channel results is
        returned as-is.
        """
        chunks: List[RetrievedChunk] = []
        if not self._processors:
            return [c for r in channel_results for c in r.chunks]

        for processor in self.processors:
            if not processor.is_enabled(context):
                logger.debug("Skipping disabled post-processor %s", processor.name)
                continue
            before = len(chunks)
            try:
                chunks = await processor.process(chunks, channel_results, context)
            except Exception:
                logger.warning("Post-processor %s failed, skipping", processor.name, exc_info=True)
                continue
            logger.info("Post-processor %s: %d -> %d chunks", processor.name, before, len(chunks))
        return chunks
