"""
Channel Orchestrator

Fans one question out to every enabled channel concurrently. Each invocation
is bounded by its own timeout; an invocation that fails or times out yields
an empty, degraded ``SearchChannelResult`` and never fails the request.
Cancelling the caller cancels every pending invocation.
"""

import asyncio
import logging
import time
from typing import List, Optional, Sequence, Tuple

from ..common.models import SearchChannelResult
from ..intent.tree import IntentKind, NodeScore
from .channels import SearchChannel

logger = logging.getLogger("intentrag.retriever.orchestrator")

MIN_SEARCH_TOP_K = 20
SEARCH_TOP_K_MULTIPLIER = 3


def search_top_k(
    top_k: int,
    min_top_k: int = MIN_SEARCH_TOP_K,
    multiplier: int = SEARCH_TOP_K_MULTIPLIER,
) -> int:
    """Over-fetch size per channel: the rerank stage needs headroom to choose from."""
    return max(min_top_k, top_k * multiplier)


class ChannelOrchestrator:
    def __init__(
        self,
        channels: Sequence[SearchChannel],
        channel_timeout: Optional[float] = 8.0,
        min_search_top_k: int = MIN_SEARCH_TOP_K,
        search_top_k_multiplier: int = SEARCH_TOP_K_MULTIPLIER,
    ):
        self._channels = list(channels)
        self._timeout = channel_timeout
        self._min_top_k = min_search_top_k
        self._multiplier = search_top_k_multiplier

    @property
    def channels(self) -> List[SearchChannel]:
        return list(self._channels)

    def plan(
        self, intents: Sequence[NodeScore], top_k: int
    ) -> List[Tuple[SearchChannel, Optional[NodeScore], int]]:
        """
        Build the invocation list: one intent-directed call per KB intent,
        one call for every intent-free channel. A node's own ``top_k``
        replaces the requested one as the base for its invocation.
        """
        invocations = []
        for channel in self._channels:
            if not channel.enabled:
                continue
            if not channel.requires_intent:
                invocations.append((channel, None, self._fetch_size(top_k)))
                continue
            for intent in intents:
                if intent.node.kind != IntentKind.KB:
                    continue
                base = intent.node.top_k or top_k
                invocations.append((channel, intent, self._fetch_size(base)))
        return invocations

    def _fetch_size(self, top_k: int) -> int:
        return search_top_k(top_k, self._min_top_k, self._multiplier)

    async def search(
        self, query: str, intents: Sequence[NodeScore], top_k: int
    ) -> List[SearchChannelResult]:
        """
        Run every planned invocation concurrently.

        Returns:
            One result per invocation, in plan order
        """
        invocations = self.plan(intents, top_k)
        if not invocations:
            logger.warning("No enabled search channel for %r", query[:60])
            return []

        results = await asyncio.gather(
            *(self._invoke(channel, query, intent, k) for channel, intent, k in invocations)
        )

        for r in results:
            if r.is_degraded:
                logger.warning(
                    "Channel %s%s degraded: %s",
                    r.channel_name,
                    f"[{r.intent_code}]" if r.intent_code else "",
                    r.error,
                )
            else:
                logger.info(
                    "Channel %s%s: %d chunks in %.0fms",
                    r.channel_name,
                    f"[{r.intent_code}]" if r.intent_code else "",
                    len(r.chunks),
                    r.latency_ms,
                )
        return list(results)

    async def _invoke(
        self,
        channel: SearchChannel,
        query: str,
        intent: Optional[NodeScore],
        top_k: int,
    ) -> SearchChannelResult:
        intent_code = intent.code if intent else None
        started = time.perf_counter()
        error = None
        chunks = []
        try:
            chunks = await asyncio.wait_for(
                channel.search(query, intent, top_k), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            error = f"timed out after {self._timeout}s"
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.debug("Channel %s failed", channel.name, exc_info=True)

        return SearchChannelResult(
            channel_type=channel.channel_type,
            chunks=list(chunks),
            channel_name=channel.name,
            intent_code=intent_code,
            latency_ms=(time.perf_counter() - started) * 1000,
            error=error,
        )
