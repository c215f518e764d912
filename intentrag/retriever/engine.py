"""
Retrieval Engine

Entry point of the package: resolves intents for a question (or each of its
sub-questions), fans out to the search channels, runs the post-processor
pipeline and assembles the grouped context.

Pipeline per (sub-)question:
1. Classify against a frozen intent tree snapshot
2. ChannelOrchestrator: intent-directed + keyword + global channels
3. PostProcessorPipeline: dedup -> optional filters -> rerank
4. ResultAssembler: group by intent, render context
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from ..common.models import RetrievalResult, RetrievedChunk, SearchContext
from ..intent.resolver import IntentResolver, SubQuestionIntent, merge_intents
from ..intent.tree import IntentKind, NodeScore
from .assembler import ResultAssembler, render_sub_question
from .orchestrator import ChannelOrchestrator
from .postprocessors import PostProcessorPipeline

logger = logging.getLogger("intentrag.retriever.engine")

DEFAULT_TOP_K = 5


class RetrievalEngine:
    """
    Intent-aware multi-channel retrieval.

    Only an intent tree load failure propagates to the caller; every other
    failure degrades (no intents, fewer channels, un-reranked order) and the
    caller always receives a well-formed ``RetrievalResult``.
    """

    def __init__(
        self,
        tree_cache,
        resolver: IntentResolver,
        orchestrator: ChannelOrchestrator,
        pipeline: PostProcessorPipeline,
        assembler: Optional[ResultAssembler] = None,
        default_top_k: int = DEFAULT_TOP_K,
        resources: Sequence = (),
    ):
        """
        Initialize engine.

        Args:
            tree_cache: Object with ``snapshot() -> IntentTree``
            resolver: Intent resolver wrapping the classifier
            orchestrator: Channel fan-out
            pipeline: Post-processor pipeline
            assembler: Result assembler (default: ResultAssembler())
            default_top_k: top-K used when the caller passes none
            resources: Backend clients closed by ``aclose()``
        """
        self._tree_cache = tree_cache
        self._resolver = resolver
        self._orchestrator = orchestrator
        self._pipeline = pipeline
        self._assembler = assembler or ResultAssembler()
        self._default_top_k = default_top_k
        self._resources = list(resources)

    async def retrieve(
        self,
        query: str,
        top_k: Optional[int] = None,
        sub_questions: Optional[Sequence[str]] = None,
        flags: Optional[Dict[str, bool]] = None,
    ) -> RetrievalResult:
        """
        Retrieve grouped context for ``query``.

        Args:
            query: The (rewritten) main question
            top_k: Number of chunks to keep per (sub-)question
            sub_questions: Optional decomposition of ``query``; each one is
                classified and retrieved separately
            flags: Per-request post-processor toggles (e.g. ``score_margin``)

        Returns:
            RetrievalResult, empty when nothing relevant was found

        Raises:
            IntentTreeError: the intent tree cannot be loaded at all
        """
        top_k = top_k if top_k and top_k > 0 else self._default_top_k
        questions = [q for q in (sub_questions or []) if q and q.strip()] or [query]

        # One snapshot for the whole request
        tree = await asyncio.to_thread(self._tree_cache.snapshot)
        groups = await self._resolver.resolve(tree, questions)

        results = await asyncio.gather(
            *(self._retrieve_group(g, top_k, questions, flags or {}) for g in groups)
        )

        if len(groups) == 1:
            return results[0]
        return _merge_results(groups, results)

    async def _retrieve_group(
        self,
        group: SubQuestionIntent,
        top_k: int,
        questions: Sequence[str],
        flags: Dict[str, bool],
    ) -> RetrievalResult:
        effective_top_k = _effective_top_k(group.intents, top_k)
        context = SearchContext(
            main_question=group.question,
            top_k=effective_top_k,
            sub_questions=tuple(questions),
            intents=tuple(group.intents),
            flags=dict(flags),
        )
        channel_results = await self._orchestrator.search(group.question, group.intents, top_k)
        chunks = await self._pipeline.run(channel_results, context)
        return self._assembler.assemble(chunks, group.intents)

    async def aclose(self) -> None:
        for resource in self._resources:
            await resource.aclose()


def _effective_top_k(intents: Sequence[NodeScore], top_k: int) -> int:
    """The largest node-level top-K among the KB intents, else the requested one."""
    node_top_ks = [
        ns.node.top_k for ns in intents
        if ns.node.kind == IntentKind.KB and ns.node.top_k
    ]
    return max(node_top_ks) if node_top_ks else top_k


def _merge_results(
    groups: Sequence[SubQuestionIntent], results: Sequence[RetrievalResult]
) -> RetrievalResult:
    sections = []
    merged: Dict[str, List[RetrievedChunk]] = {}
    for group, result in zip(groups, results):
        if result.is_empty:
            continue
        sections.append(render_sub_question(group.question, result.grouped_context))
        for code, chunks in result.intent_chunks.items():
            bucket = merged.setdefault(code, [])
            seen = {c.dedup_key for c in bucket}
            bucket.extend(c for c in chunks if c.dedup_key not in seen)

    intents = merge_intents(groups)
    if not merged:
        return RetrievalResult.empty(intents=intents)
    return RetrievalResult(
        grouped_context="\n\n".join(sections),
        intent_chunks=merged,
        intents=intents,
    )


def build_engine(config, tree_store=None, llm_client=None) -> RetrievalEngine:
    """
    Wire a ``RetrievalEngine`` from an ``IntentRagConfig``.

    Args:
        config: Loaded configuration
        tree_store: Override for the intent tree store (default: JSON file
            at ``config.intent.tree_path``)
        llm_client: Override for the scoring LLM client
    """
    from ..common.embedding_service import EmbeddingService
    from ..common.keyword_index import ElasticsearchKeywordIndex
    from ..common.llm_client import LLMClient
    from ..common.rerank_client import DashScopeRerankClient
    from ..common.vector_store import MilvusVectorStore
    from ..intent.classifier import IntentClassifier, LLMIntentScorer
    from ..intent.store import IntentTreeCache, JsonIntentTreeStore
    from .channels import GlobalVectorChannel, IntentDirectedChannel, KeywordChannel
    from .postprocessors import (
        DeduplicationPostProcessor,
        RerankCandidateLimiter,
        RerankPostProcessor,
        ScoreMarginPostProcessor,
    )

    intent_cfg = config.intent
    retriever_cfg = config.retriever

    tree_cache = IntentTreeCache(
        tree_store or JsonIntentTreeStore(intent_cfg.tree_path),
        refresh_interval=intent_cfg.refresh_interval,
    )
    classifier = IntentClassifier(
        LLMIntentScorer(llm_client or LLMClient.from_config(config.llm)),
        min_score=intent_cfg.min_score,
        max_intents=intent_cfg.max_intent_count,
        timeout=intent_cfg.classify_timeout,
        batch_size=intent_cfg.batch_size,
        prefilter_max_candidates=intent_cfg.prefilter_max_candidates,
    )

    embedding = EmbeddingService(model=config.embedding.model)
    vector_store = MilvusVectorStore.from_config(config.vector_store)
    keyword_index = ElasticsearchKeywordIndex.from_config(config.keyword)
    reranker = DashScopeRerankClient.from_config(config.rerank)

    channels = [
        IntentDirectedChannel(embedding, vector_store, enabled=retriever_cfg.intent_directed_enabled),
        KeywordChannel(keyword_index, enabled=retriever_cfg.keyword_enabled),
        GlobalVectorChannel(
            embedding,
            vector_store,
            collection=config.vector_store.default_collection,
            enabled=retriever_cfg.global_vector_enabled,
        ),
    ]
    orchestrator = ChannelOrchestrator(
        channels,
        channel_timeout=retriever_cfg.channel_timeout,
        min_search_top_k=retriever_cfg.min_search_top_k,
        search_top_k_multiplier=retriever_cfg.search_top_k_multiplier,
    )
    pipeline = PostProcessorPipeline([
        DeduplicationPostProcessor(),
        ScoreMarginPostProcessor(
            ratio=retriever_cfg.score_margin_ratio,
            enabled_by_default=retriever_cfg.score_margin_enabled,
        ),
        RerankCandidateLimiter(
            multiplier=retriever_cfg.rerank_limit_multiplier,
            enabled_by_default=retriever_cfg.rerank_limit_enabled,
        ),
        RerankPostProcessor(reranker, timeout=retriever_cfg.rerank_timeout),
    ])

    return RetrievalEngine(
        tree_cache=tree_cache,
        resolver=IntentResolver(classifier, max_total_intents=intent_cfg.max_intent_count),
        orchestrator=orchestrator,
        pipeline=pipeline,
        default_top_k=retriever_cfg.default_top_k,
        resources=[vector_store, keyword_index, reranker],
    )
