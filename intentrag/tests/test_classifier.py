"""Tests for intent classification and the LLM scorer."""

import logging
from unittest.mock import AsyncMock, Mock

import pytest

from conftest import FakeScorer

from intentrag.common.errors import ScoringError
from intentrag.intent.classifier import (
    INTENT_MIN_SCORE,
    MAX_INTENT_COUNT,
    IntentClassifier,
    LLMIntentScorer,
    keyword_prefilter,
    render_candidate,
)


class TestIntentClassifier:
    @pytest.mark.asyncio
    async def test_single_intent_above_threshold(self, tree):
        scorer = FakeScorer({"finance.invoice.info": 0.82, "finance.invoice.reimburse": 0.2})
        result = await IntentClassifier(scorer).classify("阿里巴巴发票抬头", tree.leaf_nodes())

        assert [ns.code for ns in result] == ["finance.invoice.info"]
        assert result[0].score == 0.82

    @pytest.mark.asyncio
    async def test_all_below_threshold_returns_empty(self, tree):
        scorer = FakeScorer({code: 0.34 for code in [n.code for n in tree.leaf_nodes()]})
        assert await IntentClassifier(scorer).classify("天气怎么样", tree.leaf_nodes()) == []

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, tree):
        scorer = FakeScorer({"hr.leave.annual": INTENT_MIN_SCORE})
        result = await IntentClassifier(scorer).classify("年假", tree.leaf_nodes())
        assert [ns.code for ns in result] == ["hr.leave.annual"]

    @pytest.mark.asyncio
    async def test_sorted_and_capped(self, tree):
        scorer = FakeScorer({
            "finance.invoice.info": 0.5,
            "finance.invoice.reimburse": 0.9,
            "hr.leave.annual": 0.7,
            "system.chat.greeting": 0.6,
        })
        result = await IntentClassifier(scorer).classify("q", tree.leaf_nodes())

        assert len(result) == MAX_INTENT_COUNT
        assert [ns.score for ns in result] == [0.9, 0.7, 0.6]
        assert all(ns.score >= INTENT_MIN_SCORE for ns in result)

    @pytest.mark.asyncio
    async def test_unknown_codes_skipped(self, tree, caplog):
        scorer = Mock()
        scorer.score = AsyncMock(return_value=[("ghost", 0.99), ("hr.leave.annual", 0.8)])
        with caplog.at_level(logging.WARNING, logger="intentrag.intent.classifier"):
            result = await IntentClassifier(scorer).classify("q", tree.leaf_nodes())

        assert [ns.code for ns in result] == ["hr.leave.annual"]
        assert "unknown intent id: ghost" in caplog.text

    @pytest.mark.asyncio
    async def test_scores_clamped(self, tree):
        scorer = Mock()
        scorer.score = AsyncMock(return_value=[("hr.leave.annual", 1.7)])
        result = await IntentClassifier(scorer).classify("q", tree.leaf_nodes())
        assert result[0].score == 1.0

    @pytest.mark.asyncio
    async def test_scorer_error_degrades_to_empty(self, tree, caplog):
        scorer = FakeScorer(error=ScoringError("unreachable"))
        with caplog.at_level(logging.WARNING, logger="intentrag.intent.classifier"):
            result = await IntentClassifier(scorer).classify("q", tree.leaf_nodes())
        assert result == []
        assert "degraded" in caplog.text

    @pytest.mark.asyncio
    async def test_timeout_degrades_to_empty(self, tree, caplog):
        scorer = FakeScorer({"hr.leave.annual": 0.9}, delay=1.0)
        classifier = IntentClassifier(scorer, timeout=0.05)
        with caplog.at_level(logging.WARNING, logger="intentrag.intent.classifier"):
            result = await classifier.classify("q", tree.leaf_nodes())
        assert result == []
        assert "timed out" in caplog.text

    @pytest.mark.asyncio
    async def test_batches_scored_separately(self, tree):
        scorer = FakeScorer({"finance.invoice.info": 0.8, "hr.leave.annual": 0.6})
        classifier = IntentClassifier(scorer, batch_size=2)
        result = await classifier.classify("q", tree.leaf_nodes())

        assert len(scorer.calls) == 2
        assert [ns.code for ns in result] == ["finance.invoice.info", "hr.leave.annual"]

    @pytest.mark.asyncio
    async def test_failed_batch_is_non_matching(self, tree):
        class HalfBroken(FakeScorer):
            async def score(self, query, candidates):
                if any(c.code.startswith("hr") for c in candidates):
                    raise ScoringError("boom")
                return await super().score(query, candidates)

        scorer = HalfBroken({"finance.invoice.info": 0.8, "hr.leave.annual": 0.9})
        result = await IntentClassifier(scorer, batch_size=2).classify("q", tree.leaf_nodes())
        assert [ns.code for ns in result] == ["finance.invoice.info"]

    @pytest.mark.asyncio
    async def test_no_candidates_skips_scorer(self):
        scorer = FakeScorer()
        assert await IntentClassifier(scorer).classify("q", []) == []
        assert scorer.calls == []


class TestKeywordPrefilter:
    def test_keeps_best_overlap(self, tree):
        leaves = tree.leaf_nodes()
        kept = keyword_prefilter("阿里巴巴发票抬头", leaves, 1)
        assert [n.code for n in kept] == ["finance.invoice.info"]

    def test_disabled_keeps_all(self, tree):
        leaves = tree.leaf_nodes()
        assert keyword_prefilter("x", leaves, 0) == leaves


class TestLLMIntentScorer:
    def _llm(self, response):
        llm = Mock()
        llm.is_available = True
        llm.agenerate = AsyncMock(return_value=response)
        return llm

    @pytest.mark.asyncio
    async def test_parses_array(self, tree):
        llm = self._llm('[{"id": "finance.invoice.info", "score": 0.82, "reason": "invoice"}]')
        scores = await LLMIntentScorer(llm).score("阿里巴巴发票抬头", tree.leaf_nodes())
        assert scores == [("finance.invoice.info", 0.82)]

    @pytest.mark.asyncio
    async def test_parses_wrapped_results(self, tree):
        llm = self._llm('```json\n{"results": [{"id": "hr.leave.annual", "score": "0.6"}]}\n```')
        scores = await LLMIntentScorer(llm).score("年假", tree.leaf_nodes())
        assert scores == [("hr.leave.annual", 0.6)]

    @pytest.mark.asyncio
    async def test_prompt_lists_candidates(self, tree):
        llm = self._llm("[]")
        await LLMIntentScorer(llm).score("q", tree.leaf_nodes())

        kwargs = llm.agenerate.call_args.kwargs
        assert "id=finance.invoice.info" in kwargs["system"]
        assert "path=财务 > 发票 > 发票信息" in kwargs["system"]
        assert "type=SYSTEM" in kwargs["system"]
        assert kwargs["temperature"] == 0.1
        assert kwargs["top_p"] == 0.3

    @pytest.mark.asyncio
    async def test_unparseable_raises(self, tree):
        with pytest.raises(ScoringError):
            await LLMIntentScorer(self._llm("I cannot help")).score("q", tree.leaf_nodes())

    @pytest.mark.asyncio
    async def test_unavailable_raises(self, tree):
        llm = Mock()
        llm.is_available = False
        with pytest.raises(ScoringError, match="not available"):
            await LLMIntentScorer(llm).score("q", tree.leaf_nodes())

    def test_render_candidate_examples(self, tree):
        line = render_candidate(tree.get("finance.invoice.info"))
        assert line.endswith("examples=阿里巴巴发票抬头是什么 / 公司税号")
