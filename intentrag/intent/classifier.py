"""
Intent Classifier

Scores a question against the leaf intents of the tree and keeps the best
few. Scoring is delegated to an external capability (an LLM by default);
any scorer failure or timeout degrades to "no intents" instead of failing
the request, since the keyword and global channels still run without them.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Set, Tuple

from ..common.errors import ScoringError
from ..common.llm_utils import extract_result_list, parse_llm_json
from .tree import IntentNode, NodeScore

logger = logging.getLogger("intentrag.intent.classifier")

INTENT_MIN_SCORE = 0.35
MAX_INTENT_COUNT = 3


SCORING_POLICY = """You are an intent classifier for an enterprise knowledge-base assistant.
Score how well the user question matches EACH candidate intent below.

Scoring:
- 0.9-1.0: the question is clearly about this intent
- 0.6-0.8: closely related, likely the right intent
- 0.3-0.5: loosely related
- 0.0-0.2: unrelated

Rules:
- Judge by the intent description and examples, not by surface word overlap
- Only use ids from the candidate list
- SYSTEM intents are greetings, chit-chat or questions about the assistant itself

Candidate intents:
{candidates}

Respond with a JSON array only, best match first:
[{{"id": "<intent id>", "score": 0.0, "reason": "one short sentence"}}]"""


def render_candidate(node: IntentNode) -> str:
    line = (
        f"- id={node.code}, path={node.full_path or node.name}, "
        f"description={node.description or '-'}, type={node.kind.value}"
    )
    if node.examples:
        line += ", examples=" + " / ".join(node.examples)
    return line


class LLMIntentScorer:
    """
    Scoring capability backed by ``LLMClient``.

    Sends every candidate in one prompt and parses a JSON array of
    ``{"id", "score", "reason"}`` objects (a ``{"results": [...]}`` wrapper
    is accepted too).
    """

    def __init__(
        self,
        llm_client,
        max_tokens: int = 1024,
        temperature: float = 0.1,
        top_p: float = 0.3,
        timeout: float = 30.0,
    ):
        self._llm = llm_client
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._top_p = top_p
        self._timeout = timeout

    @property
    def is_available(self) -> bool:
        return self._llm is not None and self._llm.is_available

    async def score(
        self, query: str, candidates: Sequence[IntentNode]
    ) -> List[Tuple[str, float]]:
        if not self.is_available:
            raise ScoringError("LLM client is not available")

        system = SCORING_POLICY.format(
            candidates="\n".join(render_candidate(node) for node in candidates)
        )
        try:
            raw = await self._llm.agenerate(
                f"Question: {query}",
                system=system,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                top_p=self._top_p,
                timeout=self._timeout,
            )
        except Exception as e:
            raise ScoringError(f"LLM call failed: {e}") from e

        parsed = parse_llm_json(raw)
        if parsed == {}:
            raise ScoringError(f"Unparseable scorer response: {raw[:200]!r}")

        scores = []
        for item in extract_result_list(parsed):
            if not isinstance(item, dict) or not item.get("id"):
                continue
            try:
                value = float(item.get("score", 0.0))
            except (TypeError, ValueError):
                continue
            scores.append((str(item["id"]), value))
            logger.debug("Scored %s=%.2f (%s)", item["id"], value, item.get("reason", ""))
        return scores


def _bigrams(text: str) -> Set[str]:
    text = "".join(text.lower().split())
    if len(text) < 2:
        return {text} if text else set()
    return {text[i:i + 2] for i in range(len(text) - 1)}


def keyword_prefilter(
    query: str, candidates: Sequence[IntentNode], max_candidates: int
) -> List[IntentNode]:
    """
    Cheap lexical narrowing of the candidate set before scoring.

    Ranks candidates by character-bigram overlap between the question and the
    node's name, description and examples; ties keep tree order.
    """
    if max_candidates <= 0 or len(candidates) <= max_candidates:
        return list(candidates)

    query_grams = _bigrams(query)
    ranked = []
    for position, node in enumerate(candidates):
        node_grams = _bigrams(" ".join((node.name, node.description, *node.examples)))
        overlap = len(query_grams & node_grams)
        ranked.append((-overlap, position, node))
    ranked.sort(key=lambda item: (item[0], item[1]))
    return [node for _, _, node in ranked[:max_candidates]]


class IntentClassifier:
    """
    Turns scorer output into the ordered, thresholded intent list.

    Output invariants: every score >= ``min_score``, sorted descending,
    at most ``max_intents`` entries, only nodes from the candidate set.
    """

    def __init__(
        self,
        scorer,
        min_score: float = INTENT_MIN_SCORE,
        max_intents: int = MAX_INTENT_COUNT,
        timeout: Optional[float] = 15.0,
        batch_size: int = 0,
        prefilter_max_candidates: int = 0,
    ):
        self._scorer = scorer
        self._min_score = min_score
        self._max_intents = max_intents
        self._timeout = timeout
        self._batch_size = batch_size
        self._prefilter_max = prefilter_max_candidates

    async def classify(self, query: str, candidates: Sequence[IntentNode]) -> List[NodeScore]:
        """
        Classify ``query`` against ``candidates`` (normally the snapshot's
        enabled leaf nodes).

        Returns:
            NodeScores sorted by descending score; empty when nothing clears
            the threshold or the scorer is unavailable
        """
        if not query or not candidates:
            return []

        candidates = keyword_prefilter(query, candidates, self._prefilter_max)
        try:
            raw_scores = await asyncio.wait_for(
                self._score_all(query, candidates), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Intent classification degraded: timed out after %.1fs", self._timeout
            )
            return []

        by_code = {node.code: node for node in candidates}
        best = {}
        for code, value in raw_scores:
            node = by_code.get(code)
            if node is None:
                logger.warning("Scorer returned unknown intent id: %s", code)
                continue
            value = min(max(value, 0.0), 1.0)
            if code not in best or value > best[code].score:
                best[code] = NodeScore(node=node, score=value)

        kept = [ns for ns in best.values() if ns.score >= self._min_score]
        kept.sort(key=lambda ns: ns.score, reverse=True)
        kept = kept[: self._max_intents]

        logger.info(
            "Classified %r: %s",
            query[:60],
            ", ".join(f"{ns.code}={ns.score:.2f}" for ns in kept) or "no intent",
        )
        return kept

    async def _score_all(
        self, query: str, candidates: List[IntentNode]
    ) -> List[Tuple[str, float]]:
        size = self._batch_size if self._batch_size > 0 else len(candidates)
        batches = [candidates[i:i + size] for i in range(0, len(candidates), size)]
        results = await asyncio.gather(*(self._score_batch(query, b) for b in batches))

        if all(r is None for r in results):
            logger.warning("Intent classification degraded: every scoring batch failed")
        return [pair for r in results if r for pair in r]

    async def _score_batch(
        self, query: str, batch: List[IntentNode]
    ) -> Optional[List[Tuple[str, float]]]:
        try:
            return await self._scorer.score(query, batch)
        except Exception as e:
            logger.warning(
                "Scoring batch of %d intents failed, treating as non-matching: %s",
                len(batch), e,
            )
            return None
