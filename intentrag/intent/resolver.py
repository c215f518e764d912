"""
Intent Resolver

Classifies the main question or each of its sub-questions concurrently and
caps the total number of intents across all of them.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .classifier import MAX_INTENT_COUNT
from .tree import IntentKind, IntentTree, NodeScore

logger = logging.getLogger("intentrag.intent.resolver")


@dataclass
class SubQuestionIntent:
    """A (sub-)question and the intents resolved for it"""
    question: str
    intents: List[NodeScore] = field(default_factory=list)


class IntentResolver:
    def __init__(self, classifier, max_total_intents: int = MAX_INTENT_COUNT):
        self._classifier = classifier
        self._max_total = max_total_intents

    async def resolve(
        self, tree: IntentTree, questions: Sequence[str]
    ) -> List[SubQuestionIntent]:
        """Classify every question against ``tree``'s leaves, in input order."""
        leaves = tree.leaf_nodes()
        results = await asyncio.gather(
            *(self._classifier.classify(q, leaves) for q in questions)
        )
        groups = [SubQuestionIntent(question=q, intents=list(r)) for q, r in zip(questions, results)]
        return cap_total_intents(groups, self._max_total)


def cap_total_intents(
    groups: List[SubQuestionIntent], max_total: int = MAX_INTENT_COUNT
) -> List[SubQuestionIntent]:
    """
    Limit the number of intents across all sub-questions to ``max_total``.

    Each sub-question keeps its best intent first (in sub-question order while
    quota lasts); the remaining quota goes to the highest remaining scores.
    """
    total = sum(len(g.intents) for g in groups)
    if total <= max_total:
        return groups

    kept: Dict[int, List[NodeScore]] = {i: [] for i in range(len(groups))}
    remaining = []
    quota = max_total
    for i, group in enumerate(groups):
        if not group.intents:
            continue
        if quota > 0:
            kept[i].append(group.intents[0])
            quota -= 1
            remaining.extend((i, ns) for ns in group.intents[1:])
        else:
            remaining.extend((i, ns) for ns in group.intents)

    remaining.sort(key=lambda pair: pair[1].score, reverse=True)
    for i, ns in remaining[:quota]:
        kept[i].append(ns)

    logger.info("Capped intents across %d sub-questions: %d -> %d", len(groups), total, max_total)
    return [
        SubQuestionIntent(
            question=group.question,
            intents=sorted(kept[i], key=lambda ns: ns.score, reverse=True),
        )
        for i, group in enumerate(groups)
    ]


def kb_intents(scores: Sequence[NodeScore]) -> List[NodeScore]:
    return [ns for ns in scores if ns.node.kind == IntentKind.KB]


def is_system_only(scores: Sequence[NodeScore]) -> bool:
    """True when the only match is a SYSTEM intent (answer without retrieval)."""
    return len(scores) == 1 and scores[0].node.kind == IntentKind.SYSTEM


def merge_intents(groups: Sequence[SubQuestionIntent]) -> List[NodeScore]:
    """Union of the groups' intents, one entry per code (highest score), best first."""
    best: Dict[str, NodeScore] = {}
    for group in groups:
        for ns in group.intents:
            if ns.code not in best or ns.score > best[ns.code].score:
                best[ns.code] = ns
    return sorted(best.values(), key=lambda ns: ns.score, reverse=True)
