"""Intent tree, classifier and resolver."""

from .tree import IntentKind, IntentLevel, IntentNode, IntentTree
from .classifier import IntentClassifier, LLMIntentScorer, NodeScore
from .resolver import IntentResolver

__all__ = [
    "IntentKind",
    "IntentLevel",
    "IntentNode",
    "IntentTree",
    "IntentClassifier",
    "LLMIntentScorer",
    "NodeScore",
    "IntentResolver",
]
