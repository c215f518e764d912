"""
Retrieval data models

Chunks, channel results, the per-request search context and the final
retrieval result shared by channels, post-processors and the assembler.
"""

import hashlib
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


class SearchChannelType(str, Enum):
    """Kinds of search channel, also used as the dedup priority key"""
    INTENT_DIRECTED = "intent_directed"
    KEYWORD = "keyword"
    VECTOR_GLOBAL = "vector_global"


@dataclass
class RetrievedChunk:
    """A single text chunk returned by a search channel"""
    id: Optional[str]
    text: str
    score: float
    channel: Optional[SearchChannelType] = None
    intent_code: Optional[str] = None  # intent that produced this instance
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def dedup_key(self) -> str:
        """Chunk identity: the id when present, otherwise a hash of the text."""
        if self.id:
            return f"id:{self.id}"
        return "sha1:" + hashlib.sha1(self.text.encode("utf-8")).hexdigest()

    @property
    def preview(self) -> str:
        return self.text[:80].replace("\n", " ")


@dataclass
class SearchChannelResult:
    """Output of one channel invocation"""
    channel_type: SearchChannelType
    chunks: List[RetrievedChunk] = field(default_factory=list)
    channel_name: str = ""
    intent_code: Optional[str] = None
    latency_ms: float = 0.0
    error: Optional[str] = None  # set when the invocation degraded to empty

    @property
    def is_degraded(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class SearchContext:
    """Per-request state threaded through the post-processor pipeline.

    ``intents`` holds the resolved NodeScores for the question being
    retrieved, ``flags`` per-request toggles for optional post-processors
    (e.g. ``{"score_margin": True}``).
    """
    main_question: str
    top_k: int
    sub_questions: Tuple[str, ...] = ()
    intents: Tuple[Any, ...] = ()
    flags: Dict[str, bool] = field(default_factory=dict)

    def flag(self, name: str, default: bool = False) -> bool:
        return bool(self.flags.get(name, default))


@dataclass
class RetrievalResult:
    """Final output of ``RetrievalEngine.retrieve``"""
    grouped_context: str = ""
    intent_chunks: Dict[str, List[RetrievedChunk]] = field(default_factory=dict)
    intents: List[Any] = field(default_factory=list)

    @classmethod
    def empty(cls, intents: Optional[List[Any]] = None) -> "RetrievalResult":
        return cls(grouped_context="", intent_chunks={}, intents=list(intents or []))

    @property
    def is_empty(self) -> bool:
        return not any(self.intent_chunks.values())

    @property
    def total_chunks(self) -> int:
        return sum(len(chunks) for chunks in self.intent_chunks.values())
