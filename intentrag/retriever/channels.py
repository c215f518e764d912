"""
Search Channels

Independent retrieval strategies sharing one contract:
``search(query, intent, top_k) -> chunks sorted by descending score``.
Each channel stamps its provenance (channel type, intent code) on the chunks
it returns so the dedup and assembly stages can attribute them.
"""

import dataclasses
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from ..common.errors import ChannelConfigurationError
from ..common.models import RetrievedChunk, SearchChannelType
from ..intent.tree import NodeScore

logger = logging.getLogger("intentrag.retriever.channels")


class SearchChannel(ABC):
    """Base class for search channels."""

    channel_type: SearchChannelType
    requires_intent: bool = False

    def __init__(self, name: Optional[str] = None, enabled: bool = True):
        self.name = name or self.channel_type.value
        self.enabled = enabled

    @abstractmethod
    async def search(
        self, query: str, intent: Optional[NodeScore], top_k: int
    ) -> List[RetrievedChunk]:
        """Return up to ``top_k`` chunks for ``query``, best first."""

    def _stamp(
        self, chunks: List[RetrievedChunk], intent_code: Optional[str] = None
    ) -> List[RetrievedChunk]:
        stamped = [
            dataclasses.replace(c, channel=self.channel_type, intent_code=intent_code)
            for c in chunks
        ]
        stamped.sort(key=lambda c: c.score, reverse=True)
        return stamped

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, enabled={self.enabled})"


class IntentDirectedChannel(SearchChannel):
    """Vector search restricted to the collection bound to one KB intent."""

    channel_type = SearchChannelType.INTENT_DIRECTED
    requires_intent = True

    def __init__(self, embedding_service, vector_store, name=None, enabled=True):
        super().__init__(name=name, enabled=enabled)
        self._embedding = embedding_service
        self._store = vector_store

    async def search(self, query, intent, top_k):
        if intent is None:
            raise ChannelConfigurationError("intent-directed search needs an intent")
        collection = intent.node.collection_name
        if not collection:
            raise ChannelConfigurationError(
                f"Intent {intent.code} has no collection configured",
                intent_code=intent.code,
            )

        vector = await self._embedding.embed_query(query)
        chunks = await self._store.search(collection, vector, top_k)
        return self._stamp(chunks[:top_k], intent_code=intent.code)


class KeywordChannel(SearchChannel):
    """Full-text search against the lexical index."""

    channel_type = SearchChannelType.KEYWORD

    def __init__(self, keyword_index, name=None, enabled=True):
        super().__init__(name=name, enabled=enabled)
        self._index = keyword_index

    async def search(self, query, intent, top_k):
        chunks = await self._index.search(query, top_k)
        return self._stamp(chunks[:top_k])


class GlobalVectorChannel(SearchChannel):
    """Vector search against the default collection, regardless of intent."""

    channel_type = SearchChannelType.VECTOR_GLOBAL

    def __init__(self, embedding_service, vector_store, collection: str, name=None, enabled=True):
        super().__init__(name=name, enabled=enabled)
        self._embedding = embedding_service
        self._store = vector_store
        self._collection = collection

    async def search(self, query, intent, top_k):
        vector = await self._embedding.embed_query(query)
        chunks = await self._store.search(self._collection, vector, top_k)
        return self._stamp(chunks[:top_k])
