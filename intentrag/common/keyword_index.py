"""
Keyword Index Client

Full-text search against an Elasticsearch index (``POST /<index>/_search``
with a ``match`` query). Scores are BM25 and not comparable with vector
similarities; the rerank stage makes them comparable.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .errors import BackendError
from .models import RetrievedChunk

logger = logging.getLogger("intentrag.common.keyword_index")


class ElasticsearchKeywordIndex:
    """Async lexical search capability used by the keyword channel."""

    def __init__(
        self,
        endpoint: str = "http://localhost:9200",
        index: str = "rag_chunks",
        api_key: str = "",
        text_field: str = "content",
        id_field: str = "doc_id",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._index = index
        self._text_field = text_field
        self._id_field = id_field
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"ApiKey {api_key}"
        self._client = client or httpx.AsyncClient(
            base_url=endpoint.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
        )

    @classmethod
    def from_config(cls, keyword_config) -> "ElasticsearchKeywordIndex":
        return cls(
            endpoint=keyword_config.endpoint,
            index=keyword_config.index,
            api_key=keyword_config.api_key,
            text_field=keyword_config.text_field,
            id_field=keyword_config.id_field,
            timeout=keyword_config.timeout,
        )

    async def search(self, query: str, top_k: int) -> List[RetrievedChunk]:
        """Return up to ``top_k`` chunks matching ``query``, best first."""
        body = {
            "size": top_k,
            "query": {"match": {self._text_field: {"query": query}}},
        }
        try:
            response = await self._client.post(f"/{self._index}/_search", json=body)
        except httpx.HTTPError as e:
            raise BackendError("elasticsearch", f"request failed: {e}") from e

        if response.status_code != 200:
            raise BackendError(
                "elasticsearch",
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        hits = response.json().get("hits", {}).get("hits", [])
        chunks = [self._hit_to_chunk(hit) for hit in hits]
        chunks.sort(key=lambda c: c.score, reverse=True)
        return chunks

    def _hit_to_chunk(self, hit: Dict[str, Any]) -> RetrievedChunk:
        source = hit.get("_source") or {}
        chunk_id = source.get(self._id_field) or hit.get("_id")
        metadata = source.get("metadata") or {}
        return RetrievedChunk(
            id=str(chunk_id) if chunk_id is not None else None,
            text=source.get(self._text_field, ""),
            score=float(hit.get("_score") or 0.0),
            metadata=metadata if isinstance(metadata, dict) else {},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
