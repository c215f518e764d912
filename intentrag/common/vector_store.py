"""
Vector Store Client

Vector search against Milvus through its REST v2 API
(``POST /v2/vectordb/entities/search``).
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from .errors import BackendError
from .models import RetrievedChunk

logger = logging.getLogger("intentrag.common.vector_store")

SEARCH_PATH = "/v2/vectordb/entities/search"
OUTPUT_FIELDS = ["doc_id", "content", "metadata"]


class MilvusVectorStore:
    """
    Async Milvus client used by the intent-directed and global vector channels.

    Each collection is expected to expose ``doc_id``, ``content`` and
    ``metadata`` output fields next to the vector field.
    """

    def __init__(
        self,
        endpoint: str = "http://localhost:19530",
        token: str = "",
        anns_field: str = "embedding",
        metric_type: str = "COSINE",
        ef: int = 128,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            endpoint: Milvus base URL (scheme://host:port)
            token: Bearer token ("user:password" or an API key)
            anns_field: Name of the vector field to search
            metric_type: Metric the collection index was built with
            ef: HNSW search breadth
            timeout: Per-request timeout in seconds
            client: Pre-built httpx client (tests inject a MockTransport)
        """
        self._endpoint = endpoint.rstrip("/")
        self._anns_field = anns_field
        self._metric_type = metric_type
        self._ef = ef
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(
            base_url=self._endpoint,
            headers=headers,
            timeout=httpx.Timeout(timeout),
        )

    @classmethod
    def from_config(cls, vector_config) -> "MilvusVectorStore":
        return cls(
            endpoint=vector_config.endpoint,
            token=vector_config.token,
            anns_field=vector_config.anns_field,
            metric_type=vector_config.metric_type,
            ef=vector_config.ef,
            timeout=vector_config.timeout,
        )

    async def search(
        self,
        collection: str,
        vector: List[float],
        top_k: int,
        filters: Optional[str] = None,
    ) -> List[RetrievedChunk]:
        """
        Search one collection.

        Args:
            collection: Milvus collection name
            vector: Query embedding (already normalized)
            top_k: Maximum number of hits
            filters: Optional Milvus boolean filter expression

        Returns:
            Chunks sorted by descending similarity

        Raises:
            BackendError: on transport errors or a non-zero Milvus code
        """
        body: Dict[str, Any] = {
            "collectionName": collection,
            "data": [vector],
            "annsField": self._anns_field,
            "limit": top_k,
            "outputFields": OUTPUT_FIELDS,
            "searchParams": {
                "metricType": self._metric_type,
                "params": {"ef": self._ef},
            },
        }
        if filters:
            body["filter"] = filters

        try:
            response = await self._client.post(SEARCH_PATH, json=body)
        except httpx.HTTPError as e:
            raise BackendError("milvus", f"request failed: {e}") from e

        if response.status_code != 200:
            raise BackendError(
                "milvus", f"HTTP {response.status_code}", status_code=response.status_code
            )

        payload = response.json()
        if payload.get("code", 0) != 0:
            raise BackendError("milvus", payload.get("message", "unknown error"))

        hits = [_hit_to_chunk(hit) for hit in payload.get("data") or []]
        hits.sort(key=lambda c: c.score, reverse=True)
        logger.debug("Milvus %s returned %d hits", collection, len(hits))
        return hits

    async def aclose(self) -> None:
        await self._client.aclose()


def _hit_to_chunk(hit: Dict[str, Any]) -> RetrievedChunk:
    metadata = hit.get("metadata") or {}
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except json.JSONDecodeError:
            metadata = {"raw": metadata}

    chunk_id = hit.get("doc_id") or hit.get("id")
    return RetrievedChunk(
        id=str(chunk_id) if chunk_id is not None else None,
        text=hit.get("content", ""),
        score=float(hit.get("distance", hit.get("score", 0.0))),
        metadata=metadata,
    )
