"""
Rerank Client

Cross-encoder rerank through the DashScope (BaiLian) text-rerank API.
"""

import dataclasses
import logging
from typing import List, Optional

import httpx

from .errors import RerankError
from .models import RetrievedChunk

logger = logging.getLogger("intentrag.common.rerank_client")


class DashScopeRerankClient:
    """
    Reranks candidate chunks against the question.

    Returned chunks are copies of the inputs with ``score`` replaced by the
    relevance score, in the order the service ranked them.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        model: str = "gte-rerank",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._endpoint = endpoint
        self._model = model
        self._client = client or httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
        )

    @classmethod
    def from_config(cls, rerank_config) -> "DashScopeRerankClient":
        return cls(
            endpoint=rerank_config.endpoint,
            api_key=rerank_config.api_key,
            model=rerank_config.model,
            timeout=rerank_config.timeout,
        )

    async def rerank(
        self, query: str, candidates: List[RetrievedChunk], top_n: int
    ) -> List[RetrievedChunk]:
        if not candidates:
            return []

        body = {
            "model": self._model,
            "input": {
                "query": query,
                "documents": [c.text for c in candidates],
            },
            "parameters": {
                "top_n": min(top_n, len(candidates)),
                "return_documents": False,
            },
        }
        try:
            response = await self._client.post(self._endpoint, json=body)
        except httpx.HTTPError as e:
            raise RerankError(f"request failed: {e}") from e

        if response.status_code != 200:
            raise RerankError(f"HTTP {response.status_code}", status_code=response.status_code)

        results = (response.json().get("output") or {}).get("results")
        if results is None:
            raise RerankError("response has no output.results")

        reranked = []
        for item in results:
            index = item.get("index")
            if not isinstance(index, int) or not 0 <= index < len(candidates):
                logger.warning("Rerank returned out-of-range index: %r", index)
                continue
            reranked.append(
                dataclasses.replace(candidates[index], score=float(item.get("relevance_score", 0.0)))
            )
        return reranked[:top_n]

    async def aclose(self) -> None:
        await self._client.aclose()
