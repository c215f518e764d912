"""Tests for the HTTP backend adapters using httpx.MockTransport."""

import json

import httpx
import numpy as np
import pytest

from conftest import chunk

from intentrag.common.embedding_service import normalize_rows
from intentrag.common.errors import BackendError, RerankError
from intentrag.common.keyword_index import ElasticsearchKeywordIndex
from intentrag.common.rerank_client import DashScopeRerankClient
from intentrag.common.vector_store import MilvusVectorStore


def _client(handler, base_url="http://test"):
    return httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(handler))


class TestMilvusVectorStore:
    @pytest.mark.asyncio
    async def test_search_request_and_parsing(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "code": 0,
                "data": [
                    {"id": 1, "distance": 0.4, "doc_id": "d1", "content": "low", "metadata": '{"page": 2}'},
                    {"id": 2, "distance": 0.9, "doc_id": "d2", "content": "high", "metadata": {}},
                ],
            })

        store = MilvusVectorStore(client=_client(handler))
        hits = await store.search("kb_invoice", [0.1, 0.2], top_k=20)

        assert seen["path"] == "/v2/vectordb/entities/search"
        assert seen["body"]["collectionName"] == "kb_invoice"
        assert seen["body"]["limit"] == 20
        assert seen["body"]["outputFields"] == ["doc_id", "content", "metadata"]
        assert seen["body"]["searchParams"]["params"]["ef"] == 128
        assert [h.id for h in hits] == ["d2", "d1"]
        assert hits[1].metadata == {"page": 2}

    @pytest.mark.asyncio
    async def test_error_code_raises(self):
        def handler(request):
            return httpx.Response(200, json={"code": 1100, "message": "collection not found"})

        store = MilvusVectorStore(client=_client(handler))
        with pytest.raises(BackendError, match="collection not found"):
            await store.search("missing", [0.1], top_k=5)

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        store = MilvusVectorStore(client=_client(lambda r: httpx.Response(503)))
        with pytest.raises(BackendError) as exc_info:
            await store.search("kb", [0.1], top_k=5)
        assert exc_info.value.status_code == 503


class TestElasticsearchKeywordIndex:
    @pytest.mark.asyncio
    async def test_match_query_and_parsing(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"hits": {"hits": [
                {"_id": "es-1", "_score": 3.2, "_source": {"content": "发票抬头", "doc_id": "d9"}},
                {"_id": "es-2", "_score": 7.5, "_source": {"content": "抬头规范"}},
            ]}})

        index = ElasticsearchKeywordIndex(index="chunks", client=_client(handler))
        hits = await index.search("发票抬头", top_k=20)

        assert seen["path"] == "/chunks/_search"
        assert seen["body"] == {"size": 20, "query": {"match": {"content": {"query": "发票抬头"}}}}
        assert [(h.id, h.score) for h in hits] == [("es-2", 7.5), ("d9", 3.2)]

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        index = ElasticsearchKeywordIndex(client=_client(handler))
        with pytest.raises(BackendError, match="elasticsearch"):
            await index.search("q", 5)


class TestDashScopeRerankClient:
    @pytest.mark.asyncio
    async def test_reorders_by_returned_indexes(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"output": {"results": [
                {"index": 2, "relevance_score": 0.97},
                {"index": 0, "relevance_score": 0.41},
                {"index": 9, "relevance_score": 0.2},
            ]}})

        candidates = [chunk("a", 0.1, intent_code="x"), chunk("b", 0.2), chunk("c", 0.3)]
        client = DashScopeRerankClient("http://test/rerank", "key", client=_client(handler))
        out = await client.rerank("发票抬头", candidates, top_n=5)

        assert seen["body"]["input"]["query"] == "发票抬头"
        assert seen["body"]["input"]["documents"] == ["text of a", "text of b", "text of c"]
        assert seen["body"]["parameters"]["top_n"] == 3
        assert [(c.id, c.score) for c in out] == [("c", 0.97), ("a", 0.41)]
        assert out[1].intent_code == "x"
        assert candidates[2].score == 0.3

    @pytest.mark.asyncio
    async def test_empty_candidates_no_request(self):
        def handler(request):
            raise AssertionError("should not be called")

        client = DashScopeRerankClient("http://test/rerank", "key", client=_client(handler))
        assert await client.rerank("q", [], 5) == []

    @pytest.mark.asyncio
    async def test_bad_status_raises(self):
        client = DashScopeRerankClient(
            "http://test/rerank", "key", client=_client(lambda r: httpx.Response(401))
        )
        with pytest.raises(RerankError):
            await client.rerank("q", [chunk("a", 0.1)], 5)


class TestNormalizeRows:
    def test_unit_norm(self):
        out = normalize_rows(np.array([[3.0, 4.0], [0.0, 0.0]]))
        assert np.allclose(out[0], [0.6, 0.8])
        assert np.allclose(out[1], [0.0, 0.0])
