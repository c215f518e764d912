"""Shared fixtures and in-memory fakes for the remote capabilities."""

import asyncio

import pytest

from intentrag.common.models import RetrievedChunk
from intentrag.intent.store import build_tree_from_records


TREE_ROWS = [
    {"intent_code": "finance", "name": "财务", "level": "DOMAIN", "sort_order": 1},
    {"intent_code": "finance.invoice", "name": "发票", "level": 1, "parent_code": "finance"},
    {
        "intent_code": "finance.invoice.info",
        "name": "发票信息",
        "level": 2,
        "parent_code": "finance.invoice",
        "description": "Company invoice titles, tax numbers and billing headers",
        "examples": ["阿里巴巴发票抬头是什么", "公司税号"],
        "collection_name": "kb_invoice",
        "prompt_snippet": "Quote the invoice title exactly.",
        "sort_order": 1,
    },
    {
        "intent_code": "finance.invoice.reimburse",
        "name": "报销流程",
        "level": 2,
        "parent_code": "finance.invoice",
        "description": "Expense reimbursement process",
        "collection_name": "kb_reimburse",
        "sort_order": 2,
    },
    {"intent_code": "hr", "name": "人事", "level": "DOMAIN", "sort_order": 2},
    {"intent_code": "hr.leave", "name": "假期", "level": 1, "parent_code": "hr"},
    {
        "intent_code": "hr.leave.annual",
        "name": "年假",
        "level": 2,
        "parent_code": "hr.leave",
        "description": "Annual leave policy",
        "collection_name": "kb_leave",
        "top_k": 8,
    },
    {"intent_code": "system", "name": "系统", "level": "DOMAIN", "sort_order": 3},
    {"intent_code": "system.chat", "name": "闲聊", "level": 1, "parent_code": "system"},
    {
        "intent_code": "system.chat.greeting",
        "name": "问候",
        "level": 2,
        "parent_code": "system.chat",
        "kind": "SYSTEM",
        "description": "Greetings and small talk",
    },
]


def chunk(chunk_id, score, text=None, **kwargs):
    return RetrievedChunk(id=chunk_id, text=text or f"text of {chunk_id}", score=score, **kwargs)


class FakeScorer:
    """Returns fixed scores per intent code; records every call."""

    def __init__(self, scores=None, error=None, delay=0.0):
        self.scores = scores or {}
        self.error = error
        self.delay = delay
        self.calls = []

    async def score(self, query, candidates):
        self.calls.append((query, [c.code for c in candidates]))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        per_query = self.scores.get(query, self.scores)
        return [(c.code, per_query[c.code]) for c in candidates if c.code in per_query]


class FakeEmbedding:
    def __init__(self):
        self.queries = []

    async def embed_query(self, text):
        self.queries.append(text)
        return [0.1, 0.2, 0.3]


class FakeVectorStore:
    def __init__(self, collections=None):
        self.collections = collections or {}
        self.calls = []

    async def search(self, collection, vector, top_k, filters=None):
        self.calls.append((collection, top_k))
        return list(self.collections.get(collection, []))[:top_k]


class FakeKeywordIndex:
    def __init__(self, hits=None):
        self.hits = hits or []
        self.calls = []

    async def search(self, query, top_k):
        self.calls.append((query, top_k))
        return list(self.hits)[:top_k]


class FakeReranker:
    """Sorts by score descending; optionally fails."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def rerank(self, query, candidates, top_n):
        self.calls.append((query, [c.id for c in candidates], top_n))
        if self.error:
            raise self.error
        return sorted(candidates, key=lambda c: c.score, reverse=True)[:top_n]


class StaticTreeCache:
    def __init__(self, tree):
        self.tree = tree

    def snapshot(self):
        return self.tree


@pytest.fixture
def tree():
    return build_tree_from_records(TREE_ROWS)
