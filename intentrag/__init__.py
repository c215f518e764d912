"""
intentrag

Intent-aware multi-channel retrieval for RAG question answering.

Principles:
- Classification narrows the search, it never gates it: keyword and global
  vector channels always run alongside the intent-directed ones
- Every remote call is bounded by a timeout and degrades to "no results"
- The intent tree is read-only on the retrieval path (frozen snapshots)

Usage:
    from intentrag.common import load_config
    from intentrag.retriever import build_engine

    engine = build_engine(load_config())
    result = await engine.retrieve("How do I change the invoice title?", top_k=5)
"""

__version__ = "0.1.0"
