#!/usr/bin/env python3
"""
Retrieval Script

Runs one retrieval against the configured backends and prints the grouped
context (or the full result as JSON).

Usage:
    python scripts/retrieve.py "阿里巴巴发票抬头" [--top-k 5] [--sub-question Q ...]
                              [--tree PATH] [--score-margin] [--json] [-v]
"""

import sys
import json
import asyncio
import argparse
import logging

from dotenv import load_dotenv


def _result_to_dict(result) -> dict:
    return {
        "intents": [
            {"code": ns.code, "path": ns.node.full_path, "score": round(ns.score, 4)}
            for ns in result.intents
        ],
        "intent_chunks": {
            code: [
                {
                    "id": c.id,
                    "score": round(c.score, 4),
                    "channel": c.channel.value if c.channel else None,
                    "text": c.text,
                }
                for c in chunks
            ]
            for code, chunks in result.intent_chunks.items()
        },
        "grouped_context": result.grouped_context,
    }


async def _run(args) -> int:
    from intentrag.common.config import load_config
    from intentrag.common.errors import IntentTreeError
    from intentrag.retriever.engine import build_engine

    config = load_config()
    if args.tree:
        config.intent.tree_path = args.tree

    engine = build_engine(config)
    flags = {}
    if args.score_margin:
        flags["score_margin"] = True
    if args.rerank_limit:
        flags["rerank_limit"] = True

    try:
        result = await engine.retrieve(
            args.query,
            top_k=args.top_k,
            sub_questions=args.sub_question,
            flags=flags,
        )
    except IntentTreeError as e:
        print(f"[Retrieve] ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        await engine.aclose()

    if args.json:
        print(json.dumps(_result_to_dict(result), ensure_ascii=False, indent=2))
    elif result.is_empty:
        print("[Retrieve] No relevant knowledge found")
    else:
        print(result.grouped_context)
    return 0


def main():
    parser = argparse.ArgumentParser(description="Run an intent-aware multi-channel retrieval")
    parser.add_argument("query", help="Question to retrieve context for")
    parser.add_argument("--top-k", type=int, default=None, help="Chunks to keep per question")
    parser.add_argument("--sub-question", action="append", default=None,
                        help="Sub-question (repeatable); each is retrieved separately")
    parser.add_argument("--tree", type=str, default=None, help="Intent tree JSON file")
    parser.add_argument("--score-margin", action="store_true", help="Enable the score-margin filter")
    parser.add_argument("--rerank-limit", action="store_true", help="Enable the rerank candidate limiter")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
