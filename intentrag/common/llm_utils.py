"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
from typing import Any, Union


def _strip_code_fences(text: str) -> str:
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines)
    return text


def parse_llm_json(raw: str) -> Union[dict, list]:
    """Parse JSON from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract substring between first '[' and last ']' (array answers)
    3. Extract substring between first '{' and last '}'
    4. Return empty dict
    """
    if not raw:
        return {}

    text = _strip_code_fences(raw.strip())

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for open_ch, close_ch in (("[", "]"), ("{", "}")):
        start = text.find(open_ch)
        end = text.rfind(close_ch) + 1
        if start >= 0 and end > start:
            try:
                return json.loads(text[start:end])
            except json.JSONDecodeError:
                pass

    return {}


def extract_result_list(parsed: Any, key: str = "results") -> list:
    """Return the list of result objects from a parsed LLM answer.

    Accepts either a bare JSON array or an object wrapping the array under
    ``key``. Anything else yields an empty list.
    """
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        inner = parsed.get(key)
        if isinstance(inner, list):
            return inner
    return []
