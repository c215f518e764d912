"""Tests for LLM response parsing helpers."""

from intentrag.common.llm_utils import extract_result_list, parse_llm_json


class TestParseLLMJson:
    def test_plain_object(self):
        assert parse_llm_json('{"a": 1}') == {"a": 1}

    def test_plain_array(self):
        assert parse_llm_json('[{"id": "x", "score": 0.9}]') == [{"id": "x", "score": 0.9}]

    def test_code_fences(self):
        raw = '```json\n[{"id": "x", "score": 0.5}]\n```'
        assert parse_llm_json(raw) == [{"id": "x", "score": 0.5}]

    def test_preamble_before_array(self):
        raw = 'Here are the scores:\n[{"id": "x", "score": 0.7}]\nDone.'
        assert parse_llm_json(raw) == [{"id": "x", "score": 0.7}]

    def test_preamble_before_object(self):
        raw = 'Result: {"capture": true} thanks'
        assert parse_llm_json(raw) == {"capture": True}

    def test_garbage_returns_empty_dict(self):
        assert parse_llm_json("no json here") == {}

    def test_empty_returns_empty_dict(self):
        assert parse_llm_json("") == {}


class TestExtractResultList:
    def test_bare_list(self):
        assert extract_result_list([{"id": "a"}]) == [{"id": "a"}]

    def test_wrapped_list(self):
        assert extract_result_list({"results": [{"id": "a"}]}) == [{"id": "a"}]

    def test_other_shapes(self):
        assert extract_result_list({"id": "a"}) == []
        assert extract_result_list("text") == []
