"""Tests for distill.core.parsing: JSON and plain-text extraction."""

import pytest

from distill.core.parsing import parse_json_from_response, strip_code_fences


class TestParseJson:
    def test_fenced_json_block(self):
        raw = '```json\n{"key": "value"}\n```'
        assert parse_json_from_response(raw) == {"key": "value"}

    def test_plain_json(self):
        raw = '{"a": 1, "b": 2}'
        assert parse_json_from_response(raw) == {"a": 1, "b": 2}

    def test_json_array(self):
        raw = '[1, 2, 3]'
        assert parse_json_from_response(raw) == [1, 2, 3]

    def test_json_in_prose(self):
        raw = 'The result is {"status": "ok"} as expected.'
        result = parse_json_from_response(raw)
        assert result["status"] == "ok"

    def test_nested_json_in_prose(self):
        raw = 'Verdict: {"scores": {"correctness": 9}, "failures": ["a", "b"]} end'
        result = parse_json_from_response(raw)
        assert result["scores"]["correctness"] == 9
        assert result["failures"] == ["a", "b"]

    def test_no_json_raises(self):
        with pytest.raises(ValueError, match="No valid JSON"):
            parse_json_from_response("No JSON here at all!")

    def test_fenced_generic_block_with_json(self):
        raw = '```\n{"x": 42}\n```'
        assert parse_json_from_response(raw) == {"x": 42}


class TestStripCodeFences:
    def test_plain_text_unchanged(self):
        assert strip_code_fences("  You are a helpful assistant.  ") == "You are a helpful assistant."

    def test_wrapping_fence_removed(self):
        raw = "```\nYou are a helpful assistant.\nBe concise.\n```"
        assert strip_code_fences(raw) == "You are a helpful assistant.\nBe concise."

    def test_language_tagged_fence_removed(self):
        raw = "```text\nAnswer briefly.\n```"
        assert strip_code_fences(raw) == "Answer briefly."

    def test_inner_fence_kept(self):
        raw = "Format answers like:\n```\nQ: ...\nA: ...\n```"
        assert strip_code_fences(raw) == raw

    def test_empty(self):
        assert strip_code_fences("   ") == ""
