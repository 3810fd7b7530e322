"""
Unit tests for LLM JSON response parsing.
"""
import sys
import os
import json
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from utils.llm_utils import parse_llm_json, parse_llm_json_lenient, repair_truncated_json, strip_code_fence


class TestStripCodeFence:

    def test_json_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_fence(self):
        assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_unclosed_fence(self):
        assert strip_code_fence('```json\n{"a": 1}') == '{"a": 1}'

    def test_plain_json_untouched(self):
        assert strip_code_fence('  {"a": 1} ') == '{"a": 1}'


class TestRepairTruncatedJson:

    def test_closes_open_string_and_braces(self):
        truncated = '{"characters": [{"id": "CHR-001", "name": "Ma'
        repaired = repair_truncated_json(truncated)
        assert json.loads(repaired) == {"characters": [{"id": "CHR-001", "name": "Ma"}]}

    def test_drops_trailing_comma(self):
        truncated = '{"characters": [{"id": "CHR-001"},'
        assert json.loads(repair_truncated_json(truncated)) == {"characters": [{"id": "CHR-001"}]}

    def test_braces_inside_strings_are_ignored(self):
        truncated = '{"note": "uses { and [ freely", "list": [1, 2'
        assert json.loads(repair_truncated_json(truncated)) == {"note": "uses { and [ freely", "list": [1, 2]}

    def test_escaped_quote_does_not_end_string(self):
        truncated = '{"line": "she said \\"run'
        assert json.loads(repair_truncated_json(truncated)) == {"line": 'she said "run'}

    def test_complete_json_unchanged(self):
        text = '{"a": [1, 2]}'
        assert repair_truncated_json(text) == text


class TestParse:

    def test_strict_parse_rejects_truncated(self):
        with pytest.raises(json.JSONDecodeError):
            parse_llm_json('{"a": [1, 2')

    def test_lenient_parse_repairs(self):
        assert parse_llm_json_lenient('```json\n{"a": [1, 2') == {"a": [1, 2]}

    def test_lenient_parse_gives_up_on_garbage(self):
        with pytest.raises(json.JSONDecodeError):
            parse_llm_json_lenient("I'm sorry, I can't help with that.")
