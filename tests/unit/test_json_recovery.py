"""Unit tests for JSON recovery from model output."""

from unittest.mock import patch

import pytest

from site_auditor.audit.analysis.json_recovery import recover_json, strip_code_fence
from site_auditor.audit.errors import ResponseParseError


class TestStripCodeFence:
    """Tests for strip_code_fence."""

    def test_json_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fence('```\n[1, 2]\n```') == '[1, 2]'

    def test_no_fence(self):
        assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'


class TestRecoverJson:
    """Tests for recover_json."""

    def test_valid_json(self):
        assert recover_json('{"Score": 7, "Items": ["a"]}') == {"Score": 7, "Items": ["a"]}

    def test_valid_array(self):
        assert recover_json('[{"Issue": "x"}]') == [{"Issue": "x"}]

    def test_fenced_json(self):
        assert recover_json('```json\n{"ok": true}\n```') == {"ok": True}

    def test_truncated_object_is_repaired(self):
        assert recover_json('{"Summary": {"Score": 4}') == {"Summary": {"Score": 4}}

    def test_trailing_comma_is_repaired(self):
        assert recover_json('{"a": 1, "b": [1, 2,],}') == {"a": 1, "b": [1, 2]}

    def test_object_inside_prose(self):
        raw = 'Here is the audit you asked for:\n{"Score": 3}\nLet me know if you need more.'
        assert recover_json(raw) == {"Score": 3}

    def test_unmatched_trailing_brace_is_repaired(self):
        assert recover_json('{"a": 1}}') == {"a": 1}

    def test_brackets_in_leading_prose_are_ignored(self):
        assert recover_json('Result: [draft] {"Score": 3}') == {"Score": 3}

    def test_braces_in_trailing_prose_are_ignored(self):
        raw = 'Here is the JSON: {"Score": 3} Hope that helps, {ok}'
        assert recover_json(raw) == {"Score": 3}

    def test_prose_is_not_passed_to_structural_repair(self):
        with patch("site_auditor.audit.analysis.json_recovery.repair_json") as repair:
            assert recover_json('Note [1]: {"Score": 3}') == {"Score": 3}

        repair.assert_not_called()

    def test_extracted_object_used_when_repair_fails(self):
        raw = 'Result: {"Score": 3} done'
        with patch(
            "site_auditor.audit.analysis.json_recovery.repair_json",
            side_effect=ValueError("cannot repair"),
        ):
            assert recover_json(raw) == {"Score": 3}

    def test_unrecoverable_text_raises_with_raw_text(self):
        raw = "I am unable to produce that analysis."
        with patch("site_auditor.audit.analysis.json_recovery.repair_json", return_value=""):
            with pytest.raises(ResponseParseError) as exc_info:
                recover_json(raw)

        assert exc_info.value.raw_text == raw
        assert raw in exc_info.value.message
        assert exc_info.value.error_code == "response_parse_failed"

    def test_none_raises(self):
        with pytest.raises(ResponseParseError):
            recover_json(None)
