"""Tests for structured extraction: prompt, validation, and severity casting."""

import json

import pytest

from civiclens.core.types import RejectedExtraction, StructuredExtraction
from civiclens.enrichment.extraction import (
    REQUIRED_KEYS,
    build_extraction_prompt,
    cast_severity,
    parse_extraction,
    split_results,
)


def _raw(**overrides) -> str:
    payload = {"issue_category": "pothole", "severity": 3, "summary": "A pothole was filled."}
    payload.update(overrides)
    return json.dumps(payload)


class TestBuildExtractionPrompt:
    def test_includes_narrative(self):
        prompt = build_extraction_prompt("Crew patched the hole on 5th Ave.")
        assert prompt.endswith("Crew patched the hole on 5th Ave.")

    def test_names_all_required_keys(self):
        prompt = build_extraction_prompt("x")
        for key in REQUIRED_KEYS:
            assert f'"{key}"' in prompt

    def test_same_narrative_same_prompt(self):
        assert build_extraction_prompt("  abc  ") == build_extraction_prompt("abc")


class TestCastSeverity:
    @pytest.mark.parametrize("value,expected", [
        (1, 1), (5, 5), ("3", 3), (" 4 ", 4),
    ])
    def test_valid_values(self, value, expected):
        assert cast_severity(value) == expected

    @pytest.mark.parametrize("value", [0, 6, -2, "9", "-1"])
    def test_out_of_range_is_absent_not_clamped(self, value):
        assert cast_severity(value) is None

    @pytest.mark.parametrize("value", ["high", "3.5", 3.0, 2.7, None, True, [3], {"v": 3}, "²", "³", "4²"])
    def test_non_integer_is_absent(self, value):
        assert cast_severity(value) is None


class TestParseExtraction:
    def test_valid_json_is_projected(self):
        result = parse_extraction("c-1", _raw())
        assert isinstance(result, StructuredExtraction)
        assert result.complaint_id == "c-1"
        assert result.issue_category == "pothole"
        assert result.severity == 3
        assert result.summary == "A pothole was filled."

    def test_markdown_fences_are_stripped(self):
        result = parse_extraction("c-1", f"```json\n{_raw()}\n```")
        assert isinstance(result, StructuredExtraction)
        assert json.loads(result.raw_response)["issue_category"] == "pothole"

    def test_invalid_json_rejected(self):
        result = parse_extraction("c-1", "Sure! The category is pothole.")
        assert isinstance(result, RejectedExtraction)
        assert result.reason == "invalid_json"
        assert result.raw_response == "Sure! The category is pothole."

    def test_none_rejected(self):
        result = parse_extraction("c-1", None)
        assert isinstance(result, RejectedExtraction)
        assert result.reason == "empty_response"

    def test_json_array_rejected(self):
        result = parse_extraction("c-1", "[1, 2, 3]")
        assert isinstance(result, RejectedExtraction)
        assert result.reason == "not_an_object"

    def test_missing_key_rejected(self):
        raw = json.dumps({"issue_category": "noise", "severity": 2})
        result = parse_extraction("c-1", raw)
        assert isinstance(result, RejectedExtraction)
        assert result.reason == "missing_keys:summary"

    @pytest.mark.parametrize("category", [None, "", "   "])
    def test_null_category_rejected(self, category):
        result = parse_extraction("c-1", _raw(issue_category=category))
        assert isinstance(result, RejectedExtraction)
        assert result.reason == "null_category"

    def test_bad_severity_keeps_row(self):
        result = parse_extraction("c-1", _raw(severity="very bad"))
        assert isinstance(result, StructuredExtraction)
        assert result.severity is None
        assert result.issue_category == "pothole"

    def test_superscript_severity_keeps_row(self):
        result = parse_extraction("c-1", _raw(severity="³"))
        assert isinstance(result, StructuredExtraction)
        assert result.severity is None

    def test_out_of_range_severity_keeps_row(self):
        result = parse_extraction("c-1", _raw(severity=9))
        assert isinstance(result, StructuredExtraction)
        assert result.severity is None

    def test_null_summary_allowed(self):
        result = parse_extraction("c-1", _raw(summary=None))
        assert isinstance(result, StructuredExtraction)
        assert result.summary is None


class TestSplitResults:
    def test_partitions_in_order(self):
        results = [
            parse_extraction("a", _raw()),
            parse_extraction("b", "not json"),
            parse_extraction("c", _raw(issue_category="graffiti")),
        ]
        accepted, rejected = split_results(results)
        assert [r.complaint_id for r in accepted] == ["a", "c"]
        assert [r.complaint_id for r in rejected] == ["b"]

    def test_every_accepted_row_has_all_keys_and_category(self):
        raws = [_raw(), "{}", "oops", _raw(severity=None), _raw(issue_category=None)]
        accepted, _ = split_results([parse_extraction(str(i), r) for i, r in enumerate(raws)])
        assert len(accepted) == 2
        for row in accepted:
            data = json.loads(row.raw_response)
            assert all(k in data for k in REQUIRED_KEYS)
            assert row.issue_category
            assert row.severity is None or 1 <= row.severity <= 5
