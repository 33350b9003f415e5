"""Tests for JSON logging, correlation IDs, and the prompt registry."""

import json
import logging
from unittest.mock import patch

import pytest

from civiclens.observability.logging import (
    JSONFormatter,
    correlation_id,
    get_correlation_id,
    new_correlation_id,
)
from civiclens.observability.prompts import (
    get_active_prompt,
    get_prompt_version,
    list_prompts,
    log_prompt_to_run,
)


def _record(msg="hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("civiclens.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "civiclens.test"
        assert entry["message"] == "hello"
        assert "correlation_id" not in entry

    def test_includes_correlation_id(self):
        token = correlation_id.set("req-123")
        try:
            entry = json.loads(JSONFormatter().format(_record()))
            assert entry["correlation_id"] == "req-123"
            assert get_correlation_id() == "req-123"
        finally:
            correlation_id.reset(token)

    def test_includes_stage_accounting(self):
        entry = json.loads(JSONFormatter().format(
            _record(stage="extraction", rows_in=10, rows_out=8, rows_rejected=2, duration_ms=42),
        ))
        assert entry["stage"] == "extraction"
        assert (entry["rows_in"], entry["rows_out"], entry["rows_rejected"]) == (10, 8, 2)


class TestPromptRegistry:
    def test_extraction_prompt_registered(self):
        assert "issue_category" in get_active_prompt("extraction")
        assert get_prompt_version("extraction") == "v1"
        assert {"name": "extraction", "version": "v1"} in list_prompts()

    def test_unknown_prompt(self):
        with pytest.raises(KeyError, match="Unknown prompt"):
            get_active_prompt("nope")

    def test_log_prompt_to_run(self):
        with patch("civiclens.observability.prompts.mlflow") as mock_mlflow:
            log_prompt_to_run("extraction")

        mock_mlflow.log_text.assert_called_once()
        assert mock_mlflow.log_text.call_args.args[1] == "prompts/extraction_v1.txt"
        mock_mlflow.set_tag.assert_called_once_with("prompt_extraction_version", "v1")


def test_new_correlation_id_prefix():
    cid = new_correlation_id("extract")
    assert cid.startswith("extract-")
    assert cid != new_correlation_id("extract")
