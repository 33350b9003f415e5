"""Tests for the civiclens-pipeline command line."""

from unittest.mock import AsyncMock, patch

import pytest

from civiclens.cli import _run_stage, build_parser
from civiclens.pipeline.stages import StageFailedError, StageResult


class TestBuildParser:
    def test_embed_images_requires_pattern(self):
        args = build_parser().parse_args(["embed-images", "s3://evidence/*.jpg"])
        assert args.pattern == "s3://evidence/*.jpg"

    def test_search_joins_phrase(self):
        args = build_parser().parse_args(["search", "pothole", "repaired", "-k", "3"])
        assert args.phrase == ["pothole", "repaired"]
        assert args.k == 3

    def test_hotspots_precision_defaults_to_exact(self):
        args = build_parser().parse_args(["hotspots"])
        assert args.precision is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestRunStage:
    def test_success_logs_metrics(self, capsys):
        result = StageResult(stage="text_embedding", rows_in=3, rows_out=1, rows_rejected=2)
        with patch("civiclens.cli.mlflow") as mock_mlflow:
            code = _run_stage("embed-text", AsyncMock(return_value=result))

        assert code == 0
        mock_mlflow.log_metrics.assert_called_once_with(result.as_metrics())
        assert "1/3 rows written" in capsys.readouterr().out

    def test_extract_logs_prompt_version(self):
        result = StageResult(stage="extraction", rows_in=1, rows_out=1)
        with patch("civiclens.cli.mlflow"), \
             patch("civiclens.cli.log_prompt_to_run") as log_prompt:
            _run_stage("extract", AsyncMock(return_value=result))

        log_prompt.assert_called_once_with("extraction")

    def test_stage_failure_returns_nonzero(self):
        failure = StageFailedError("extraction", RuntimeError("503"))
        with patch("civiclens.cli.mlflow") as mock_mlflow, \
             patch("civiclens.cli.log_prompt_to_run"):
            code = _run_stage("extract", AsyncMock(side_effect=failure))

        assert code == 1
        mock_mlflow.set_tag.assert_called_with("status", "failed")
        mock_mlflow.log_metrics.assert_not_called()
