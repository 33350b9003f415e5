"""Shared test fixtures."""

from datetime import datetime, timezone

import mlflow
import pytest

from civiclens.core.types import ComplaintRecord
from civiclens.observability.logging import correlation_id


@pytest.fixture(autouse=True)
def _disable_mlflow_tracing():
    """Disable MLflow tracing during tests so nothing is written to mlruns/."""
    mlflow.tracing.disable()
    yield
    mlflow.tracing.enable()


@pytest.fixture(autouse=True)
def _isolate_correlation_id():
    """Undo correlation IDs bound in-process (e.g. by cli.main) so tests stay independent."""
    token = correlation_id.set("")
    yield
    correlation_id.reset(token)


@pytest.fixture
def make_complaint():
    """Factory for ComplaintRecord with sensible defaults."""

    def _make(complaint_id="c-1", **kwargs) -> ComplaintRecord:
        defaults = {
            "category": "Street Condition",
            "resolution": "The Department of Transportation repaired the reported pothole and resurfaced the lane.",
            "created_at": datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc),
            "latitude": 40.7128,
            "longitude": -74.0060,
        }
        defaults.update(kwargs)
        return ComplaintRecord(complaint_id=complaint_id, **defaults)

    return _make
