"""JSON log lines tagged with the run or request they belong to.

A pipeline stage run and an API request each bind one correlation ID in a
ContextVar, so every line logged beneath them (service batches, SQL, S3
reads) can be grouped back together. Stage row accounting rides along as
extra fields.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Row accounting passed via logger.info(..., extra={...})
STAGE_FIELDS = ("stage", "rows_in", "rows_out", "rows_rejected", "duration_ms")

_NOISY_LOGGERS = ("httpx", "httpcore", "botocore", "boto3", "urllib3", "uvicorn.access")


def get_correlation_id() -> str:
    """Return the current correlation ID, or empty string if not set."""
    return correlation_id.get()


def new_correlation_id(prefix: str | None = None) -> str:
    """Mint a short random correlation ID, optionally prefixed with the run name."""
    cid = uuid.uuid4().hex[:12]
    return f"{prefix}-{cid}" if prefix else cid


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if cid := correlation_id.get():
            entry["correlation_id"] = cid

        entry.update(
            (field, getattr(record, field))
            for field in STAGE_FIELDS
            if getattr(record, field, None) is not None
        )

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(json_format: bool = True, level: str = "INFO") -> None:
    """Install a single root handler.

    Args:
        json_format: JSON lines for deployed runs, plain text for a terminal.
        level: Root level name; unknown names fall back to INFO.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(
        JSONFormatter() if json_format
        else logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s")
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
