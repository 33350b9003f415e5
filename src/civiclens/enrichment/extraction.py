"""Structured extraction: complaint narrative → validated JSON → typed columns.

A row is retained only when the model output parses as a JSON object that
carries all three required keys with a non-empty issue_category. Anything
else becomes a RejectedExtraction. Severity is cast on its own: a bad value
nulls that field and never rejects the row.
"""

import json
import logging

from civiclens.core.types import RejectedExtraction, StructuredExtraction
from civiclens.observability.prompts import get_active_prompt

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("issue_category", "severity", "summary")
SEVERITY_MIN = 1
SEVERITY_MAX = 5


def build_extraction_prompt(narrative: str) -> str:
    """Render the fixed extraction instruction for one narrative."""
    return get_active_prompt("extraction") + narrative.strip()


def _strip_code_fences(raw: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    content = raw.strip()
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]
        if content.rstrip().endswith("```"):
            content = content.rstrip()[:-3]
    return content.strip()


def cast_severity(value) -> int | None:
    """Cast a severity value to int in [1, 5], or None.

    Accepts ints and integral digit strings ("3", " 4 "). Floats, booleans,
    free text, and out-of-range values all come back as None, never clamped.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        severity = value
    elif isinstance(value, str):
        try:
            severity = int(value.strip())
        except ValueError:
            return None
    else:
        return None

    if SEVERITY_MIN <= severity <= SEVERITY_MAX:
        return severity
    return None


def parse_extraction(
    complaint_id: str,
    raw: str | None,
) -> StructuredExtraction | RejectedExtraction:
    """Validate one raw generation output and project it into columns."""
    if raw is None or not raw.strip():
        return RejectedExtraction(complaint_id=complaint_id, raw_response=raw, reason="empty_response")

    content = _strip_code_fences(raw)
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        return RejectedExtraction(complaint_id=complaint_id, raw_response=raw, reason="invalid_json")

    if not isinstance(data, dict):
        return RejectedExtraction(complaint_id=complaint_id, raw_response=raw, reason="not_an_object")

    missing = [k for k in REQUIRED_KEYS if k not in data]
    if missing:
        return RejectedExtraction(
            complaint_id=complaint_id,
            raw_response=raw,
            reason=f"missing_keys:{','.join(missing)}",
        )

    category = data["issue_category"]
    if category is None or not str(category).strip():
        return RejectedExtraction(complaint_id=complaint_id, raw_response=raw, reason="null_category")

    summary = data["summary"]
    return StructuredExtraction(
        complaint_id=complaint_id,
        issue_category=str(category).strip(),
        severity=cast_severity(data["severity"]),
        summary=str(summary).strip() if summary is not None else None,
        raw_response=content,
    )


def split_results(
    results: list[StructuredExtraction | RejectedExtraction],
) -> tuple[list[StructuredExtraction], list[RejectedExtraction]]:
    """Partition parsed results into (accepted, rejected)."""
    accepted = [r for r in results if isinstance(r, StructuredExtraction)]
    rejected = [r for r in results if isinstance(r, RejectedExtraction)]
    if rejected:
        logger.warning("Extraction: rejected %d/%d outputs", len(rejected), len(results))
        for r in rejected[:10]:
            logger.warning("  %s: %s", r.complaint_id, r.reason)
    return accepted, rejected
