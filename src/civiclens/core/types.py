"""Domain types for the CivicLens complaint enrichment pipeline.

All shared dataclasses and type definitions live here to prevent
circular imports and establish a single source of truth for the
domain model. Every other module imports from here.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum


# ---------------------------------------------------------------------------
# Source records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ComplaintRecord:
    """A municipal complaint as ingested. Immutable once loaded."""

    complaint_id: str
    category: str
    resolution: str | None
    created_at: datetime
    latitude: float | None = None
    longitude: float | None = None


@dataclass(frozen=True)
class ImageReference:
    """An object in the evidence catalog (e.g. s3://bucket/photos/123.jpg)."""

    uri: str
    content_type: str
    size_bytes: int = 0
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Extraction types
# ---------------------------------------------------------------------------

@dataclass
class StructuredExtraction:
    """Validated JSON extraction for one complaint, projected into columns."""

    complaint_id: str
    issue_category: str
    severity: int | None
    summary: str | None
    raw_response: str


@dataclass
class RejectedExtraction:
    """A generation result that failed validation and was excluded."""

    complaint_id: str
    raw_response: str | None
    reason: str


# ---------------------------------------------------------------------------
# Embedding types
# ---------------------------------------------------------------------------

class TaskType(str, Enum):
    """Which side of the retrieval a vector was generated for.

    Storage and query vectors come from different service parameterizations
    and must never be swapped for one another.
    """

    RETRIEVAL_DOCUMENT = "RETRIEVAL_DOCUMENT"
    RETRIEVAL_QUERY = "RETRIEVAL_QUERY"


@dataclass(frozen=True)
class EmbeddingVector:
    """A fixed-length vector tagged with the task type it was produced for."""

    record_id: str | None
    values: list[float]
    task_type: TaskType

    @property
    def dim(self) -> int:
        return len(self.values)


# ---------------------------------------------------------------------------
# Search types
# ---------------------------------------------------------------------------

@dataclass
class NeighborMatch:
    """One nearest-neighbor hit. Smaller distance = more similar."""

    record_id: str
    distance: float
    content: str


# ---------------------------------------------------------------------------
# View rows
# ---------------------------------------------------------------------------

@dataclass
class DailyCount:
    """Complaint count for one category on one calendar day.

    rolling_average is the mean of the category's daily counts over the
    trailing window, excluding ``day`` itself. None when no prior day exists.
    """

    category: str
    day: date
    count: int
    rolling_average: float | None = None


@dataclass
class HotspotCell:
    """Complaint count at one coordinate pair for one category."""

    latitude: float
    longitude: float
    category: str
    count: int

    @property
    def geometry_wkt(self) -> str:
        return f"POINT({self.longitude} {self.latitude})"
