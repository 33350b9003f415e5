"""Core domain types shared across all civiclens modules."""

from civiclens.core.types import (
    ComplaintRecord,
    DailyCount,
    EmbeddingVector,
    HotspotCell,
    ImageReference,
    NeighborMatch,
    RejectedExtraction,
    StructuredExtraction,
    TaskType,
)

__all__ = [
    "ComplaintRecord",
    "DailyCount",
    "EmbeddingVector",
    "HotspotCell",
    "ImageReference",
    "NeighborMatch",
    "RejectedExtraction",
    "StructuredExtraction",
    "TaskType",
]
