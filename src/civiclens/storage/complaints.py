"""Read queries over the complaints relation.

Prerequisite filters (null narratives, null coordinates) are pushed into
SQL so rows that cannot be enriched never leave the database.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from civiclens.core.types import ComplaintRecord
from civiclens.storage.models import Complaint


def _to_record(row: Complaint) -> ComplaintRecord:
    return ComplaintRecord(
        complaint_id=row.complaint_id,
        category=row.category,
        resolution=row.resolution,
        created_at=row.created_at,
        latitude=row.latitude,
        longitude=row.longitude,
    )


async def fetch_complaints(
    session: AsyncSession,
    *,
    with_resolution: bool = False,
    with_coordinates: bool = False,
    category: str | None = None,
) -> list[ComplaintRecord]:
    """Load complaints ordered by id, optionally filtered."""
    stmt = select(Complaint).order_by(Complaint.complaint_id)
    if with_resolution:
        stmt = stmt.where(Complaint.resolution.is_not(None))
    if with_coordinates:
        stmt = stmt.where(Complaint.latitude.is_not(None), Complaint.longitude.is_not(None))
    if category is not None:
        stmt = stmt.where(Complaint.category == category)

    result = await session.execute(stmt)
    return [_to_record(row) for row in result.scalars().all()]
