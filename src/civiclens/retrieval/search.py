"""Nearest-neighbor search over stored embeddings with pgvector cosine distance.

The query phrase is embedded with the query task type and compared only
against storage-side vectors. Results come back in ascending distance
(smaller = more similar); no re-ranking or thresholding is applied.
"""

import logging

import mlflow
from mlflow.entities import SpanType
from sqlalchemy import TextClause, text
from sqlalchemy.ext.asyncio import AsyncSession

from civiclens.config import settings
from civiclens.core.types import EmbeddingVector, NeighborMatch, TaskType
from civiclens.ingestion.embedder import embed_query
from civiclens.ingestion.multimodal import embed_image_query

logger = logging.getLogger(__name__)


class TaskTypeMismatchError(ValueError):
    """A storage vector was passed where a query vector is required."""


COMPLAINT_NEIGHBORS_SQL = text("""
    SELECT e.complaint_id AS record_id,
           c.resolution AS content,
           e.embedding <=> CAST(:embedding AS vector) AS distance
    FROM complaint_embeddings e
    JOIN complaints c ON c.complaint_id = e.complaint_id
    WHERE e.task_type = :storage_task_type
    ORDER BY distance ASC, e.complaint_id ASC
    LIMIT :k
""")

IMAGE_NEIGHBORS_SQL = text("""
    SELECT e.uri AS record_id,
           e.uri AS content,
           e.embedding <=> CAST(:embedding AS vector) AS distance
    FROM image_embeddings e
    WHERE e.task_type = :storage_task_type
    ORDER BY distance ASC, e.uri ASC
    LIMIT :k
""")


def _vector_literal(values: list[float]) -> str:
    return "[" + ",".join(str(v) for v in values) + "]"


async def nearest_neighbors(
    session: AsyncSession,
    query_sql: TextClause,
    query: EmbeddingVector,
    k: int,
) -> list[NeighborMatch]:
    """Return the k stored rows closest to a query vector.

    Raises:
        TaskTypeMismatchError: If ``query`` is not a RETRIEVAL_QUERY vector.
        ValueError: If k is not positive.
    """
    if query.task_type is not TaskType.RETRIEVAL_QUERY:
        raise TaskTypeMismatchError(
            f"Nearest-neighbor search needs a {TaskType.RETRIEVAL_QUERY.value} vector, "
            f"got {query.task_type.value}"
        )
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")

    result = await session.execute(
        query_sql,
        {
            "embedding": _vector_literal(query.values),
            "storage_task_type": TaskType.RETRIEVAL_DOCUMENT.value,
            "k": k,
        },
    )
    rows = result.fetchall()

    return [
        NeighborMatch(
            record_id=row.record_id,
            distance=float(row.distance),
            content=row.content or "",
        )
        for row in rows
    ]


@mlflow.trace(name="search_complaints", span_type=SpanType.RETRIEVER)
async def search_complaints(
    session: AsyncSession,
    phrase: str,
    k: int | None = None,
) -> list[NeighborMatch]:
    """Find the complaints whose resolution text is closest to ``phrase``."""
    if k is None:
        k = settings.search_default_k
    query = await embed_query(phrase)
    matches = await nearest_neighbors(session, COMPLAINT_NEIGHBORS_SQL, query, k)
    logger.info("Complaint search %r: %d matches", phrase, len(matches))
    return matches


@mlflow.trace(name="search_images", span_type=SpanType.RETRIEVER)
async def search_images(
    session: AsyncSession,
    phrase: str,
    k: int | None = None,
) -> list[NeighborMatch]:
    """Find the evidence photos closest to ``phrase`` in the shared image/text space."""
    if k is None:
        k = settings.search_default_k
    query = await embed_image_query(phrase)
    matches = await nearest_neighbors(session, IMAGE_NEIGHBORS_SQL, query, k)
    logger.info("Image search %r: %d matches", phrase, len(matches))
    return matches
