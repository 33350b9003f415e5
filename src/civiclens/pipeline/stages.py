"""Table-producing pipeline stages: extract → embed text → embed images.

Each stage is an idempotent full recomputation: it reads its inputs,
calls the hosted service in bulk, and replaces its output table(s) in a
single transaction. A service failure aborts the stage, rolls back, and
surfaces as StageFailedError; there is no partial-progress bookkeeping,
the stage is simply rerun.
"""

import asyncio
import logging
import time
from dataclasses import dataclass

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from civiclens.config import settings
from civiclens.enrichment.extraction import build_extraction_prompt, parse_extraction, split_results
from civiclens.enrichment.generator import GenerationServiceError, generate_texts
from civiclens.ingestion.catalog import list_images
from civiclens.ingestion.embedder import (
    EmbeddingServiceError,
    embed_documents,
    is_embeddable,
    validate_vectors,
)
from civiclens.ingestion.multimodal import embed_images
from civiclens.observability.prompts import get_prompt_version
from civiclens.storage.complaints import fetch_complaints
from civiclens.storage.db import get_session
from civiclens.storage.models import (
    ComplaintEmbedding,
    ComplaintExtraction,
    ExtractionReject,
    ImageEmbedding,
    ImageObject,
)

logger = logging.getLogger(__name__)


class StageFailedError(RuntimeError):
    """A stage's bulk service call failed; the stage must be rerun from scratch."""

    def __init__(self, stage: str, cause: Exception):
        super().__init__(f"Stage {stage!r} failed: {cause}")
        self.stage = stage
        self.cause = cause


@dataclass
class StageResult:
    """Row accounting for one stage run."""

    stage: str
    rows_in: int
    rows_out: int
    rows_rejected: int = 0
    duration_ms: int = 0

    def as_metrics(self) -> dict[str, float]:
        return {
            "rows_in": float(self.rows_in),
            "rows_out": float(self.rows_out),
            "rows_rejected": float(self.rows_rejected),
            "duration_ms": float(self.duration_ms),
        }


async def _run_in_session(session: AsyncSession | None, body) -> StageResult:
    """Run ``body(session)`` in one transaction, rolling back on any error."""
    own_session = session is None
    if own_session:
        session = await get_session()
    try:
        result = await body(session)
        await session.commit()
        return result
    except Exception:
        await session.rollback()
        raise
    finally:
        if own_session:
            await session.close()


def _log_result(result: StageResult) -> None:
    logger.info(
        "Stage %s complete: %d/%d rows written",
        result.stage, result.rows_out, result.rows_in,
        extra={
            "stage": result.stage,
            "rows_in": result.rows_in,
            "rows_out": result.rows_out,
            "rows_rejected": result.rows_rejected,
            "duration_ms": result.duration_ms,
        },
    )


# ---------------------------------------------------------------------------
# Enrichment: narrative → structured JSON columns
# ---------------------------------------------------------------------------


async def run_extraction_stage(session: AsyncSession | None = None) -> StageResult:
    """Rebuild complaint_extractions (and the extraction_rejects side table)."""

    async def body(session: AsyncSession) -> StageResult:
        started = time.monotonic()
        complaints = await fetch_complaints(session, with_resolution=True)
        logger.info("Extracting %d complaints", len(complaints))

        prompts = [build_extraction_prompt(c.resolution) for c in complaints]
        try:
            raws = await generate_texts(prompts)
        except GenerationServiceError as e:
            raise StageFailedError("extraction", e) from e

        accepted, rejected = split_results(
            [parse_extraction(c.complaint_id, raw) for c, raw in zip(complaints, raws)]
        )

        version = get_prompt_version("extraction")
        await session.execute(delete(ComplaintExtraction))
        await session.execute(delete(ExtractionReject))
        session.add_all([
            ComplaintExtraction(
                complaint_id=e.complaint_id,
                issue_category=e.issue_category,
                severity=e.severity,
                summary=e.summary,
                raw_response=e.raw_response,
                prompt_version=version,
            )
            for e in accepted
        ])
        session.add_all([
            ExtractionReject(complaint_id=r.complaint_id, raw_response=r.raw_response, reason=r.reason)
            for r in rejected
        ])

        return StageResult(
            stage="extraction",
            rows_in=len(complaints),
            rows_out=len(accepted),
            rows_rejected=len(rejected),
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    result = await _run_in_session(session, body)
    _log_result(result)
    return result


# ---------------------------------------------------------------------------
# Text embeddings for semantic search
# ---------------------------------------------------------------------------


async def run_text_embedding_stage(session: AsyncSession | None = None) -> StageResult:
    """Rebuild complaint_embeddings from narratives that pass is_embeddable()."""

    async def body(session: AsyncSession) -> StageResult:
        started = time.monotonic()
        complaints = await fetch_complaints(session, with_resolution=True)
        items = [(c.complaint_id, c.resolution.strip()) for c in complaints if is_embeddable(c.resolution)]
        logger.info("Embedding %d/%d narratives", len(items), len(complaints))

        try:
            vectors = validate_vectors(await embed_documents(items))
        except EmbeddingServiceError as e:
            raise StageFailedError("text_embedding", e) from e

        await session.execute(delete(ComplaintEmbedding))
        session.add_all([
            ComplaintEmbedding(
                complaint_id=v.record_id,
                embedding=v.values,
                task_type=v.task_type.value,
                model=settings.text_embedding_model,
            )
            for v in vectors
        ])

        return StageResult(
            stage="text_embedding",
            rows_in=len(complaints),
            rows_out=len(vectors),
            rows_rejected=len(complaints) - len(vectors),
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    result = await _run_in_session(session, body)
    _log_result(result)
    return result


# ---------------------------------------------------------------------------
# Multimodal embeddings for text-to-image retrieval
# ---------------------------------------------------------------------------


async def run_image_embedding_stage(
    pattern: str,
    session: AsyncSession | None = None,
    s3_client=None,
) -> StageResult:
    """Rebuild image_objects and image_embeddings from a catalog pattern."""

    async def body(session: AsyncSession) -> StageResult:
        started = time.monotonic()
        try:
            refs = await asyncio.to_thread(list_images, pattern, s3_client)
            vectors = validate_vectors(await embed_images(refs, s3_client))
        except (EmbeddingServiceError, ClientError, BotoCoreError) as e:
            raise StageFailedError("image_embedding", e) from e

        await session.execute(delete(ImageEmbedding))
        await session.execute(delete(ImageObject))
        session.add_all([
            ImageObject(
                uri=ref.uri,
                content_type=ref.content_type,
                size_bytes=ref.size_bytes,
                updated_at=ref.updated_at,
            )
            for ref in refs
        ])
        await session.flush()
        session.add_all([
            ImageEmbedding(
                uri=v.record_id,
                embedding=v.values,
                task_type=v.task_type.value,
                model=settings.multimodal_embedding_model,
            )
            for v in vectors
        ])

        return StageResult(
            stage="image_embedding",
            rows_in=len(refs),
            rows_out=len(vectors),
            rows_rejected=len(refs) - len(vectors),
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    result = await _run_in_session(session, body)
    _log_result(result)
    return result
