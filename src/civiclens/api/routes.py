"""API route handlers for CivicLens.

GET /api/v1/search/complaints — semantic search over complaint resolutions
GET /api/v1/search/images — text-to-image retrieval over evidence photos
GET /api/v1/views/daily-counts — daily counts with trailing baseline
GET /api/v1/views/hotspots — complaint counts per location and category
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Query

from civiclens.analytics.anomaly import daily_counts_view
from civiclens.analytics.hotspots import aggregate_hotspots
from civiclens.api.schemas import (
    DailyCountResponse,
    ErrorResponse,
    HotspotCellResponse,
    NeighborMatchResponse,
    SearchResponse,
)
from civiclens.config import settings
from civiclens.ingestion.embedder import EmbeddingServiceError
from civiclens.retrieval.search import search_complaints, search_images
from civiclens.storage.complaints import fetch_complaints
from civiclens.storage.db import get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["civiclens"])

_SEARCH_ERRORS = {502: {"model": ErrorResponse, "description": "Embedding service unavailable"}}


@router.get("/search/complaints", response_model=SearchResponse, responses=_SEARCH_ERRORS)
async def search_complaints_endpoint(
    q: str = Query(..., min_length=2, max_length=500),
    k: int = Query(None, ge=1, le=100),
):
    if k is None:
        k = settings.search_default_k
    session = await get_session()
    try:
        matches = await search_complaints(session, q, k)
    except EmbeddingServiceError as e:
        logger.error("Complaint search failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    finally:
        await session.close()

    return SearchResponse(
        query=q, k=k, matches=[NeighborMatchResponse(**asdict(m)) for m in matches],
    )


@router.get("/search/images", response_model=SearchResponse, responses=_SEARCH_ERRORS)
async def search_images_endpoint(
    q: str = Query(..., min_length=2, max_length=500),
    k: int = Query(None, ge=1, le=100),
):
    if k is None:
        k = settings.search_default_k
    session = await get_session()
    try:
        matches = await search_images(session, q, k)
    except EmbeddingServiceError as e:
        logger.error("Image search failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    finally:
        await session.close()

    return SearchResponse(
        query=q, k=k, matches=[NeighborMatchResponse(**asdict(m)) for m in matches],
    )


@router.get("/views/daily-counts", response_model=list[DailyCountResponse])
async def daily_counts_endpoint(category: str | None = None):
    session = await get_session()
    try:
        records = await fetch_complaints(session, category=category)
    finally:
        await session.close()

    rows = daily_counts_view(records, window_days=settings.rolling_window_days)
    return [DailyCountResponse(**asdict(r)) for r in rows]


@router.get("/views/hotspots", response_model=list[HotspotCellResponse])
async def hotspots_endpoint(
    category: str | None = None,
    precision: int | None = Query(None, ge=0, le=8),
):
    session = await get_session()
    try:
        records = await fetch_complaints(session, with_coordinates=True, category=category)
    finally:
        await session.close()

    cells = aggregate_hotspots(records, precision=precision)
    return [HotspotCellResponse(**asdict(c), geometry_wkt=c.geometry_wkt) for c in cells]
