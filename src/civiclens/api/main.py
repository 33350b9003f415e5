"""CivicLens API — FastAPI application exposing search and analytic views.

Run:
    uvicorn civiclens.api.main:app --reload
    # or
    civiclens-api
"""

import asyncio
import logging
from contextlib import asynccontextmanager

import mlflow
import uvicorn
from fastapi import FastAPI, Request
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from civiclens.api.routes import router
from civiclens.config import settings
from civiclens.observability.logging import correlation_id, new_correlation_id, setup_logging
from civiclens.storage.db import dispose_engine, get_session, init_db

logger = logging.getLogger(__name__)

DB_INIT_TIMEOUT = 15  # seconds

# Enrichment tables whose last write time is reported by /health
FRESHNESS_COLUMNS = {
    "complaint_extractions": "extracted_at",
    "complaint_embeddings": "created_at",
    "image_embeddings": "created_at",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(json_format=settings.log_json, level=settings.log_level)

    mlflow.set_tracking_uri(settings.mlflow_tracking_uri)
    mlflow.set_experiment(settings.mlflow_experiment_name)

    try:
        await asyncio.wait_for(init_db(), timeout=DB_INIT_TIMEOUT)
    except asyncio.TimeoutError:
        logger.error("Database not ready after %ds, serving in degraded mode", DB_INIT_TIMEOUT)
    except Exception as e:
        logger.error("Database initialization failed (%s), serving in degraded mode", e)

    logger.info("CivicLens API ready (mlflow=%s)", settings.mlflow_tracking_uri)
    yield
    await dispose_engine()


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's X-Request-ID, or mint one, and echo it back."""

    async def dispatch(self, request: Request, call_next):
        cid = request.headers.get("x-request-id") or new_correlation_id("req")
        token = correlation_id.set(cid)
        try:
            response = await call_next(request)
        finally:
            correlation_id.reset(token)
        response.headers["x-request-id"] = cid
        return response


app = FastAPI(
    title="CivicLens",
    description="AI enrichment of municipal complaints: semantic search, "
    "text-to-image retrieval, anomaly baselines, and hotspot views.",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(CorrelationIDMiddleware)
app.include_router(router)


async def _table_freshness(session) -> dict[str, str]:
    freshness = {}
    for table, column in FRESHNESS_COLUMNS.items():
        try:
            latest = (await session.execute(text(f"SELECT MAX({column}) FROM {table}"))).scalar()
        except Exception as e:
            logger.warning("Freshness check failed for %s: %s", table, e)
            freshness[table] = "unknown"
            continue
        freshness[table] = latest.isoformat() if latest else "never"
    return freshness


@app.get("/health")
async def health():
    """Health check — DB connectivity, freshness of each enrichment table, MLflow."""
    checks: dict[str, str] = {}

    session = None
    try:
        session = await get_session()
        await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
        checks.update(await _table_freshness(session))
    except Exception as e:
        checks["database"] = f"error: {e}"
    finally:
        if session is not None:
            await session.close()

    try:
        mlflow.search_experiments(max_results=1)
        checks["mlflow"] = "ok"
    except Exception as e:
        checks["mlflow"] = f"error: {e}"

    return {
        "status": "healthy" if checks["database"] == "ok" else "degraded",
        "checks": checks,
    }


def run() -> None:
    """Entry point for `civiclens-api`."""
    uvicorn.run("civiclens.api.main:app", host="0.0.0.0", port=8000)
