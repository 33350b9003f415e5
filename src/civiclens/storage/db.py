"""Process-wide async engine for the complaints database.

The engine is built on first use from settings. Stages and API handlers
take sessions from get_session() and are responsible for closing them.
"""

import logging
import ssl

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from civiclens.config import settings
from civiclens.storage.models import Base

logger = logging.getLogger(__name__)

# Approximate-NN indexes for the cosine operator used by retrieval.search
VECTOR_INDEXES = {
    "idx_complaint_embeddings_hnsw": "complaint_embeddings",
    "idx_image_embeddings_hnsw": "image_embeddings",
}

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        connect_args: dict = {"timeout": 10}
        if settings.database_require_ssl:
            connect_args["ssl"] = ssl.create_default_context()
        _engine = create_async_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_recycle=300,
            connect_args=connect_args,
        )
    return _engine


async def init_db() -> None:
    """Install pgvector, create missing tables, and add HNSW cosine indexes."""
    async with _get_engine().begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)
        for index, table in VECTOR_INDEXES.items():
            await conn.execute(text(
                f"CREATE INDEX IF NOT EXISTS {index} ON {table} "
                "USING hnsw (embedding vector_cosine_ops)"
            ))
    logger.info("Database initialized (%d tables)", len(Base.metadata.tables))


async def get_session() -> AsyncSession:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(_get_engine(), expire_on_commit=False)
    return _session_factory()


async def dispose_engine() -> None:
    """Close pooled connections; the next get_session() builds a new engine."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
