"""Text embedding generation via NVIDIA NIM API.

Uses nvidia/nv-embedqa-e5-v5 (1024d). The service is asymmetric: stored
narratives are embedded with input_type="passage" and ad hoc search
phrases with input_type="query". The two are exposed as separate
operations, embed_documents() and embed_query(), which tag their output
with the matching TaskType.
"""

import asyncio
import logging

import httpx
import mlflow
from mlflow.entities import SpanType

from civiclens.config import settings
from civiclens.core.types import EmbeddingVector, TaskType
from civiclens.storage.models import EMBEDDING_DIM

logger = logging.getLogger(__name__)

BATCH_SIZE = 32
MAX_RETRIES = 3
BASE_DELAY = 2.0  # seconds
MAX_INPUT_CHARS = 2000

MIN_NARRATIVE_LENGTH = 50
PLACEHOLDER_SENTINELS = frozenset({"N/A", "NA", "NONE", "NULL", "-", "TBD", "UNKNOWN"})


class EmbeddingServiceError(RuntimeError):
    """The embedding service stayed unavailable after all retries."""


def is_embeddable(narrative: str | None) -> bool:
    """Whether a narrative is worth a storage embedding.

    Rejects nulls, placeholder sentinels like "N/A", and anything of
    MIN_NARRATIVE_LENGTH characters or fewer after trimming.
    """
    if narrative is None:
        return False
    text = narrative.strip()
    if text.upper() in PLACEHOLDER_SENTINELS:
        return False
    return len(text) > MIN_NARRATIVE_LENGTH


def _embeddings_url() -> str:
    return f"{settings.nvidia_base_url.rstrip('/')}/embeddings"


def auth_headers() -> dict:
    if not settings.nvidia_api_key:
        raise EmbeddingServiceError("NVIDIA_API_KEY is not configured")
    return {
        "Authorization": f"Bearer {settings.nvidia_api_key}",
        "Content-Type": "application/json",
    }


async def post_embeddings(
    client: httpx.AsyncClient,
    payload: dict,
    headers: dict,
) -> list[list[float]]:
    """POST one embeddings batch with exponential backoff.

    Shared by the text and multimodal embedders, which speak the same
    OpenAI-compatible /embeddings contract.
    """
    for attempt in range(MAX_RETRIES + 1):
        try:
            resp = await client.post(_embeddings_url(), json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
            items = sorted(data["data"], key=lambda item: item.get("index", 0))
            return [item["embedding"] for item in items]

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status != 429 and status < 500:
                raise EmbeddingServiceError(f"Embedding API rejected request ({status})") from e
            if attempt == MAX_RETRIES:
                raise EmbeddingServiceError(
                    f"Embedding API returned {status} after {MAX_RETRIES + 1} attempts"
                ) from e
            delay = BASE_DELAY * (2 ** attempt)
            logger.warning(
                "Embedding API %d (attempt %d/%d), retrying in %.1fs",
                status, attempt + 1, MAX_RETRIES + 1, delay,
            )
            await asyncio.sleep(delay)

        except httpx.TransportError as e:
            failure = "timed out" if isinstance(e, httpx.TimeoutException) else f"unreachable ({e})"
            if attempt == MAX_RETRIES:
                raise EmbeddingServiceError(
                    f"Embedding API {failure} after {MAX_RETRIES + 1} attempts"
                ) from e
            delay = BASE_DELAY * (2 ** attempt)
            logger.warning(
                "Embedding API %s (attempt %d/%d), retrying in %.1fs",
                failure, attempt + 1, MAX_RETRIES + 1, delay,
            )
            await asyncio.sleep(delay)

    raise EmbeddingServiceError("Embedding API unavailable")


async def _embed_texts(texts: list[str], input_type: str) -> list[list[float]]:
    headers = auth_headers()
    all_embeddings: list[list[float]] = []

    async with httpx.AsyncClient(timeout=60.0) as client:
        for batch_idx, i in enumerate(range(0, len(texts), BATCH_SIZE)):
            batch = [t[:MAX_INPUT_CHARS] for t in texts[i : i + BATCH_SIZE]]

            with mlflow.start_span(
                name=f"embed_batch_{batch_idx}", span_type=SpanType.EMBEDDING,
            ) as span:
                span.set_inputs({"batch_size": len(batch), "input_type": input_type})
                batch_embeddings = await post_embeddings(
                    client,
                    {
                        "input": batch,
                        "model": settings.text_embedding_model,
                        "input_type": input_type,
                        "encoding_format": "float",
                        "truncate": "END",
                    },
                    headers,
                )
                all_embeddings.extend(batch_embeddings)
                span.set_outputs({"embedding_dim": len(batch_embeddings[0]) if batch_embeddings else 0})
            logger.debug("Embedded batch %d-%d (%s)", i, i + len(batch), input_type)

    return all_embeddings


async def embed_documents(items: list[tuple[str, str]]) -> list[EmbeddingVector]:
    """Embed (record_id, text) pairs for storage.

    Returns:
        One RETRIEVAL_DOCUMENT vector per input, in input order.
    """
    if not items:
        return []
    values = await _embed_texts([text for _, text in items], input_type="passage")
    return [
        EmbeddingVector(record_id=record_id, values=vec, task_type=TaskType.RETRIEVAL_DOCUMENT)
        for (record_id, _), vec in zip(items, values)
    ]


async def embed_query(text: str) -> EmbeddingVector:
    """Embed an ad hoc search phrase. Returns a RETRIEVAL_QUERY vector."""
    values = await _embed_texts([text], input_type="query")
    if not values:
        raise EmbeddingServiceError("Embedding API returned no vector for query")
    return EmbeddingVector(record_id=None, values=values[0], task_type=TaskType.RETRIEVAL_QUERY)


def validate_vectors(vectors: list[EmbeddingVector]) -> list[EmbeddingVector]:
    """Filter out vectors with quality issues before storage.

    Checks:
    - Dimension matches EMBEDDING_DIM
    - No zero vectors (embedding API failure)
    """
    valid, issues = [], []
    for vec in vectors:
        if vec.dim != EMBEDDING_DIM:
            issues.append(f"{vec.record_id}: wrong embedding dim {vec.dim}, expected {EMBEDDING_DIM}")
            continue
        if all(v == 0.0 for v in vec.values):
            issues.append(f"{vec.record_id}: zero vector")
            continue
        valid.append(vec)

    if issues:
        logger.warning("Data quality: filtered %d/%d vectors", len(issues), len(vectors))
        for issue in issues[:10]:
            logger.warning("  %s", issue)

    return valid
