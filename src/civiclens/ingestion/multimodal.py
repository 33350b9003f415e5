"""Multimodal embeddings via NVIDIA NIM nvclip.

nvclip places images and text in one shared vector space, so a phrase
like "flooded underpass" can retrieve photos. Images are sent as base64
data URIs through the same /embeddings contract as text.
"""

import asyncio
import base64
import logging

import httpx
import mlflow
from mlflow.entities import SpanType

from civiclens.config import settings
from civiclens.core.types import EmbeddingVector, ImageReference, TaskType
from civiclens.ingestion.catalog import read_object
from civiclens.ingestion.embedder import EmbeddingServiceError, auth_headers, post_embeddings

logger = logging.getLogger(__name__)

IMAGE_BATCH_SIZE = 8


def to_data_uri(content: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"


async def _embed_inputs(inputs: list[str], span_prefix: str) -> list[list[float]]:
    headers = auth_headers()
    all_embeddings: list[list[float]] = []

    async with httpx.AsyncClient(timeout=120.0) as client:
        for batch_idx, i in enumerate(range(0, len(inputs), IMAGE_BATCH_SIZE)):
            batch = inputs[i : i + IMAGE_BATCH_SIZE]
            with mlflow.start_span(
                name=f"{span_prefix}_{batch_idx}", span_type=SpanType.EMBEDDING,
            ) as span:
                span.set_inputs({"batch_size": len(batch), "model": settings.multimodal_embedding_model})
                vectors = await post_embeddings(
                    client,
                    {
                        "input": batch,
                        "model": settings.multimodal_embedding_model,
                        "encoding_format": "float",
                    },
                    headers,
                )
                all_embeddings.extend(vectors)
                span.set_outputs({"embedding_dim": len(vectors[0]) if vectors else 0})

    return all_embeddings


async def embed_images(refs: list[ImageReference], s3_client=None) -> list[EmbeddingVector]:
    """Fetch and embed catalog images for storage.

    Returns:
        One RETRIEVAL_DOCUMENT vector per reference, keyed by URI.
    """
    if not refs:
        return []

    contents = await asyncio.gather(
        *(asyncio.to_thread(read_object, ref.uri, s3_client) for ref in refs)
    )
    inputs = [to_data_uri(body, ref.content_type) for ref, body in zip(refs, contents)]
    logger.info("Embedding %d images", len(inputs))

    values = await _embed_inputs(inputs, span_prefix="embed_images")
    return [
        EmbeddingVector(record_id=ref.uri, values=vec, task_type=TaskType.RETRIEVAL_DOCUMENT)
        for ref, vec in zip(refs, values)
    ]


async def embed_image_query(text: str) -> EmbeddingVector:
    """Embed a phrase into the image space. Returns a RETRIEVAL_QUERY vector."""
    values = await _embed_inputs([text], span_prefix="embed_image_query")
    if not values:
        raise EmbeddingServiceError("Embedding API returned no vector for image query")
    return EmbeddingVector(record_id=None, values=values[0], task_type=TaskType.RETRIEVAL_QUERY)
