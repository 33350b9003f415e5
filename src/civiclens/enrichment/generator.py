"""Text generation client — OpenAI-compatible chat completions on NVIDIA NIM.

One request per prompt, issued in concurrent batches. Each prompt yields
one raw text candidate (or None when the provider rejected that single
row). Rate limits, 5xx responses, timeouts and dropped connections are
retried with exponential backoff; if a prompt still cannot be served the
whole batch fails with GenerationServiceError so the calling stage can be rerun.
"""

import asyncio
import logging

import httpx
import mlflow
from mlflow.entities import SpanType

from civiclens.config import settings

logger = logging.getLogger(__name__)

# Fail fast on connect, generous on read (LLM generation)
LLM_TIMEOUT = httpx.Timeout(connect=10.0, read=60.0, write=10.0, pool=5.0)

BATCH_SIZE = 16
MAX_RETRIES = 3
BASE_DELAY = 2.0  # seconds


class GenerationServiceError(RuntimeError):
    """The generation service could not be reached or refused the credentials."""


def _chat_url() -> str:
    return f"{settings.nvidia_base_url.rstrip('/')}/chat/completions"


async def _complete(
    client: httpx.AsyncClient,
    prompt: str,
    headers: dict,
) -> str | None:
    """Generate one completion with exponential backoff."""
    payload = {
        "model": settings.generation_model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": settings.generation_temperature,
        "max_tokens": settings.generation_max_tokens,
        "response_format": {"type": "json_object"},
    }

    for attempt in range(MAX_RETRIES + 1):
        try:
            resp = await client.post(_chat_url(), json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
            return data["choices"][0]["message"].get("content")

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise GenerationServiceError(f"Generation service rejected credentials ({status})") from e
            if status != 429 and status < 500:
                # Per-row refusal (content filter, prompt too long): no candidate for this row
                logger.warning("Generation refused prompt with %d", status)
                return None
            if attempt == MAX_RETRIES:
                raise GenerationServiceError(
                    f"Generation service returned {status} after {MAX_RETRIES + 1} attempts"
                ) from e
            delay = BASE_DELAY * (2 ** attempt)
            logger.warning(
                "Generation API %d (attempt %d/%d), retrying in %.1fs",
                status, attempt + 1, MAX_RETRIES + 1, delay,
            )
            await asyncio.sleep(delay)

        except httpx.TransportError as e:
            failure = "timed out" if isinstance(e, httpx.TimeoutException) else f"unreachable ({e})"
            if attempt == MAX_RETRIES:
                raise GenerationServiceError(
                    f"Generation service {failure} after {MAX_RETRIES + 1} attempts"
                ) from e
            delay = BASE_DELAY * (2 ** attempt)
            logger.warning(
                "Generation API %s (attempt %d/%d), retrying in %.1fs",
                failure, attempt + 1, MAX_RETRIES + 1, delay,
            )
            await asyncio.sleep(delay)

        except (KeyError, IndexError, TypeError) as e:
            logger.warning("Unexpected generation response structure: %s", e)
            return None

    return None


async def _complete_batch(client: httpx.AsyncClient, batch: list[str], headers: dict) -> list[str | None]:
    """Run one batch concurrently; the first service failure cancels the rest."""
    try:
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(_complete(client, p, headers)) for p in batch]
    except ExceptionGroup as eg:
        raise eg.exceptions[0] from None
    return [t.result() for t in tasks]


async def generate_texts(prompts: list[str]) -> list[str | None]:
    """Generate one raw text per prompt, preserving input order.

    Raises:
        GenerationServiceError: No API key configured, bad credentials, or
            retries exhausted for any prompt.
    """
    if not prompts:
        return []
    if not settings.nvidia_api_key:
        raise GenerationServiceError("NVIDIA_API_KEY is not configured")

    headers = {
        "Authorization": f"Bearer {settings.nvidia_api_key}",
        "Content-Type": "application/json",
    }
    outputs: list[str | None] = []

    async with httpx.AsyncClient(timeout=LLM_TIMEOUT) as client:
        for batch_idx, i in enumerate(range(0, len(prompts), BATCH_SIZE)):
            batch = prompts[i : i + BATCH_SIZE]

            with mlflow.start_span(
                name=f"generate_batch_{batch_idx}", span_type=SpanType.CHAT_MODEL,
            ) as span:
                span.set_inputs({"batch_size": len(batch), "model": settings.generation_model})
                results = await _complete_batch(client, batch, headers)
                outputs.extend(results)
                span.set_outputs({"empty": sum(1 for r in results if r is None)})
            logger.debug("Generated batch %d-%d", i, i + len(batch))

    return outputs
