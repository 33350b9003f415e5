"""Prompt registry — versioned instruction templates for MLflow tracking.

The extraction template is fixed per version so that reruns of the
enrichment stage send byte-identical prompts, and each run can tag which
version produced its table.
"""

import logging

import mlflow

logger = logging.getLogger(__name__)


EXTRACTION_PROMPT_V1 = """\
You are a data assistant for a city's 311 complaint desk.

Read the complaint resolution text below and respond with STRICT JSON only — \
no prose, no markdown, no code fences. The JSON object must have exactly these keys:

- "issue_category": a short string naming the underlying issue (e.g. "pothole", "noise", "graffiti")
- "severity": an integer from 1 (minor) to 5 (critical)
- "summary": one sentence summarizing what happened and how it was resolved

Complaint resolution text:
"""

# Registry: name → (version, prompt_text)
_PROMPT_REGISTRY: dict[str, tuple[str, str]] = {
    "extraction": ("v1", EXTRACTION_PROMPT_V1),
}


def _lookup(name: str) -> tuple[str, str]:
    try:
        return _PROMPT_REGISTRY[name]
    except KeyError:
        raise KeyError(f"Unknown prompt: {name!r}. Available: {sorted(_PROMPT_REGISTRY)}") from None


def get_active_prompt(name: str) -> str:
    """Return the active template text for ``name``.

    Raises:
        KeyError: If the prompt is not registered.
    """
    return _lookup(name)[1]


def get_prompt_version(name: str) -> str:
    """Return the version tag stored next to each extraction row."""
    return _lookup(name)[0]


def list_prompts() -> list[dict[str, str]]:
    """List all registered prompts with name and version."""
    return [{"name": name, "version": ver} for name, (ver, _) in _PROMPT_REGISTRY.items()]


def log_prompt_to_run(name: str) -> None:
    """Log the active prompt text as an MLflow artifact for the current run.

    Call this inside an active `mlflow.start_run()` context.
    """
    version, text = _lookup(name)
    mlflow.log_text(text, f"prompts/{name}_{version}.txt")
    mlflow.set_tag(f"prompt_{name}_version", version)
    logger.debug("Logged prompt %s (%s) to MLflow run", name, version)
