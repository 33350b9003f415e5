"""Observability: extraction prompt versions, JSON logging, and correlation IDs."""

from civiclens.observability.logging import get_correlation_id, setup_logging
from civiclens.observability.prompts import get_active_prompt, log_prompt_to_run

__all__ = ["get_active_prompt", "get_correlation_id", "log_prompt_to_run", "setup_logging"]
