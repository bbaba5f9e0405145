"""Shared provider log-message helpers."""

from __future__ import annotations

import logging

from ..logging import log_event
from .errors import ProviderError


def log_provider_error(provider: str, message: str) -> None:
    """Emit a standardized provider error log event."""
    log_event(
        "provider_log",
        level=logging.ERROR,
        provider=provider,
        message=message,
    )


def log_provider_warning(provider: str, message: str) -> None:
    """Emit a standardized provider warning log event."""
    log_event(
        "provider_log",
        level=logging.WARNING,
        provider=provider,
        message=message,
    )


def classified_error_message(error: ProviderError) -> str:
    """Build the standard one-line description of a classified failure."""
    status = f" ({error.status_code})" if error.status_code is not None else ""
    return f"{type(error).__name__}{status}: {error.message}"


def truncated_response_message(model: str) -> str:
    """Build the standard message for a response cut off by the token cap."""
    return f"Response from {model} was truncated due to max_tokens limit"
