"""Opt-in backoff for callers that want to retry provider calls.

The streaming core never retries on its own. Callers that decide a retry
is appropriate wrap their call with ``provider_retrying``::

    async for attempt in provider_retrying(provider="openai", operation="generate"):
        with attempt:
            result = await adapter.generate_chat_completion(messages, model)
"""

from __future__ import annotations

import logging
from typing import Any

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ..logging import before_sleep_log_event
from ..timeouts import (
    RETRY_BACKOFF_INITIAL_SEC,
    RETRY_BACKOFF_JITTER,
    RETRY_BACKOFF_MAX_SEC,
    STANDARD_RETRY_ATTEMPTS,
)
from .errors import ProviderError


def is_retryable_error(error: BaseException) -> bool:
    """Return True only for provider errors flagged retryable."""
    return isinstance(error, ProviderError) and error.is_retryable


class _RetryAfterAwareWait:
    """Wait for the server's ``retry-after`` when given, else back off exponentially."""

    def __init__(self, fallback: Any, max_wait: float) -> None:
        self._fallback = fallback
        self._max_wait = max_wait

    def __call__(self, retry_state: Any) -> float:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            retry_after = getattr(outcome.exception(), "retry_after", None)
            if retry_after is not None:
                return min(float(retry_after), self._max_wait)
        return self._fallback(retry_state)


def provider_retrying(
    *,
    provider: str,
    operation: str,
    attempts: int = STANDARD_RETRY_ATTEMPTS,
    max_wait: float = RETRY_BACKOFF_MAX_SEC,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` controller for one provider operation."""
    return AsyncRetrying(
        retry=retry_if_exception(is_retryable_error),
        wait=_RetryAfterAwareWait(
            wait_exponential_jitter(
                initial=RETRY_BACKOFF_INITIAL_SEC,
                max=max_wait,
                jitter=RETRY_BACKOFF_JITTER,
            ),
            max_wait,
        ),
        stop=stop_after_attempt(attempts),
        before_sleep=before_sleep_log_event(
            provider=provider,
            operation=operation,
            level=logging.WARNING,
        ),
        reraise=True,
    )
