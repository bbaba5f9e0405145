"""Closed taxonomy of provider failures.

Every adapter failure resolves to exactly one of these classes before it
reaches orchestration code. ``is_retryable`` tells callers whether a
backoff-and-retry is meaningful; the core itself never retries.
"""

from __future__ import annotations

from typing import ClassVar, Literal, TypeAlias

ProviderErrorKind: TypeAlias = Literal[
    "auth",
    "rate_limit",
    "timeout",
    "network",
    "server",
    "quota_exceeded",
    "model_not_found",
    "invalid_request",
    "cancelled",
]


class ProviderError(Exception):
    """Base class for normalized provider failures."""

    kind: ClassVar[ProviderErrorKind]
    retryable_by_default: ClassVar[bool] = False
    default_user_message: ClassVar[str] = "An unexpected error occurred. Please try again."

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        code: str | None = None,
        is_retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.code = code
        self.is_retryable = (
            self.retryable_by_default if is_retryable is None else is_retryable
        )

    @property
    def retry_after(self) -> float | None:
        return None

    def user_message(self) -> str:
        """Return guidance suitable for showing to the user."""
        return self.default_user_message

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, provider={self.provider!r}, "
            f"status_code={self.status_code!r})"
        )


class ProviderAuthError(ProviderError):
    kind = "auth"
    default_user_message = "Invalid API key. Please check your settings and try again."


class ProviderRateLimitError(ProviderError):
    kind = "rate_limit"
    retryable_by_default = True

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self._retry_after = retry_after

    @property
    def retry_after(self) -> float | None:
        return self._retry_after

    def user_message(self) -> str:
        if self._retry_after:
            return (
                f"Rate limit exceeded. Please wait {self._retry_after:g} seconds "
                "and try again."
            )
        return "Rate limit exceeded. Please wait a moment and try again."


class ProviderTimeoutError(ProviderError):
    kind = "timeout"
    retryable_by_default = True
    default_user_message = "Request timed out. Please try again."


class ProviderNetworkError(ProviderError):
    """Connection-level failure without an exceeded deadline (DNS, refused, reset)."""

    kind = "network"
    retryable_by_default = True
    default_user_message = "Network error. Please check your connection and try again."


class ProviderServerError(ProviderError):
    kind = "server"
    retryable_by_default = True
    default_user_message = "Server error. Please try again later."


class ProviderQuotaExceededError(ProviderError):
    kind = "quota_exceeded"
    default_user_message = "API quota exceeded. Please check your account or upgrade your plan."


class ModelNotFoundError(ProviderError):
    kind = "model_not_found"
    default_user_message = "Selected model not found. Please choose a different model."


class InvalidRequestError(ProviderError):
    kind = "invalid_request"
    default_user_message = "The request was rejected by the provider. Please adjust it and try again."

    def user_message(self) -> str:
        if self.code == "context_length_exceeded":
            return "Message is too long. Please reduce the length and try again."
        return self.default_user_message


class RequestCancelledError(ProviderError):
    """The caller cancelled the request; not a failure from the user's view."""

    kind = "cancelled"
    default_user_message = "Request was cancelled."


ERROR_CLASSES: dict[ProviderErrorKind, type[ProviderError]] = {
    "auth": ProviderAuthError,
    "rate_limit": ProviderRateLimitError,
    "timeout": ProviderTimeoutError,
    "network": ProviderNetworkError,
    "server": ProviderServerError,
    "quota_exceeded": ProviderQuotaExceededError,
    "model_not_found": ModelNotFoundError,
    "invalid_request": InvalidRequestError,
    "cancelled": RequestCancelledError,
}
