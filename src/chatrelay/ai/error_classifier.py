"""Map HTTP failures and transport faults onto the provider error taxonomy.

Vendor error bodies are parsed first, because the vendors' own codes are
more precise than the status line (for example OpenAI reports exhausted
credit as a 429 with ``insufficient_quota``). The status-code table is the
fallback when the body is absent, unparseable or carries an unknown code.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Mapping

from ..logging import sanitize_error_message
from .errors import (
    ERROR_CLASSES,
    ProviderError,
    ProviderErrorKind,
    ProviderNetworkError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    RequestCancelledError,
)
from .transport import TransportCancelledError, TransportError, TransportStatusError
from .types import ProviderKind


@dataclass(slots=True, frozen=True)
class VendorErrorDetail:
    """What a vendor error body says, independent of its JSON nesting."""

    message: str | None = None
    code: str | None = None
    kind: ProviderErrorKind | None = None


OPENAI_CODE_KINDS: dict[str, ProviderErrorKind] = {
    "invalid_api_key": "auth",
    "invalid_organization": "auth",
    "insufficient_quota": "quota_exceeded",
    "billing_hard_limit_reached": "quota_exceeded",
    "rate_limit_exceeded": "rate_limit",
    "model_not_found": "model_not_found",
    "context_length_exceeded": "invalid_request",
    "server_error": "server",
}

ANTHROPIC_TYPE_KINDS: dict[str, ProviderErrorKind] = {
    "authentication_error": "auth",
    "permission_error": "auth",
    "not_found_error": "model_not_found",
    "rate_limit_error": "rate_limit",
    "overloaded_error": "server",
    "api_error": "server",
    "invalid_request_error": "invalid_request",
    "request_too_large": "invalid_request",
}

GEMINI_STATUS_KINDS: dict[str, ProviderErrorKind] = {
    "UNAUTHENTICATED": "auth",
    "PERMISSION_DENIED": "auth",
    "NOT_FOUND": "model_not_found",
    "RESOURCE_EXHAUSTED": "rate_limit",
    "INVALID_ARGUMENT": "invalid_request",
    "FAILED_PRECONDITION": "invalid_request",
    "INTERNAL": "server",
    "UNAVAILABLE": "server",
    "DEADLINE_EXCEEDED": "timeout",
}

GEMINI_REASON_KINDS: dict[str, ProviderErrorKind] = {
    "API_KEY_INVALID": "auth",
    "API_KEY_EXPIRED": "auth",
}

VENDOR_LABELS: dict[ProviderKind, str] = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "gemini": "Gemini",
}


def _error_object(body: Any) -> dict[str, Any] | None:
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    return error if isinstance(error, dict) else None


def parse_openai_error(body: Any) -> VendorErrorDetail:
    """Parse ``{"error": {"message", "type", "code"}}``.

    Only ``code`` refines the status; ``type`` is ``invalid_request_error``
    even for a missing API key.
    """
    error = _error_object(body)
    if error is None:
        return VendorErrorDetail()
    code = error.get("code")
    code = str(code) if code else None
    error_type = error.get("type")
    return VendorErrorDetail(
        message=error.get("message"),
        code=code or (str(error_type) if error_type else None),
        kind=OPENAI_CODE_KINDS.get(code) if code else None,
    )


def parse_anthropic_error(body: Any) -> VendorErrorDetail:
    """Parse ``{"type": "error", "error": {"type", "message"}}``."""
    error = _error_object(body)
    if error is None:
        return VendorErrorDetail()
    error_type = error.get("type")
    error_type = str(error_type) if error_type else None
    return VendorErrorDetail(
        message=error.get("message"),
        code=error_type,
        kind=ANTHROPIC_TYPE_KINDS.get(error_type) if error_type else None,
    )


def parse_gemini_error(body: Any) -> VendorErrorDetail:
    """Parse ``{"error": {"code", "message", "status", "details": [...]}}``.

    A ``details[].reason`` such as ``API_KEY_INVALID`` wins over ``status``,
    since Gemini reports a bad key as ``INVALID_ARGUMENT``.
    """
    error = _error_object(body)
    if error is None:
        return VendorErrorDetail()

    for detail in error.get("details") or []:
        reason = detail.get("reason") if isinstance(detail, dict) else None
        if reason in GEMINI_REASON_KINDS:
            return VendorErrorDetail(
                message=error.get("message"),
                code=reason,
                kind=GEMINI_REASON_KINDS[reason],
            )

    status = error.get("status")
    status = str(status) if status else None
    return VendorErrorDetail(
        message=error.get("message"),
        code=status,
        kind=GEMINI_STATUS_KINDS.get(status) if status else None,
    )


VENDOR_ERROR_PARSERS: dict[ProviderKind, Callable[[Any], VendorErrorDetail]] = {
    "openai": parse_openai_error,
    "anthropic": parse_anthropic_error,
    "gemini": parse_gemini_error,
}


def kind_for_status(status_code: int) -> ProviderErrorKind:
    """Status-code fallback table."""
    if status_code in (401, 403):
        return "auth"
    if status_code == 429:
        return "rate_limit"
    if status_code == 404:
        return "model_not_found"
    if status_code == 402:
        return "quota_exceeded"
    if status_code == 408:
        return "timeout"
    if status_code >= 500:
        return "server"
    if 400 <= status_code < 500:
        return "invalid_request"
    return "server"


def parse_retry_after(headers: Mapping[str, str]) -> float | None:
    """Parse a ``retry-after`` header given as delta-seconds or an HTTP date.

    Header lookup is case-insensitive. Integral values come back as ``int``.
    """
    raw = None
    for key, value in headers.items():
        if key.lower() == "retry-after":
            raw = value
            break
    if raw is None:
        return None

    raw = str(raw).strip()
    try:
        seconds = float(raw)
    except ValueError:
        try:
            when = parsedate_to_datetime(raw)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = max(0.0, (when - datetime.now(timezone.utc)).total_seconds())
        return int(round(seconds))

    if seconds < 0:
        return None
    return int(seconds) if seconds.is_integer() else seconds


def _decode_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def classify_http_error(
    provider: ProviderKind,
    status_code: int,
    text: str,
    headers: Mapping[str, str] | None = None,
) -> ProviderError:
    """Build the taxonomy member for one non-2xx response."""
    headers = headers or {}
    parse_body = VENDOR_ERROR_PARSERS[provider]
    detail = parse_body(_decode_body(text))
    kind = detail.kind or kind_for_status(status_code)

    label = VENDOR_LABELS[provider]
    message = f"{label} API error ({status_code})"
    if detail.code:
        message += f" [{detail.code}]"
    raw_message = detail.message or text.strip() or "Unknown error"
    message = sanitize_error_message(f"{message}: {raw_message}")

    if kind == "rate_limit":
        return ProviderRateLimitError(
            message,
            provider=provider,
            status_code=status_code,
            code=detail.code,
            retry_after=parse_retry_after(headers),
        )
    error_class = ERROR_CLASSES[kind]
    return error_class(
        message,
        provider=provider,
        status_code=status_code,
        code=detail.code,
    )


def classify_body_error(provider: ProviderKind, body: Any) -> ProviderError:
    """Classify an error object delivered inside a 2xx stream."""
    detail = VENDOR_ERROR_PARSERS[provider](body)
    kind = detail.kind or "server"
    label = VENDOR_LABELS[provider]
    message = sanitize_error_message(
        f"{label} stream error"
        + (f" [{detail.code}]" if detail.code else "")
        + f": {detail.message or 'Unknown error'}"
    )
    return ERROR_CLASSES[kind](message, provider=provider, code=detail.code)


def classify_transport_error(provider: ProviderKind, error: TransportError) -> ProviderError:
    """Build the taxonomy member for a transport-level failure."""
    if isinstance(error, TransportCancelledError):
        return RequestCancelledError(str(error), provider=provider)
    if isinstance(error, TransportStatusError):
        return classify_http_error(provider, error.status_code, error.text, error.headers)

    message = sanitize_error_message(f"{VENDOR_LABELS[provider]} network error: {error}")
    if error.timed_out:
        return ProviderTimeoutError(message, provider=provider)
    return ProviderNetworkError(message, provider=provider)
