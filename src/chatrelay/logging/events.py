"""Structured event emission and logging helpers."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from ..constants import APP_NAME, DATETIME_FORMAT_FILENAME, LOG_FILE_EXTENSION
from .formatter import StructuredTextFormatter
from .schema import LOG_PATH_FIELDS


def _to_log_safe(value: Any) -> Any:
    """Convert values to JSON-serializable, log-safe representations."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): _to_log_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_log_safe(v) for v in value]
    return str(value)


def extract_http_error_context(error: Exception) -> dict[str, Any]:
    """Extract safe HTTP context from an exception when available."""
    context: dict[str, Any] = {}

    status = getattr(error, "status_code", None)
    if status is not None:
        context["http_status"] = status

    retry_after = getattr(error, "retry_after", None)
    if retry_after is not None:
        context["retry_after"] = retry_after

    code = getattr(error, "code", None)
    if code:
        context["error_code"] = str(code)

    return context


def estimate_message_chars(messages: Iterable[Any]) -> int:
    """Estimate total character length across chat messages.

    Accepts mappings with a ``content`` key or objects with a ``content``
    attribute.
    """
    total = 0
    for msg in messages:
        if isinstance(msg, Mapping):
            content = msg.get("content", "")
        else:
            content = getattr(msg, "content", "")
        total += len(str(content))
    return total


def log_event(event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Emit a structured log event."""
    payload = {
        "ts": datetime.now().astimezone().isoformat(),
        "event": event,
    }
    for key, value in fields.items():
        if key in LOG_PATH_FIELDS and isinstance(value, str) and value.strip():
            value = str(Path(value).expanduser().resolve())
        payload[key] = _to_log_safe(value)
    logging.log(level, json.dumps(payload, ensure_ascii=False, separators=(",", ":")))


def before_sleep_log_event(
    *,
    provider: str,
    operation: str,
    level: int = logging.WARNING,
):
    """Build a tenacity before_sleep callback that emits structured retry logs."""

    def _callback(retry_state: Any) -> None:
        outcome = getattr(retry_state, "outcome", None)
        next_action = getattr(retry_state, "next_action", None)
        if outcome is None or next_action is None:
            return

        payload: dict[str, Any] = {
            "provider": provider,
            "operation": operation,
            "attempt": getattr(retry_state, "attempt_number", None),
            "sleep_sec": getattr(next_action, "sleep", None),
        }

        if outcome.failed:
            error = outcome.exception()
            payload["result"] = "raised"
            if error is not None:
                payload["error_type"] = type(error).__name__
                payload["error"] = str(error)
        else:
            payload["result"] = "returned"

        log_event("provider_retry", level=level, **payload)

    return _callback


def build_run_log_path(logs_dir: str) -> str:
    """Build a unique run log path in the configured logs directory."""
    logs_dir_path = Path(logs_dir)
    logs_dir_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime(DATETIME_FORMAT_FILENAME)
    base_name = f"{APP_NAME}_{timestamp}"
    candidate = logs_dir_path / f"{base_name}{LOG_FILE_EXTENSION}"

    suffix = 1
    while candidate.exists():
        candidate = logs_dir_path / f"{base_name}_{suffix}{LOG_FILE_EXTENSION}"
        suffix += 1

    return str(candidate)


def setup_logging(log_file: Optional[str] = None) -> None:
    """Set up logging configuration.

    Without a log file, logging is disabled entirely.
    """
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(str(log_path), encoding="utf-8")
        handler.setFormatter(StructuredTextFormatter())
        logging.basicConfig(level=logging.INFO, handlers=[handler], force=True)
    else:
        logging.disable(logging.CRITICAL)
