"""Preferred key order per structured log event."""

from __future__ import annotations

LOG_PATH_FIELDS = {
    "log_file",
    "logs_dir",
    "store_file",
}

DEFAULT_EVENT_KEY_ORDER: list[str] = [
    "ts",
    "level",
    "message",
]

EVENT_KEY_ORDER: dict[str, list[str]] = {
    # Provider traffic
    "ai_request": [
        "ts",
        "level",
        "provider",
        "model",
        "operation",
        "message_count",
        "input_chars",
        "stream",
    ],
    "ai_response": [
        "ts",
        "level",
        "provider",
        "model",
        "operation",
        "latency_ms",
        "output_chars",
        "finish_reason",
        "input_tokens",
        "output_tokens",
        "total_tokens",
    ],
    "ai_error": [
        "ts",
        "level",
        "provider",
        "model",
        "operation",
        "latency_ms",
        "error_type",
        "error",
        "http_status",
        "retry_after",
    ],
    "provider_log": [
        "ts",
        "level",
        "provider",
        "message",
    ],
    "provider_retry": [
        "ts",
        "level",
        "provider",
        "operation",
        "attempt",
        "sleep_sec",
        "result",
        "error_type",
        "error",
    ],
    # Stream lifecycle
    "stream_start": [
        "ts",
        "level",
        "stream_id",
        "chat_id",
        "message_id",
        "provider_connection_id",
        "provider",
        "model",
        "message_count",
    ],
    "stream_stop_requested": [
        "ts",
        "level",
        "stream_id",
        "chat_id",
        "found",
    ],
    "stream_end": [
        "ts",
        "level",
        "stream_id",
        "chat_id",
        "message_id",
        "status",
        "latency_ms",
        "output_chars",
        "total_tokens",
        "error_type",
        "error",
    ],
    # Chat management
    "chat_create": [
        "ts",
        "level",
        "chat_id",
        "parent_chat_id",
        "message_count",
    ],
    "chat_delete": [
        "ts",
        "level",
        "chat_id",
        "stopped_streams",
    ],
    # Auto-titling
    "title_task_start": [
        "ts",
        "level",
        "chat_id",
        "provider",
        "model",
    ],
    "title_updated": [
        "ts",
        "level",
        "chat_id",
        "title",
        "latency_ms",
    ],
    "title_task_error": [
        "ts",
        "level",
        "chat_id",
        "error_type",
        "error",
        "latency_ms",
    ],
    "event_subscriber_error": [
        "ts",
        "level",
        "event_name",
        "subscriber",
        "error_type",
        "error",
    ],
    "ai_cancelled": [
        "ts",
        "level",
        "provider",
        "model",
        "operation",
        "latency_ms",
    ],
    "store_load": [
        "ts",
        "level",
        "store_file",
        "chat_count",
        "message_count",
    ],
    "adapter_cache_invalidate": [
        "ts",
        "level",
        "config_id",
        "reason",
    ],
    # Runtime library logs decoded by the formatter
    "httpx_request": [
        "ts_utc",
        "level",
        "logger",
        "http_method",
        "http_url",
        "http_version",
        "http_status",
        "http_reason",
    ],
}
