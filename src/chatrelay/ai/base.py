"""Shared request/stream plumbing for vendor adapters.

Each adapter translates the normalized chat contract into one vendor's wire
format. The base class owns everything that is identical across vendors:
issuing calls through the ``Transport``, turning transport failures into
``ProviderError`` members, checking the cancellation token once per
incoming event, emitting the terminal metadata chunk, and logging.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, ClassVar, Mapping, Sequence

from ..logging import (
    estimate_message_chars,
    extract_http_error_context,
    log_event,
)
from .cancellation import CancellationToken
from .error_classifier import classify_transport_error
from .errors import ProviderError, ProviderServerError, RequestCancelledError
from .provider_logging import (
    classified_error_message,
    log_provider_error,
    log_provider_warning,
    truncated_response_message,
)
from .transport import HttpResponse, Transport, TransportError
from .types import (
    ChatCompletionResult,
    ChatCompletionStreamChunk,
    ChatMessage,
    CompletionMetadata,
    CompletionOptions,
    FinishReason,
    ModelInfo,
    ProviderCapabilities,
    ProviderKind,
    TokenUsage,
)


@dataclass(slots=True)
class StreamState:
    """Metadata collected while a stream is parsed.

    Vendors deliver usage and finish reasons on different events, often
    separately from content. Parsers record them here and the base class
    emits them on the terminal chunk.
    """

    model: str
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    finish_reason: FinishReason | None = None

    def usage(self) -> TokenUsage | None:
        return build_optional_usage(
            self.prompt_tokens, self.completion_tokens, self.total_tokens
        )


def build_optional_usage(
    prompt_tokens: int | None,
    completion_tokens: int | None,
    total_tokens: int | None = None,
) -> TokenUsage | None:
    """Build a usage record, or ``None`` when the vendor reported nothing."""
    if prompt_tokens is None and completion_tokens is None and total_tokens is None:
        return None
    prompt = prompt_tokens or 0
    completion = completion_tokens or 0
    return {
        "prompt_tokens": prompt,
        "completion_tokens": completion,
        "total_tokens": total_tokens if total_tokens is not None else prompt + completion,
    }


class ProviderAdapter(ABC):
    """Vendor adapter contract plus shared plumbing."""

    kind: ClassVar[ProviderKind]
    default_base_url: ClassVar[str]
    finish_reasons: ClassVar[dict[str, FinishReason]] = {}

    def __init__(
        self,
        api_key: str,
        transport: Transport,
        *,
        base_url: str | None = None,
        custom_headers: Mapping[str, str] | None = None,
        default_max_tokens: int | None = None,
    ) -> None:
        """Initialize adapter.

        No network call is made here; the first request happens on first use.

        Args:
            api_key: Vendor API key
            transport: Wire transport used for every call
            base_url: Override of the vendor API root
            custom_headers: Extra headers sent with every request
            default_max_tokens: Output cap used when the caller sets none
        """
        self.api_key = api_key
        self.transport = transport
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.custom_headers = dict(custom_headers or {})
        self.default_max_tokens = default_max_tokens

    # -- vendor-specific surface -------------------------------------------

    @abstractmethod
    def auth_headers(self) -> dict[str, str]:
        """Return the vendor's authentication headers."""

    @abstractmethod
    def build_request(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: CompletionOptions | None,
        *,
        stream: bool,
    ) -> tuple[str, dict[str, Any]]:
        """Return ``(url, json_body)`` for a completion call."""

    @abstractmethod
    def parse_response(self, body: Any, model: str) -> ChatCompletionResult:
        """Translate a non-streaming response body."""

    @abstractmethod
    def parse_stream(
        self,
        events: AsyncIterator[dict[str, Any]],
        state: StreamState,
    ) -> AsyncIterator[str]:
        """Yield text deltas from decoded stream events, recording metadata in *state*."""

    @abstractmethod
    async def list_models(self, cancel: CancellationToken | None = None) -> list[ModelInfo]:
        """Return the models this connection can use."""

    @abstractmethod
    def get_capabilities(self, model: str) -> ProviderCapabilities:
        """Return static capabilities for *model*."""

    # -- shared plumbing ---------------------------------------------------

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(self.auth_headers())
        headers.update(self.custom_headers)
        return headers

    def normalize_finish_reason(self, raw: Any) -> FinishReason | None:
        if raw is None:
            return None
        return self.finish_reasons.get(str(raw))

    def json_object(self, value: Any, what: str) -> dict[str, Any]:
        """Return *value* as a JSON object; ``None`` reads as empty.

        Raises:
            ProviderServerError: *value* is some other JSON type
        """
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ProviderServerError(
                f"Malformed {what}: expected an object, got {type(value).__name__}",
                provider=self.kind,
            )
        return value

    def json_list(self, value: Any, what: str) -> list[Any]:
        """Return *value* as a JSON array; ``None`` reads as empty."""
        if value is None:
            return []
        if not isinstance(value, list):
            raise ProviderServerError(
                f"Malformed {what}: expected an array, got {type(value).__name__}",
                provider=self.kind,
            )
        return value

    def _log_error(self, error: ProviderError, *, model: str | None, operation: str, started: float) -> None:
        if isinstance(error, RequestCancelledError):
            log_event(
                "ai_cancelled",
                level=logging.INFO,
                provider=self.kind,
                model=model,
                operation=operation,
                latency_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            return
        log_provider_error(self.kind, classified_error_message(error))
        log_event(
            "ai_error",
            level=logging.ERROR,
            provider=self.kind,
            model=model,
            operation=operation,
            latency_ms=round((time.perf_counter() - started) * 1000, 1),
            error_type=type(error).__name__,
            error=error.message,
            **extract_http_error_context(error),
        )

    def _raise_if_cancelled(self, cancel: CancellationToken | None) -> None:
        if cancel is not None and cancel.cancelled:
            raise RequestCancelledError(
                cancel.reason or "Request cancelled", provider=self.kind
            )

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        json_body: Any | None = None,
        cancel: CancellationToken | None = None,
    ) -> Any:
        """Issue one buffered call and decode its JSON body."""
        try:
            response: HttpResponse = await self.transport.request(
                method, url, headers=self.headers(), json_body=json_body, cancel=cancel
            )
        except TransportError as e:
            raise classify_transport_error(self.kind, e) from e
        self._raise_if_cancelled(cancel)
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise ProviderServerError(
                f"Malformed JSON response: {e}",
                provider=self.kind,
                status_code=response.status_code,
            ) from e

    async def iter_stream_events(
        self,
        url: str,
        json_body: dict[str, Any],
        cancel: CancellationToken | None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded JSON events, checking *cancel* before each one."""
        lines = self.transport.stream(
            "POST", url, headers=self.headers(), json_body=json_body, cancel=cancel
        )
        try:
            async with aclosing(lines):
                async for data in lines:
                    self._raise_if_cancelled(cancel)
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        log_provider_warning(
                            self.kind, f"Skipping malformed stream event: {data[:200]}"
                        )
                        continue
                    if isinstance(event, dict):
                        yield event
        except TransportError as e:
            raise classify_transport_error(self.kind, e) from e
        self._raise_if_cancelled(cancel)

    async def generate_chat_completion(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: CompletionOptions | None = None,
        cancel: CancellationToken | None = None,
    ) -> ChatCompletionResult:
        """Run one non-streaming completion round trip."""
        url, body = self.build_request(messages, model, options, stream=False)
        started = time.perf_counter()
        log_event(
            "ai_request",
            level=logging.INFO,
            provider=self.kind,
            model=model,
            operation="generate",
            message_count=len(messages),
            input_chars=estimate_message_chars(messages),
            stream=False,
        )
        try:
            payload = await self.request_json("POST", url, json_body=body, cancel=cancel)
            result = self.parse_response(payload, model)
        except ProviderError as e:
            self._log_error(e, model=model, operation="generate", started=started)
            raise

        self._log_response(
            model,
            "generate",
            started,
            output_chars=len(result.content),
            metadata=result.metadata,
        )
        return result

    async def stream_chat_completion(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: CompletionOptions | None = None,
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[ChatCompletionStreamChunk]:
        """Stream a completion.

        Yields content chunks in vendor order followed by exactly one terminal
        chunk with empty content and the final metadata. A cancelled stream
        raises ``RequestCancelledError`` instead of ending early.
        """
        url, body = self.build_request(messages, model, options, stream=True)
        state = StreamState(model=model)
        started = time.perf_counter()
        output_chars = 0
        log_event(
            "ai_request",
            level=logging.INFO,
            provider=self.kind,
            model=model,
            operation="stream",
            message_count=len(messages),
            input_chars=estimate_message_chars(messages),
            stream=True,
        )
        try:
            events = self.iter_stream_events(url, body, cancel)
            async with aclosing(events):
                async for text in self.parse_stream(events, state):
                    if text:
                        output_chars += len(text)
                        yield ChatCompletionStreamChunk(content=text)
            self._raise_if_cancelled(cancel)
        except ProviderError as e:
            self._log_error(e, model=state.model, operation="stream", started=started)
            raise

        metadata = CompletionMetadata(
            model=state.model,
            provider=self.kind,
            finish_reason=state.finish_reason,
            usage=state.usage(),
        )
        self._log_response(
            state.model, "stream", started, output_chars=output_chars, metadata=metadata
        )
        yield ChatCompletionStreamChunk(content="", metadata=metadata)

    def _log_response(
        self,
        model: str,
        operation: str,
        started: float,
        *,
        output_chars: int,
        metadata: CompletionMetadata,
    ) -> None:
        usage = metadata.usage or {}
        log_event(
            "ai_response",
            level=logging.INFO,
            provider=self.kind,
            model=model,
            operation=operation,
            latency_ms=round((time.perf_counter() - started) * 1000, 1),
            output_chars=output_chars,
            finish_reason=metadata.finish_reason,
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
            total_tokens=usage.get("total_tokens"),
        )
        if metadata.finish_reason == "length":
            log_provider_warning(self.kind, truncated_response_message(model))

    async def health_check(self) -> bool:
        """Verify credentials and reachability; raises ``ProviderError`` on failure."""
        await self.list_models()
        return True
