"""Claude (Anthropic) Messages API adapter."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Sequence

from ..logging import log_event
from .base import ProviderAdapter, StreamState, build_optional_usage
from .cancellation import CancellationToken
from .capabilities import anthropic_capabilities
from .catalog import ANTHROPIC_MODELS
from .error_classifier import classify_body_error
from .errors import ProviderError
from .limits import (
    DEFAULT_ANTHROPIC_MAX_OUTPUT_TOKENS,
    anthropic_effective_max_output_tokens,
    effective_temperature,
)
from .types import (
    ChatCompletionResult,
    ChatMessage,
    CompletionMetadata,
    CompletionOptions,
    FinishReason,
    ModelInfo,
    ProviderCapabilities,
)

ANTHROPIC_API_VERSION = "2023-06-01"
HEALTH_CHECK_MODEL = "claude-haiku-4-5"


class ClaudeAdapter(ProviderAdapter):
    """Anthropic-style adapter.

    System messages move to the top-level ``system`` field and ``max_tokens``
    is always sent. Streams are typed events; an ``error`` event raises at
    once and ``message_stop`` ends the stream.
    """

    kind = "anthropic"
    default_base_url = "https://api.anthropic.com/v1"
    finish_reasons: dict[str, FinishReason] = {
        "end_turn": "stop",
        "stop_sequence": "stop",
        "pause_turn": "stop",
        "max_tokens": "length",
        "tool_use": "tool_calls",
        "refusal": "content_filter",
    }

    def auth_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
        }

    def format_messages(
        self, messages: Sequence[ChatMessage]
    ) -> tuple[str | None, list[dict[str, Any]]]:
        """Convert normalized messages to Claude format.

        Args:
            messages: Normalized chat messages

        Returns:
            ``(system, messages)``: joined system text (or None) and the
            conversational turns; only the last turn carries images
        """
        system_parts = [msg.content for msg in messages if msg.role == "system"]
        turns = [msg for msg in messages if msg.role != "system"]

        formatted: list[dict[str, Any]] = []
        last_index = len(turns) - 1
        for index, msg in enumerate(turns):
            if index == last_index and msg.role == "user" and msg.images:
                content: list[dict[str, Any]] = [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": image.mime_type,
                            "data": image.base64_data,
                        },
                    }
                    for image in msg.images
                ]
                content.append({"type": "text", "text": msg.content})
                formatted.append({"role": msg.role, "content": content})
            else:
                formatted.append({"role": msg.role, "content": msg.content})

        system = "\n\n".join(part for part in system_parts if part) or None
        return system, formatted

    def build_request(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: CompletionOptions | None,
        *,
        stream: bool,
    ) -> tuple[str, dict[str, Any]]:
        system, formatted = self.format_messages(messages)
        body: dict[str, Any] = {
            "model": model,
            "messages": formatted,
            "max_tokens": anthropic_effective_max_output_tokens(
                options, self.default_max_tokens
            ),
            "temperature": effective_temperature(self.kind, options),
            "stream": stream,
        }
        if system:
            body["system"] = system
        if options is not None:
            if options.top_p is not None:
                body["top_p"] = options.top_p
            if options.stop:
                body["stop_sequences"] = list(options.stop)
        return f"{self.base_url}/messages", body

    def parse_response(self, body: Any, model: str) -> ChatCompletionResult:
        body = self.json_object(body, "response")
        text = "".join(
            block.get("text", "")
            for block in self.json_list(body.get("content"), "content blocks")
            if isinstance(block, dict) and block.get("type") == "text"
        )
        usage = body.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        return ChatCompletionResult(
            content=text,
            metadata=CompletionMetadata(
                model=model,
                provider=self.kind,
                finish_reason=self.normalize_finish_reason(body.get("stop_reason")),
                usage=build_optional_usage(
                    usage.get("input_tokens"),
                    usage.get("output_tokens"),
                ),
            ),
        )

    async def parse_stream(
        self,
        events: AsyncIterator[dict[str, Any]],
        state: StreamState,
    ) -> AsyncIterator[str]:
        async for event in events:
            event_type = event.get("type")

            if event_type == "message_start":
                message = self.json_object(event.get("message"), "message_start message")
                usage = self.json_object(message.get("usage"), "message_start usage")
                state.prompt_tokens = usage.get("input_tokens")
                if usage.get("output_tokens") is not None:
                    state.completion_tokens = usage.get("output_tokens")

            elif event_type == "content_block_delta":
                delta = self.json_object(event.get("delta"), "content_block_delta delta")
                if delta.get("type") == "text_delta" and delta.get("text"):
                    yield delta["text"]

            elif event_type == "message_delta":
                delta = self.json_object(event.get("delta"), "message_delta delta")
                if delta.get("stop_reason") is not None:
                    state.finish_reason = self.normalize_finish_reason(delta["stop_reason"])
                usage = self.json_object(event.get("usage"), "message_delta usage")
                if usage.get("output_tokens") is not None:
                    state.completion_tokens = usage["output_tokens"]

            elif event_type == "message_stop":
                return

            elif event_type == "error":
                raise classify_body_error(self.kind, event)

    async def list_models(self, cancel: CancellationToken | None = None) -> list[ModelInfo]:
        # Compiled-in catalog; no network call.
        return list(ANTHROPIC_MODELS)

    async def health_check(self) -> bool:
        """Send a minimal 1-token request to verify the key."""
        body = {
            "model": HEALTH_CHECK_MODEL,
            "max_tokens": 1,
            "messages": [{"role": "user", "content": "Hi"}],
        }
        try:
            await self.request_json("POST", f"{self.base_url}/messages", json_body=body)
        except ProviderError as e:
            log_event(
                "provider_log",
                level=logging.WARNING,
                provider=self.kind,
                message=f"Health check failed: {e.message}",
            )
            raise
        return True

    def get_capabilities(self, model: str) -> ProviderCapabilities:
        return anthropic_capabilities(
            model, self.default_max_tokens or DEFAULT_ANTHROPIC_MAX_OUTPUT_TOKENS
        )
