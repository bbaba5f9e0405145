"""OpenAI chat completions adapter."""

from __future__ import annotations

from typing import Any, AsyncIterator, Sequence

from .base import ProviderAdapter, StreamState, build_optional_usage
from .cancellation import CancellationToken
from .capabilities import openai_capabilities
from .catalog import OPENAI_CHAT_MODEL_PREFIXES
from .error_classifier import classify_body_error
from .limits import effective_temperature, optional_max_output_tokens
from .types import (
    ChatCompletionResult,
    ChatMessage,
    CompletionMetadata,
    CompletionOptions,
    FinishReason,
    ModelInfo,
    ProviderCapabilities,
)


class OpenAIAdapter(ProviderAdapter):
    """OpenAI-style adapter.

    System messages stay inline in ``messages``. Streams are requested with
    ``stream_options.include_usage`` so usage arrives on a final chunk with an
    empty ``choices`` array, separate from the content deltas.
    """

    kind = "openai"
    default_base_url = "https://api.openai.com/v1"
    finish_reasons: dict[str, FinishReason] = {
        "stop": "stop",
        "length": "length",
        "content_filter": "content_filter",
        "tool_calls": "tool_calls",
        "function_call": "tool_calls",
    }

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def format_messages(self, messages: Sequence[ChatMessage]) -> list[dict[str, Any]]:
        """Convert normalized messages to OpenAI format.

        Args:
            messages: Normalized chat messages

        Returns:
            Messages in OpenAI format; only the last message carries images
        """
        formatted: list[dict[str, Any]] = []
        last_index = len(messages) - 1
        for index, msg in enumerate(messages):
            if index == last_index and msg.role == "user" and msg.images:
                content: list[dict[str, Any]] = [{"type": "text", "text": msg.content}]
                for image in msg.images:
                    content.append(
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{image.mime_type};base64,{image.base64_data}",
                                "detail": "auto",
                            },
                        }
                    )
                formatted.append({"role": msg.role, "content": content})
            else:
                formatted.append({"role": msg.role, "content": msg.content})
        return formatted

    def build_request(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: CompletionOptions | None,
        *,
        stream: bool,
    ) -> tuple[str, dict[str, Any]]:
        body: dict[str, Any] = {
            "model": model,
            "messages": self.format_messages(messages),
            "stream": stream,
            "temperature": effective_temperature(self.kind, options),
        }
        max_tokens = optional_max_output_tokens(options, self.default_max_tokens)
        if max_tokens is not None:
            body["max_completion_tokens"] = max_tokens
        if options is not None:
            if options.top_p is not None:
                body["top_p"] = options.top_p
            if options.stop:
                body["stop"] = list(options.stop)
        if stream:
            body["stream_options"] = {"include_usage": True}
        return f"{self.base_url}/chat/completions", body

    @staticmethod
    def _read_usage(state: StreamState, usage: Any) -> None:
        if not isinstance(usage, dict):
            return
        state.prompt_tokens = usage.get("prompt_tokens")
        state.completion_tokens = usage.get("completion_tokens")
        state.total_tokens = usage.get("total_tokens")

    def parse_response(self, body: Any, model: str) -> ChatCompletionResult:
        body = self.json_object(body, "response")
        choices = self.json_list(body.get("choices"), "choices")
        choice = self.json_object(choices[0] if choices else None, "choice")
        message = self.json_object(choice.get("message"), "message")
        usage = body.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        return ChatCompletionResult(
            content=message.get("content") or "",
            metadata=CompletionMetadata(
                model=model,
                provider=self.kind,
                finish_reason=self.normalize_finish_reason(choice.get("finish_reason")),
                usage=build_optional_usage(
                    usage.get("prompt_tokens"),
                    usage.get("completion_tokens"),
                    usage.get("total_tokens"),
                ),
            ),
        )

    async def parse_stream(
        self,
        events: AsyncIterator[dict[str, Any]],
        state: StreamState,
    ) -> AsyncIterator[str]:
        async for event in events:
            if "error" in event:
                raise classify_body_error(self.kind, event)

            self._read_usage(state, event.get("usage"))
            for choice in self.json_list(event.get("choices"), "stream choices"):
                choice = self.json_object(choice, "stream choice")
                if choice.get("index", 0) != 0:
                    continue
                delta = self.json_object(choice.get("delta"), "stream delta")
                text = delta.get("content")
                if text:
                    yield text
                finish_reason = choice.get("finish_reason")
                if finish_reason is not None:
                    state.finish_reason = self.normalize_finish_reason(finish_reason)

    async def list_models(self, cancel: CancellationToken | None = None) -> list[ModelInfo]:
        body = self.json_object(
            await self.request_json("GET", f"{self.base_url}/models", cancel=cancel),
            "model list",
        )
        models: list[ModelInfo] = []
        for entry in self.json_list(body.get("data"), "model list data"):
            model_id = self.json_object(entry, "model entry").get("id")
            if not model_id:
                continue
            # Compatible servers behind a custom base URL use their own names.
            if self.base_url == self.default_base_url and not str(model_id).startswith(
                OPENAI_CHAT_MODEL_PREFIXES
            ):
                continue
            models.append(ModelInfo(id=model_id, name=model_id, provider=self.kind))
        return sorted(models, key=lambda model: model.id)

    def get_capabilities(self, model: str) -> ProviderCapabilities:
        return openai_capabilities(model)
