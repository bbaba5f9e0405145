"""Gemini (Google Generative Language API) adapter."""

from __future__ import annotations

from typing import Any, AsyncIterator, Sequence

from .base import ProviderAdapter, StreamState
from .cancellation import CancellationToken
from .capabilities import gemini_capabilities
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

MODEL_NAME_PREFIX = "models/"
GENERATE_METHOD = "generateContent"


def normalize_model_name(model: str) -> str:
    """Return *model* as a ``models/<id>`` resource name."""
    if model.startswith(MODEL_NAME_PREFIX):
        return model
    return f"{MODEL_NAME_PREFIX}{model}"


def _parts_text(parts: list[Any]) -> str:
    return "".join(
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str) and not part.get("thought")
    )


class GeminiAdapter(ProviderAdapter):
    """Gemini-style adapter.

    System messages move to ``systemInstruction`` (sent with the "user" role)
    and "assistant" turns become "model". Every stream chunk carries
    cumulative ``usageMetadata``; the last one carries ``finishReason``.
    """

    kind = "gemini"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"
    finish_reasons: dict[str, FinishReason] = {
        "STOP": "stop",
        "MAX_TOKENS": "length",
        "SAFETY": "content_filter",
        "RECITATION": "content_filter",
        "BLOCKLIST": "content_filter",
        "PROHIBITED_CONTENT": "content_filter",
        "SPII": "content_filter",
        "MALFORMED_FUNCTION_CALL": "tool_calls",
    }

    def auth_headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key}

    def format_messages(
        self, messages: Sequence[ChatMessage]
    ) -> tuple[dict[str, Any] | None, list[dict[str, Any]]]:
        """Convert normalized messages to Gemini format.

        Args:
            messages: Normalized chat messages

        Returns:
            ``(system_instruction, contents)``; only the last turn carries images
        """
        system_parts = [msg.content for msg in messages if msg.role == "system" and msg.content]
        turns = [msg for msg in messages if msg.role != "system"]

        contents: list[dict[str, Any]] = []
        last_index = len(turns) - 1
        for index, msg in enumerate(turns):
            parts: list[dict[str, Any]] = [{"text": msg.content}]
            if index == last_index and msg.role == "user":
                for image in msg.images:
                    parts.append(
                        {
                            "inlineData": {
                                "mimeType": image.mime_type,
                                "data": image.base64_data,
                            }
                        }
                    )
            role = "model" if msg.role == "assistant" else "user"
            contents.append({"role": role, "parts": parts})

        system_instruction = None
        if system_parts:
            system_instruction = {
                "role": "user",
                "parts": [{"text": "\n\n".join(system_parts)}],
            }
        return system_instruction, contents

    def build_request(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        options: CompletionOptions | None,
        *,
        stream: bool,
    ) -> tuple[str, dict[str, Any]]:
        system_instruction, contents = self.format_messages(messages)
        generation_config: dict[str, Any] = {
            "temperature": effective_temperature(self.kind, options),
        }
        max_tokens = optional_max_output_tokens(options, self.default_max_tokens)
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens
        if options is not None:
            if options.top_p is not None:
                generation_config["topP"] = options.top_p
            if options.stop:
                generation_config["stopSequences"] = list(options.stop)

        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_instruction is not None:
            body["systemInstruction"] = system_instruction

        resource = normalize_model_name(model)
        if stream:
            return f"{self.base_url}/{resource}:streamGenerateContent?alt=sse", body
        return f"{self.base_url}/{resource}:{GENERATE_METHOD}", body

    @staticmethod
    def _read_usage(state: StreamState, usage: Any) -> None:
        if not isinstance(usage, dict):
            return
        if usage.get("promptTokenCount") is not None:
            state.prompt_tokens = usage["promptTokenCount"]
        if usage.get("candidatesTokenCount") is not None:
            state.completion_tokens = usage["candidatesTokenCount"]
        if usage.get("totalTokenCount") is not None:
            state.total_tokens = usage["totalTokenCount"]

    def _candidate_text(self, candidate: dict[str, Any]) -> str:
        content = self.json_object(candidate.get("content"), "candidate content")
        return _parts_text(self.json_list(content.get("parts"), "candidate parts"))

    def parse_response(self, body: Any, model: str) -> ChatCompletionResult:
        body = self.json_object(body, "response")
        candidates = self.json_list(body.get("candidates"), "candidates")
        candidate = self.json_object(candidates[0] if candidates else None, "candidate")
        state = StreamState(model=model)
        self._read_usage(state, body.get("usageMetadata"))
        return ChatCompletionResult(
            content=self._candidate_text(candidate),
            metadata=CompletionMetadata(
                model=model,
                provider=self.kind,
                finish_reason=self.normalize_finish_reason(candidate.get("finishReason")),
                usage=state.usage(),
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

            self._read_usage(state, event.get("usageMetadata"))
            candidates = self.json_list(event.get("candidates"), "stream candidates")
            if not candidates:
                continue
            candidate = self.json_object(candidates[0], "stream candidate")
            text = self._candidate_text(candidate)
            if text:
                yield text
            if candidate.get("finishReason"):
                state.finish_reason = self.normalize_finish_reason(candidate["finishReason"])

    async def list_models(self, cancel: CancellationToken | None = None) -> list[ModelInfo]:
        body = self.json_object(
            await self.request_json("GET", f"{self.base_url}/models", cancel=cancel),
            "model list",
        )
        models: list[ModelInfo] = []
        for entry in self.json_list(body.get("models"), "model list models"):
            entry = self.json_object(entry, "model entry")
            methods = entry.get("supportedGenerationMethods") or []
            if methods and GENERATE_METHOD not in methods:
                continue
            name = str(entry.get("name") or "")
            model_id = name.removeprefix(MODEL_NAME_PREFIX)
            if not model_id:
                continue
            models.append(
                ModelInfo(
                    id=model_id,
                    name=entry.get("displayName") or model_id,
                    provider=self.kind,
                    context_window=entry.get("inputTokenLimit"),
                )
            )
        return models

    def get_capabilities(self, model: str) -> ProviderCapabilities:
        return gemini_capabilities(model)
