"""Shared fakes for adapter, manager and orchestrator tests."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Optional

from chatrelay.ai.cancellation import CancellationToken
from chatrelay.ai.transport import (
    HttpResponse,
    TransportCancelledError,
    TransportError,
    TransportStatusError,
)
from chatrelay.ai.types import ChatMessage
from chatrelay.domain.config import ProviderConfig


@dataclass
class RecordedRequest:
    method: str
    url: str
    headers: dict[str, str]
    json_body: Any
    stream: bool


@dataclass
class ScriptedStream:
    """Data payloads for one streamed call.

    With ``hang_after`` set, the stream blocks after that many payloads until
    the cancellation token fires.
    """

    payloads: list[str]
    error: Optional[TransportError] = None
    hang_after: Optional[int] = None


@dataclass
class FakeTransport:
    """Transport double that replays queued responses in order."""

    requests: list[RecordedRequest] = field(default_factory=list)
    responses: list[HttpResponse | TransportError] = field(default_factory=list)
    streams: list[ScriptedStream | TransportError] = field(default_factory=list)
    closed: bool = False

    def queue_json(self, body: Any, status_code: int = 200) -> None:
        self.responses.append(HttpResponse(status_code=status_code, text=json.dumps(body)))

    def queue_status(
        self,
        status_code: int,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        *,
        stream: bool = False,
    ) -> None:
        text = json.dumps(body) if body is not None else ""
        error = TransportStatusError(status_code, text, dict(headers or {}))
        if stream:
            self.streams.append(error)
        else:
            self.responses.append(error)

    def queue_stream(
        self,
        events: list[Any],
        *,
        error: Optional[TransportError] = None,
        hang_after: Optional[int] = None,
    ) -> None:
        payloads = [event if isinstance(event, str) else json.dumps(event) for event in events]
        self.streams.append(ScriptedStream(payloads, error=error, hang_after=hang_after))

    def _record(self, method: str, url: str, headers: Mapping[str, str], json_body: Any, stream: bool) -> None:
        self.requests.append(
            RecordedRequest(method=method, url=url, headers=dict(headers), json_body=json_body, stream=stream)
        )

    @property
    def last_request(self) -> RecordedRequest:
        return self.requests[-1]

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        json_body: Any | None = None,
        cancel: CancellationToken | None = None,
    ) -> HttpResponse:
        self._record(method, url, headers, json_body, stream=False)
        if not self.responses:
            raise AssertionError(f"No response queued for {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, TransportError):
            raise response
        return response

    async def stream(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        json_body: Any | None = None,
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        self._record(method, url, headers, json_body, stream=True)
        if not self.streams:
            raise AssertionError(f"No stream queued for {method} {url}")
        scripted = self.streams.pop(0)
        if isinstance(scripted, TransportError):
            raise scripted

        for index, payload in enumerate(scripted.payloads):
            if scripted.hang_after is not None and index == scripted.hang_after:
                await _wait_for_cancel(cancel)
            if cancel is not None and cancel.cancelled:
                raise TransportCancelledError(cancel.reason or "Request cancelled")
            yield payload
            # Give the consumer a chance to act between payloads.
            await asyncio.sleep(0)

        if scripted.hang_after is not None and scripted.hang_after >= len(scripted.payloads):
            await _wait_for_cancel(cancel)
        if scripted.error is not None:
            raise scripted.error

    async def aclose(self) -> None:
        self.closed = True


async def _wait_for_cancel(cancel: CancellationToken | None) -> None:
    if cancel is None:
        await asyncio.Event().wait()
        return
    await cancel.wait()
    raise TransportCancelledError(cancel.reason or "Request cancelled")


def make_config(kind: str = "openai", config_id: Optional[str] = None, **overrides: Any) -> ProviderConfig:
    """Build a provider config with test defaults."""
    values: dict[str, Any] = {
        "id": config_id or f"conn-{kind}",
        "kind": kind,
        "api_key": f"test-key-{kind}",
        "name": kind.title(),
    }
    values.update(overrides)
    return ProviderConfig(**values)


def system_and_user() -> list[ChatMessage]:
    return [
        ChatMessage(role="system", content="You are terse."),
        ChatMessage(role="user", content="Hi there"),
    ]


# -------------------------------------------------------------------
# Vendor wire fixtures: the same "Hello world!" reply per vendor
# -------------------------------------------------------------------

def openai_stream_events(parts: list[str], prompt: int = 10, completion: int = 3) -> list[Any]:
    events: list[Any] = [
        {"choices": [{"index": 0, "delta": {"role": "assistant", "content": ""}}]}
    ]
    for part in parts:
        events.append({"choices": [{"index": 0, "delta": {"content": part}}]})
    events.append({"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]})
    events.append({"choices": [], "usage": {"prompt_tokens": prompt, "completion_tokens": completion}})
    return events


def openai_response(text: str, prompt: int = 10, completion: int = 3) -> dict[str, Any]:
    return {
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": text}, "finish_reason": "stop"}
        ],
        "usage": {
            "prompt_tokens": prompt,
            "completion_tokens": completion,
            "total_tokens": prompt + completion,
        },
    }


def anthropic_stream_events(parts: list[str], prompt: int = 10, completion: int = 3) -> list[Any]:
    events: list[Any] = [
        {
            "type": "message_start",
            "message": {"usage": {"input_tokens": prompt, "output_tokens": 1}},
        },
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
    ]
    for part in parts:
        events.append(
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": part}}
        )
    events.append({"type": "content_block_stop", "index": 0})
    events.append(
        {
            "type": "message_delta",
            "delta": {"stop_reason": "end_turn"},
            "usage": {"output_tokens": completion},
        }
    )
    events.append({"type": "message_stop"})
    return events


def anthropic_response(text: str, prompt: int = 10, completion: int = 3) -> dict[str, Any]:
    return {
        "type": "message",
        "content": [{"type": "text", "text": text}],
        "stop_reason": "end_turn",
        "usage": {"input_tokens": prompt, "output_tokens": completion},
    }


def gemini_stream_events(parts: list[str], prompt: int = 10, completion: int = 3) -> list[Any]:
    events: list[Any] = []
    for index, part in enumerate(parts):
        candidate: dict[str, Any] = {"content": {"role": "model", "parts": [{"text": part}]}}
        if index == len(parts) - 1:
            candidate["finishReason"] = "STOP"
        events.append(
            {
                "candidates": [candidate],
                "usageMetadata": {
                    "promptTokenCount": prompt,
                    "candidatesTokenCount": index + 1 if index < len(parts) - 1 else completion,
                    "totalTokenCount": prompt + (index + 1 if index < len(parts) - 1 else completion),
                },
            }
        )
    return events


def gemini_response(text: str, prompt: int = 10, completion: int = 3) -> dict[str, Any]:
    return {
        "candidates": [
            {"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": "STOP"}
        ],
        "usageMetadata": {
            "promptTokenCount": prompt,
            "candidatesTokenCount": completion,
            "totalTokenCount": prompt + completion,
        },
    }


VENDOR_FIXTURES = {
    "openai": (openai_stream_events, openai_response),
    "anthropic": (anthropic_stream_events, anthropic_response),
    "gemini": (gemini_stream_events, gemini_response),
}
