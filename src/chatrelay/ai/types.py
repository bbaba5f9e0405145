"""Normalized chat contract shared by all vendor adapters."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, TypeAlias, TypedDict

Role: TypeAlias = Literal["user", "assistant", "system"]
VendorRole: TypeAlias = Literal["user", "assistant", "system", "model"]
FinishReason: TypeAlias = Literal["stop", "length", "content_filter", "tool_calls"]
ProviderKind: TypeAlias = Literal["openai", "anthropic", "gemini"]

_DATA_URL_PREFIX = re.compile(r"^data:[^;,]*;base64,", re.IGNORECASE)


def strip_data_url_prefix(data: str) -> str:
    """Return the raw base64 payload of a possibly data-URL-prefixed string."""
    return _DATA_URL_PREFIX.sub("", data, count=1)


class TokenUsage(TypedDict):
    """Token usage metadata returned by providers."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(slots=True, frozen=True)
class ImageAttachment:
    """Image passed to a vision-capable model.

    ``data`` may carry a ``data:<mime>;base64,`` prefix; adapters strip it.
    """

    data: str
    mime_type: str

    @property
    def base64_data(self) -> str:
        return strip_data_url_prefix(self.data)


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """One turn of a request, built per call from persisted history."""

    role: Role
    content: str
    images: tuple[ImageAttachment, ...] = ()


@dataclass(slots=True, frozen=True)
class CompletionMetadata:
    """Terminal metadata for one completion."""

    model: str
    provider: ProviderKind
    finish_reason: FinishReason | None = None
    usage: TokenUsage | None = None


@dataclass(slots=True, frozen=True)
class ChatCompletionResult:
    """Result of a non-streaming completion."""

    content: str
    metadata: CompletionMetadata


@dataclass(slots=True, frozen=True)
class ChatCompletionStreamChunk:
    """One increment of a streamed completion.

    Content chunks carry no metadata; the terminal chunk carries it and
    usually has empty content.
    """

    content: str
    metadata: CompletionMetadata | None = None

    @property
    def is_terminal(self) -> bool:
        return self.metadata is not None


@dataclass(slots=True, frozen=True)
class CompletionOptions:
    """Caller-supplied request options. ``None`` means "use the vendor default"."""

    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    stop: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class ModelInfo:
    """Model entry returned by ``list_models``."""

    id: str
    name: str
    provider: ProviderKind
    context_window: int | None = None


@dataclass(slots=True, frozen=True)
class ProviderCapabilities:
    """Static per-model capabilities."""

    supports_vision: bool
    supports_streaming: bool
    requires_max_tokens: bool
    supported_message_roles: tuple[VendorRole, ...]
    max_tokens_default: int | None = None
