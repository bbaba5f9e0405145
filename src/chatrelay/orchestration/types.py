"""Typed records emitted by the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass

from ..ai.types import TokenUsage
from ..domain.chat import Chat, Message, MessageStatus


@dataclass(slots=True, frozen=True)
class StreamUpdate:
    """One incremental update of an assistant message.

    ``content`` is the full text accumulated so far, not the delta.
    """

    chat_id: str
    message_id: str
    stream_id: str
    content: str
    status: MessageStatus
    usage: TokenUsage | None = None
    error: str | None = None

    @property
    def is_final(self) -> bool:
        return self.status in ("complete", "error", "stopped")


@dataclass(slots=True, frozen=True)
class TitleUpdatedEvent:
    """Emitted after the auto-titling task renamed a chat."""

    chat_id: str
    title: str


@dataclass(slots=True, frozen=True)
class SearchResult:
    """Message matching a search query, with its chat's title."""

    message: Message
    chat_title: str


@dataclass(slots=True, frozen=True)
class ChatWithMessages:
    """Chat and its messages in creation order."""

    chat: Chat
    messages: tuple[Message, ...]
