"""Typed chat domain models and serialization helpers."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Literal, TypeAlias, get_args

from ..ai.types import ChatMessage, FinishReason, ImageAttachment, TokenUsage
from ..constants import DEFAULT_CHAT_TITLE
from ..ids import generate_id
from ..time_utils import utc_now_iso

MessageRole: TypeAlias = Literal["user", "assistant", "system"]
MessageStatus: TypeAlias = Literal["pending", "streaming", "complete", "error", "stopped"]

MESSAGE_ROLES: tuple[str, ...] = get_args(MessageRole)
MESSAGE_STATUSES: tuple[str, ...] = get_args(MessageStatus)
TERMINAL_STATUSES: frozenset[str] = frozenset({"complete", "error", "stopped"})


@dataclass(slots=True, frozen=True)
class Attachment:
    """Image attached to a persisted message."""

    id: str
    mime_type: str
    data: str

    @classmethod
    def from_raw(cls, raw: Any) -> Attachment:
        if not isinstance(raw, dict):
            raise ValueError("Invalid attachment: expected object")
        mime_type = raw.get("mime_type")
        data = raw.get("data")
        if not isinstance(mime_type, str) or not isinstance(data, str):
            raise ValueError("Invalid attachment: 'mime_type' and 'data' must be strings")
        return cls(id=str(raw.get("id") or generate_id()), mime_type=mime_type, data=data)

    @classmethod
    def from_image(cls, image: ImageAttachment) -> Attachment:
        return cls(id=generate_id(), mime_type=image.mime_type, data=image.data)

    def to_image(self) -> ImageAttachment:
        return ImageAttachment(data=self.data, mime_type=self.mime_type)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "mime_type": self.mime_type, "data": self.data}


@dataclass(slots=True, frozen=True)
class Chat:
    """Persisted conversation.

    ``parent_chat_id``/``parent_message_id`` mark a branch forked from
    another conversation.
    """

    id: str
    title: str
    created_at: str
    updated_at: str
    last_message_at: str | None = None
    parent_chat_id: str | None = None
    parent_message_id: str | None = None

    @classmethod
    def new(
        cls,
        title: str = DEFAULT_CHAT_TITLE,
        *,
        chat_id: str | None = None,
        parent_chat_id: str | None = None,
        parent_message_id: str | None = None,
    ) -> Chat:
        now = utc_now_iso()
        return cls(
            id=chat_id or generate_id(),
            title=title,
            created_at=now,
            updated_at=now,
            parent_chat_id=parent_chat_id,
            parent_message_id=parent_message_id,
        )

    def touched(self, *, message_at: str | None = None, title: str | None = None) -> Chat:
        """Return a copy with refreshed activity timestamps."""
        now = utc_now_iso()
        return replace(
            self,
            title=self.title if title is None else title,
            updated_at=now,
            last_message_at=message_at or self.last_message_at,
        )

    @classmethod
    def from_raw(cls, raw: Any) -> Chat:
        if not isinstance(raw, dict):
            raise ValueError("Invalid chat: expected object")
        for key in ("id", "created_at", "updated_at"):
            if not isinstance(raw.get(key), str):
                raise ValueError(f"Invalid chat: missing '{key}'")
        return cls(
            id=raw["id"],
            title=str(raw.get("title") or DEFAULT_CHAT_TITLE),
            created_at=raw["created_at"],
            updated_at=raw["updated_at"],
            last_message_at=raw.get("last_message_at"),
            parent_chat_id=raw.get("parent_chat_id"),
            parent_message_id=raw.get("parent_message_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "last_message_at": self.last_message_at,
            "parent_chat_id": self.parent_chat_id,
            "parent_message_id": self.parent_message_id,
        }


@dataclass(slots=True, frozen=True)
class Message:
    """Persisted chat message.

    ``role``, ``model`` and ``provider_connection_id`` never change after
    creation; ``content`` and ``status`` do, through ``with_content`` /
    ``with_status``.
    """

    id: str
    chat_id: str
    role: MessageRole
    content: str
    status: MessageStatus
    created_at: str
    updated_at: str
    model: str | None = None
    provider_connection_id: str | None = None
    parent_message_id: str | None = None
    attachments: tuple[Attachment, ...] = ()
    usage: TokenUsage | None = None
    finish_reason: FinishReason | None = None
    error: str | None = None

    @classmethod
    def new_user(
        cls,
        chat_id: str,
        content: str,
        *,
        attachments: tuple[Attachment, ...] = (),
        parent_message_id: str | None = None,
    ) -> Message:
        now = utc_now_iso()
        return cls(
            id=generate_id(),
            chat_id=chat_id,
            role="user",
            content=content,
            status="complete",
            created_at=now,
            updated_at=now,
            attachments=attachments,
            parent_message_id=parent_message_id,
        )

    @classmethod
    def new_assistant(
        cls,
        chat_id: str,
        *,
        model: str,
        provider_connection_id: str,
        parent_message_id: str | None,
    ) -> Message:
        now = utc_now_iso()
        return cls(
            id=generate_id(),
            chat_id=chat_id,
            role="assistant",
            content="",
            status="pending",
            created_at=now,
            updated_at=now,
            model=model,
            provider_connection_id=provider_connection_id,
            parent_message_id=parent_message_id,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def with_content(self, content: str) -> Message:
        return replace(self, content=content, updated_at=utc_now_iso())

    def with_status(
        self,
        status: MessageStatus,
        *,
        content: str | None = None,
        usage: TokenUsage | None = None,
        finish_reason: FinishReason | None = None,
        error: str | None = None,
    ) -> Message:
        return replace(
            self,
            status=status,
            content=self.content if content is None else content,
            usage=usage if usage is not None else self.usage,
            finish_reason=finish_reason if finish_reason is not None else self.finish_reason,
            error=error,
            updated_at=utc_now_iso(),
        )

    def to_chat_message(self) -> ChatMessage:
        """Build the request-time shape of this message."""
        return ChatMessage(
            role=self.role,
            content=self.content,
            images=tuple(attachment.to_image() for attachment in self.attachments),
        )

    @classmethod
    def from_raw(cls, raw: Any) -> Message:
        if not isinstance(raw, dict):
            raise ValueError("Invalid message: expected object")
        for key in ("id", "chat_id", "created_at", "updated_at"):
            if not isinstance(raw.get(key), str):
                raise ValueError(f"Invalid message: missing '{key}'")
        role = raw.get("role")
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Invalid message role: {role!r}")
        status = raw.get("status", "complete")
        if status not in MESSAGE_STATUSES:
            raise ValueError(f"Invalid message status: {status!r}")
        content = raw.get("content", "")
        if not isinstance(content, str):
            raise ValueError("Invalid message content: expected string")
        usage = raw.get("usage")
        return cls(
            id=raw["id"],
            chat_id=raw["chat_id"],
            role=role,
            content=content,
            status=status,
            created_at=raw["created_at"],
            updated_at=raw["updated_at"],
            model=raw.get("model"),
            provider_connection_id=raw.get("provider_connection_id"),
            parent_message_id=raw.get("parent_message_id"),
            attachments=tuple(Attachment.from_raw(item) for item in raw.get("attachments") or []),
            usage=dict(usage) if isinstance(usage, dict) else None,
            finish_reason=raw.get("finish_reason"),
            error=raw.get("error"),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "chat_id": self.chat_id,
            "role": self.role,
            "content": self.content,
            "status": self.status,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "model": self.model,
            "provider_connection_id": self.provider_connection_id,
            "parent_message_id": self.parent_message_id,
            "attachments": [attachment.to_dict() for attachment in self.attachments],
            "usage": dict(self.usage) if self.usage is not None else None,
            "finish_reason": self.finish_reason,
            "error": self.error,
        }
        return payload
