"""Chat and message management handlers outside the streaming path."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from ..domain.chat import Chat, Message
from ..ids import generate_id
from ..logging import log_event
from ..time_utils import utc_now_iso
from .errors import (
    ChatNotFoundError,
    InvalidMessageOperationError,
    MessageNotFoundError,
    OrchestrationError,
)
from .types import ChatWithMessages, SearchResult

if TYPE_CHECKING:
    from ..storage.repository import Store
    from .registry import StreamRegistry

BRANCH_TITLE_SUFFIX = " (branch)"


class ChatOperationsMixin:
    """Mixin implementing chat CRUD, message edits, search and branching."""

    store: Store
    registry: StreamRegistry

    async def _require_chat(self, chat_id: str) -> Chat:
        chat = await self.store.chats.find_by_id(chat_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)
        return chat

    async def _require_message(self, message_id: str) -> Message:
        message = await self.store.messages.find_by_id(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)
        return message

    async def get_chat(self, chat_id: str) -> ChatWithMessages:
        chat = await self._require_chat(chat_id)
        messages = await self.store.messages.find_by_chat_id(chat_id)
        return ChatWithMessages(chat=chat, messages=tuple(messages))

    async def list_chats(self) -> list[Chat]:
        """Return chats, most recently active first."""
        return await self.store.chats.find_all()

    async def rename_chat(self, chat_id: str, title: str) -> Chat:
        title = " ".join(title.split())
        if not title:
            raise OrchestrationError("Chat title cannot be empty")
        async with self.store.transaction():
            chat = await self._require_chat(chat_id)
            return await self.store.chats.update(replace(chat, title=title, updated_at=utc_now_iso()))

    async def delete_chat(self, chat_id: str) -> bool:
        """Stop the chat's active streams, then delete it with its messages."""
        stopped = self.registry.cancel_conversation(chat_id, "Chat deleted")
        async with self.store.transaction():
            deleted = await self.store.chats.delete(chat_id)
        if deleted:
            log_event(
                "chat_delete",
                level=logging.INFO,
                chat_id=chat_id,
                stopped_streams=stopped,
            )
        return deleted

    async def edit_message(self, message_id: str, content: str) -> Message:
        """Replace the content of a user message."""
        async with self.store.transaction():
            message = await self._require_message(message_id)
            if message.role != "user":
                raise InvalidMessageOperationError("Only user messages can be edited")
            return await self.store.messages.update(message.with_content(content))

    async def messages_after(self, message_id: str) -> list[Message]:
        """Return the messages that follow *message_id* in its chat."""
        await self._require_message(message_id)
        return await self.store.messages.find_after(message_id)

    async def delete_message(self, message_id: str) -> bool:
        """Delete a message, stopping its stream first if it is still generating.

        A reply deleted mid-stream is discarded and never persisted.
        """
        discarded = False
        for registration in self.registry:
            if registration.message_id == message_id:
                discarded = self.registry.cancel(
                    registration.stream_id, "Message deleted", discard=True
                )
        async with self.store.transaction():
            deleted = await self.store.messages.delete(message_id)
        return deleted or discarded

    async def search(self, query: str, chat_id: str | None = None) -> list[SearchResult]:
        """Search message content, newest first, each result with its chat title."""
        if not query.strip():
            return []
        messages = await self.store.messages.search(query, chat_id)
        results: list[SearchResult] = []
        for message in sorted(messages, key=lambda m: m.created_at, reverse=True):
            chat = await self.store.chats.find_by_id(message.chat_id)
            if chat is not None:
                results.append(SearchResult(message=message, chat_title=chat.title))
        return results

    async def branch_chat(
        self,
        chat_id: str,
        message_id: str,
        title: str | None = None,
    ) -> ChatWithMessages:
        """Fork *chat_id* into a new chat holding its history up to *message_id*.

        Only finished messages are copied; ids are regenerated and parent
        links remapped to the copies.
        """
        async with self.store.transaction():
            source = await self._require_chat(chat_id)
            history = await self.store.messages.find_by_chat_id(chat_id)
            ids = [message.id for message in history]
            if message_id not in ids:
                raise MessageNotFoundError(message_id)
            kept = [m for m in history[: ids.index(message_id) + 1] if m.is_terminal]

            branch = Chat.new(
                title or f"{source.title}{BRANCH_TITLE_SUFFIX}",
                parent_chat_id=source.id,
                parent_message_id=message_id,
            )
            await self.store.chats.create(branch)

            id_map: dict[str, str] = {}
            copies: list[Message] = []
            for message in kept:
                id_map[message.id] = generate_id()
                copy = replace(
                    message,
                    id=id_map[message.id],
                    chat_id=branch.id,
                    parent_message_id=id_map.get(message.parent_message_id or ""),
                )
                copies.append(await self.store.messages.create(copy))

            if copies:
                branch = await self.store.chats.update(
                    replace(branch, last_message_at=copies[-1].updated_at)
                )
        log_event(
            "chat_create",
            level=logging.INFO,
            chat_id=branch.id,
            parent_chat_id=source.id,
            message_count=len(copies),
        )
        return ChatWithMessages(chat=branch, messages=tuple(copies))
