"""In-process store with snapshot/rollback transactions."""

from __future__ import annotations

import asyncio
import re
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import AsyncIterator

from ..domain.chat import Chat, Message
from ..domain.config import ProviderConfig

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def search_tokens(text: str) -> list[str]:
    """Split *text* into lowercase word tokens."""
    return [token.lower() for token in _TOKEN_RE.findall(text)]


@dataclass(slots=True)
class _State:
    chats: dict[str, Chat] = field(default_factory=dict)
    messages: dict[str, Message] = field(default_factory=dict)
    chat_messages: dict[str, list[str]] = field(default_factory=dict)
    provider_configs: dict[str, ProviderConfig] = field(default_factory=dict)

    def copy(self) -> _State:
        # Entities are frozen, so copying the containers is enough.
        return _State(
            chats=dict(self.chats),
            messages=dict(self.messages),
            chat_messages={k: list(v) for k, v in self.chat_messages.items()},
            provider_configs=dict(self.provider_configs),
        )


class _ChatRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def create(self, chat: Chat) -> Chat:
        async with self._store.transaction():
            state = self._store._state
            if chat.id in state.chats:
                raise ValueError(f"Chat already exists: {chat.id}")
            state.chats[chat.id] = chat
            state.chat_messages.setdefault(chat.id, [])
        return chat

    async def find_by_id(self, chat_id: str) -> Chat | None:
        return self._store._state.chats.get(chat_id)

    async def find_all(self) -> list[Chat]:
        chats = list(self._store._state.chats.values())
        return sorted(
            chats,
            key=lambda chat: chat.last_message_at or chat.created_at,
            reverse=True,
        )

    async def update(self, chat: Chat) -> Chat:
        async with self._store.transaction():
            state = self._store._state
            if chat.id not in state.chats:
                raise KeyError(f"Chat not found: {chat.id}")
            state.chats[chat.id] = chat
        return chat

    async def delete(self, chat_id: str) -> bool:
        async with self._store.transaction():
            state = self._store._state
            if state.chats.pop(chat_id, None) is None:
                return False
            for message_id in state.chat_messages.pop(chat_id, []):
                state.messages.pop(message_id, None)
        return True


class _MessageRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def create(self, message: Message) -> Message:
        async with self._store.transaction():
            state = self._store._state
            if message.chat_id not in state.chats:
                raise KeyError(f"Chat not found: {message.chat_id}")
            if message.id in state.messages:
                raise ValueError(f"Message already exists: {message.id}")
            state.messages[message.id] = message
            state.chat_messages.setdefault(message.chat_id, []).append(message.id)
        return message

    async def find_by_id(self, message_id: str) -> Message | None:
        return self._store._state.messages.get(message_id)

    async def find_by_chat_id(self, chat_id: str) -> list[Message]:
        state = self._store._state
        return [state.messages[mid] for mid in state.chat_messages.get(chat_id, [])]

    async def find_after(self, message_id: str) -> list[Message]:
        state = self._store._state
        message = state.messages.get(message_id)
        if message is None:
            return []
        ids = state.chat_messages.get(message.chat_id, [])
        position = ids.index(message_id)
        return [state.messages[mid] for mid in ids[position + 1:]]

    async def update(self, message: Message) -> Message:
        async with self._store.transaction():
            state = self._store._state
            existing = state.messages.get(message.id)
            if existing is None:
                raise KeyError(f"Message not found: {message.id}")
            if (existing.role, existing.chat_id) != (message.role, message.chat_id):
                raise ValueError("Message role and chat cannot change")
            state.messages[message.id] = message
        return message

    async def delete(self, message_id: str) -> bool:
        async with self._store.transaction():
            state = self._store._state
            message = state.messages.pop(message_id, None)
            if message is None:
                return False
            ids = state.chat_messages.get(message.chat_id)
            if ids is not None and message_id in ids:
                ids.remove(message_id)
        return True

    async def search(self, query: str, chat_id: str | None = None) -> list[Message]:
        tokens = search_tokens(query)
        if not tokens:
            return []
        state = self._store._state
        chat_ids = [chat_id] if chat_id is not None else list(state.chat_messages)
        results: list[Message] = []
        for cid in chat_ids:
            for mid in state.chat_messages.get(cid, []):
                message = state.messages[mid]
                words = set(search_tokens(message.content))
                if all(any(word.startswith(token) for word in words) for token in tokens):
                    results.append(message)
        return results


class _ProviderConfigRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def find_by_id(self, config_id: str) -> ProviderConfig | None:
        return self._store._state.provider_configs.get(config_id)

    async def find_all(self) -> list[ProviderConfig]:
        return list(self._store._state.provider_configs.values())

    async def save(self, config: ProviderConfig) -> ProviderConfig:
        async with self._store.transaction():
            self._store._state.provider_configs[config.id] = config
        return config

    async def delete(self, config_id: str) -> bool:
        async with self._store.transaction():
            return self._store._state.provider_configs.pop(config_id, None) is not None


class InMemoryStore:
    """Store keeping every entity in process memory.

    Transactions are serialized with a lock and may nest within one task;
    the outermost one snapshots state and restores it if the block raises
    (including cancellation).
    """

    def __init__(self) -> None:
        self._state = _State()
        self._lock = asyncio.Lock()
        self._depth: ContextVar[int] = ContextVar(f"store_tx_depth_{id(self)}", default=0)
        self._chats = _ChatRepository(self)
        self._messages = _MessageRepository(self)
        self._provider_configs = _ProviderConfigRepository(self)

    @property
    def chats(self) -> _ChatRepository:
        return self._chats

    @property
    def messages(self) -> _MessageRepository:
        return self._messages

    @property
    def provider_configs(self) -> _ProviderConfigRepository:
        return self._provider_configs

    @property
    def in_transaction(self) -> bool:
        return self._depth.get() > 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        depth = self._depth.get()
        if depth > 0:
            token = self._depth.set(depth + 1)
            try:
                yield
            finally:
                self._depth.reset(token)
            return

        async with self._lock:
            snapshot = self._state.copy()
            token = self._depth.set(1)
            try:
                yield
            except BaseException:
                self._state = snapshot
                raise
            finally:
                self._depth.reset(token)
            await self._on_commit()

    async def _on_commit(self) -> None:
        """Hook for durable subclasses; called after each committed write."""
        return None
