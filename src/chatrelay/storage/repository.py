"""Repository interfaces consumed by the orchestrator.

The core never owns the storage engine. It relies on two guarantees from
any implementation: deleting a chat cascades to its messages and their
attachments, and writes made inside ``transaction()`` become visible
together or not at all.
"""

from __future__ import annotations

from typing import AsyncContextManager, Protocol

from ..domain.chat import Chat, Message
from ..domain.config import ProviderConfig


class ChatRepository(Protocol):
    async def create(self, chat: Chat) -> Chat:
        ...

    async def find_by_id(self, chat_id: str) -> Chat | None:
        ...

    async def find_all(self) -> list[Chat]:
        """Return chats, most recently active first."""
        ...

    async def update(self, chat: Chat) -> Chat:
        ...

    async def delete(self, chat_id: str) -> bool:
        """Delete a chat and, by cascade, its messages."""
        ...


class MessageRepository(Protocol):
    async def create(self, message: Message) -> Message:
        ...

    async def find_by_id(self, message_id: str) -> Message | None:
        ...

    async def find_by_chat_id(self, chat_id: str) -> list[Message]:
        """Return a chat's messages in creation order."""
        ...

    async def find_after(self, message_id: str) -> list[Message]:
        """Return messages created after *message_id* in the same chat."""
        ...

    async def update(self, message: Message) -> Message:
        ...

    async def delete(self, message_id: str) -> bool:
        ...

    async def search(self, query: str, chat_id: str | None = None) -> list[Message]:
        """Full-text lookup over message content."""
        ...


class ProviderConfigRepository(Protocol):
    async def find_by_id(self, config_id: str) -> ProviderConfig | None:
        ...

    async def find_all(self) -> list[ProviderConfig]:
        ...

    async def save(self, config: ProviderConfig) -> ProviderConfig:
        ...

    async def delete(self, config_id: str) -> bool:
        ...


class Store(Protocol):
    """Unit-of-work boundary over the three repositories."""

    @property
    def chats(self) -> ChatRepository:
        ...

    @property
    def messages(self) -> MessageRepository:
        ...

    @property
    def provider_configs(self) -> ProviderConfigRepository:
        ...

    def transaction(self) -> AsyncContextManager[None]:
        ...
