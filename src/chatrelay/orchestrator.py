"""Chat orchestration facade composing streaming, titling and chat management."""

from __future__ import annotations

import asyncio

from .ai.manager import ProviderManager
from .domain.config import SettingsProvider, StaticSettings
from .orchestration.chat_operations import ChatOperationsMixin
from .orchestration.events import EventSubscribers
from .orchestration.registry import StreamRegistry
from .orchestration.streaming import StreamingHandlersMixin
from .orchestration.titling import AutoTitleMixin
from .orchestration.types import TitleUpdatedEvent
from .storage.repository import Store


class ChatOrchestrator(
    StreamingHandlersMixin,
    AutoTitleMixin,
    ChatOperationsMixin,
):
    """Thin composer for streaming, auto-title and chat-management handlers.

    Each instance owns its stream registry, its title-updated subscribers
    and its background title tasks; ``close()`` tears all three down.
    """

    def __init__(
        self,
        store: Store,
        manager: ProviderManager,
        settings: SettingsProvider | None = None,
    ) -> None:
        self.store = store
        self.manager = manager
        self.settings = settings or StaticSettings()
        self.registry = StreamRegistry()
        self.title_updated: EventSubscribers[TitleUpdatedEvent] = EventSubscribers("title_updated")
        self._background_tasks: set[asyncio.Task[None]] = set()

    async def close(self) -> None:
        """Stop active streams, cancel title tasks and drop subscribers."""
        self.registry.cancel_all("Orchestrator closed")
        tasks = list(self._background_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.title_updated.clear()
