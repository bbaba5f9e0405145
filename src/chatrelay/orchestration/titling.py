"""Automatic chat titles: prompt, cleanup and the background task."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from ..ai.limits import TITLE_MAX_OUTPUT_TOKENS, TITLE_TEMPERATURE
from ..ai.types import ChatMessage, CompletionOptions
from ..constants import DEFAULT_CHAT_TITLE
from ..domain.chat import Chat, Message
from ..logging import log_event, sanitize_error_message
from .types import TitleUpdatedEvent

if TYPE_CHECKING:
    from ..ai.manager import ProviderManager
    from ..domain.config import SettingsProvider
    from ..storage.repository import Store
    from .events import EventSubscribers

# Only the start of each message matters for a title.
TITLE_CONTEXT_MAX_CHARS = 2000

TITLE_PROMPT_TEMPLATE = """Write a short title for the conversation below.
Reply with the title only: at most {MAX_WORDS} words, no quotes, no trailing punctuation.

{CONTEXT}"""

TITLE_MAX_WORDS = 8


@dataclass(slots=True, frozen=True)
class TitleSnapshot:
    """Immutable copy of the exchange a title is generated from."""

    chat_id: str
    user_content: str
    assistant_content: str
    model: str
    provider_connection_id: str

    @classmethod
    def from_messages(cls, user: Message, assistant: Message) -> TitleSnapshot:
        return cls(
            chat_id=assistant.chat_id,
            user_content=user.content,
            assistant_content=assistant.content,
            model=assistant.model or "",
            provider_connection_id=assistant.provider_connection_id or "",
        )


def build_title_context(snapshot: TitleSnapshot) -> str:
    user = snapshot.user_content[:TITLE_CONTEXT_MAX_CHARS]
    assistant = snapshot.assistant_content[:TITLE_CONTEXT_MAX_CHARS]
    return f"User: {user}\n\nAssistant: {assistant}"


def build_title_generation_prompt(snapshot: TitleSnapshot) -> str:
    """Build the title prompt for one exchange."""
    return TITLE_PROMPT_TEMPLATE.replace("{MAX_WORDS}", str(TITLE_MAX_WORDS)).replace(
        "{CONTEXT}", build_title_context(snapshot)
    )


def build_title_messages(snapshot: TitleSnapshot) -> list[ChatMessage]:
    return [ChatMessage(role="user", content=build_title_generation_prompt(snapshot))]


def clean_title(raw_title: str, max_chars: int) -> str:
    """Normalize a generated title; returns "" when nothing usable remains."""
    lines = [line.strip() for line in raw_title.strip().splitlines() if line.strip()]
    if not lines:
        return ""
    title = lines[0]
    if title.lower().startswith("title:"):
        title = title[len("title:"):]
    title = title.strip().rstrip(".").strip().strip('"').strip("'").strip("*").strip()
    title = " ".join(title.split())
    if len(title) > max_chars:
        title = title[: max_chars - 1].rstrip() + "…"
    return title


def needs_auto_title(chat: Chat | None) -> bool:
    """Only chats still carrying the default title are auto-titled."""
    return chat is not None and chat.title == DEFAULT_CHAT_TITLE


class AutoTitleMixin:
    """Best-effort background titling after a chat's first exchange.

    Title tasks are detached from ``send``: their failures are logged and
    never reach the stream's caller.
    """

    store: Store
    manager: ProviderManager
    settings: SettingsProvider
    title_updated: EventSubscribers[TitleUpdatedEvent]
    _background_tasks: set[asyncio.Task[None]]

    def subscribe_title_updated(
        self, handler: Callable[[TitleUpdatedEvent], None]
    ) -> Callable[[], None]:
        """Register *handler* for title updates; returns an unsubscribe callable."""
        return self.title_updated.subscribe(handler)

    def _auto_title_callback(self, user: Message) -> Callable[[Message], None]:
        def schedule(assistant: Message) -> None:
            snapshot = TitleSnapshot.from_messages(user, assistant)
            task = asyncio.create_task(self._run_auto_title(snapshot))
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        return schedule

    async def _run_auto_title(self, snapshot: TitleSnapshot) -> None:
        started = time.perf_counter()
        try:
            settings = await self.settings.get()
            if not settings.auto_title_chats:
                return
            if not needs_auto_title(await self.store.chats.find_by_id(snapshot.chat_id)):
                return
            log_event(
                "title_task_start",
                level=logging.INFO,
                chat_id=snapshot.chat_id,
                model=snapshot.model,
            )
            _, adapter = await self.manager.resolve(snapshot.provider_connection_id)
            result = await adapter.generate_chat_completion(
                build_title_messages(snapshot),
                snapshot.model,
                CompletionOptions(
                    temperature=TITLE_TEMPERATURE,
                    max_tokens=TITLE_MAX_OUTPUT_TOKENS,
                ),
            )
            title = clean_title(result.content, settings.title_max_chars)
            if not title:
                raise ValueError("Model returned an empty title")
            async with self.store.transaction():
                chat = await self.store.chats.find_by_id(snapshot.chat_id)
                if not needs_auto_title(chat):
                    # Renamed or deleted while the title was generated.
                    return
                await self.store.chats.update(chat.touched(title=title))
        except Exception as e:
            log_event(
                "title_task_error",
                level=logging.WARNING,
                chat_id=snapshot.chat_id,
                error_type=type(e).__name__,
                error=sanitize_error_message(str(e)),
                latency_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            return

        log_event(
            "title_updated",
            level=logging.INFO,
            chat_id=snapshot.chat_id,
            title=title,
            latency_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        self.title_updated.emit(TitleUpdatedEvent(chat_id=snapshot.chat_id, title=title))

    async def wait_for_background_tasks(self) -> None:
        """Wait until every pending title task has finished."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
