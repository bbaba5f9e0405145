"""Subscriber list for orchestrator notifications."""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

from ..logging import log_event, sanitize_error_message

EventT = TypeVar("EventT")


class EventSubscribers(Generic[EventT]):
    """Ordered subscriber list owned by one orchestrator.

    Handlers run synchronously in subscription order. A failing handler is
    logged and skipped; the others still run.
    """

    def __init__(self, event_name: str) -> None:
        self.event_name = event_name
        self._handlers: list[Callable[[EventT], None]] = []

    def __len__(self) -> int:
        return len(self._handlers)

    def subscribe(self, handler: Callable[[EventT], None]) -> Callable[[], None]:
        """Add *handler*; returns a callable that removes it again."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, event: EventT) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                log_event(
                    "event_subscriber_error",
                    level=logging.WARNING,
                    event_name=self.event_name,
                    subscriber=getattr(handler, "__qualname__", repr(handler)),
                    error_type=type(e).__name__,
                    error=sanitize_error_message(str(e)),
                )

    def clear(self) -> None:
        self._handlers.clear()
