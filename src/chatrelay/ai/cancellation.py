"""Cooperative cancellation shared by orchestrator, adapter and transport."""

from __future__ import annotations

import asyncio


class CancellationToken:
    """One-shot cancellation flag that can also be awaited.

    The same token is passed unchanged from the orchestrator through the
    adapter into the transport, and each layer checks it once per
    incoming line.
    """

    __slots__ = ("_event", "reason")

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Repeated calls keep the first reason."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()
