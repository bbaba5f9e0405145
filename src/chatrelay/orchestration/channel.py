"""Producer/consumer channel between a provider stream and the orchestrator.

A producer task drains the adapter's chunk stream into the channel; the
orchestrator consumes it. Cancelling the channel cancels the producer
task, which aborts the in-flight transport read, and closes the channel
with ``RequestCancelledError``.
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator

from ..ai.errors import RequestCancelledError
from ..ai.types import ChatCompletionStreamChunk


@dataclass(slots=True, frozen=True)
class _Closed:
    error: BaseException | None = None


class ChunkChannel:
    """Unbounded FIFO of stream chunks with a terminal close marker."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ChatCompletionStreamChunk | _Closed] = asyncio.Queue()
        self._closed = False
        self._producer: asyncio.Task[None] | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, chunk: ChatCompletionStreamChunk) -> None:
        if not self._closed:
            self._queue.put_nowait(chunk)

    def close(self, error: BaseException | None = None) -> None:
        """Mark the end of the stream; *error* is raised to the consumer."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_Closed(error))

    def start(self, source: AsyncIterator[ChatCompletionStreamChunk]) -> asyncio.Task[None]:
        """Start the producer task draining *source* into this channel."""
        if self._producer is not None:
            raise RuntimeError("Channel producer already started")
        self._producer = asyncio.create_task(self._pump(source))
        return self._producer

    async def _pump(self, source: AsyncIterator[ChatCompletionStreamChunk]) -> None:
        try:
            async with aclosing(source):
                async for chunk in source:
                    self.send(chunk)
        except asyncio.CancelledError:
            self.close(RequestCancelledError("Stream cancelled"))
            raise
        except Exception as e:
            # Delivered to the consumer, which re-raises it.
            self.close(e)
        else:
            self.close()

    def cancel(self, reason: str = "Stream cancelled") -> None:
        """Close the channel as cancelled and stop the producer."""
        self.close(RequestCancelledError(reason))
        if self._producer is not None and not self._producer.done():
            self._producer.cancel()

    def __aiter__(self) -> ChunkChannel:
        return self

    async def __anext__(self) -> ChatCompletionStreamChunk:
        item = await self._queue.get()
        if isinstance(item, _Closed):
            # Keep the marker for any later reader.
            self._queue.put_nowait(item)
            if item.error is not None:
                raise item.error
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        """Stop the producer if still running and wait for it to finish."""
        producer = self._producer
        if producer is None:
            return
        if not producer.done():
            producer.cancel()
        await asyncio.wait({producer})
