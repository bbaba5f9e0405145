"""Registry of in-flight streams keyed by opaque stream id."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator

from ..ai.cancellation import CancellationToken
from ..domain.chat import Message
from ..logging import log_event
from .channel import ChunkChannel

STOP_REASON = "Stopped by user"


@dataclass(slots=True)
class StreamRegistration:
    """Bookkeeping for one in-flight stream.

    Created when a stream starts and removed on completion, error or
    cancellation. ``cancellation`` is the token threaded through adapter
    and transport; ``channel`` is the stream's producer/consumer channel.
    """

    stream_id: str
    conversation_id: str
    message_id: str
    model_id: str
    provider_id: str
    parent_message_id: str | None
    on_complete: Callable[[Message], None] | None = None
    discarded: bool = False
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    channel: ChunkChannel = field(default_factory=ChunkChannel)

    def cancel(self, reason: str = STOP_REASON, *, discard: bool = False) -> None:
        """Stop the stream; with *discard* the reply is dropped instead of saved."""
        if discard:
            self.discarded = True
        self.cancellation.cancel(reason)
        self.channel.cancel(reason)


class StreamRegistry:
    """Single authority over stream-id to conversation mapping.

    Insert and remove are plain dict operations on the event loop thread,
    so no lock is needed.
    """

    def __init__(self) -> None:
        self._streams: dict[str, StreamRegistration] = {}

    def __contains__(self, stream_id: object) -> bool:
        return stream_id in self._streams

    def __len__(self) -> int:
        return len(self._streams)

    def __iter__(self) -> Iterator[StreamRegistration]:
        return iter(list(self._streams.values()))

    def register(self, registration: StreamRegistration) -> None:
        if registration.stream_id in self._streams:
            raise ValueError(f"Stream already registered: {registration.stream_id}")
        self._streams[registration.stream_id] = registration

    def get(self, stream_id: str) -> StreamRegistration | None:
        return self._streams.get(stream_id)

    def remove(self, stream_id: str) -> StreamRegistration | None:
        return self._streams.pop(stream_id, None)

    def active_for_conversation(self, conversation_id: str) -> StreamRegistration | None:
        for registration in self._streams.values():
            if registration.conversation_id == conversation_id:
                return registration
        return None

    def cancel(self, stream_id: str, reason: str = STOP_REASON, *, discard: bool = False) -> bool:
        """Cancel a stream by id. Unknown ids are a no-op and return False."""
        registration = self._streams.get(stream_id)
        log_event(
            "stream_stop_requested",
            level=logging.INFO,
            stream_id=stream_id,
            chat_id=registration.conversation_id if registration else None,
            found=registration is not None,
        )
        if registration is None:
            return False
        registration.cancel(reason, discard=discard)
        return True

    def cancel_conversation(self, conversation_id: str, reason: str = STOP_REASON) -> int:
        """Cancel every stream of one conversation; returns how many were cancelled."""
        cancelled = 0
        for registration in list(self._streams.values()):
            if registration.conversation_id == conversation_id:
                registration.cancel(reason)
                cancelled += 1
        return cancelled

    def cancel_all(self, reason: str = STOP_REASON) -> int:
        registrations = list(self._streams.values())
        for registration in registrations:
            registration.cancel(reason)
        return len(registrations)
