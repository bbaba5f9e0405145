"""Send/stop/regenerate handlers: the per-stream state machine."""

from __future__ import annotations

import logging
import time
from contextlib import aclosing
from typing import TYPE_CHECKING, AsyncIterator, Callable, Sequence

from ..ai.errors import ProviderError, RequestCancelledError
from ..ai.types import ChatMessage, CompletionMetadata, ImageAttachment
from ..domain.chat import Attachment, Chat, Message, MessageStatus
from ..ids import generate_id, generate_stream_id
from ..logging import log_event, sanitize_error_message
from .errors import ConversationBusyError, InvalidMessageOperationError, MessageNotFoundError
from .registry import StreamRegistration
from .types import StreamUpdate

if TYPE_CHECKING:
    from ..ai.base import ProviderAdapter
    from ..ai.manager import ProviderManager
    from ..storage.repository import Store
    from .registry import StreamRegistry


def build_history(messages: Sequence[Message]) -> list[ChatMessage]:
    """Request history: every non-assistant message plus complete replies."""
    return [
        message.to_chat_message()
        for message in messages
        if message.role != "assistant" or message.status == "complete"
    ]


def is_first_exchange(history_messages: Sequence[Message]) -> bool:
    """Return True when a reply to *history_messages* completes the first exchange."""
    users = sum(1 for message in history_messages if message.role == "user")
    replies = sum(
        1
        for message in history_messages
        if message.role == "assistant" and message.status == "complete"
    )
    return users == 1 and replies == 0


class StreamingHandlersMixin:
    """Streams one assistant reply per call and persists its terminal state."""

    store: Store
    manager: ProviderManager
    registry: StreamRegistry

    _auto_title_callback: Callable[[Message], Callable[[Message], None]]

    def _register(self, assistant: Message) -> StreamRegistration:
        # No await between the busy check and the insert.
        active = self.registry.active_for_conversation(assistant.chat_id)
        if active is not None:
            raise ConversationBusyError(assistant.chat_id, active.stream_id)
        registration = StreamRegistration(
            stream_id=generate_stream_id(),
            conversation_id=assistant.chat_id,
            message_id=assistant.id,
            model_id=assistant.model or "",
            provider_id=assistant.provider_connection_id or "",
            parent_message_id=assistant.parent_message_id,
        )
        self.registry.register(registration)
        return registration

    async def send(
        self,
        chat_id: str | None,
        content: str,
        model: str,
        provider_connection_id: str,
        attachments: Sequence[ImageAttachment] | None = None,
    ) -> AsyncIterator[StreamUpdate]:
        """Send a user message and stream the assistant reply.

        A missing or unknown ``chat_id`` creates the chat in the same
        transaction as the user message. Yields one update per content chunk
        (``content`` is the accumulated text) and a final update with status
        ``complete``, ``stopped`` or ``error``; provider errors are re-raised
        after the final update.

        Raises:
            ConversationBusyError: The chat already has an active stream
            ProviderConfigNotFoundError: Unknown provider connection
        """
        conversation_id = chat_id or generate_id()
        user_message = Message.new_user(
            conversation_id,
            content,
            attachments=tuple(Attachment.from_image(image) for image in attachments or ()),
        )
        assistant = Message.new_assistant(
            conversation_id,
            model=model,
            provider_connection_id=provider_connection_id,
            parent_message_id=user_message.id,
        )
        registration = self._register(assistant)

        try:
            _, adapter = await self.manager.resolve(provider_connection_id)
            async with self.store.transaction():
                chat = await self.store.chats.find_by_id(conversation_id)
                if chat is None:
                    chat = await self.store.chats.create(Chat.new(chat_id=conversation_id))
                    log_event("chat_create", level=logging.INFO, chat_id=chat.id)
                await self.store.messages.create(user_message)
                await self.store.chats.update(chat.touched(message_at=user_message.created_at))
            messages = await self.store.messages.find_by_chat_id(conversation_id)
        except BaseException:
            self.registry.remove(registration.stream_id)
            raise

        if is_first_exchange(messages):
            registration.on_complete = self._auto_title_callback(user_message)

        reply = self._stream_reply(registration, adapter, build_history(messages), assistant)
        async with aclosing(reply):
            async for update in reply:
                yield update

    async def regenerate(self, assistant_message_id: str) -> AsyncIterator[StreamUpdate]:
        """Replace the latest assistant reply of a chat with a fresh one.

        The new reply uses the same model and provider connection; the old
        message is removed when the new one is persisted.

        Raises:
            MessageNotFoundError: Unknown message id
            InvalidMessageOperationError: The message is not the chat's
                latest assistant reply, or has no model information
        """
        target = await self.store.messages.find_by_id(assistant_message_id)
        if target is None:
            raise MessageNotFoundError(assistant_message_id)
        if target.role != "assistant":
            raise InvalidMessageOperationError("Can only regenerate assistant messages")
        if not target.model or not target.provider_connection_id:
            raise InvalidMessageOperationError(
                "Cannot regenerate: original message has no model or provider information"
            )

        messages = await self.store.messages.find_by_chat_id(target.chat_id)
        index = next(i for i, message in enumerate(messages) if message.id == target.id)
        if index != len(messages) - 1:
            raise InvalidMessageOperationError("Only the latest reply can be regenerated")
        earlier = messages[:index]
        parent = next((message for message in reversed(earlier) if message.role == "user"), None)
        if parent is None:
            raise InvalidMessageOperationError("No user message found to regenerate from")

        assistant = Message.new_assistant(
            target.chat_id,
            model=target.model,
            provider_connection_id=target.provider_connection_id,
            parent_message_id=parent.id,
        )
        registration = self._register(assistant)
        try:
            _, adapter = await self.manager.resolve(target.provider_connection_id)
        except BaseException:
            self.registry.remove(registration.stream_id)
            raise

        if is_first_exchange(earlier):
            registration.on_complete = self._auto_title_callback(parent)

        reply = self._stream_reply(
            registration, adapter, build_history(earlier), assistant, replaces=target.id
        )
        async with aclosing(reply):
            async for update in reply:
                yield update

    def stop(self, stream_id: str) -> bool:
        """Cancel an in-flight stream; unknown ids are a no-op returning False."""
        return self.registry.cancel(stream_id)

    async def _stream_reply(
        self,
        registration: StreamRegistration,
        adapter: ProviderAdapter,
        history: list[ChatMessage],
        assistant: Message,
        *,
        replaces: str | None = None,
    ) -> AsyncIterator[StreamUpdate]:
        channel = registration.channel
        channel.start(
            adapter.stream_chat_completion(
                history,
                registration.model_id,
                None,
                registration.cancellation,
            )
        )
        log_event(
            "stream_start",
            level=logging.INFO,
            stream_id=registration.stream_id,
            chat_id=registration.conversation_id,
            message_id=registration.message_id,
            provider_connection_id=registration.provider_id,
            provider=adapter.kind,
            model=registration.model_id,
            message_count=len(history),
        )

        started = time.perf_counter()
        parts: list[str] = []
        metadata: CompletionMetadata | None = None
        status: MessageStatus = "streaming"

        def update(status: MessageStatus, *, error: str | None = None) -> StreamUpdate:
            return StreamUpdate(
                chat_id=registration.conversation_id,
                message_id=registration.message_id,
                stream_id=registration.stream_id,
                content="".join(parts),
                status=status,
                usage=metadata.usage if metadata is not None else None,
                error=error,
            )

        failure: ProviderError | None = None
        saved: Message | None = None
        try:
            cancelled = False
            try:
                async for chunk in channel:
                    if registration.cancellation.cancelled:
                        cancelled = True
                        break
                    if chunk.metadata is not None:
                        # Terminal metadata may arrive apart from content.
                        metadata = chunk.metadata
                    if chunk.content:
                        parts.append(chunk.content)
                        yield update("streaming")
            except RequestCancelledError:
                cancelled = True
            except ProviderError as e:
                failure = e

            if registration.discarded:
                # Message deleted while streaming.
                status = "error" if failure is not None else "stopped"
            elif failure is not None:
                status = "error"
                if parts:
                    saved = await self._persist_reply(
                        assistant,
                        status=status,
                        content="".join(parts),
                        metadata=metadata,
                        error=sanitize_error_message(failure.message),
                        replaces=replaces,
                    )
            else:
                status = "stopped" if cancelled and metadata is None else "complete"
                saved = await self._persist_reply(
                    assistant,
                    status=status,
                    content="".join(parts),
                    metadata=metadata,
                    replaces=replaces,
                )
                if saved is None:
                    # Chat deleted while streaming.
                    status = "stopped"
        finally:
            self.registry.remove(registration.stream_id)
            await channel.aclose()
            log_event(
                "stream_end",
                level=logging.INFO,
                stream_id=registration.stream_id,
                chat_id=registration.conversation_id,
                message_id=registration.message_id,
                status=status,
                latency_ms=round((time.perf_counter() - started) * 1000, 1),
                output_chars=sum(len(part) for part in parts),
                total_tokens=(metadata.usage or {}).get("total_tokens") if metadata else None,
                error_type=type(failure).__name__ if failure is not None else None,
                error=failure.message if failure is not None else None,
            )

        if status == "complete" and saved is not None and registration.on_complete is not None:
            registration.on_complete(saved)

        if failure is not None:
            yield update(status, error=failure.user_message())
            raise failure
        yield update(status)

    async def _persist_reply(
        self,
        assistant: Message,
        *,
        status: MessageStatus,
        content: str,
        metadata: CompletionMetadata | None,
        error: str | None = None,
        replaces: str | None = None,
    ) -> Message | None:
        """Write the terminal assistant message and chat activity in one transaction."""
        message = assistant.with_status(
            status,
            content=content,
            usage=metadata.usage if metadata is not None else None,
            finish_reason=metadata.finish_reason if metadata is not None else None,
            error=error,
        )
        async with self.store.transaction():
            chat = await self.store.chats.find_by_id(message.chat_id)
            if chat is None:
                return None
            if replaces is not None:
                await self.store.messages.delete(replaces)
            await self.store.messages.create(message)
            await self.store.chats.update(chat.touched(message_at=message.updated_at))
        return message
