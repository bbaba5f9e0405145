"""Errors raised for invalid orchestration requests."""

from __future__ import annotations


class OrchestrationError(ValueError):
    """Base class for caller mistakes reported by the orchestrator."""


class ChatNotFoundError(OrchestrationError):
    def __init__(self, chat_id: str) -> None:
        super().__init__(f"Chat not found: {chat_id}")
        self.chat_id = chat_id


class MessageNotFoundError(OrchestrationError):
    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message not found: {message_id}")
        self.message_id = message_id


class InvalidMessageOperationError(OrchestrationError):
    """The operation does not apply to this message (wrong role or state)."""


class ConversationBusyError(OrchestrationError):
    """A stream is already active for this conversation."""

    def __init__(self, chat_id: str, stream_id: str) -> None:
        super().__init__(f"Chat {chat_id} already has an active stream ({stream_id})")
        self.chat_id = chat_id
        self.stream_id = stream_id


class ProviderConfigNotFoundError(OrchestrationError):
    def __init__(self, config_id: str) -> None:
        super().__init__(f"Provider connection not found: {config_id}")
        self.config_id = config_id
