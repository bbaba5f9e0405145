"""Repository interfaces and store implementations."""

from .json_file import JsonFileStore
from .memory import InMemoryStore
from .repository import (
    ChatRepository,
    MessageRepository,
    ProviderConfigRepository,
    Store,
)

__all__ = [
    "ChatRepository",
    "InMemoryStore",
    "JsonFileStore",
    "MessageRepository",
    "ProviderConfigRepository",
    "Store",
]
