"""Multi-provider AI chat core: vendor adapters, streaming orchestration and storage."""

from .ai.errors import (
    InvalidRequestError,
    ModelNotFoundError,
    ProviderAuthError,
    ProviderError,
    ProviderNetworkError,
    ProviderQuotaExceededError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderTimeoutError,
    RequestCancelledError,
)
from .ai.manager import ProviderManager
from .domain.config import AppSettings, ProviderConfig, StaticSettings
from .orchestration.types import StreamUpdate, TitleUpdatedEvent
from .orchestrator import ChatOrchestrator
from .storage import InMemoryStore, JsonFileStore

__all__ = [
    "AppSettings",
    "ChatOrchestrator",
    "InMemoryStore",
    "InvalidRequestError",
    "JsonFileStore",
    "ModelNotFoundError",
    "ProviderAuthError",
    "ProviderConfig",
    "ProviderError",
    "ProviderManager",
    "ProviderNetworkError",
    "ProviderQuotaExceededError",
    "ProviderRateLimitError",
    "ProviderServerError",
    "ProviderTimeoutError",
    "RequestCancelledError",
    "StaticSettings",
    "StreamUpdate",
    "TitleUpdatedEvent",
]
