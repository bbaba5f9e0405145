"""Adapter construction and caching per provider connection."""

from __future__ import annotations

import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Mapping

from ..domain.config import ProviderConfig
from ..logging import log_event
from ..orchestration.errors import ProviderConfigNotFoundError
from ..storage.repository import ProviderConfigRepository
from .base import ProviderAdapter
from .cancellation import CancellationToken
from .claude_adapter import ClaudeAdapter
from .gemini_adapter import GeminiAdapter
from .openai_adapter import OpenAIAdapter
from .transport import HttpResponse, HttpxTransport, Transport
from .types import ProviderKind

ADAPTER_CLASSES: dict[ProviderKind, type[ProviderAdapter]] = {
    "openai": OpenAIAdapter,
    "anthropic": ClaudeAdapter,
    "gemini": GeminiAdapter,
}

TransportFactory = Callable[[ProviderConfig], Transport]


def default_transport_factory(config: ProviderConfig) -> Transport:
    return HttpxTransport(timeout_sec=config.timeout_sec)


class TrackedTransport:
    """Transport wrapper that counts in-flight calls.

    A retired transport is closed as soon as its last call finishes, so a
    config change never cuts off a stream that is still running.
    """

    def __init__(self, inner: Transport) -> None:
        self.inner = inner
        self.active = 0
        self.retired = False
        self.closed = False

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        json_body: Any | None = None,
        cancel: CancellationToken | None = None,
    ) -> HttpResponse:
        self.active += 1
        try:
            return await self.inner.request(
                method, url, headers=headers, json_body=json_body, cancel=cancel
            )
        finally:
            await self._release()

    def stream(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        json_body: Any | None = None,
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        # Counted on creation so a retire between call and first read keeps it open.
        self.active += 1
        return self._counted(
            self.inner.stream(method, url, headers=headers, json_body=json_body, cancel=cancel)
        )

    async def _counted(self, lines: AsyncIterator[str]) -> AsyncIterator[str]:
        try:
            async with aclosing(lines):
                async for line in lines:
                    yield line
        finally:
            await self._release()

    async def _release(self) -> None:
        self.active -= 1
        if self.retired and self.active == 0:
            await self.aclose()

    async def retire(self) -> None:
        """Stop handing this transport out; close it once idle."""
        self.retired = True
        if self.active == 0:
            await self.aclose()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        aclose = getattr(self.inner, "aclose", None)
        if aclose is not None:
            await aclose()


@dataclass(slots=True)
class _CacheEntry:
    config: ProviderConfig
    adapter: ProviderAdapter
    transport: TrackedTransport


class ProviderManager:
    """Build adapters on demand and cache them by connection id.

    Construction never touches the network. A cached adapter is replaced
    when its connection is saved with different settings, and dropped when
    the connection is deleted.
    """

    def __init__(
        self,
        configs: ProviderConfigRepository | None = None,
        transport_factory: TransportFactory = default_transport_factory,
    ) -> None:
        self._configs = configs
        self._transport_factory = transport_factory
        self._cache: dict[str, _CacheEntry] = {}
        self._retired: list[TrackedTransport] = []

    def __contains__(self, config_id: str) -> bool:
        return config_id in self._cache

    def __len__(self) -> int:
        return len(self._cache)

    def _build(self, config: ProviderConfig) -> _CacheEntry:
        adapter_class = ADAPTER_CLASSES.get(config.kind)
        if adapter_class is None:
            raise ValueError(f"Unsupported provider kind: {config.kind}")
        transport = TrackedTransport(self._transport_factory(config))
        adapter = adapter_class(
            config.api_key,
            transport,
            base_url=config.base_url,
            custom_headers=config.custom_headers,
            default_max_tokens=config.default_max_tokens,
        )
        return _CacheEntry(config=config, adapter=adapter, transport=transport)

    async def get_adapter(self, config: ProviderConfig) -> ProviderAdapter:
        """Return the cached adapter for *config*, rebuilding it if the config changed."""
        entry = self._cache.get(config.id)
        if entry is not None and entry.config == config:
            return entry.adapter
        if entry is not None:
            await self.invalidate(config.id, reason="config_changed")
        entry = self._build(config)
        self._cache[config.id] = entry
        return entry.adapter

    async def resolve(self, config_id: str) -> tuple[ProviderConfig, ProviderAdapter]:
        """Look up a stored connection and return it with its adapter."""
        if self._configs is None:
            raise ProviderConfigNotFoundError(config_id)
        config = await self._configs.find_by_id(config_id)
        if config is None:
            raise ProviderConfigNotFoundError(config_id)
        return config, await self.get_adapter(config)

    async def adapter_for(self, config_id: str) -> ProviderAdapter:
        _, adapter = await self.resolve(config_id)
        return adapter

    async def invalidate(self, config_id: str, *, reason: str = "explicit") -> bool:
        """Drop the cached adapter for *config_id*."""
        entry = self._cache.pop(config_id, None)
        if entry is None:
            return False
        log_event(
            "adapter_cache_invalidate",
            level=logging.INFO,
            config_id=config_id,
            reason=reason,
        )
        await entry.transport.retire()
        self._retired = [transport for transport in self._retired if not transport.closed]
        if not entry.transport.closed:
            # Streams still running keep using the old transport until they end.
            self._retired.append(entry.transport)
        return True

    async def save_config(self, config: ProviderConfig) -> ProviderConfig:
        if self._configs is None:
            raise RuntimeError("ProviderManager has no config repository")
        saved = await self._configs.save(config)
        await self.invalidate(config.id, reason="config_updated")
        return saved

    async def delete_config(self, config_id: str) -> bool:
        if self._configs is None:
            raise RuntimeError("ProviderManager has no config repository")
        deleted = await self._configs.delete(config_id)
        await self.invalidate(config_id, reason="config_deleted")
        return deleted

    async def check_connection(self, config: ProviderConfig) -> bool:
        """Run the adapter's health check; raises ``ProviderError`` on failure."""
        adapter = await self.get_adapter(config)
        return await adapter.health_check()

    async def clear_cache(self) -> None:
        for config_id in list(self._cache):
            await self.invalidate(config_id, reason="clear")

    async def aclose(self) -> None:
        """Drop every adapter and close all transports this manager created."""
        await self.clear_cache()
        retired, self._retired = self._retired, []
        for transport in retired:
            await transport.aclose()
