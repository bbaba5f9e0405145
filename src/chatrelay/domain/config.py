"""Typed configuration models for provider connections and app settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, get_args

from ..ai.types import ProviderKind
from ..constants import DEFAULT_TITLE_MAX_CHARS
from ..timeouts import DEFAULT_TIMEOUT_SEC, normalize_timeout

PROVIDER_KINDS: tuple[str, ...] = get_args(ProviderKind)


def _optional_str(raw: Any, key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Invalid provider config: '{key}' must be a string")
    return value.strip() or None


@dataclass(slots=True, frozen=True)
class ProviderConfig:
    """One configured provider connection.

    ``id`` is the cache key for adapter instances; saving a config under the
    same id replaces the cached adapter.
    """

    id: str
    kind: ProviderKind
    api_key: str
    name: str = ""
    base_url: str | None = None
    custom_headers: dict[str, str] = field(default_factory=dict)
    default_model: str | None = None
    default_max_tokens: int | None = None
    timeout_sec: int | float = DEFAULT_TIMEOUT_SEC

    @classmethod
    def from_raw(cls, raw: Any) -> ProviderConfig:
        """Validate a persisted provider config mapping."""
        if not isinstance(raw, dict):
            raise ValueError("Invalid provider config: expected object")

        config_id = raw.get("id")
        if not isinstance(config_id, str) or not config_id.strip():
            raise ValueError("Invalid provider config: missing 'id'")

        kind = raw.get("kind")
        if kind not in PROVIDER_KINDS:
            raise ValueError(
                f"Invalid provider config: unknown kind {kind!r} "
                f"(expected one of {', '.join(PROVIDER_KINDS)})"
            )

        api_key = raw.get("api_key")
        if not isinstance(api_key, str) or not api_key.strip():
            raise ValueError("Invalid provider config: missing 'api_key'")

        headers = raw.get("custom_headers")
        if headers is None:
            headers = {}
        if not isinstance(headers, dict):
            raise ValueError("Invalid provider config: 'custom_headers' must be an object")

        max_tokens = raw.get("default_max_tokens")
        if max_tokens is not None and (
            isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0
        ):
            raise ValueError("Invalid provider config: 'default_max_tokens' must be a positive integer")

        return cls(
            id=config_id.strip(),
            kind=kind,
            api_key=api_key.strip(),
            name=_optional_str(raw, "name") or "",
            base_url=_optional_str(raw, "base_url"),
            custom_headers={str(k): str(v) for k, v in headers.items()},
            default_model=_optional_str(raw, "default_model"),
            default_max_tokens=max_tokens,
            timeout_sec=normalize_timeout(raw.get("timeout_sec")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize config to persisted dict shape."""
        return {
            "id": self.id,
            "kind": self.kind,
            "api_key": self.api_key,
            "name": self.name,
            "base_url": self.base_url,
            "custom_headers": dict(self.custom_headers),
            "default_model": self.default_model,
            "default_max_tokens": self.default_max_tokens,
            "timeout_sec": self.timeout_sec,
        }


@dataclass(slots=True, frozen=True)
class AppSettings:
    """Global preferences consumed by the orchestrator."""

    auto_title_chats: bool = True
    title_max_chars: int = DEFAULT_TITLE_MAX_CHARS

    @classmethod
    def from_raw(cls, raw: Any) -> AppSettings:
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ValueError("Invalid settings: expected object")
        auto_title = raw.get("auto_title_chats", True)
        if not isinstance(auto_title, bool):
            raise ValueError("Invalid settings: 'auto_title_chats' must be a boolean")
        max_chars = raw.get("title_max_chars", DEFAULT_TITLE_MAX_CHARS)
        if isinstance(max_chars, bool) or not isinstance(max_chars, int) or max_chars <= 0:
            max_chars = DEFAULT_TITLE_MAX_CHARS
        return cls(auto_title_chats=auto_title, title_max_chars=max_chars)


class SettingsProvider(Protocol):
    """Structural interface for the settings source."""

    async def get(self) -> AppSettings:
        ...


class StaticSettings:
    """Settings provider backed by a fixed, replaceable value."""

    def __init__(self, settings: AppSettings | None = None) -> None:
        self._settings = settings or AppSettings()

    async def get(self) -> AppSettings:
        return self._settings

    def set(self, settings: AppSettings) -> None:
        self._settings = settings
