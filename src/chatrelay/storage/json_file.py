"""Store persisted as one JSON document, rewritten after each commit."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import aiofiles  # type: ignore[import-untyped]

from ..constants import JSON_INDENT, STORE_FORMAT_VERSION
from ..domain.chat import Chat, Message
from ..domain.config import ProviderConfig
from ..logging import log_event
from .memory import InMemoryStore, _State


def _state_from_raw(raw: Any) -> _State:
    if not isinstance(raw, dict):
        raise ValueError("Invalid store document: expected object")
    version = raw.get("version", STORE_FORMAT_VERSION)
    if version != STORE_FORMAT_VERSION:
        raise ValueError(f"Unsupported store document version: {version!r}")

    state = _State()
    for item in raw.get("chats") or []:
        chat = Chat.from_raw(item)
        state.chats[chat.id] = chat
        state.chat_messages[chat.id] = []
    for item in raw.get("messages") or []:
        message = Message.from_raw(item)
        if message.chat_id not in state.chats:
            # Orphans from an interrupted cascade are dropped.
            continue
        state.messages[message.id] = message
        state.chat_messages[message.chat_id].append(message.id)
    for item in raw.get("provider_configs") or []:
        config = ProviderConfig.from_raw(item)
        state.provider_configs[config.id] = config
    return state


def _state_to_dict(state: _State) -> dict[str, Any]:
    messages: list[dict[str, Any]] = []
    for chat_id in state.chats:
        for message_id in state.chat_messages.get(chat_id, []):
            messages.append(state.messages[message_id].to_dict())
    return {
        "version": STORE_FORMAT_VERSION,
        "chats": [chat.to_dict() for chat in state.chats.values()],
        "messages": messages,
        "provider_configs": [config.to_dict() for config in state.provider_configs.values()],
    }


class JsonFileStore(InMemoryStore):
    """In-memory store mirrored to a JSON file.

    The whole document is written to a temporary sibling and renamed over
    the target, so a crash leaves either the previous or the new commit.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path).expanduser()
        self._write_lock = asyncio.Lock()

    @classmethod
    async def open(cls, path: str | Path) -> JsonFileStore:
        """Load the store at *path*, starting empty when the file is missing."""
        store = cls(path)
        if not store.path.exists():
            return store
        async with aiofiles.open(store.path, "r", encoding="utf-8") as f:
            text = await f.read()
        try:
            raw = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in store file: {e}") from e
        store._state = _state_from_raw(raw)
        log_event(
            "store_load",
            level=logging.INFO,
            store_file=str(store.path),
            chat_count=len(store._state.chats),
            message_count=len(store._state.messages),
        )
        return store

    async def _on_commit(self) -> None:
        payload = _state_to_dict(self._state)
        async with self._write_lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(payload, indent=JSON_INDENT, ensure_ascii=False))
            temp_path.replace(self.path)
