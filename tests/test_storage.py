"""Tests for the in-memory and JSON file stores."""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from pathlib import Path

import pytest

from chatrelay.domain.chat import Chat, Message
from chatrelay.storage import InMemoryStore, JsonFileStore
from test_helpers import make_config


async def _chat_with_messages(store: InMemoryStore, *contents: str) -> tuple[Chat, list[Message]]:
    chat = await store.chats.create(Chat.new("Notes"))
    messages = [await store.messages.create(Message.new_user(chat.id, content)) for content in contents]
    return chat, messages


class TestInMemoryTransactions:
    """Snapshot, rollback and nesting semantics."""

    @pytest.mark.asyncio
    async def test_commit_keeps_writes(self) -> None:
        store = InMemoryStore()

        async with store.transaction():
            chat = await store.chats.create(Chat.new("Kept"))
            await store.messages.create(Message.new_user(chat.id, "hello"))

        assert (await store.chats.find_by_id(chat.id)).title == "Kept"
        assert len(await store.messages.find_by_chat_id(chat.id)) == 1

    @pytest.mark.asyncio
    async def test_exception_rolls_back_every_write(self) -> None:
        store = InMemoryStore()
        chat, _ = await _chat_with_messages(store, "before")

        with pytest.raises(RuntimeError):
            async with store.transaction():
                await store.messages.create(Message.new_user(chat.id, "during"))
                await store.chats.update(chat.touched(title="Changed"))
                raise RuntimeError("boom")

        assert (await store.chats.find_by_id(chat.id)).title == "Notes"
        assert [m.content for m in await store.messages.find_by_chat_id(chat.id)] == ["before"]

    @pytest.mark.asyncio
    async def test_cancellation_rolls_back(self) -> None:
        store = InMemoryStore()
        started = asyncio.Event()

        async def writer() -> None:
            async with store.transaction():
                await store.chats.create(Chat.new("Half done", chat_id="chat-1"))
                started.set()
                await asyncio.Event().wait()

        task = asyncio.create_task(writer())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await store.chats.find_by_id("chat-1") is None
        assert store.in_transaction is False

    @pytest.mark.asyncio
    async def test_nested_transaction_joins_outer(self) -> None:
        store = InMemoryStore()

        with pytest.raises(ValueError):
            async with store.transaction():
                await store.chats.create(Chat.new("Outer", chat_id="outer"))
                async with store.transaction():
                    assert store.in_transaction is True
                    await store.chats.create(Chat.new("Inner", chat_id="inner"))
                raise ValueError("abort outer")

        assert await store.chats.find_all() == []

    @pytest.mark.asyncio
    async def test_transactions_are_serialized(self) -> None:
        store = InMemoryStore()
        order: list[str] = []

        async def run(name: str) -> None:
            async with store.transaction():
                order.append(f"{name}-start")
                await asyncio.sleep(0)
                order.append(f"{name}-end")

        await asyncio.gather(run("a"), run("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_plain_write_survives_concurrent_rollback(self) -> None:
        """A write made outside any transaction waits for, and outlives, a failing one."""
        store = InMemoryStore()
        started = asyncio.Event()
        release = asyncio.Event()

        async def failing_writer() -> None:
            async with store.transaction():
                await store.chats.create(Chat.new("Doomed", chat_id="chat-1"))
                started.set()
                await release.wait()
                raise RuntimeError("boom")

        writer = asyncio.create_task(failing_writer())
        await started.wait()
        save = asyncio.create_task(store.provider_configs.save(make_config("openai")))
        await asyncio.sleep(0)
        release.set()
        with pytest.raises(RuntimeError):
            await writer
        await save

        assert await store.chats.find_by_id("chat-1") is None
        assert await store.provider_configs.find_by_id("conn-openai") is not None


class TestInMemoryRepositories:
    @pytest.mark.asyncio
    async def test_message_requires_existing_chat(self) -> None:
        store = InMemoryStore()

        with pytest.raises(KeyError):
            await store.messages.create(Message.new_user("missing", "hello"))

    @pytest.mark.asyncio
    async def test_duplicate_ids_rejected(self) -> None:
        store = InMemoryStore()
        chat, messages = await _chat_with_messages(store, "hello")

        with pytest.raises(ValueError):
            await store.chats.create(chat)
        with pytest.raises(ValueError):
            await store.messages.create(messages[0])

    @pytest.mark.asyncio
    async def test_update_cannot_change_role(self) -> None:
        store = InMemoryStore()
        _, messages = await _chat_with_messages(store, "hello")
        assistant = Message.new_assistant(
            messages[0].chat_id, model="m", provider_connection_id="c", parent_message_id=None
        )

        with pytest.raises(ValueError):
            await store.messages.update(replace(assistant, id=messages[0].id))

    @pytest.mark.asyncio
    async def test_delete_chat_cascades(self) -> None:
        store = InMemoryStore()
        chat, messages = await _chat_with_messages(store, "one", "two")
        other, other_messages = await _chat_with_messages(store, "three")

        assert await store.chats.delete(chat.id) is True

        for message in messages:
            assert await store.messages.find_by_id(message.id) is None
        assert await store.messages.find_by_id(other_messages[0].id) is not None
        assert [c.id for c in await store.chats.find_all()] == [other.id]

    @pytest.mark.asyncio
    async def test_find_after_unknown_message_is_empty(self) -> None:
        store = InMemoryStore()

        assert await store.messages.find_after("missing") == []

    @pytest.mark.asyncio
    async def test_search_requires_every_token(self) -> None:
        store = InMemoryStore()
        _, messages = await _chat_with_messages(store, "Rye bread recipe", "Wheat bread", "rye whiskey")

        results = await store.messages.search("rye bread")

        assert [m.id for m in results] == [messages[0].id]
        assert await store.messages.search("!!!") == []

    @pytest.mark.asyncio
    async def test_provider_config_crud(self) -> None:
        store = InMemoryStore()
        config = make_config("anthropic")

        await store.provider_configs.save(config)

        assert await store.provider_configs.find_by_id(config.id) == config
        assert await store.provider_configs.find_all() == [config]
        assert await store.provider_configs.delete(config.id) is True
        assert await store.provider_configs.delete(config.id) is False


class TestJsonFileStore:
    """Durable store mirrored to one JSON document."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "data" / "store.json"
        store = await JsonFileStore.open(path)
        await store.provider_configs.save(make_config("gemini", timeout_sec=45))
        async with store.transaction():
            chat = await store.chats.create(Chat.new("Persisted"))
            user = await store.messages.create(Message.new_user(chat.id, "Bonjour"))
            reply = Message.new_assistant(
                chat.id, model="gemini-2.5-flash", provider_connection_id="conn-gemini", parent_message_id=user.id
            ).with_status(
                "complete",
                content="Salut",
                usage={"prompt_tokens": 2, "completion_tokens": 1, "total_tokens": 3},
                finish_reason="stop",
            )
            await store.messages.create(reply)

        reopened = await JsonFileStore.open(path)

        assert await reopened.chats.find_by_id(chat.id) == chat
        assert await reopened.messages.find_by_chat_id(chat.id) == [user, reply]
        config = await reopened.provider_configs.find_by_id("conn-gemini")
        assert config.timeout_sec == 45
        assert not path.with_suffix(".json.tmp").exists()

    @pytest.mark.asyncio
    async def test_writes_outside_transaction_are_flushed(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        store = await JsonFileStore.open(path)

        chat = await store.chats.create(Chat.new("Auto"))

        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["version"] == 1
        assert [c["id"] for c in document["chats"]] == [chat.id]

    @pytest.mark.asyncio
    async def test_rolled_back_transaction_is_not_written(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        store = await JsonFileStore.open(path)

        with pytest.raises(RuntimeError):
            async with store.transaction():
                await store.chats.create(Chat.new("Gone"))
                raise RuntimeError("boom")

        assert not path.exists()

    @pytest.mark.asyncio
    async def test_missing_file_starts_empty(self, tmp_path: Path) -> None:
        store = await JsonFileStore.open(tmp_path / "absent.json")

        assert await store.chats.find_all() == []

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid JSON"):
            await JsonFileStore.open(path)

    @pytest.mark.asyncio
    async def test_unsupported_version_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        path.write_text(json.dumps({"version": 99}), encoding="utf-8")

        with pytest.raises(ValueError, match="version"):
            await JsonFileStore.open(path)

    @pytest.mark.asyncio
    async def test_orphan_messages_are_dropped(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        chat = Chat.new("Kept", chat_id="chat-1")
        kept = Message.new_user("chat-1", "kept")
        orphan = Message.new_user("chat-gone", "orphan")
        path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "chats": [chat.to_dict()],
                    "messages": [kept.to_dict(), orphan.to_dict()],
                    "provider_configs": [],
                }
            ),
            encoding="utf-8",
        )

        store = await JsonFileStore.open(path)

        assert await store.messages.find_by_chat_id("chat-1") == [kept]
        assert await store.messages.find_by_id(orphan.id) is None
