"""Tests for chat management outside the streaming path."""

from __future__ import annotations

from dataclasses import replace

import pytest

from chatrelay.ai.manager import ProviderManager
from chatrelay.domain.chat import Chat, Message
from chatrelay.orchestration.errors import (
    ChatNotFoundError,
    InvalidMessageOperationError,
    MessageNotFoundError,
    OrchestrationError,
)
from chatrelay.orchestration.registry import StreamRegistration
from chatrelay.orchestrator import ChatOrchestrator
from chatrelay.storage import InMemoryStore


def _reply(chat_id: str, content: str, parent: Message, status: str = "complete") -> Message:
    return Message.new_assistant(
        chat_id,
        model="gpt-4o",
        provider_connection_id="conn-openai",
        parent_message_id=parent.id,
    ).with_status(status, content=content)


async def _seed(store: InMemoryStore, title: str = "Baking") -> tuple[Chat, list[Message]]:
    chat = await store.chats.create(Chat.new(title))
    first = Message.new_user(chat.id, "How long should sourdough proof?")
    second = _reply(chat.id, "Usually four to six hours at room temperature.", first)
    third = Message.new_user(chat.id, "And in the fridge?", parent_message_id=second.id)
    fourth = _reply(chat.id, "Overnight works", third, status="stopped")
    messages = [first, second, third, fourth]
    for index, message in enumerate(messages):
        stamped = replace(message, created_at=f"2026-01-01T00:00:0{index}.000000Z")
        await store.messages.create(stamped)
        messages[index] = stamped
    return chat, messages


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def orchestrator(store: InMemoryStore) -> ChatOrchestrator:
    return ChatOrchestrator(store, ProviderManager(store.provider_configs))


class TestChats:
    @pytest.mark.asyncio
    async def test_get_unknown_chat_raises(self, orchestrator: ChatOrchestrator) -> None:
        with pytest.raises(ChatNotFoundError):
            await orchestrator.get_chat("missing")

    @pytest.mark.asyncio
    async def test_list_chats_orders_by_latest_activity(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        older = await store.chats.create(
            replace(Chat.new("Older"), last_message_at="2026-01-01T00:00:00.000000Z")
        )
        newer = await store.chats.create(
            replace(Chat.new("Newer"), last_message_at="2026-02-01T00:00:00.000000Z")
        )

        chats = await orchestrator.list_chats()

        assert [chat.id for chat in chats] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_rename_collapses_whitespace(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        chat, _ = await _seed(store)

        renamed = await orchestrator.rename_chat(chat.id, "  Bread   notes \n")

        assert renamed.title == "Bread notes"
        assert (await store.chats.find_by_id(chat.id)).title == "Bread notes"

    @pytest.mark.asyncio
    async def test_rename_rejects_blank_title(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        chat, _ = await _seed(store)

        with pytest.raises(OrchestrationError):
            await orchestrator.rename_chat(chat.id, "   ")

    @pytest.mark.asyncio
    async def test_delete_cascades_to_messages(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        chat, messages = await _seed(store)

        assert await orchestrator.delete_chat(chat.id) is True

        assert await store.chats.find_by_id(chat.id) is None
        for message in messages:
            assert await store.messages.find_by_id(message.id) is None
        assert await orchestrator.delete_chat(chat.id) is False

    @pytest.mark.asyncio
    async def test_delete_cancels_active_stream(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        chat, messages = await _seed(store)
        registration = StreamRegistration(
            stream_id="stream-1",
            conversation_id=chat.id,
            message_id="pending-reply",
            model_id="gpt-4o",
            provider_id="conn-openai",
            parent_message_id=messages[-1].id,
        )
        orchestrator.registry.register(registration)

        await orchestrator.delete_chat(chat.id)

        assert registration.cancellation.cancelled is True
        assert registration.cancellation.reason == "Chat deleted"


class TestMessages:
    @pytest.mark.asyncio
    async def test_edit_user_message(self, store: InMemoryStore, orchestrator: ChatOrchestrator) -> None:
        _, messages = await _seed(store)

        edited = await orchestrator.edit_message(messages[0].id, "How long at 20C?")

        assert edited.content == "How long at 20C?"
        assert edited.role == "user"
        assert (await store.messages.find_by_id(messages[0].id)).content == "How long at 20C?"

    @pytest.mark.asyncio
    async def test_edit_assistant_message_is_rejected(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        _, messages = await _seed(store)

        with pytest.raises(InvalidMessageOperationError):
            await orchestrator.edit_message(messages[1].id, "rewritten")

    @pytest.mark.asyncio
    async def test_edit_unknown_message_raises(self, orchestrator: ChatOrchestrator) -> None:
        with pytest.raises(MessageNotFoundError):
            await orchestrator.edit_message("missing", "text")

    @pytest.mark.asyncio
    async def test_messages_after(self, store: InMemoryStore, orchestrator: ChatOrchestrator) -> None:
        _, messages = await _seed(store)

        after = await orchestrator.messages_after(messages[1].id)

        assert [m.id for m in after] == [messages[2].id, messages[3].id]
        assert await orchestrator.messages_after(messages[3].id) == []

    @pytest.mark.asyncio
    async def test_delete_message(self, store: InMemoryStore, orchestrator: ChatOrchestrator) -> None:
        chat, messages = await _seed(store)

        assert await orchestrator.delete_message(messages[3].id) is True
        assert await orchestrator.delete_message(messages[3].id) is False

        remaining = await store.messages.find_by_chat_id(chat.id)
        assert [m.id for m in remaining] == [m.id for m in messages[:3]]


class TestSearch:
    @pytest.mark.asyncio
    async def test_results_carry_chat_title_newest_first(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        _, messages = await _seed(store, title="Baking")

        results = await orchestrator.search("sourdough")
        assert [(r.message.id, r.chat_title) for r in results] == [(messages[0].id, "Baking")]

        results = await orchestrator.search("the")
        assert [r.message.id for r in results] == [messages[2].id]

    @pytest.mark.asyncio
    async def test_prefix_tokens_match_case_insensitively(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        _, messages = await _seed(store)

        results = await orchestrator.search("HOUR room")

        assert [r.message.id for r in results] == [messages[1].id]

    @pytest.mark.asyncio
    async def test_search_scoped_to_chat(self, store: InMemoryStore, orchestrator: ChatOrchestrator) -> None:
        first, _ = await _seed(store, title="First")
        second, _ = await _seed(store, title="Second")

        results = await orchestrator.search("fridge", chat_id=second.id)

        assert [r.chat_title for r in results] == ["Second"]
        assert len(await orchestrator.search("fridge")) == 2
        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_blank_query_returns_nothing(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        await _seed(store)

        assert await orchestrator.search("   ") == []


class TestBranch:
    @pytest.mark.asyncio
    async def test_branch_copies_history_up_to_message(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        chat, messages = await _seed(store, title="Baking")

        branch = await orchestrator.branch_chat(chat.id, messages[1].id)

        assert branch.chat.id != chat.id
        assert branch.chat.title == "Baking (branch)"
        assert branch.chat.parent_chat_id == chat.id
        assert branch.chat.parent_message_id == messages[1].id
        assert [m.content for m in branch.messages] == [messages[0].content, messages[1].content]
        assert all(m.chat_id == branch.chat.id for m in branch.messages)
        assert {m.id for m in branch.messages}.isdisjoint({m.id for m in messages})
        assert branch.messages[1].parent_message_id == branch.messages[0].id
        assert branch.chat.last_message_at == branch.messages[-1].updated_at

        source = await orchestrator.get_chat(chat.id)
        assert len(source.messages) == 4

    @pytest.mark.asyncio
    async def test_branch_with_custom_title(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        chat, messages = await _seed(store)

        branch = await orchestrator.branch_chat(chat.id, messages[3].id, title="Fridge proofing")

        assert branch.chat.title == "Fridge proofing"
        assert len(branch.messages) == 4
        stored = await orchestrator.get_chat(branch.chat.id)
        assert [m.id for m in stored.messages] == [m.id for m in branch.messages]

    @pytest.mark.asyncio
    async def test_branch_skips_unfinished_messages(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        chat, messages = await _seed(store)
        pending = Message.new_assistant(
            chat.id,
            model="gpt-4o",
            provider_connection_id="conn-openai",
            parent_message_id=messages[3].id,
        )
        await store.messages.create(pending)

        branch = await orchestrator.branch_chat(chat.id, pending.id)

        assert len(branch.messages) == 4

    @pytest.mark.asyncio
    async def test_branch_message_from_other_chat_raises(
        self, store: InMemoryStore, orchestrator: ChatOrchestrator
    ) -> None:
        first, _ = await _seed(store)
        _, other_messages = await _seed(store)

        with pytest.raises(MessageNotFoundError):
            await orchestrator.branch_chat(first.id, other_messages[0].id)
