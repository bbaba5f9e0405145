"""Tests for title prompt/cleanup helpers and the subscriber list."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock, patch

import pytest

from chatrelay.domain.chat import Message
from chatrelay.orchestration.events import EventSubscribers
from chatrelay.orchestration.titling import (
    TitleSnapshot,
    build_title_generation_prompt,
    build_title_messages,
    clean_title,
)
from chatrelay.orchestration.types import TitleUpdatedEvent


def _snapshot() -> TitleSnapshot:
    user = Message.new_user("chat-1", "How do I bake sourdough bread?")
    assistant = Message.new_assistant(
        "chat-1", model="gpt-4o", provider_connection_id="conn-openai", parent_message_id=user.id
    ).with_status("complete", content="Start with an active starter...")
    return TitleSnapshot.from_messages(user, assistant)


class TestTitlePrompt:
    """Prompt construction from the first exchange."""

    def test_snapshot_copies_exchange(self) -> None:
        snapshot = _snapshot()

        assert snapshot.chat_id == "chat-1"
        assert snapshot.model == "gpt-4o"
        assert snapshot.provider_connection_id == "conn-openai"

    def test_prompt_embeds_both_turns(self) -> None:
        prompt = build_title_generation_prompt(_snapshot())

        assert "{CONTEXT}" not in prompt
        assert "User: How do I bake sourdough bread?" in prompt
        assert "Assistant: Start with an active starter..." in prompt

    def test_messages_are_a_single_user_turn(self) -> None:
        messages = build_title_messages(_snapshot())

        assert [message.role for message in messages] == ["user"]


class TestCleanTitle:
    """Normalization of model output into a chat title."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ('"Sourdough Basics"', "Sourdough Basics"),
            ("'Sourdough Basics'.", "Sourdough Basics"),
            ("Title: Sourdough   Basics", "Sourdough Basics"),
            ("**Sourdough**\nextra line", "Sourdough"),
            ("   ", ""),
        ],
    )
    def test_cleanup(self, raw: str, expected: str) -> None:
        assert clean_title(raw, 60) == expected

    def test_truncates_to_limit(self) -> None:
        title = clean_title("A very long title that keeps on going", 12)

        assert len(title) <= 12
        assert title.endswith("…")


class TestEventSubscribers:
    """Synchronous delivery with per-subscriber isolation."""

    def test_emit_reaches_all_in_order(self) -> None:
        subscribers: EventSubscribers[TitleUpdatedEvent] = EventSubscribers("title_updated")
        calls: list[str] = []
        subscribers.subscribe(lambda event: calls.append(f"a:{event.title}"))
        subscribers.subscribe(lambda event: calls.append(f"b:{event.title}"))

        subscribers.emit(TitleUpdatedEvent(chat_id="chat-1", title="Hi"))

        assert calls == ["a:Hi", "b:Hi"]

    def test_failing_subscriber_is_isolated_and_logged(self) -> None:
        subscribers: EventSubscribers[TitleUpdatedEvent] = EventSubscribers("title_updated")
        failing = MagicMock(side_effect=RuntimeError("handler broke"))
        healthy = MagicMock()
        subscribers.subscribe(failing)
        subscribers.subscribe(healthy)
        event = TitleUpdatedEvent(chat_id="chat-1", title="Hi")

        with patch("chatrelay.orchestration.events.log_event") as mock_log_event:
            subscribers.emit(event)

        healthy.assert_called_once_with(event)
        mock_log_event.assert_called_once()
        assert mock_log_event.call_args.args[0] == "event_subscriber_error"
        assert mock_log_event.call_args.kwargs["level"] == logging.WARNING
        assert mock_log_event.call_args.kwargs["error"] == "handler broke"

    def test_unsubscribe(self) -> None:
        subscribers: EventSubscribers[TitleUpdatedEvent] = EventSubscribers("title_updated")
        handler = MagicMock()
        unsubscribe = subscribers.subscribe(handler)

        unsubscribe()
        unsubscribe()
        subscribers.emit(TitleUpdatedEvent(chat_id="chat-1", title="Hi"))

        handler.assert_not_called()
        assert len(subscribers) == 0
