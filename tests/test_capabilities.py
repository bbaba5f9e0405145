"""Tests for capability lookup and request limit defaults."""

from __future__ import annotations

import pytest

from chatrelay.ai.capabilities import (
    anthropic_capabilities,
    gemini_capabilities,
    openai_capabilities,
)
from chatrelay.ai.limits import (
    DEFAULT_ANTHROPIC_MAX_OUTPUT_TOKENS,
    anthropic_effective_max_output_tokens,
    effective_temperature,
    normalize_optional_limit,
    normalize_temperature,
    optional_max_output_tokens,
)
from chatrelay.ai.types import CompletionOptions


@pytest.mark.parametrize(
    ("model", "vision"),
    [
        ("gpt-4o", True),
        ("gpt-4o-mini", True),
        ("gpt-4-turbo-2024-04-09", True),
        ("gpt-5", True),
        ("gpt-3.5-turbo", False),
        ("", False),
    ],
)
def test_openai_vision_by_marker(model: str, vision: bool) -> None:
    assert openai_capabilities(model).supports_vision is vision


@pytest.mark.parametrize(
    ("model", "vision"),
    [
        ("claude-3-5-sonnet-20241022", True),
        ("claude-sonnet-4-6", True),
        ("claude-haiku-4-5", True),
        ("claude-2.1", False),
    ],
)
def test_anthropic_vision_by_prefix(model: str, vision: bool) -> None:
    assert anthropic_capabilities(model).supports_vision is vision


def test_capability_roles_per_vendor() -> None:
    assert openai_capabilities("gpt-4o").supported_message_roles == ("user", "assistant", "system")
    assert anthropic_capabilities("claude-sonnet-4-6").supported_message_roles == ("user", "assistant")
    assert gemini_capabilities("gemini-2.5-pro").supported_message_roles == ("user", "model")


def test_only_anthropic_requires_max_tokens() -> None:
    assert anthropic_capabilities("claude-sonnet-4-6").requires_max_tokens is True
    assert anthropic_capabilities("claude-sonnet-4-6", 2048).max_tokens_default == 2048
    assert openai_capabilities("gpt-4o").requires_max_tokens is False
    assert gemini_capabilities("gemini-2.5-pro").requires_max_tokens is False


def test_default_temperatures() -> None:
    assert effective_temperature("openai", None) == 0.7
    assert effective_temperature("anthropic", None) == 1.0
    assert effective_temperature("gemini", CompletionOptions()) == 1.0
    assert effective_temperature("gemini", CompletionOptions(temperature=0)) == 0.0


@pytest.mark.parametrize("raw", [None, True, 0, -3, 1.5, "100"])
def test_normalize_optional_limit_rejects_invalid(raw: object) -> None:
    assert normalize_optional_limit(raw) is None


def test_normalize_temperature_range() -> None:
    assert normalize_temperature(1) == 1.0
    assert normalize_temperature(2.5) is None
    assert normalize_temperature(False) is None


def test_anthropic_max_tokens_fallback_chain() -> None:
    assert anthropic_effective_max_output_tokens(None) == DEFAULT_ANTHROPIC_MAX_OUTPUT_TOKENS
    assert anthropic_effective_max_output_tokens(None, 1000) == 1000
    assert anthropic_effective_max_output_tokens(CompletionOptions(max_tokens=10), 1000) == 10


def test_optional_max_output_tokens() -> None:
    assert optional_max_output_tokens(None) is None
    assert optional_max_output_tokens(CompletionOptions(max_tokens=0), 256) == 256
