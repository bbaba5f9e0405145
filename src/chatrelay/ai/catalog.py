"""Compiled-in model catalog for vendors without a usable listing endpoint."""

from __future__ import annotations

from .types import ModelInfo


# Anthropic model list.
# Official documentation for model verification:
# - Claude: https://docs.anthropic.com/en/docs/about-claude/models
ANTHROPIC_MODELS: tuple[ModelInfo, ...] = (
    ModelInfo(id="claude-opus-4-6", name="Claude Opus 4.6", provider="anthropic", context_window=200_000),
    ModelInfo(id="claude-sonnet-4-6", name="Claude Sonnet 4.6", provider="anthropic", context_window=200_000),
    ModelInfo(id="claude-haiku-4-5", name="Claude Haiku 4.5", provider="anthropic", context_window=200_000),
    ModelInfo(id="claude-3-5-sonnet-20241022", name="Claude 3.5 Sonnet", provider="anthropic", context_window=200_000),
    ModelInfo(id="claude-3-5-haiku-20241022", name="Claude 3.5 Haiku", provider="anthropic", context_window=200_000),
    ModelInfo(id="claude-3-opus-20240229", name="Claude 3 Opus", provider="anthropic", context_window=200_000),
)

# Substrings of OpenAI model ids that accept image input.
OPENAI_VISION_MODEL_MARKERS: tuple[str, ...] = (
    "gpt-4-vision",
    "gpt-4-turbo",
    "gpt-4o",
    "gpt-4.1",
    "gpt-4.5",
    "gpt-5",
)

# Anthropic model families that accept image input.
ANTHROPIC_VISION_MODEL_PREFIXES: tuple[str, ...] = (
    "claude-3",
    "claude-opus-4",
    "claude-sonnet-4",
    "claude-haiku-4",
)

# OpenAI listing includes embeddings, audio and image models.
OPENAI_CHAT_MODEL_PREFIXES: tuple[str, ...] = (
    "gpt-",
    "o1",
    "o3",
    "o4",
    "chatgpt-",
)
