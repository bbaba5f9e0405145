"""Rule-based per-model capability lookup.

Pure functions of the model identifier: no network calls, never raise.
"""

from __future__ import annotations

from .catalog import ANTHROPIC_VISION_MODEL_PREFIXES, OPENAI_VISION_MODEL_MARKERS
from .limits import DEFAULT_ANTHROPIC_MAX_OUTPUT_TOKENS
from .types import ProviderCapabilities


def openai_capabilities(model: str) -> ProviderCapabilities:
    model_id = (model or "").lower()
    return ProviderCapabilities(
        supports_vision=any(marker in model_id for marker in OPENAI_VISION_MODEL_MARKERS),
        supports_streaming=True,
        requires_max_tokens=False,
        supported_message_roles=("user", "assistant", "system"),
    )


def anthropic_capabilities(
    model: str,
    max_tokens_default: int = DEFAULT_ANTHROPIC_MAX_OUTPUT_TOKENS,
) -> ProviderCapabilities:
    # System prompts travel in a separate top-level field.
    model_id = (model or "").lower()
    return ProviderCapabilities(
        supports_vision=model_id.startswith(ANTHROPIC_VISION_MODEL_PREFIXES),
        supports_streaming=True,
        requires_max_tokens=True,
        max_tokens_default=max_tokens_default,
        supported_message_roles=("user", "assistant"),
    )


def gemini_capabilities(model: str) -> ProviderCapabilities:
    # All Gemini chat models accept inline images.
    return ProviderCapabilities(
        supports_vision=True,
        supports_streaming=True,
        requires_max_tokens=False,
        supported_message_roles=("user", "model"),
    )
