"""Per-vendor request defaults.

``None`` in caller options means "use the vendor default". Vendors that
require a max-output-token field always receive a concrete value.
"""

from __future__ import annotations

from typing import Any

from .types import CompletionOptions, ProviderKind


DEFAULT_ANTHROPIC_MAX_OUTPUT_TOKENS = 4096

DEFAULT_TEMPERATURES: dict[ProviderKind, float] = {
    "openai": 0.7,
    "anthropic": 1.0,
    "gemini": 1.0,
}

# Title generation stays short and deterministic-ish.
TITLE_MAX_OUTPUT_TOKENS = 32
TITLE_TEMPERATURE = 0.3


def normalize_optional_limit(raw_value: Any) -> int | None:
    """Normalize a configured limit value to positive int or None."""
    if raw_value is None:
        return None
    if isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, int) and raw_value > 0:
        return raw_value
    return None


def normalize_temperature(raw_value: Any) -> float | None:
    """Normalize a temperature to a finite float in ``[0, 2]`` or None."""
    if isinstance(raw_value, bool) or not isinstance(raw_value, (int, float)):
        return None
    value = float(raw_value)
    if 0.0 <= value <= 2.0:
        return value
    return None


def effective_temperature(provider: ProviderKind, options: CompletionOptions | None) -> float:
    """Return the caller's temperature, or the vendor default when unset."""
    if options is not None:
        temperature = normalize_temperature(options.temperature)
        if temperature is not None:
            return temperature
    return DEFAULT_TEMPERATURES[provider]


def anthropic_effective_max_output_tokens(
    options: CompletionOptions | None,
    default: int | None = None,
) -> int:
    """Return a valid Anthropic ``max_tokens`` value.

    Anthropic requires ``max_tokens`` on message calls, so we always return a
    concrete value even when no explicit limit is configured.
    """
    if options is not None:
        normalized = normalize_optional_limit(options.max_tokens)
        if normalized is not None:
            return normalized
    return normalize_optional_limit(default) or DEFAULT_ANTHROPIC_MAX_OUTPUT_TOKENS


def optional_max_output_tokens(
    options: CompletionOptions | None,
    default: int | None = None,
) -> int | None:
    """Return a max-output-token cap for vendors where it is optional."""
    if options is not None:
        normalized = normalize_optional_limit(options.max_tokens)
        if normalized is not None:
            return normalized
    return normalize_optional_limit(default)
