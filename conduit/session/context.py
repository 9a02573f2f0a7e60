"""
Context-window accounting.

Maps a model name to its context window and turns the last reported
``Usage`` into used / remaining percentages.  Unknown models fall back to
8192 tokens unless the configuration supplies a window.
"""

from __future__ import annotations

from conduit.types import ContextUsage, Usage

DEFAULT_CONTEXT_WINDOW = 8192

CONTEXT_WINDOWS: dict[str, int] = {
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
    "gpt-4-turbo": 128_000,
    "gpt-4": 8192,
    "gpt-3.5-turbo": 16_385,
    "o1-preview": 128_000,
    "o1-mini": 128_000,
    "gpt-4.1": 1_000_000,
    "gpt-4.1-mini": 1_000_000,
    "gpt-4.1-nano": 1_000_000,
}


def context_window(model: str, override: int | None = None) -> int:
    if override:
        return override
    return CONTEXT_WINDOWS.get(model, DEFAULT_CONTEXT_WINDOW)


def context_usage(
    usage: Usage | None, model: str, override: int | None = None
) -> ContextUsage | None:
    """Return usage against the model's window, or ``None`` before any call."""
    if usage is None:
        return None
    total = context_window(model, override)
    used_pct = int(usage.total_tokens / total * 100 + 0.5)
    return ContextUsage(
        used=usage.total_tokens,
        total=total,
        used_percentage=used_pct,
        remaining_percentage=max(0, 100 - used_pct),
    )
