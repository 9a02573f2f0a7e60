"""
Token estimation.

Providers that stream without a usage summary still need a token figure for
context-budget decisions, so the counter applies a simple character-based
heuristic: roughly 4 characters per token.
"""

from __future__ import annotations

import math

from conduit.types import Usage

CHARS_PER_TOKEN = 4


class TokenCounter:
    """Estimate token counts for text and message lists."""

    def __init__(self, chars_per_token: int = CHARS_PER_TOKEN) -> None:
        self.chars_per_token = chars_per_token

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def count_text(self, text: str) -> int:
        """Return the estimated token count for a plain string."""
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)

    def count_messages(self, messages: list) -> int:
        """Estimate tokens over the concatenated contents of *messages*."""
        return self.count_text(
            "".join(getattr(m, "content", None) or "" for m in messages)
        )

    def estimate_usage(self, prompt_messages: list, response_text: str) -> Usage:
        """
        Build a ``Usage`` for a response whose stream carried no usage
        summary.
        """
        prompt = self.count_messages(prompt_messages)
        completion = self.count_text(response_text)
        return Usage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion,
            estimated=True,
        )
