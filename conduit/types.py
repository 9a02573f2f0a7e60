from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ToolCallResult:
    id: str
    name: str
    args: dict
    result: str
    is_error: bool = False


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated: bool = False


@dataclass
class CompactionResult:
    messages: list
    tokens_saved: int = 0
    original_count: int = 0
    compacted_count: int = 0


@dataclass
class ContextUsage:
    used: int
    total: int
    used_percentage: int
    remaining_percentage: int


@dataclass
class TurnResult:
    content: str
    tool_calls: list[ToolCallResult] = field(default_factory=list)
    messages: list = field(default_factory=list)
    iterations: int = 1
    state: str = "done"
    usage: Usage | None = None


class ProviderError(RuntimeError):
    """Raised when the LLM provider fails (network, auth, rate limit, bad payload)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
