from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

BUILTIN_SOURCE = "builtin"


def normalize_schema(schema: dict) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("properties", {})
    return s


@dataclass
class PlanStep:
    id: str
    description: str
    status: str = "pending"  # pending | in_progress | completed | skipped
    notes: str | None = None


@dataclass
class AgentPlan:
    goal: str
    steps: list[PlanStep] = field(default_factory=list)

    def find(self, step_id: str) -> int:
        for idx, step in enumerate(self.steps):
            if step.id == step_id:
                return idx
        return -1


@dataclass
class ToolContext:
    """
    Session-scoped state handed to every ``Tool.execute`` call.

    One context lives as long as one conversation; tools keep per-session
    state here (the agent plan) instead of in module globals.
    """

    config: Any = None
    cwd: str = field(default_factory=os.getcwd)
    plan: AgentPlan | None = None
    extra: dict = field(default_factory=dict)


class Tool(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict:
        """JSON-Schema object describing the parameters.

        Keys missing from ``required`` are optional; a ``default`` on a
        property is applied when the caller leaves it out.
        """

    @property
    def source(self) -> str:
        """Where the tool came from: ``"builtin"`` or an external server name."""
        return BUILTIN_SOURCE

    @abstractmethod
    async def execute(self, params: dict, context: ToolContext) -> str: ...

    def format_call_preview(self, params: dict) -> str | None:
        return None
