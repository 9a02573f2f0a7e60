"""
Reassembly of streamed tool calls.

OpenAI-style streams split each tool call across many chunks: the id and
the first part of the name arrive first, then the argument JSON in
arbitrary slices.  Fragments are keyed by ``call_index``; several calls can
be interleaved.

Argument text is only concatenated while streaming.  ``flush()`` parses it
once the stream has ended.  A call whose arguments are not a JSON object is
still returned, with ``arguments={}`` and ``parse_error`` set, so the caller
can tell the model what went wrong.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from conduit.llm.types import RawToolDelta, ToolCall


@dataclass
class _Pending:
    id: str | None = None
    name: str = ""
    args: str = ""


class ToolCallAssembler:
    """Collects ``RawToolDelta`` fragments and emits finished ``ToolCall`` objects."""

    def __init__(self) -> None:
        self._pending: dict[int, _Pending] = {}
        self.errors: list[str] = []

    def __len__(self) -> int:
        return len(self._pending)

    def feed(self, delta: RawToolDelta) -> None:
        call = self._pending.get(delta.call_index)
        if call is None:
            call = self._pending[delta.call_index] = _Pending()
        # first non-empty id wins; later chunks usually repeat or omit it
        call.id = call.id or delta.id
        call.name += delta.name_delta
        call.args += delta.args_delta

    def raw(self, idx: int) -> dict | None:
        """Accumulated ``{"id", "name", "args"}`` for *idx*, or ``None``."""
        call = self._pending.get(idx)
        if call is None:
            return None
        return {"id": call.id, "name": call.name, "args": call.args}

    def flush(self) -> list[ToolCall]:
        """Finish every pending call in index order and forget them."""
        done = [self._finish(idx, call) for idx, call in sorted(self._pending.items())]
        self._pending.clear()
        return done

    def reset(self) -> None:
        self._pending.clear()
        self.errors.clear()

    def _finish(self, idx: int, call: _Pending) -> ToolCall:
        name = call.name
        arguments, error = _parse_arguments(call.args)
        if error is not None:
            self.errors.append(
                f"tool_call_json_parse_failed idx={idx} name={name} err={error}"
            )
        return ToolCall(
            id=call.id or f"call_{idx}",
            name=name,
            arguments=arguments,
            raw_arguments=call.args,
            parse_error=error,
        )


def _parse_arguments(text: str) -> tuple[dict, str | None]:
    if not text.strip():
        return {}, None
    try:
        value = json.loads(text)
    except ValueError as exc:
        return {}, str(exc)
    if not isinstance(value, dict):
        return {}, f"expected a JSON object, got {type(value).__name__}"
    return value, None
