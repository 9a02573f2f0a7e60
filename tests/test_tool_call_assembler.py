"""Tests for conduit.llm.tool_call_assembler.ToolCallAssembler."""

from __future__ import annotations

import json

from conduit.llm.tool_call_assembler import ToolCallAssembler
from conduit.llm.types import RawToolDelta


class TestSingleToolCall:
    """Assemble a single tool call from incremental deltas."""

    def test_basic_assembly(self):
        asm = ToolCallAssembler()

        asm.feed(RawToolDelta(call_index=0, id="call_1", name_delta="read_"))
        asm.feed(RawToolDelta(call_index=0, name_delta="file"))
        asm.feed(RawToolDelta(call_index=0, args_delta='{"path": '))
        asm.feed(RawToolDelta(call_index=0, args_delta='"/etc/hosts"}'))

        result = asm.flush()
        assert len(result) == 1

        tc = result[0]
        assert tc.id == "call_1"
        assert tc.name == "read_file"
        assert tc.arguments == {"path": "/etc/hosts"}
        assert tc.parse_error is None

    def test_feed_never_parses_partial_json(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="c", name_delta="t", args_delta='{"a": '))
        assert asm.errors == []
        assert asm.raw(0)["args"] == '{"a": '

    def test_fragments_concatenate_verbatim(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="c", name_delta="get_weather"))
        for frag in ['{"ci', 'ty": "Pa', 'ris"}']:
            asm.feed(RawToolDelta(call_index=0, args_delta=frag))
        tc = asm.flush()[0]
        assert tc.raw_arguments == '{"city": "Paris"}'
        assert tc.arguments == {"city": "Paris"}

    def test_later_id_does_not_replace_first(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="first", name_delta="t"))
        asm.feed(RawToolDelta(call_index=0, id="second"))
        assert asm.flush()[0].id == "first"

    def test_no_errors_on_success(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="ok", name_delta="test", args_delta="{}"))
        asm.flush()
        assert asm.errors == []


class TestMultipleConcurrentToolCalls:
    """Two or more tool calls assembled in parallel (different call_index)."""

    def test_two_parallel_calls(self):
        asm = ToolCallAssembler()

        asm.feed(RawToolDelta(call_index=0, id="c0", name_delta="alpha"))
        asm.feed(RawToolDelta(call_index=1, id="c1", name_delta="beta"))
        asm.feed(RawToolDelta(call_index=0, args_delta='{"x": 1}'))
        asm.feed(RawToolDelta(call_index=1, args_delta='{"y": 2}'))

        r = asm.flush()
        assert [tc.name for tc in r] == ["alpha", "beta"]
        assert r[0].arguments == {"x": 1}
        assert r[1].arguments == {"y": 2}

    def test_flush_orders_by_index_not_arrival(self):
        asm = ToolCallAssembler()
        for idx in (2, 0, 1):
            asm.feed(
                RawToolDelta(
                    call_index=idx,
                    id=f"c{idx}",
                    name_delta=f"tool_{idx}",
                    args_delta=json.dumps({"idx": idx}),
                )
            )

        calls = asm.flush()
        assert [tc.name for tc in calls] == ["tool_0", "tool_1", "tool_2"]
        assert [tc.arguments["idx"] for tc in calls] == [0, 1, 2]
        assert len(asm) == 0


class TestMalformedJSON:
    """Malformed argument strings produce a call with empty args and an error."""

    def test_invalid_json(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="bad", name_delta="broken"))
        asm.feed(RawToolDelta(call_index=0, args_delta="NOT VALID JSON {{{"))

        result = asm.flush()

        assert len(result) == 1
        assert result[0].arguments == {}
        assert result[0].parse_error
        assert result[0].raw_arguments == "NOT VALID JSON {{{"
        assert len(asm.errors) == 1
        assert "tool_call_json_parse_failed" in asm.errors[0]
        assert "idx=0" in asm.errors[0]

    def test_partial_json(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="partial", name_delta="trunc"))
        asm.feed(RawToolDelta(call_index=0, args_delta='{"key": "val'))
        result = asm.flush()
        assert result[0].parse_error
        assert len(asm.errors) == 1

    def test_non_object_json_is_an_error(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="arr", name_delta="t", args_delta="[1, 2]"))
        tc = asm.flush()[0]
        assert tc.arguments == {}
        assert "expected a JSON object" in tc.parse_error

    def test_malformed_does_not_block_valid_calls(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="bad", name_delta="broken", args_delta="{BAD"))
        asm.feed(RawToolDelta(call_index=1, id="good", name_delta="ok", args_delta='{"a": 1}'))

        bad, good = asm.flush()
        assert bad.parse_error
        assert good.parse_error is None
        assert good.arguments == {"a": 1}


class TestFlush:
    def test_flush_clears_buffers(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="f0", name_delta="flush_me"))
        assert len(asm) == 1
        asm.flush()
        assert len(asm) == 0
        assert asm.flush() == []

    def test_flush_on_empty_assembler(self):
        asm = ToolCallAssembler()
        assert asm.flush() == []


class TestEmptyArgs:
    """Empty or absent arguments should default to ``{}``."""

    def test_no_args_delta(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="no_args", name_delta="simple"))
        result = asm.flush()
        assert result[0].arguments == {}
        assert result[0].parse_error is None

    def test_whitespace_args(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="empty", name_delta="tool", args_delta="  "))
        assert asm.flush()[0].arguments == {}


class TestReset:
    def test_reset_clears_buffers_and_errors(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=1, id="y", name_delta="bad", args_delta="INVALID"))
        asm.flush()
        asm.feed(RawToolDelta(call_index=0, id="x", name_delta="left_over"))

        assert len(asm.errors) == 1

        asm.reset()

        assert asm.errors == []
        assert asm.flush() == []


class TestIdFallback:
    def test_missing_id_uses_call_index(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=7, name_delta="no_id", args_delta="{}"))
        assert asm.flush()[0].id == "call_7"


class TestSplitPoints:
    """Any split of the name or arguments assembles to the same call."""

    NAME = "web_search"
    ARGS = '{"query": "weather in Paris", "num_results": 3}'

    def _assemble(self, name_parts, args_parts):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(call_index=0, id="c"))
        for part in name_parts:
            asm.feed(RawToolDelta(call_index=0, name_delta=part))
        for part in args_parts:
            asm.feed(RawToolDelta(call_index=0, args_delta=part))
        return asm.flush()[0]

    def test_every_two_way_split(self):
        for n in range(len(self.NAME) + 1):
            for a in range(len(self.ARGS) + 1):
                tc = self._assemble(
                    [self.NAME[:n], self.NAME[n:]], [self.ARGS[:a], self.ARGS[a:]]
                )
                assert tc.name == self.NAME
                assert tc.raw_arguments == self.ARGS
                assert tc.arguments == {"query": "weather in Paris", "num_results": 3}

    def test_one_character_fragments(self):
        tc = self._assemble(list(self.NAME), list(self.ARGS))
        assert tc.name == self.NAME
        assert tc.arguments == json.loads(self.ARGS)

    def test_documented_fragments(self):
        tc = self._assemble(["web_", "search"], ['{"query":"wea', 'ther in Paris"}'])
        assert tc.name == "web_search"
        assert tc.arguments == {"query": "weather in Paris"}

    def test_name_whitespace_kept(self):
        tc = self._assemble([" web_", "search "], ["{}"])
        assert tc.name == " web_search "
