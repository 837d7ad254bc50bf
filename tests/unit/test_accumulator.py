"""Unit tests for delta accumulation."""

import pytest

from llm_stream_engine.errors import (
    DuplicateCompletionError,
    DuplicateStartError,
    OutOfOrderDeltaError,
    UnknownKeyError,
)
from llm_stream_engine.models.events import (
    FunctionCallArgumentsDelta,
    FunctionCallCompleted,
    FunctionCallStarted,
    OutputTextCompleted,
    OutputTextDelta,
    StreamStarted,
)
from llm_stream_engine.streaming.accumulator import AccumulationBuffer, DeltaAccumulator


@pytest.fixture
def accumulator():
    return DeltaAccumulator()


@pytest.mark.unit
class TestAccumulationBuffer:
    """Test the per-key buffer."""

    def test_implicit_sequence(self):
        """Test deltas without counters are numbered in arrival order."""
        buffer = AccumulationBuffer(key=("text", 0))
        buffer.accept("a", None)
        buffer.accept("b", None)
        assert buffer.value == "ab"
        assert buffer.last_sequence == 1

    def test_gaps_are_allowed(self):
        """Test counters only need to increase."""
        buffer = AccumulationBuffer(key=("text", 0))
        buffer.accept("a", 3)
        buffer.accept("b", 10)
        assert buffer.value == "ab"

    @pytest.mark.parametrize("replayed", [5, 4, 0])
    def test_stale_delta_leaves_buffer_unchanged(self, replayed):
        """Test a counter not above the last one is rejected without side effects."""
        buffer = AccumulationBuffer(key=("call", "x"))
        buffer.accept("{", 4)
        buffer.accept("}", 5)
        with pytest.raises(OutOfOrderDeltaError) as exc_info:
            buffer.accept("junk", replayed)
        assert buffer.value == "{}"
        assert buffer.last_sequence == 5
        assert exc_info.value.key == ("call", "x")
        assert exc_info.value.category == "protocol"


@pytest.mark.unit
class TestDeltaAccumulator:
    """Test keyed accumulation and protocol checks."""

    def test_text_fragments_concatenate(self, accumulator):
        """Test text deltas merge in arrival order."""
        for fragment in ("Hel", "lo ", "world"):
            assert accumulator.apply(OutputTextDelta(delta=fragment)) is None
        completed = accumulator.apply(OutputTextCompleted(item_index=0, text="Hello world"))
        assert completed.value == "Hello world"
        assert completed.kind == "text"
        assert completed.fragments == 3
        assert accumulator.open_keys() == []

    @pytest.mark.parametrize("fragments", [
        ["{\"city\": ", "\"Paris\"", "}"],
        ["{", "}"],
        ["[1, 2, 3]"],
        ["", "a", "", "b"],
    ])
    def test_merging_equals_single_completion(self, fragments):
        """Test finalizing deltas equals completing with the whole value at once."""
        merged = DeltaAccumulator()
        merged.apply(FunctionCallStarted(call_id="c", name="f"))
        for fragment in fragments:
            merged.apply(FunctionCallArgumentsDelta(call_id="c", delta=fragment))

        single = DeltaAccumulator()
        single.apply(FunctionCallStarted(call_id="c", name="f"))

        whole = "".join(fragments)
        assert (
            merged.apply(FunctionCallCompleted(call_id="c")).value
            == single.apply(FunctionCallCompleted(call_id="c", arguments=whole)).value
            == whole
        )

    def test_interleaved_calls_stay_separate(self, accumulator):
        """Test A1, B1, A2, B2, A3, B3 keeps each call's fragments apart."""
        accumulator.apply(FunctionCallStarted(call_id="call_A", name="a"))
        accumulator.apply(FunctionCallStarted(call_id="call_B", name="b"))
        for i in (1, 2, 3):
            accumulator.apply(FunctionCallArgumentsDelta(call_id="call_A", delta=f"A{i}", sequence=i))
            accumulator.apply(FunctionCallArgumentsDelta(call_id="call_B", delta=f"B{i}", sequence=i))

        a = accumulator.apply(FunctionCallCompleted(call_id="call_A"))
        b = accumulator.apply(FunctionCallCompleted(call_id="call_B"))
        assert (a.value, a.name) == ("A1A2A3", "a")
        assert (b.value, b.name) == ("B1B2B3", "b")

    def test_started_without_deltas_uses_completed_value(self, accumulator):
        """Test a call completed with no deltas takes the wire arguments."""
        accumulator.apply(FunctionCallStarted(call_id="c", name="f"))
        completed = accumulator.apply(FunctionCallCompleted(call_id="c", arguments="{}"))
        assert completed.value == "{}"
        assert completed.fragments == 0

    def test_started_without_deltas_may_be_empty(self, accumulator):
        """Test a call may complete with an empty value."""
        accumulator.apply(FunctionCallStarted(call_id="c", name="f"))
        assert accumulator.apply(FunctionCallCompleted(call_id="c")).value == ""

    def test_deltas_win_over_mismatching_completion(self, accumulator, caplog):
        """Test the concatenation is kept and the mismatch logged."""
        accumulator.apply(OutputTextDelta(delta="abc"))
        completed = accumulator.apply(OutputTextCompleted(text="abd"))
        assert completed.value == "abc"
        assert "differs from accumulated deltas" in caplog.text

    def test_completing_unknown_key_is_an_error(self, accumulator):
        """Test completion without any started or delta event."""
        with pytest.raises(UnknownKeyError):
            accumulator.apply(FunctionCallCompleted(call_id="ghost", arguments="{}"))
        with pytest.raises(UnknownKeyError):
            accumulator.apply(OutputTextCompleted(item_index=3, text="x"))

    def test_call_delta_requires_start(self, accumulator):
        """Test argument deltas for a call that was never started."""
        with pytest.raises(UnknownKeyError) as exc_info:
            accumulator.apply(FunctionCallArgumentsDelta(call_id="ghost", delta="{"))
        assert "never started" in str(exc_info.value)

    def test_duplicate_completion(self, accumulator):
        """Test a second completion for a key."""
        accumulator.apply(OutputTextDelta(delta="x"))
        accumulator.apply(OutputTextCompleted())
        with pytest.raises(DuplicateCompletionError):
            accumulator.apply(OutputTextCompleted())

    def test_delta_after_completion(self, accumulator):
        """Test deltas for a completed key are rejected."""
        accumulator.apply(FunctionCallStarted(call_id="c", name="f"))
        accumulator.apply(FunctionCallCompleted(call_id="c", arguments="{}"))
        with pytest.raises(DuplicateCompletionError):
            accumulator.apply(FunctionCallArgumentsDelta(call_id="c", delta="x"))
        assert accumulator.is_completed(("call", "c"))

    def test_duplicate_start(self, accumulator):
        """Test a call id may only be started once."""
        accumulator.apply(FunctionCallStarted(call_id="c", name="f"))
        with pytest.raises(DuplicateStartError):
            accumulator.apply(FunctionCallStarted(call_id="c", name="f"))

    def test_out_of_order_delta_keeps_buffer(self, accumulator):
        """Test a replayed delta does not change the accumulated value."""
        accumulator.apply(OutputTextDelta(delta="a", sequence=1))
        accumulator.apply(OutputTextDelta(delta="b", sequence=2))
        with pytest.raises(OutOfOrderDeltaError):
            accumulator.apply(OutputTextDelta(delta="b", sequence=2))
        assert accumulator.apply(OutputTextCompleted()).value == "ab"

    def test_text_items_are_independent(self, accumulator):
        """Test output items are keyed by index."""
        accumulator.apply(OutputTextDelta(delta="zero", item_index=0))
        accumulator.apply(OutputTextDelta(delta="one", item_index=1))
        assert accumulator.apply(OutputTextCompleted(item_index=1)).value == "one"
        assert accumulator.open_keys() == [("text", 0)]

    def test_snapshot_and_drain(self, accumulator):
        """Test partial values of open buffers."""
        accumulator.apply(FunctionCallStarted(call_id="x", name="f"))
        accumulator.apply(FunctionCallArgumentsDelta(call_id="x", delta="{\"a\""))
        accumulator.apply(FunctionCallArgumentsDelta(call_id="x", delta=": 1"))

        snapshot = accumulator.snapshot()
        assert snapshot[0].value == "{\"a\": 1"
        assert accumulator.open_keys() == [("call", "x")]

        drained = accumulator.drain()
        assert [(p.key, p.name, p.value, p.fragments) for p in drained] == [("x", "f", "{\"a\": 1", 2)]
        assert accumulator.open_keys() == []

    def test_unrelated_events_are_ignored(self, accumulator):
        """Test events that do not concern accumulation."""
        assert accumulator.apply(StreamStarted(response_id="r")) is None
        assert accumulator.open_keys() == []
