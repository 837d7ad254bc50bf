"""Unit tests for metrics and the in-memory sink."""

import pytest

from llm_stream_engine.observability.metrics import StreamMetrics
from llm_stream_engine.observability.sinks import InMemoryMetricsSink


def finished(status, duration_ms, error_type=None, events=1, response_id=None):
    metrics = StreamMetrics(response_id=response_id, events=events)
    metrics.finish(status, error_type)
    metrics.duration_ms = duration_ms
    return metrics


@pytest.mark.unit
class TestStreamMetrics:
    """Test per-stream counters."""

    def test_mark_event_records_first_event_time(self):
        """Test time to first event is only set once."""
        metrics = StreamMetrics()
        metrics.mark_event()
        first = metrics.time_to_first_event_ms
        metrics.mark_event()
        assert metrics.events == 2
        assert metrics.time_to_first_event_ms == first

    def test_to_dict_skips_unset_values(self):
        """Test None values are left out."""
        data = StreamMetrics().to_dict()
        assert "status" not in data
        assert data["events"] == 0


@pytest.mark.unit
class TestInMemoryMetricsSink:
    """Test storage and summaries."""

    @pytest.mark.asyncio
    async def test_record_and_filter(self):
        """Test filtering by status and response id."""
        sink = InMemoryMetricsSink()
        await sink.record(finished("completed", 10, response_id="a"))
        await sink.record(finished("failed", 20, "TransportError", response_id="b"))

        assert len(await sink.get_metrics()) == 2
        assert [m.response_id for m in await sink.get_metrics(status="failed")] == ["b"]
        assert [m.status for m in await sink.get_metrics(response_id="a")] == ["completed"]

    @pytest.mark.asyncio
    async def test_summary(self):
        """Test aggregate statistics."""
        sink = InMemoryMetricsSink()
        await sink.record(finished("completed", 10, events=3))
        await sink.record(finished("completed", 30, events=5))
        await sink.record(finished("failed", 20, "StreamTimeoutError"))

        summary = await sink.get_summary()
        assert summary.count == 3
        assert summary.avg_duration_ms == 20
        assert summary.p50_duration_ms == 20
        assert summary.total_events == 9
        assert summary.statuses == {"completed": 2, "failed": 1}
        assert summary.errors == {"StreamTimeoutError": 1}

    @pytest.mark.asyncio
    async def test_bounded_and_clear(self):
        """Test the oldest entries are evicted and clear empties the sink."""
        sink = InMemoryMetricsSink(max_size=2)
        for i in range(3):
            await sink.record(finished("completed", i, response_id=str(i)))
        assert [m.response_id for m in await sink.get_metrics()] == ["1", "2"]

        await sink.clear()
        assert (await sink.get_summary()).count == 0
