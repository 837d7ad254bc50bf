"""
In-memory metrics sink for testing and debugging.

This sink keeps the metrics of finished streams in memory and provides
simple summaries, useful for tests and local development.
"""

from __future__ import annotations

import asyncio
import statistics
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from ..metrics import StreamMetrics


@dataclass
class MetricsSummary:
    """Summary statistics for a set of stream metrics."""
    count: int = 0
    avg_duration_ms: float = 0.0
    p50_duration_ms: float = 0.0
    total_events: int = 0
    unrecognized_events: int = 0
    invalid_tool_calls: int = 0
    statuses: Dict[str, int] = field(default_factory=dict)
    errors: Dict[str, int] = field(default_factory=dict)


class InMemoryMetricsSink:
    """
    In-memory stream metrics storage.

    Uses a fixed-size buffer so long-running processes do not grow
    without bound.
    """

    def __init__(self, max_size: int = 10000):
        """
        Initialize the in-memory sink.

        Args:
            max_size: Maximum number of metrics to store
        """
        self.max_size = max_size
        self._metrics: Deque[StreamMetrics] = deque(maxlen=max_size)
        self._lock = asyncio.Lock()

    async def record(self, metrics: StreamMetrics) -> None:
        """Record the metrics of one finished stream."""
        async with self._lock:
            self._metrics.append(metrics)

    async def flush(self) -> None:
        """No-op for in-memory sink."""
        pass

    async def get_metrics(
        self,
        status: Optional[str] = None,
        response_id: Optional[str] = None,
    ) -> List[StreamMetrics]:
        """Return stored metrics, optionally filtered by status or response id."""
        async with self._lock:
            return [
                m for m in self._metrics
                if (status is None or m.status == status)
                and (response_id is None or m.response_id == response_id)
            ]

    async def get_summary(self) -> MetricsSummary:
        """Summarize everything currently stored."""
        async with self._lock:
            if not self._metrics:
                return MetricsSummary()

            durations = [m.duration_ms for m in self._metrics if m.duration_ms is not None]
            statuses: Dict[str, int] = defaultdict(int)
            errors: Dict[str, int] = defaultdict(int)
            for m in self._metrics:
                statuses[m.status or "unknown"] += 1
                if m.error_type:
                    errors[m.error_type] += 1

            return MetricsSummary(
                count=len(self._metrics),
                avg_duration_ms=statistics.mean(durations) if durations else 0.0,
                p50_duration_ms=statistics.median(durations) if durations else 0.0,
                total_events=sum(m.events for m in self._metrics),
                unrecognized_events=sum(m.unrecognized_events for m in self._metrics),
                invalid_tool_calls=sum(m.invalid_tool_calls for m in self._metrics),
                statuses=dict(statuses),
                errors=dict(errors),
            )

    async def clear(self) -> None:
        async with self._lock:
            self._metrics.clear()
