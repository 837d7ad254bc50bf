"""Observability layer for the streaming engine.

This layer handles:
- Structured logging for stream components
- Per-stream metrics
- Pluggable metrics sinks
"""

from .logging import StreamLogger
from .metrics import MetricsSink, StreamMetrics
from .sinks import InMemoryMetricsSink, MetricsSummary

__all__ = [
    "StreamLogger",
    "StreamMetrics",
    "MetricsSink",
    "InMemoryMetricsSink",
    "MetricsSummary",
]
