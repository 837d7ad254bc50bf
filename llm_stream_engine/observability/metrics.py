from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol


@dataclass
class StreamMetrics:
    """Counters and timings for one stream."""
    response_id: Optional[str] = None
    started_at: float = field(default_factory=time.time)
    chunks: int = 0
    bytes_received: int = 0
    frames: int = 0
    events: int = 0
    unrecognized_events: int = 0
    dropped_frames: int = 0
    tool_calls: int = 0
    invalid_tool_calls: int = 0
    time_to_first_event_ms: Optional[float] = None
    duration_ms: Optional[float] = None
    status: Optional[str] = None
    error_type: Optional[str] = None

    def mark_event(self) -> None:
        self.events += 1
        if self.time_to_first_event_ms is None:
            self.time_to_first_event_ms = (time.time() - self.started_at) * 1000

    def finish(self, status: str, error_type: Optional[str] = None) -> None:
        self.status = status
        self.error_type = error_type
        self.duration_ms = (time.time() - self.started_at) * 1000

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary format."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


class MetricsSink(Protocol):
    async def record(self, metrics: StreamMetrics) -> None: ...
    async def flush(self) -> None: ...
