"""
Structured logging utility for stream components.

This module provides a consistent logging interface for the decoder,
classifier, accumulator and controller, so every line carries the
component and the response it belongs to.
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional


class StreamLogger:
    """Structured logger for one engine component."""

    def __init__(self, component: str, response_id: Optional[str] = None):
        """
        Initialize logger for a specific component.

        Args:
            component: Name of the component (e.g., "decoder", "controller")
            response_id: Response the log lines belong to, if already known
        """
        self.component = component
        self.response_id = response_id
        self.logger = logging.getLogger(f"llm_stream_engine.streaming.{component}")

    def bind(self, response_id: Optional[str]) -> None:
        """Attach the response id once the producer announced it."""
        self.response_id = response_id

    def _format_message(self, message: str, **kwargs) -> str:
        """Format message with structured fields."""
        fields = []
        if self.response_id:
            fields.append(f"response_id={self.response_id}")

        for key, value in kwargs.items():
            if value is not None:
                fields.append(f"{key}={value}")

        if not fields:
            return message
        return f"[{' '.join(fields)}] {message}"

    def debug(self, message: str, **kwargs):
        """Log debug message with structured fields."""
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(self._format_message(message, **kwargs))

    def info(self, message: str, **kwargs):
        """Log info message with structured fields."""
        self.logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs):
        """Log warning message with structured fields."""
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, error: Optional[BaseException] = None, **kwargs):
        """Log error message with structured fields."""
        if error:
            kwargs['error_type'] = type(error).__name__
            kwargs['error_msg'] = str(error)

        self.logger.error(self._format_message(message, **kwargs))

    @contextmanager
    def track_stream(self):
        """
        Context manager to time a stream and log how it ended.

        Yields:
            Dict with stream metadata; callers may add a ``status`` key
        """
        start_time = time.time()
        metadata: Dict[str, Any] = {'start_time': start_time}

        self.debug("Starting stream")
        try:
            yield metadata
        except Exception as e:
            duration = time.time() - start_time
            self.error(
                "Stream aborted",
                duration_ms=int(duration * 1000),
                error=e,
            )
            raise
        else:
            duration = time.time() - start_time
            self.info(
                "Stream finished",
                status=metadata.get('status'),
                duration_ms=int(duration * 1000),
            )

    def log_streaming_metrics(self, metrics: Dict[str, Any]):
        """Log stream metrics."""
        self.info(
            "Streaming metrics",
            frames=metrics.get('frames'),
            events=metrics.get('events'),
            bytes=metrics.get('bytes_received'),
            unrecognized=metrics.get('unrecognized_events') or None,
            dropped=metrics.get('dropped_frames') or None,
            duration_ms=int(metrics.get('duration_ms') or 0),
        )
