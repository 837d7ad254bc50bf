"""
LLM Stream Engine - Reconstruction and validation of streamed LLM responses.

This package consumes a Server-Sent-Events response stream and provides:
- Incremental frame decoding with bounded line length
- Classification of Responses API events into typed events
- Per-key reassembly of text and tool call argument deltas
- JSON Schema validation of completed tool calls and structured output
- A stream controller with cancellation, timeout and error policy
"""

__version__ = "0.1.0"

from .errors import (
    ProtocolError,
    SchemaError,
    StreamError,
    TransportError,
)
from .models.events import (
    Event,
    FunctionCallArgumentsDelta,
    FunctionCallCompleted,
    FunctionCallStarted,
    OutputTextCompleted,
    OutputTextDelta,
    Refused,
    ResponseCompleted,
    ResponseFailed,
    StreamStarted,
)
from .models.options import DEBUG_OPTIONS, DEFAULT_OPTIONS, STRICT_OPTIONS, EngineOptions
from .models.results import StreamResult, StreamStatus, ToolCallResult, ToolCallStatus
from .streaming.controller import StreamController, StreamState, reconstruct
from .validation import SchemaRegistry, SchemaValidator, ValidationResult, Violation

__all__ = [
    # Controller
    "StreamController",
    "StreamState",
    "reconstruct",

    # Events
    "Event",
    "StreamStarted",
    "OutputTextDelta",
    "OutputTextCompleted",
    "FunctionCallStarted",
    "FunctionCallArgumentsDelta",
    "FunctionCallCompleted",
    "ResponseCompleted",
    "ResponseFailed",
    "Refused",

    # Options and results
    "EngineOptions",
    "DEFAULT_OPTIONS",
    "STRICT_OPTIONS",
    "DEBUG_OPTIONS",
    "StreamResult",
    "StreamStatus",
    "ToolCallResult",
    "ToolCallStatus",

    # Validation
    "SchemaRegistry",
    "SchemaValidator",
    "ValidationResult",
    "Violation",

    # Errors
    "StreamError",
    "TransportError",
    "ProtocolError",
    "SchemaError",
]
