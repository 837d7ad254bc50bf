"""Data models for the streaming engine."""

from .events import (
    Event,
    FunctionCallArgumentsDelta,
    FunctionCallCompleted,
    FunctionCallStarted,
    OutputTextCompleted,
    OutputTextDelta,
    Refused,
    ResponseCompleted,
    ResponseFailed,
    StreamEvent,
    StreamStarted,
    TERMINAL_EVENTS,
    is_terminal,
)
from .options import DEBUG_OPTIONS, DEFAULT_OPTIONS, STRICT_OPTIONS, EngineOptions
from .results import (
    OutputValidation,
    PartialCall,
    StreamResult,
    StreamStatus,
    ToolCallResult,
    ToolCallStatus,
    ViolationInfo,
)

__all__ = [
    # Events
    "Event",
    "StreamEvent",
    "StreamStarted",
    "OutputTextDelta",
    "OutputTextCompleted",
    "FunctionCallStarted",
    "FunctionCallArgumentsDelta",
    "FunctionCallCompleted",
    "ResponseCompleted",
    "ResponseFailed",
    "Refused",
    "TERMINAL_EVENTS",
    "is_terminal",

    # Options
    "EngineOptions",
    "DEFAULT_OPTIONS",
    "STRICT_OPTIONS",
    "DEBUG_OPTIONS",

    # Results
    "StreamStatus",
    "StreamResult",
    "ToolCallResult",
    "ToolCallStatus",
    "PartialCall",
    "OutputValidation",
    "ViolationInfo",
]
