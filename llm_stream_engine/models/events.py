"""Event models for reconstructed streaming responses.

This module defines the closed set of events produced by the classifier
and yielded by the stream controller. Every event is immutable and
self-contained; ``type`` carries the variant tag.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional, Union

if TYPE_CHECKING:
    from ..validation.result import ValidationResult


@dataclass(frozen=True)
class StreamEvent:
    """Base class for all streaming events."""
    type: str = field(default="", init=False)


@dataclass(frozen=True)
class StreamStarted(StreamEvent):
    """The producer opened a response."""
    response_id: Optional[str] = None
    type: str = field(default="stream_started", init=False)


@dataclass(frozen=True)
class OutputTextDelta(StreamEvent):
    """A fragment of free-text output for one output item."""
    delta: str = ""
    item_index: int = 0
    sequence: Optional[int] = None
    type: str = field(default="output_text_delta", init=False)


@dataclass(frozen=True)
class OutputTextCompleted(StreamEvent):
    """Free-text output for one output item is final."""
    item_index: int = 0
    text: str = ""
    type: str = field(default="output_text_completed", init=False)


@dataclass(frozen=True)
class FunctionCallStarted(StreamEvent):
    """A tool/function call was opened."""
    call_id: str = ""
    name: str = ""
    type: str = field(default="function_call_started", init=False)


@dataclass(frozen=True)
class FunctionCallArgumentsDelta(StreamEvent):
    """A fragment of a function call's JSON arguments."""
    call_id: str = ""
    delta: str = ""
    sequence: Optional[int] = None
    type: str = field(default="function_call_arguments_delta", init=False)


@dataclass(frozen=True)
class FunctionCallCompleted(StreamEvent):
    """A function call's arguments are final.

    As classified from the wire, ``arguments`` is whatever the producer sent
    in its completion frame. The controller re-emits it with the arguments
    reassembled from the deltas, the function name and, when a schema is
    registered for that name, the validation outcome.
    """
    call_id: str = ""
    arguments: str = ""
    name: Optional[str] = None
    validation: Optional["ValidationResult"] = None
    type: str = field(default="function_call_completed", init=False)


@dataclass(frozen=True)
class ResponseCompleted(StreamEvent):
    """The producer signalled successful completion."""
    response_id: Optional[str] = None
    usage: Dict[str, Any] = field(default_factory=dict)
    type: str = field(default="response_completed", init=False)


@dataclass(frozen=True)
class ResponseFailed(StreamEvent):
    """The producer signalled failure."""
    reason: str = ""
    type: str = field(default="response_failed", init=False)


@dataclass(frozen=True)
class Refused(StreamEvent):
    """The producer refused to answer for safety reasons."""
    reason: str = ""
    type: str = field(default="refused", init=False)


Event = Union[
    StreamStarted,
    OutputTextDelta,
    OutputTextCompleted,
    FunctionCallStarted,
    FunctionCallArgumentsDelta,
    FunctionCallCompleted,
    ResponseCompleted,
    ResponseFailed,
    Refused,
]

TERMINAL_EVENTS = (ResponseCompleted, ResponseFailed, Refused)


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)
