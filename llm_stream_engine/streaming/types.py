from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Tuple, Union


BufferKind = Literal["text", "call"]
BufferKey = Tuple[BufferKind, Union[int, str]]


@dataclass(frozen=True)
class Frame:
    """One decoded unit of the event-stream framing.

    Attributes:
        event: Value of the ``event:`` field, if the frame had one
        data: Payload; multiple ``data:`` lines joined with a newline
        id: Value of the ``id:`` field, if the frame had one
    """
    event: Optional[str]
    data: str
    id: Optional[str] = None


@dataclass(frozen=True)
class StreamClosed:
    """Signal produced for the sentinel frame.

    It is not an event: it only tells the controller that the producer
    considers the stream finished.
    """
    frame: Optional[Frame] = None


@dataclass(frozen=True)
class CompletedValue:
    """A buffer that was finalized by its matching completed event.

    Attributes:
        kind: ``"text"`` or ``"call"``
        key: Item index for text, call id for function calls
        value: Fragments concatenated in arrival order
        name: Function name for calls, None for text
        fragments: Number of deltas that were merged
    """
    kind: BufferKind
    key: Union[int, str]
    value: str
    name: Optional[str] = None
    fragments: int = 0

    @property
    def buffer_key(self) -> BufferKey:
        return (self.kind, self.key)


@dataclass(frozen=True)
class PartialValue:
    """Best-effort content of a buffer that never saw its completed event."""
    kind: BufferKind
    key: Union[int, str]
    value: str
    name: Optional[str] = None
    fragments: int = 0
    last_sequence: Optional[int] = None
