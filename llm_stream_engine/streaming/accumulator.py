"""
Delta accumulation for streamed text and tool call arguments.

Each logical unit of a response (one output text item, one function call)
gets its own buffer. Fragments are appended strictly in sequence order and
concatenated when the unit's completed event arrives.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..errors import (
    DuplicateCompletionError,
    DuplicateStartError,
    OutOfOrderDeltaError,
    UnknownKeyError,
)
from ..models.events import (
    FunctionCallArgumentsDelta,
    FunctionCallCompleted,
    FunctionCallStarted,
    OutputTextCompleted,
    OutputTextDelta,
    StreamEvent,
)
from ..observability.logging import StreamLogger
from .types import BufferKey, CompletedValue, PartialValue


@dataclass
class AccumulationBuffer:
    """In-progress value of one streamed unit."""
    key: BufferKey
    name: Optional[str] = None
    fragments: List[str] = field(default_factory=list)
    last_sequence: Optional[int] = None

    def accept(self, fragment: str, sequence: Optional[int]) -> None:
        """Append a fragment after checking its sequence counter.

        Deltas without a counter get the next one implicitly.

        Raises:
            OutOfOrderDeltaError: If the counter does not exceed the last one;
                the buffer is left unchanged
        """
        if sequence is None:
            sequence = 0 if self.last_sequence is None else self.last_sequence + 1
        elif self.last_sequence is not None and sequence <= self.last_sequence:
            raise OutOfOrderDeltaError(self.key, sequence, self.last_sequence)
        self.fragments.append(fragment)
        self.last_sequence = sequence

    @property
    def value(self) -> str:
        return "".join(self.fragments)

    def to_partial(self) -> PartialValue:
        kind, ident = self.key
        return PartialValue(
            kind=kind,
            key=ident,
            value=self.value,
            name=self.name,
            fragments=len(self.fragments),
            last_sequence=self.last_sequence,
        )


class DeltaAccumulator:
    """
    Keyed set of live buffers for one stream.

    The accumulator owns all buffers of its stream; keys never share
    state, so parallel tool calls interleaved on the wire stay separate.
    """

    def __init__(self, logger: Optional[StreamLogger] = None):
        self._buffers: Dict[BufferKey, AccumulationBuffer] = {}
        self._completed: Set[BufferKey] = set()
        self._log = logger or StreamLogger("accumulator")

    def apply(self, event: StreamEvent) -> Optional[CompletedValue]:
        """
        Apply one event.

        Args:
            event: Any classified event; events that do not concern
                accumulation are ignored

        Returns:
            The finalized value when the event completed a buffer, else None

        Raises:
            ProtocolError: On out-of-order deltas, duplicate starts or
                completions, or completion of a key that was never started
        """
        if isinstance(event, OutputTextDelta):
            key: BufferKey = ("text", event.item_index)
            self._live_buffer(key, create=True).accept(event.delta, event.sequence)
            return None

        if isinstance(event, FunctionCallStarted):
            key = ("call", event.call_id)
            if key in self._buffers or key in self._completed:
                raise DuplicateStartError(key)
            self._buffers[key] = AccumulationBuffer(key=key, name=event.name)
            return None

        if isinstance(event, FunctionCallArgumentsDelta):
            key = ("call", event.call_id)
            self._live_buffer(key, create=False).accept(event.delta, event.sequence)
            return None

        if isinstance(event, OutputTextCompleted):
            return self._complete(("text", event.item_index), event.text)

        if isinstance(event, FunctionCallCompleted):
            return self._complete(("call", event.call_id), event.arguments)

        return None

    def _live_buffer(self, key: BufferKey, create: bool) -> AccumulationBuffer:
        if key in self._completed:
            raise DuplicateCompletionError(key)
        buffer = self._buffers.get(key)
        if buffer is None:
            if not create:
                raise UnknownKeyError(key, action="append to")
            buffer = self._buffers[key] = AccumulationBuffer(key=key)
        return buffer

    def _complete(self, key: BufferKey, wire_value: str) -> CompletedValue:
        if key in self._completed:
            raise DuplicateCompletionError(key)
        buffer = self._buffers.pop(key, None)
        if buffer is None:
            raise UnknownKeyError(key)
        self._completed.add(key)

        if buffer.fragments:
            value = buffer.value
            if wire_value and wire_value != value:
                self._log.warning(
                    "Completed value differs from accumulated deltas; keeping deltas",
                    key=f"{key[0]}:{key[1]}",
                    accumulated_len=len(value),
                    completed_len=len(wire_value),
                )
        else:
            value = wire_value

        kind, ident = key
        return CompletedValue(
            kind=kind,
            key=ident,
            value=value,
            name=buffer.name,
            fragments=len(buffer.fragments),
        )

    def open_keys(self) -> List[BufferKey]:
        """Keys of buffers still waiting for their completed event, in creation order."""
        return list(self._buffers)

    def is_completed(self, key: BufferKey) -> bool:
        return key in self._completed

    def snapshot(self) -> List[PartialValue]:
        """Partial values of all open buffers, leaving them open."""
        return [buffer.to_partial() for buffer in self._buffers.values()]

    def drain(self) -> List[PartialValue]:
        """Close every open buffer and return its partial value."""
        partials = self.snapshot()
        self._buffers.clear()
        return partials
