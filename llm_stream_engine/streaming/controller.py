"""
Stream controller.

Drives one stream from raw chunks to caller-facing events and owns its
lifecycle:

    IDLE -> STREAMING -> COMPLETED | FAILED | CANCELLED | REFUSED

Every chunk is decoded, classified, accumulated and validated to completion
before the next chunk is awaited, so the read of the next chunk is the only
place where cancellation and the inactivity timeout are observed. Terminal
states absorb everything that follows.
"""

import asyncio
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional

from ..errors import (
    SchemaError,
    StreamError,
    StreamTimeoutError,
    UnexpectedStreamEndError,
    UnfinishedToolCallError,
    UnknownSchemaError,
    UnrecognizedEventError,
)
from ..models.events import (
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
from ..models.options import EngineOptions
from ..models.results import (
    OutputValidation,
    PartialCall,
    StreamResult,
    StreamStatus,
    ToolCallResult,
    ToolCallStatus,
    ViolationInfo,
)
from ..observability.logging import StreamLogger
from ..observability.metrics import MetricsSink, StreamMetrics
from ..validation import SchemaRegistry, SchemaValidator, ValidationResult, Violation
from .accumulator import DeltaAccumulator
from .classifier import EventClassifier
from .decoder import FrameDecoder
from .sources import ChunkSource, aclose_source, aiter_chunks, wrap_transport_error
from .types import CompletedValue, Frame, StreamClosed


class StreamState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUSED = "refused"

    @property
    def is_terminal(self) -> bool:
        return self not in (StreamState.IDLE, StreamState.STREAMING)


_TERMINAL_STATUS = {
    StreamState.COMPLETED: StreamStatus.COMPLETED,
    StreamState.FAILED: StreamStatus.FAILED,
    StreamState.CANCELLED: StreamStatus.CANCELLED,
    StreamState.REFUSED: StreamStatus.REFUSED,
}


def _violation_infos(validation: ValidationResult) -> List[ViolationInfo]:
    return [
        ViolationInfo(path=v.pointer, reason=v.reason, keyword=v.keyword)
        for v in validation.violations
    ]


class StreamController:
    """
    Reconstructs one streamed response.

    Usage:
        controller = StreamController(chunks, registry=registry)
        async for event in controller.stream():
            ...
        result = controller.result

    or simply ``result = await controller.collect()``.
    """

    def __init__(
        self,
        source: ChunkSource,
        registry: Optional[SchemaRegistry] = None,
        options: Optional[EngineOptions] = None,
        metrics_sink: Optional[MetricsSink] = None,
    ):
        """
        Args:
            source: Byte chunks: an async or sync iterable, or an ``httpx.Response``
            registry: Schemas for tool call arguments (keyed by function name)
                and for the output text
            options: Engine options; defaults to ``EngineOptions()``
            metrics_sink: Receives the stream metrics on termination

        Raises:
            UnknownSchemaError: ``options.output_schema`` is not registered
        """
        self.options = options or EngineOptions()
        self.registry = registry or SchemaRegistry()
        if self.options.output_schema is not None:
            self.registry.get(self.options.output_schema)
        self.metrics_sink = metrics_sink
        self.metrics = StreamMetrics()

        self._source = source
        self._chunks = aiter_chunks(source)
        self._log = StreamLogger("controller")
        self._decoder = FrameDecoder(
            max_line_length=self.options.max_line_length,
            sentinel=self.options.sentinel,
            logger=StreamLogger("decoder"),
        )
        self._classifier = EventClassifier(sentinel=self.options.sentinel)
        self._accumulator = DeltaAccumulator(logger=StreamLogger("accumulator"))
        self._validator = SchemaValidator(self.registry)

        self._state = StreamState.IDLE
        self._cancel_requested = asyncio.Event()
        self._iterating = False
        self._closed = False
        self._pending_read: Optional[asyncio.Future] = None

        self._response_id: Optional[str] = None
        self._texts: Dict[int, str] = {}
        self._tool_calls: List[ToolCallResult] = []
        self._usage: Dict = {}
        self._refusal: Optional[str] = None
        self._output_validation: Optional[OutputValidation] = None
        self._failure_reason: Optional[str] = None
        self._error_type: Optional[str] = None
        self._error: Optional[StreamError] = None
        self._result: Optional[StreamResult] = None

    # Public API

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def result(self) -> Optional[StreamResult]:
        """Aggregate result; available once a terminal state is reached."""
        return self._result

    @property
    def error(self) -> Optional[StreamError]:
        """The error that failed the stream, if any."""
        return self._error

    @property
    def response_id(self) -> Optional[str]:
        return self._response_id

    def cancel(self) -> None:
        """
        Request cancellation.

        Honored at the next chunk boundary; a chunk already received is
        processed to completion first. Before streaming started the
        controller moves to CANCELLED right away.
        """
        if self._state.is_terminal:
            return
        self._cancel_requested.set()
        if not self._iterating:
            self._terminate(StreamState.CANCELLED, reason="cancelled before streaming")

    async def aclose(self) -> None:
        """Cancel if still running and close the chunk source."""
        self.cancel()
        await self._shutdown()

    def __aiter__(self) -> AsyncIterator[Event]:
        return self.stream()

    async def collect(self, raise_on_failure: bool = False) -> StreamResult:
        """
        Consume the whole stream and return the aggregate result.

        Args:
            raise_on_failure: Raise the failure instead of returning a FAILED result

        Raises:
            StreamError: Only with ``raise_on_failure`` and a FAILED stream
        """
        if not self._iterating:
            async for _ in self.stream():
                pass
        elif not self._state.is_terminal:
            raise RuntimeError("stream is already being consumed")

        result = self._result
        if raise_on_failure and result.status == StreamStatus.FAILED:
            if self._error is not None:
                raise self._error
            raise StreamError(f"response failed: {result.failure_reason}")
        return result

    async def stream(self) -> AsyncIterator[Event]:
        """
        Yield caller-facing events in arrival order.

        The sequence is single-pass: a controller can only be streamed once.
        Failures end the sequence and are reported in ``result`` and
        ``error`` rather than raised.
        """
        if self._iterating:
            raise RuntimeError("a stream can only be consumed once")
        self._iterating = True

        with self._log.track_stream() as meta:
            try:
                while not self._state.is_terminal:
                    chunk = await self._next_chunk()
                    if chunk is None:
                        events = [] if self._state.is_terminal else self._process_end()
                    else:
                        events = self._process_chunk(chunk)
                    for event in events:
                        yield event
            except asyncio.CancelledError:
                self._terminate(StreamState.CANCELLED, reason="consumer task cancelled")
                raise
            finally:
                if not self._state.is_terminal:
                    # The consumer stopped iterating early
                    self._terminate(StreamState.CANCELLED, reason="consumer stopped iterating")
                meta["status"] = self._state.value
                await self._shutdown()

    # Chunk reading

    async def _next_chunk(self) -> Optional[bytes]:
        """Await the next chunk, racing cancellation and the inactivity timeout.

        Returns None at end of input or when the stream was terminated.
        """
        if self._cancel_requested.is_set():
            self._terminate(StreamState.CANCELLED, reason="cancelled by caller")
            return None

        read = self._pending_read = asyncio.ensure_future(self._chunks.__anext__())
        cancelled = asyncio.ensure_future(self._cancel_requested.wait())
        try:
            done, _ = await asyncio.wait(
                {read, cancelled},
                timeout=self.options.inactivity_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancelled.cancel()

        if read in done:
            self._pending_read = None
            try:
                chunk = read.result()
            except StopAsyncIteration:
                return None
            except Exception as e:
                self._fail(wrap_transport_error(e))
                return None
            self.metrics.chunks += 1
            return chunk

        await self._settle_pending_read()
        if cancelled in done:
            self._terminate(StreamState.CANCELLED, reason="cancelled by caller")
        else:
            self._fail(StreamTimeoutError(self.options.inactivity_timeout))
        return None

    async def _settle_pending_read(self) -> None:
        read, self._pending_read = self._pending_read, None
        if read is not None and not read.done():
            read.cancel()
            await asyncio.wait({read})

    # Processing; runs without suspension

    def _process_chunk(self, chunk: bytes) -> List[Event]:
        emitted: List[Event] = []
        try:
            for frame in self._decoder.feed(chunk):
                self._process_frame(frame, emitted)
                if self._state.is_terminal:
                    break
        except StreamError as e:
            self._fail(e)
        finally:
            self._sync_decoder_stats()
        return emitted

    def _process_end(self) -> List[Event]:
        """Handle end of input: flush the decoder, then require a terminal event."""
        emitted: List[Event] = []
        try:
            for frame in self._decoder.finish():
                self._process_frame(frame, emitted)
                if self._state.is_terminal:
                    break
            if not self._state.is_terminal:
                raise UnexpectedStreamEndError(
                    "transport closed", unfinished=self._accumulator.open_keys()
                )
        except StreamError as e:
            self._fail(e)
        finally:
            self._sync_decoder_stats()
        return emitted

    def _process_frame(self, frame: Frame, emitted: List[Event]) -> None:
        if self._state is StreamState.IDLE:
            self._state = StreamState.STREAMING

        try:
            classified = self._classifier.classify(frame)
        except UnrecognizedEventError as e:
            self.metrics.unrecognized_events += 1
            self._log.warning("Skipping unrecognized event", tag=e.tag)
            return

        if classified is None:
            return
        if isinstance(classified, StreamClosed):
            raise UnexpectedStreamEndError(
                "sentinel received", unfinished=self._accumulator.open_keys()
            )
        self._apply(classified, emitted)

    def _apply(self, event: Event, emitted: List[Event]) -> None:
        self.metrics.mark_event()
        if self.options.log_events:
            self._log.debug("Event", type=event.type)

        if isinstance(event, StreamStarted):
            self._bind_response_id(event.response_id)
            emitted.append(event)

        elif isinstance(event, (OutputTextDelta, FunctionCallStarted, FunctionCallArgumentsDelta)):
            self._accumulator.apply(event)
            emitted.append(event)

        elif isinstance(event, OutputTextCompleted):
            completed = self._accumulator.apply(event)
            emitted.append(self._finish_text(completed))

        elif isinstance(event, FunctionCallCompleted):
            completed = self._accumulator.apply(event)
            emitted.append(self._finish_call(completed, event.name))

        elif isinstance(event, ResponseCompleted):
            self._complete(event, emitted)

        elif isinstance(event, ResponseFailed):
            emitted.append(event)
            self._failure_reason = event.reason
            self._error_type = "ResponseFailed"
            self._terminate(StreamState.FAILED)

        elif isinstance(event, Refused):
            emitted.append(event)
            self._refusal = event.reason
            self._terminate(StreamState.REFUSED)

    def _finish_text(self, completed: CompletedValue) -> OutputTextCompleted:
        self._texts[completed.key] = completed.value
        return OutputTextCompleted(item_index=completed.key, text=completed.value)

    def _finish_call(self, completed: CompletedValue, wire_name: Optional[str]) -> FunctionCallCompleted:
        name = completed.name or wire_name
        validation = None
        status = ToolCallStatus.UNVALIDATED
        if self.options.validate_tool_calls and name and name in self.registry:
            validation = self._validate(name, completed.value)
            status = ToolCallStatus.VALID if validation.valid else ToolCallStatus.INVALID
            if not validation.valid:
                self.metrics.invalid_tool_calls += 1
                self._log.warning(
                    "Tool call arguments failed validation",
                    call_id=completed.key,
                    tool=name,
                    violations=len(validation.violations),
                )

        self.metrics.tool_calls += 1
        self._tool_calls.append(
            ToolCallResult(
                call_id=completed.key,
                name=name,
                arguments=completed.value,
                status=status,
                parsed=validation.value if validation else None,
                violations=_violation_infos(validation) if validation else [],
            )
        )
        return FunctionCallCompleted(
            call_id=completed.key,
            arguments=completed.value,
            name=name,
            validation=validation,
        )

    def _validate(self, schema_name: str, text: str) -> ValidationResult:
        try:
            return self._validator.validate_json(schema_name, text)
        except SchemaError as e:
            # A schema that cannot be applied makes the value invalid, never the stream
            self._log.warning(
                "Schema could not be applied",
                schema=schema_name,
                error_type=e.error_type,
                error_msg=e.message,
            )
            keyword = "$ref" if isinstance(e, UnknownSchemaError) else "schema"
            return ValidationResult(
                violations=(Violation(path=(), reason=e.message, keyword=keyword),),
                raw=text,
                schema_name=schema_name,
            )

    def _complete(self, event: ResponseCompleted, emitted: List[Event]) -> None:
        open_keys = self._accumulator.open_keys()
        open_calls = [key for key in open_keys if key[0] == "call"]
        if open_calls:
            raise UnfinishedToolCallError(open_calls)

        # Text items the producer never closed explicitly are final now
        for key in open_keys:
            completed = self._accumulator.apply(OutputTextCompleted(item_index=key[1]))
            emitted.append(self._finish_text(completed))

        if event.response_id:
            self._bind_response_id(event.response_id)
        self._usage = dict(event.usage)

        if self.options.output_schema is not None:
            validation = self._validate(self.options.output_schema, self._text())
            self._output_validation = OutputValidation(
                schema_name=self.options.output_schema,
                valid=validation.valid,
                parsed=validation.value,
                violations=_violation_infos(validation),
            )

        emitted.append(event)
        self._terminate(StreamState.COMPLETED)

    # Termination

    def _bind_response_id(self, response_id: Optional[str]) -> None:
        if not response_id:
            return
        self._response_id = response_id
        self.metrics.response_id = response_id
        self._log.bind(response_id)

    def _text(self) -> str:
        return "".join(self._texts[index] for index in sorted(self._texts))

    def _fail(self, error: StreamError) -> None:
        self._error = error
        self._failure_reason = error.message
        self._error_type = error.error_type
        self._log.error("Stream failed", error=error, category=error.category)
        self._terminate(StreamState.FAILED)

    def _terminate(self, state: StreamState, reason: Optional[str] = None) -> None:
        if self._state.is_terminal:
            return
        self._state = state
        if reason and self._failure_reason is None:
            self._failure_reason = reason

        partials = self._accumulator.drain()
        partial_text = "".join(p.value for p in partials if p.kind == "text")
        partial_calls = [
            PartialCall(call_id=p.key, name=p.name, arguments=p.value, fragments=p.fragments)
            for p in partials
            if p.kind == "call"
        ]
        tool_calls = self._tool_calls
        if state is StreamState.REFUSED:
            # A refusal never hands out tool call results
            tool_calls, partial_calls = [], []

        self.metrics.finish(state.value, self._error_type)
        self._result = StreamResult(
            status=_TERMINAL_STATUS[state],
            response_id=self._response_id,
            text=self._text(),
            tool_calls=list(tool_calls),
            partial_text=partial_text,
            partial_calls=partial_calls,
            usage=self._usage,
            failure_reason=self._failure_reason if state is not StreamState.COMPLETED else None,
            error_type=self._error_type,
            refusal=self._refusal,
            output_validation=self._output_validation,
            metrics=self.metrics.to_dict(),
        )
        self._log.info("Stream terminated", state=state.value, reason=self._failure_reason)

    def _sync_decoder_stats(self) -> None:
        stats = self._decoder.stats
        self.metrics.bytes_received = stats.bytes_received
        self.metrics.frames = stats.frames
        self.metrics.dropped_frames = stats.dropped_frames

    async def _shutdown(self) -> None:
        """Discard unread input, close the source and report metrics. Runs once."""
        if self._closed:
            return
        self._closed = True

        await self._settle_pending_read()
        for source in (self._chunks, self._source):
            try:
                await aclose_source(source)
            except Exception as e:
                self._log.warning("Failed to close chunk source", error_type=type(e).__name__)

        if self.options.log_streaming_metrics:
            self._log.log_streaming_metrics(self.metrics.to_dict())
        if self.metrics_sink is not None:
            try:
                await self.metrics_sink.record(self.metrics)
            except Exception as e:
                self._log.warning("Failed to record stream metrics", error_type=type(e).__name__)


async def reconstruct(
    source: ChunkSource,
    registry: Optional[SchemaRegistry] = None,
    options: Optional[EngineOptions] = None,
    metrics_sink: Optional[MetricsSink] = None,
) -> StreamResult:
    """Convenience function: consume a whole stream and return its result."""
    controller = StreamController(source, registry=registry, options=options, metrics_sink=metrics_sink)
    return await controller.collect()
