"""
Frame decoder for line-delimited event streams.

This module turns raw byte chunks of arbitrary size into discrete frames:

    event: response.output_text.delta
    data: {"delta": "Hel", ...}

A blank line terminates a frame. Several ``data:`` lines of one frame are
joined with a newline. Lines starting with ``:`` are comments.
"""

from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, List, Optional

from ..config.constants import DEFAULT_MAX_LINE_LENGTH, DEFAULT_SENTINEL
from ..errors import FrameTooLargeError, MalformedFrameError
from ..observability.logging import StreamLogger
from .types import Frame


@dataclass
class DecoderStats:
    """Counters kept by a decoder over its single pass."""
    bytes_received: int = 0
    lines: int = 0
    frames: int = 0
    dropped_frames: int = 0


class FrameDecoder:
    """
    Incremental single-pass decoder for ``text/event-stream`` payloads.

    Complete frames are extracted eagerly from every chunk; a trailing
    partial line or frame stays buffered until the next chunk. Once the
    sentinel frame has been produced the decoder produces nothing more.
    """

    def __init__(
        self,
        max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
        sentinel: str = DEFAULT_SENTINEL,
        logger: Optional[StreamLogger] = None,
    ):
        """Initialize the decoder.

        Args:
            max_line_length: Longest accepted line in bytes, excluding the line ending
            sentinel: Payload that marks the logical end of the stream
            logger: Logger used for decode warnings
        """
        self.max_line_length = max_line_length
        self.sentinel = sentinel
        self.stats = DecoderStats()
        self._log = logger or StreamLogger("decoder")
        self._buffer = bytearray()
        self._event: Optional[str] = None
        self._data: List[str] = []
        self._id: Optional[str] = None
        self._has_fields = False
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once the sentinel frame was produced or ``finish`` was called."""
        return self._closed

    @property
    def pending_bytes(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> List[Frame]:
        """
        Consume one raw chunk and return the frames it completed.

        Args:
            chunk: Raw bytes, possibly ending in the middle of a line

        Returns:
            Frames completed by this chunk, in order

        Raises:
            FrameTooLargeError: If a line exceeds ``max_line_length``
            MalformedFrameError: If a line is not valid UTF-8
        """
        if self._closed or not chunk:
            return []

        self.stats.bytes_received += len(chunk)
        self._buffer.extend(chunk)

        frames: List[Frame] = []
        start = 0
        while not self._closed:
            end = self._find_line_end(start)
            if end is None:
                break
            line_end, next_start = end
            self._check_length(line_end - start)
            frame = self._process_line(bytes(self._buffer[start:line_end]))
            start = next_start
            if frame is not None:
                frames.append(frame)

        if self._closed:
            # Everything after the sentinel is discarded
            self._buffer.clear()
        else:
            del self._buffer[:start]
            # A partial line that is already too long will never become valid
            self._check_length(self._pending_line_length())
        return frames

    def finish(self) -> List[Frame]:
        """
        Flush state at end of input.

        A final line without line ending and a final frame without the
        terminating blank line are still dispatched.
        """
        if self._closed:
            return []

        frames: List[Frame] = []
        if self._buffer:
            line = bytes(self._buffer)
            self._buffer.clear()
            if line.endswith(b"\r"):
                line = line[:-1]
            self._check_length(len(line))
            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)

        if not self._closed:
            frame = self._dispatch()
            if frame is not None:
                frames.append(frame)
        self._closed = True
        return frames

    def _find_line_end(self, start: int):
        """Return (end of line content, start of next line) or None if incomplete."""
        buffer = self._buffer
        lf = buffer.find(b"\n", start)
        cr = buffer.find(b"\r", start)
        if cr != -1 and (lf == -1 or cr < lf):
            # A CR at the very end may still be followed by LF in the next chunk
            if cr + 1 >= len(buffer):
                return None
            if buffer[cr + 1:cr + 2] == b"\n":
                return cr, cr + 2
            return cr, cr + 1
        if lf == -1:
            return None
        return lf, lf + 1

    def _pending_line_length(self) -> int:
        length = len(self._buffer)
        if length and self._buffer[-1:] == b"\r":
            length -= 1
        return length

    def _check_length(self, length: int) -> None:
        if length > self.max_line_length:
            raise FrameTooLargeError(length, self.max_line_length)

    def _process_line(self, raw: bytes) -> Optional[Frame]:
        self.stats.lines += 1
        try:
            line = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedFrameError(f"frame line is not valid UTF-8: {e}") from e

        if not line:
            return self._dispatch()

        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
            self._has_fields = True
        elif name == "data":
            self._data.append(value)
            self._has_fields = True
        elif name == "id":
            if "\0" not in value:
                self._id = value
            self._has_fields = True
        # Other fields (retry, unknown) carry nothing we use
        return None

    def _dispatch(self) -> Optional[Frame]:
        if not self._has_fields:
            return None

        event, data, frame_id = self._event, self._data, self._id
        self._event, self._data, self._id = None, [], None
        self._has_fields = False

        if not data:
            self.stats.dropped_frames += 1
            self._log.warning("Dropping frame without data field", event=event)
            return None

        frame = Frame(event=event or None, data="\n".join(data), id=frame_id)
        self.stats.frames += 1
        if frame.data == self.sentinel:
            self._closed = True
        return frame


async def decode_frames(
    chunks: AsyncIterable[bytes],
    max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
    sentinel: str = DEFAULT_SENTINEL,
) -> AsyncIterator[Frame]:
    """Decode an async byte-chunk stream into frames, lazily."""
    decoder = FrameDecoder(max_line_length=max_line_length, sentinel=sentinel)
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            yield frame
        if decoder.closed:
            return
    for frame in decoder.finish():
        yield frame
