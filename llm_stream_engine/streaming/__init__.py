"""Streaming layer: bytes to frames to events to reconstructed results.

This layer handles:
- Frame decoding of line-delimited event streams
- Classification of frames into typed events
- Per-key accumulation of text and tool call argument deltas
- The stream controller that owns lifecycle, cancellation and timeouts
"""

from .accumulator import AccumulationBuffer, DeltaAccumulator
from .classifier import EventClassifier
from .controller import StreamController, StreamState, reconstruct
from .decoder import DecoderStats, FrameDecoder, decode_frames
from .sources import aiter_chunks, from_httpx_response
from .types import CompletedValue, Frame, PartialValue, StreamClosed

__all__ = [
    "AccumulationBuffer",
    "DeltaAccumulator",
    "EventClassifier",
    "StreamController",
    "StreamState",
    "reconstruct",
    "DecoderStats",
    "FrameDecoder",
    "decode_frames",
    "aiter_chunks",
    "from_httpx_response",
    "CompletedValue",
    "Frame",
    "PartialValue",
    "StreamClosed",
]
