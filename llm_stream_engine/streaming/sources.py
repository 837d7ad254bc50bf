"""
Chunk sources.

The controller reads from any async iterator of byte chunks. These helpers
adapt the usual shapes (sync iterables, async iterables, an open
``httpx.Response``) and close them when the stream terminates.
"""

import inspect
from typing import AsyncIterable, AsyncIterator, Iterable, Union

import httpx

from ..errors import TransportError

ChunkSource = Union[AsyncIterable[bytes], Iterable[bytes]]

# Transport failures that a caller's retry policy would normally retry
RETRYABLE_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


def _to_bytes(chunk) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


async def _iterate_sync(source: Iterable[bytes]) -> AsyncIterator[bytes]:
    for chunk in source:
        yield _to_bytes(chunk)


async def _iterate_async(source: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
    async for chunk in source:
        yield _to_bytes(chunk)


def aiter_chunks(source: ChunkSource) -> AsyncIterator[bytes]:
    """
    Normalize a chunk source to an async iterator of ``bytes``.

    ``str`` chunks are encoded as UTF-8. A single ``bytes``/``str`` value is
    treated as one chunk rather than iterated byte by byte.
    """
    if isinstance(source, httpx.Response):
        return from_httpx_response(source)
    if isinstance(source, (bytes, bytearray, str)):
        return _iterate_sync([source])
    if hasattr(source, "__aiter__"):
        return _iterate_async(source)
    if hasattr(source, "__iter__"):
        return _iterate_sync(source)
    raise TypeError(f"unsupported chunk source: {type(source).__name__}")


async def from_httpx_response(response: httpx.Response) -> AsyncIterator[bytes]:
    """Stream the raw body of an open streaming response and close it afterwards."""
    try:
        async for chunk in response.aiter_bytes():
            if chunk:
                yield chunk
    finally:
        await response.aclose()


async def aclose_source(source) -> None:
    """Close a source or iterator if it supports closing."""
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        await aclose()
        return
    close = getattr(source, "close", None)
    if close is not None:
        result = close()
        if inspect.isawaitable(result):
            await result


def wrap_transport_error(error: Exception) -> TransportError:
    """Wrap an exception raised by a chunk source."""
    if isinstance(error, TransportError):
        return error
    return TransportError(
        f"chunk source failed: {type(error).__name__}: {error}",
        original_error=error,
        retryable=isinstance(error, RETRYABLE_ERRORS),
    )
