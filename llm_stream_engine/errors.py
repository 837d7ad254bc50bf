"""
Error taxonomy for the streaming engine.

Errors are grouped by the category that decides how the stream controller
reacts to them:

- transport: chunk read failures and inactivity timeouts
- decode: frames that cannot be decoded or classified
- protocol: event sequences that violate the streaming contract
- schema: problems with registered schemas (never with the validated values)

Schema violations of a completed value are reported as data in a
``ValidationResult`` and are not exceptions.
"""

from typing import Iterable, Optional, Tuple


class StreamError(Exception):
    """Base class for every error raised by the engine."""

    category: str = "stream"
    recoverable: bool = False

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def error_type(self) -> str:
        return type(self).__name__


# Transport

class TransportError(StreamError):
    """The chunk source raised while reading the next chunk."""

    category = "transport"

    def __init__(self, message: str, original_error: Optional[BaseException] = None, **details):
        super().__init__(message, **details)
        self.original_error = original_error


class StreamTimeoutError(TransportError):
    """No chunk arrived within the configured inactivity timeout."""

    def __init__(self, timeout: float):
        super().__init__(f"no chunk received within {timeout:g}s", timeout=timeout)
        self.timeout = timeout


# Decode

class DecodeError(StreamError):
    category = "decode"


class FrameTooLargeError(DecodeError):
    """A field line exceeded the configured maximum length."""

    def __init__(self, length: int, limit: int):
        super().__init__(
            f"frame line of {length} bytes exceeds the {limit} byte limit",
            length=length,
            limit=limit,
        )
        self.length = length
        self.limit = limit


class MalformedFrameError(DecodeError):
    pass


class ClassificationError(StreamError):
    category = "decode"

    def __init__(self, message: str, tag: Optional[str] = None, **details):
        super().__init__(message, tag=tag, **details)
        self.tag = tag


class UnrecognizedEventError(ClassificationError):
    """The frame's tag does not match any known event. Skipped, not fatal."""

    recoverable = True


class MalformedPayloadError(ClassificationError, DecodeError):
    """The payload does not have the structure its tag requires."""


# Protocol

class ProtocolError(StreamError):
    category = "protocol"

    def __init__(self, message: str, key: Optional[Tuple[str, object]] = None, **details):
        super().__init__(message, key=key, **details)
        self.key = key


class OutOfOrderDeltaError(ProtocolError):
    def __init__(self, key, sequence: int, last_sequence: int):
        super().__init__(
            f"delta for {_describe_key(key)} has sequence {sequence}, "
            f"not after {last_sequence}",
            key=key,
            sequence=sequence,
            last_sequence=last_sequence,
        )
        self.sequence = sequence
        self.last_sequence = last_sequence


class DuplicateCompletionError(ProtocolError):
    def __init__(self, key):
        super().__init__(f"{_describe_key(key)} was already completed", key=key)


class DuplicateStartError(ProtocolError):
    def __init__(self, key):
        super().__init__(f"{_describe_key(key)} was already started", key=key)


class UnknownKeyError(ProtocolError):
    def __init__(self, key, action: str = "complete"):
        super().__init__(
            f"cannot {action} {_describe_key(key)}: it was never started",
            key=key,
            action=action,
        )


class UnfinishedToolCallError(ProtocolError):
    """The response completed while buffers were still open."""

    def __init__(self, keys: Iterable):
        keys = list(keys)
        described = ", ".join(_describe_key(k) for k in keys)
        super().__init__(f"response completed with unfinished {described}", keys=keys)
        self.keys = keys


class UnexpectedStreamEndError(ProtocolError):
    """The stream ended (sentinel or transport close) before a terminal event."""

    def __init__(self, reason: str, unfinished: Iterable = ()):
        unfinished = list(unfinished)
        message = f"stream ended before a terminal event ({reason})"
        if unfinished:
            message += "; unfinished " + ", ".join(_describe_key(k) for k in unfinished)
        super().__init__(message, reason=reason, unfinished=unfinished)
        self.unfinished = unfinished


# Schema

class SchemaError(StreamError):
    category = "schema"


class CyclicSchemaError(SchemaError):
    def __init__(self, cycle: Iterable[str]):
        cycle = list(cycle)
        super().__init__(f"schema reference cycle: {' -> '.join(cycle)}", cycle=cycle)
        self.cycle = cycle


class SchemaRegistrationError(SchemaError):
    pass


class UnknownSchemaError(SchemaError):
    def __init__(self, name: str):
        super().__init__(f"no schema registered under {name!r}", name=name)
        self.name = name


def _describe_key(key) -> str:
    if isinstance(key, tuple) and len(key) == 2:
        kind, ident = key
        if kind == "call":
            return f"tool call {ident!r}"
        if kind == "text":
            return f"output text {ident}"
    return repr(key)
