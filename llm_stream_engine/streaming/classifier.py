"""
Event classification for decoded frames.

Maps one frame to at most one typed event using the producer's event tag:
the frame's ``event:`` name, or the payload's ``type`` field when the frame
has none. The sentinel payload is recognized before any parsing.
"""

import json
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional, Union

from ..config import constants as c
from ..errors import MalformedPayloadError, UnrecognizedEventError
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
from .types import Frame, StreamClosed


Classified = Optional[Union[Event, StreamClosed]]

# Known tags that carry nothing the engine reconstructs
IGNORED_TAGS = frozenset({
    c.TAG_PING,
    c.TAG_RESPONSE_IN_PROGRESS,
    c.TAG_OUTPUT_ITEM_DONE,
    c.TAG_CONTENT_PART_ADDED,
    c.TAG_CONTENT_PART_DONE,
    c.TAG_REFUSAL_DELTA,
})


class EventClassifier:
    """Turns frames into typed events."""

    def __init__(self, sentinel: str = c.DEFAULT_SENTINEL):
        self.sentinel = sentinel
        # Argument frames name the output item (``fc_...``), not the call
        self._call_ids: Dict[str, str] = {}
        self._handlers: Dict[str, Callable[[Dict[str, Any], str], Optional[Event]]] = {
            c.TAG_RESPONSE_CREATED: self._stream_started,
            c.TAG_OUTPUT_TEXT_DELTA: self._output_text_delta,
            c.TAG_OUTPUT_TEXT_DONE: self._output_text_completed,
            c.TAG_OUTPUT_ITEM_ADDED: self._output_item_added,
            c.TAG_FUNCTION_ARGS_DELTA: self._function_arguments_delta,
            c.TAG_FUNCTION_ARGS_DONE: self._function_call_completed,
            c.TAG_RESPONSE_COMPLETED: self._response_completed,
            c.TAG_RESPONSE_FAILED: self._response_failed,
            c.TAG_RESPONSE_INCOMPLETE: self._response_failed,
            c.TAG_ERROR: self._error,
            c.TAG_REFUSAL_DONE: self._refused,
        }

    @property
    def known_tags(self):
        return frozenset(self._handlers) | IGNORED_TAGS

    def classify(self, frame: Frame) -> Classified:
        """
        Classify one frame.

        Args:
            frame: A decoded frame

        Returns:
            StreamClosed for the sentinel, an Event, or None for known
            frames that carry no event

        Raises:
            UnrecognizedEventError: The tag is unknown (recoverable)
            MalformedPayloadError: The payload does not fit its tag (fatal)
        """
        if frame.data == self.sentinel:
            return StreamClosed(frame)

        tag = frame.event
        if tag in IGNORED_TAGS:
            return None

        payload = self._parse_payload(frame.data, tag)
        if tag is None:
            tag = payload.get("type") if isinstance(payload, dict) else None
            if not isinstance(tag, str):
                raise UnrecognizedEventError("frame carries no event tag", tag=None)
            if tag in IGNORED_TAGS:
                return None

        handler = self._handlers.get(tag)
        if handler is None:
            raise UnrecognizedEventError(f"unrecognized event tag {tag!r}", tag=tag)
        if not isinstance(payload, dict):
            raise MalformedPayloadError(f"{tag} payload is not a JSON object", tag=tag)
        return handler(payload, tag)

    def _parse_payload(self, data: str, tag: Optional[str]) -> Any:
        try:
            return json.loads(data, parse_float=Decimal)
        except json.JSONDecodeError as e:
            if tag is None:
                # Without a tag there is no contract to violate
                raise UnrecognizedEventError(
                    f"untagged frame with non-JSON payload: {e.msg}", tag=None
                ) from e
            raise MalformedPayloadError(
                f"{tag} payload is not valid JSON at position {e.pos}: {e.msg}", tag=tag
            ) from e

    # Handlers

    def _stream_started(self, payload: Dict[str, Any], tag: str) -> Event:
        response = _optional_mapping(payload, "response", tag)
        response_id = _optional_str(response, "id", tag) if response else None
        if response_id is None:
            response_id = _optional_str(payload, "response_id", tag)
        return StreamStarted(response_id=response_id)

    def _output_text_delta(self, payload: Dict[str, Any], tag: str) -> Event:
        return OutputTextDelta(
            delta=_required_str(payload, "delta", tag),
            item_index=_item_index(payload, tag),
            sequence=_sequence(payload, tag),
        )

    def _output_text_completed(self, payload: Dict[str, Any], tag: str) -> Event:
        return OutputTextCompleted(
            item_index=_item_index(payload, tag),
            text=_optional_str(payload, "text", tag) or "",
        )

    def _output_item_added(self, payload: Dict[str, Any], tag: str) -> Optional[Event]:
        item = _optional_mapping(payload, "item", tag)
        if item is None:
            raise MalformedPayloadError(f"{tag} payload has no item", tag=tag)
        if item.get("type") != "function_call":
            return None
        item_id = _optional_str(item, "id", tag)
        call_id = _optional_str(item, "call_id", tag) or item_id
        if not call_id:
            raise MalformedPayloadError(f"{tag} function_call item has no call_id", tag=tag)
        if item_id:
            self._call_ids[item_id] = call_id
        return FunctionCallStarted(call_id=call_id, name=_required_str(item, "name", tag))

    def _function_arguments_delta(self, payload: Dict[str, Any], tag: str) -> Event:
        return FunctionCallArgumentsDelta(
            call_id=self._call_id(payload, tag),
            delta=_required_str(payload, "delta", tag),
            sequence=_sequence(payload, tag),
        )

    def _function_call_completed(self, payload: Dict[str, Any], tag: str) -> Event:
        return FunctionCallCompleted(
            call_id=self._call_id(payload, tag),
            arguments=_optional_str(payload, "arguments", tag) or "",
            name=_optional_str(payload, "name", tag),
        )

    def _response_completed(self, payload: Dict[str, Any], tag: str) -> Event:
        response = _optional_mapping(payload, "response", tag) or {}
        usage = _optional_mapping(response, "usage", tag)
        if usage is None:
            usage = _optional_mapping(payload, "usage", tag)
        response_id = _optional_str(response, "id", tag) or _optional_str(payload, "response_id", tag)
        return ResponseCompleted(response_id=response_id, usage=dict(usage or {}))

    def _response_failed(self, payload: Dict[str, Any], tag: str) -> Event:
        response = _optional_mapping(payload, "response", tag) or {}
        error = _optional_mapping(response, "error", tag) or _optional_mapping(payload, "error", tag)
        reason = None
        if error:
            reason = _optional_str(error, "message", tag) or _optional_str(error, "code", tag)
        if reason is None:
            details = _optional_mapping(response, "incomplete_details", tag)
            if details:
                reason = _optional_str(details, "reason", tag)
        return ResponseFailed(reason=reason or f"producer reported {tag}")

    def _error(self, payload: Dict[str, Any], tag: str) -> Event:
        reason = _optional_str(payload, "message", tag) or _optional_str(payload, "code", tag)
        return ResponseFailed(reason=reason or "producer reported an error")

    def _refused(self, payload: Dict[str, Any], tag: str) -> Event:
        return Refused(reason=_optional_str(payload, "refusal", tag) or "")

    def _call_id(self, payload: Dict[str, Any], tag: str) -> str:
        call_id = _optional_str(payload, "call_id", tag)
        if call_id:
            return call_id
        item_id = _optional_str(payload, "item_id", tag)
        if not item_id:
            raise MalformedPayloadError(f"{tag} payload has no call_id or item_id", tag=tag)
        return self._call_ids.get(item_id, item_id)


# Field helpers; every shape problem is a MalformedPayloadError

def _required_str(payload: Mapping[str, Any], key: str, tag: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise MalformedPayloadError(f"{tag} payload field {key!r} must be a string", tag=tag)
    return value


def _optional_str(payload: Mapping[str, Any], key: str, tag: str) -> Optional[str]:
    value = payload.get(key)
    if value is not None and not isinstance(value, str):
        raise MalformedPayloadError(f"{tag} payload field {key!r} must be a string", tag=tag)
    return value


def _optional_mapping(payload: Mapping[str, Any], key: str, tag: str) -> Optional[Dict[str, Any]]:
    value = payload.get(key)
    if value is not None and not isinstance(value, dict):
        raise MalformedPayloadError(f"{tag} payload field {key!r} must be an object", tag=tag)
    return value


def _optional_int(payload: Mapping[str, Any], key: str, tag: str) -> Optional[int]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedPayloadError(f"{tag} payload field {key!r} must be an integer", tag=tag)
    return value


def _item_index(payload: Mapping[str, Any], tag: str) -> int:
    index = _optional_int(payload, "output_index", tag)
    if index is None:
        index = _optional_int(payload, "item_index", tag)
    return index or 0


def _sequence(payload: Mapping[str, Any], tag: str) -> Optional[int]:
    return _optional_int(payload, "sequence_number", tag)
