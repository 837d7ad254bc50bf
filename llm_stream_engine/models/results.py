"""
Aggregate result of one stream.

The result is what callers keep after the event sequence is exhausted:
the collected text, every completed tool call with its validation outcome,
and, for failed streams, the partial values that never completed.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StreamStatus(str, Enum):
    """Terminal outcome of a stream."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUSED = "refused"


class ToolCallStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    UNVALIDATED = "unvalidated"


class ViolationInfo(BaseModel):
    """One schema violation in serializable form."""
    path: str = Field("", description="JSON pointer of the offending value")
    reason: str
    keyword: str = ""


class ToolCallResult(BaseModel):
    """A function call whose arguments completed on the wire."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    call_id: str
    name: Optional[str] = None
    arguments: str = Field("", description="Arguments exactly as accumulated from the deltas")
    status: ToolCallStatus = ToolCallStatus.UNVALIDATED
    parsed: Any = Field(None, description="Validated value; a model instance when a model is bound")
    violations: List[ViolationInfo] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.status == ToolCallStatus.VALID


class PartialCall(BaseModel):
    """Best-effort arguments of a call that never completed."""
    call_id: str
    name: Optional[str] = None
    arguments: str = ""
    fragments: int = 0


class OutputValidation(BaseModel):
    """Outcome of validating the aggregate output text."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    schema_name: str
    valid: bool
    parsed: Any = None
    violations: List[ViolationInfo] = Field(default_factory=list)


class StreamResult(BaseModel):
    """
    Final aggregate of one stream.

    ``text`` and ``tool_calls`` only ever contain values whose completed
    event arrived. Anything still open when the stream ended is reported
    in ``partial_text`` and ``partial_calls`` and never mixed in.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: StreamStatus
    response_id: Optional[str] = None

    # Completed output
    text: str = ""
    tool_calls: List[ToolCallResult] = Field(default_factory=list)

    # Best-effort partial output of failed or cancelled streams
    partial_text: str = ""
    partial_calls: List[PartialCall] = Field(default_factory=list)

    usage: Dict[str, Any] = Field(default_factory=dict)
    failure_reason: Optional[str] = None
    error_type: Optional[str] = None
    refusal: Optional[str] = None
    output_validation: Optional[OutputValidation] = None
    metrics: Dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == StreamStatus.COMPLETED

    def get_tool_call(self, call_id: str) -> Optional[ToolCallResult]:
        return next((c for c in self.tool_calls if c.call_id == call_id), None)

    def get_partial_call(self, call_id: str) -> Optional[PartialCall]:
        return next((c for c in self.partial_calls if c.call_id == call_id), None)
