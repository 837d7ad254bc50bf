"""Schema validation of completed tool call arguments and output text."""

from .registry import RegisteredSchema, SchemaOptions, SchemaRegistry
from .result import ValidationResult, Violation
from .validator import SchemaValidator, parse_json

__all__ = [
    "RegisteredSchema",
    "SchemaOptions",
    "SchemaRegistry",
    "SchemaValidator",
    "ValidationResult",
    "Violation",
    "parse_json",
]
