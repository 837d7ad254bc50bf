"""
Schema validation for completed values.

Validation never stops at the first problem: every violation jsonschema
reports is collected with the JSON pointer of the offending value. Numbers
are compared exactly (JSON text is parsed into ``Decimal`` and schema floats
are stored as ``Decimal``), so ``0.1 + 0.2``-style rounding cannot turn a
bound check the wrong way.
"""

import json
import re
from contextvars import ContextVar
from decimal import Decimal
from fractions import Fraction
from functools import lru_cache
from typing import Any, Iterator, List, Mapping, Optional, Union

import referencing.exceptions
from jsonschema import Draft202012Validator, FormatChecker, validators
from jsonschema.exceptions import ValidationError as JsonSchemaValidationError
from pydantic import ValidationError as PydanticValidationError

from ..errors import SchemaError, SchemaRegistrationError, UnknownSchemaError
from .registry import RegisteredSchema, SchemaOptions, SchemaRegistry, exact_numbers
from .result import ValidationResult, Violation

SchemaLike = Union[str, Mapping[str, Any], RegisteredSchema]

_FORMAT_CHECKER = FormatChecker()

_KEYWORDS = Draft202012Validator.VALIDATORS

# Reference expansions between the root and the value being checked
_ref_depth: ContextVar[int] = ContextVar("ref_depth", default=0)


class SchemaValidator:
    """Validates values against registered or inline schemas."""

    def __init__(self, registry: Optional[SchemaRegistry] = None):
        self.registry = registry or SchemaRegistry()

    def validate(
        self,
        schema: SchemaLike,
        value: Any,
        options: Optional[SchemaOptions] = None,
    ) -> ValidationResult:
        """
        Validate a parsed value.

        Args:
            schema: Registered name, registered entry, or inline schema
            value: Parsed JSON value (numbers preferably as Decimal/int)
            options: Overrides the registered options for this call

        Returns:
            ValidationResult with all violations, or the typed value

        Raises:
            UnknownSchemaError: The named schema, or a name it references, is not registered
            CyclicSchemaError: An inline schema contains a reference cycle
            SchemaRegistrationError: An inline schema is malformed or a reference does not resolve
        """
        document = self._document(schema)
        options = options or document.options

        checker = _validator_class(options.rejects_unknown, options.max_depth)(
            document.schema,
            registry=self.registry.resources,
            format_checker=_FORMAT_CHECKER,
        )
        violations = [_violation(error) for error in self._iter_errors(checker, value)]

        if not violations:
            for check in document.checks:
                violations.extend(
                    Violation(path=(), reason=str(message), keyword="check")
                    for message in check(value)
                )

        typed = value
        if not violations and document.model is not None:
            try:
                typed = document.model.model_validate(value)
            except PydanticValidationError as e:
                violations.extend(
                    Violation(path=tuple(err["loc"]), reason=err["msg"], keyword="model")
                    for err in e.errors()
                )

        return ValidationResult(
            value=None if violations else typed,
            violations=tuple(violations),
            raw=value,
            schema_name=document.name,
        )

    def validate_json(
        self,
        schema: SchemaLike,
        text: str,
        options: Optional[SchemaOptions] = None,
    ) -> ValidationResult:
        """Parse JSON text and validate it; a parse failure is a violation at the root."""
        try:
            value = parse_json(text)
        except json.JSONDecodeError as e:
            return ValidationResult(
                violations=(
                    Violation(
                        path=(),
                        reason=f"Invalid JSON at position {e.pos}: {e.msg}",
                        keyword="json",
                    ),
                ),
                raw=text,
                schema_name=self._document(schema).name,
            )
        return self.validate(schema, value, options)

    def _document(self, schema: SchemaLike) -> RegisteredSchema:
        if isinstance(schema, RegisteredSchema):
            return schema
        if isinstance(schema, str):
            return self.registry.get(schema)
        document = RegisteredSchema(name="<inline>", schema=self.registry.check_schema(schema))
        self.registry.ensure_acyclic(document)
        return document

    def _iter_errors(self, checker, value: Any) -> List[JsonSchemaValidationError]:
        try:
            return list(checker.iter_errors(exact_numbers(value)))
        except referencing.exceptions.Unresolvable as e:
            raise self._unresolvable(e.ref) from e

    def _unresolvable(self, ref: str) -> SchemaError:
        name = ref.partition("#")[0]
        if name and not name.startswith("/") and name not in self.registry:
            return UnknownSchemaError(name)
        return SchemaRegistrationError(f"reference {ref!r} does not resolve")


def parse_json(text: str) -> Any:
    """Parse JSON keeping non-integral numbers exact."""
    return json.loads(text, parse_float=Decimal)


def _violation(error: JsonSchemaValidationError) -> Violation:
    return Violation(
        path=tuple(error.absolute_path),
        reason=error.message,
        keyword=error.validator or "false",
    )


# Types: NaN and infinities are not JSON numbers, and 2.0 is an integer

def _is_number(checker, instance) -> bool:
    if isinstance(instance, bool):
        return False
    if isinstance(instance, int):
        return True
    if isinstance(instance, (float, Decimal)):
        return exact_numbers(instance).is_finite()
    return False


def _is_integer(checker, instance) -> bool:
    if not _is_number(checker, instance):
        return False
    if isinstance(instance, int):
        return True
    number = exact_numbers(instance)
    return number == number.to_integral_value()


_TYPE_CHECKER = Draft202012Validator.TYPE_CHECKER.redefine_many({
    "number": _is_number,
    "integer": _is_integer,
})


# Keywords

def _multiple_of(validator, step, instance, schema) -> Iterator[JsonSchemaValidationError]:
    if not validator.is_type(instance, "number"):
        return
    # Fractions keep the quotient exact at any magnitude
    if (Fraction(instance) / Fraction(step)).denominator != 1:
        yield JsonSchemaValidationError(f"{instance} is not a multiple of {step}")


def _additional_properties(validator, allowed, instance, schema) -> Iterator[JsonSchemaValidationError]:
    if allowed is False and validator.is_type(instance, "object"):
        for key in _undeclared(instance, schema):
            yield JsonSchemaValidationError(f"unknown property {key!r}", path=[key])
        return
    yield from _KEYWORDS["additionalProperties"](validator, allowed, instance, schema)


def _unknown_properties(validator, instance, schema) -> Iterator[JsonSchemaValidationError]:
    if "additionalProperties" in schema or "unevaluatedProperties" in schema:
        return
    if not validator.is_type(instance, "object"):
        return
    if not (schema.get("properties") or schema.get("patternProperties")):
        return
    for key in _undeclared(instance, schema):
        yield JsonSchemaValidationError(
            f"unknown property {key!r}",
            validator="additionalProperties",
            path=[key],
        )


def _strict_properties(validator, properties, instance, schema):
    yield from _KEYWORDS["properties"](validator, properties, instance, schema)
    yield from _unknown_properties(validator, instance, schema)


def _strict_pattern_properties(validator, patterns, instance, schema):
    yield from _KEYWORDS["patternProperties"](validator, patterns, instance, schema)
    if "properties" not in schema:
        yield from _unknown_properties(validator, instance, schema)


def _undeclared(instance, schema) -> Iterator[str]:
    declared = schema.get("properties") or {}
    patterns = schema.get("patternProperties") or {}
    for key in instance:
        if key not in declared and not any(re.search(pattern, key) for pattern in patterns):
            yield key


@lru_cache(maxsize=None)
def _validator_class(rejects_unknown: bool, max_depth: int):
    """Draft 2020-12 with exact numbers, bounded references and optional strictness."""

    def bounded_ref(validator, ref, instance, schema):
        depth = _ref_depth.get()
        if depth >= max_depth:
            yield JsonSchemaValidationError(f"exceeds maximum schema depth of {max_depth}")
            return
        token = _ref_depth.set(depth + 1)
        try:
            # Drained here so references below see this depth
            errors = list(_KEYWORDS["$ref"](validator, ref, instance, schema))
        finally:
            _ref_depth.reset(token)
        yield from errors

    keywords = {
        "$ref": bounded_ref,
        "multipleOf": _multiple_of,
        "additionalProperties": _additional_properties,
    }
    if rejects_unknown:
        keywords["properties"] = _strict_properties
        keywords["patternProperties"] = _strict_pattern_properties

    return validators.extend(
        Draft202012Validator,
        validators=keywords,
        type_checker=_TYPE_CHECKER,
    )
