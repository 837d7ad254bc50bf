"""
Registry of named schemas used to validate completed values.

A schema is registered once, checked for well-formedness and for reference
cycles, and is read-only afterwards. Registered schemas can reference each
other by bare name (``{"$ref": "Address"}``) and their own subschemas by
local pointer (``{"$ref": "#/$defs/Node"}``).
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Type,
)

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError as JsonSchemaError
from pydantic import BaseModel
from referencing import Registry
from referencing.jsonschema import DRAFT202012

from ..config.constants import DEFAULT_MAX_DEPTH
from ..errors import (
    CyclicSchemaError,
    SchemaError,
    SchemaRegistrationError,
    UnknownSchemaError,
)

# A check receives a structurally valid value and returns diagnostics
ValueCheck = Callable[[Any], Iterable[str]]


@dataclass(frozen=True)
class SchemaOptions:
    """How unknown properties and deep recursion are treated.

    ``strict`` rejects object properties the schema does not declare;
    ``allow_unknown`` explicitly tolerates them. Setting both is an error.
    An explicit ``additionalProperties`` in the schema always wins.
    """
    strict: bool = False
    allow_unknown: bool = False
    max_depth: int = DEFAULT_MAX_DEPTH

    def __post_init__(self):
        if self.strict and self.allow_unknown:
            raise SchemaRegistrationError("strict and allow_unknown are mutually exclusive")
        if self.max_depth < 1:
            raise SchemaRegistrationError("max_depth must be at least 1")

    @property
    def rejects_unknown(self) -> bool:
        return self.strict


@dataclass(frozen=True)
class RegisteredSchema:
    name: str
    schema: Dict[str, Any]
    options: SchemaOptions = field(default_factory=SchemaOptions)
    model: Optional[Type[BaseModel]] = None
    checks: Tuple[ValueCheck, ...] = ()


# Keywords whose subschemas apply to the same value as their parent
_SAME_POSITION_LISTS = ("allOf", "anyOf", "oneOf")


class SchemaRegistry:
    """Named schemas, shared read-only by every stream that uses them."""

    def __init__(self):
        self._schemas: Dict[str, RegisteredSchema] = {}
        # The same entries as jsonschema resources, keyed by name
        self._resources: Registry = Registry()

    def register(
        self,
        name: str,
        schema: Mapping[str, Any],
        *,
        strict: bool = False,
        allow_unknown: bool = False,
        max_depth: int = DEFAULT_MAX_DEPTH,
        checks: Iterable[ValueCheck] = (),
        model: Optional[Type[BaseModel]] = None,
    ) -> RegisteredSchema:
        """
        Register a schema under a name.

        Args:
            name: Lookup name; for tool calls, the function name
            schema: JSON Schema document (the supported subset)
            strict: Reject properties the schema does not declare
            allow_unknown: Tolerate undeclared properties
            max_depth: Maximum nesting of reference expansions
            checks: Extra domain checks run on structurally valid values
            model: Pydantic model the validated value is converted to

        Returns:
            The registered entry

        Raises:
            SchemaRegistrationError: Invalid name, duplicate name or malformed schema
            CyclicSchemaError: The schema contains a reference cycle
        """
        if not name or not isinstance(name, str):
            raise SchemaRegistrationError("schema name must be a non-empty string")
        if name in self._schemas:
            raise SchemaRegistrationError(f"schema {name!r} is already registered")

        entry = RegisteredSchema(
            name=name,
            schema=self.check_schema(schema),
            options=SchemaOptions(strict=strict, allow_unknown=allow_unknown, max_depth=max_depth),
            model=model,
            checks=tuple(checks),
        )
        # Visible while checking so cycles through other entries back to it are found
        self._schemas[name] = entry
        try:
            self.ensure_acyclic(entry)
        except SchemaError:
            del self._schemas[name]
            raise
        self._resources = self._resources.with_resource(
            name, DRAFT202012.create_resource(entry.schema)
        )
        return entry

    def register_model(
        self,
        model: Type[BaseModel],
        name: Optional[str] = None,
        **options,
    ) -> RegisteredSchema:
        """Register the JSON schema of a pydantic model and bind the model to it."""
        return self.register(
            name or model.__name__,
            model.model_json_schema(),
            model=model,
            **options,
        )

    @staticmethod
    def check_schema(schema: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Validate that a schema is well-formed and return a private copy.

        Raises:
            SchemaRegistrationError: If the schema itself is invalid
        """
        if not isinstance(schema, Mapping):
            raise SchemaRegistrationError("schema must be a JSON object")
        try:
            Draft202012Validator.check_schema(schema)
        except JsonSchemaError as e:
            raise SchemaRegistrationError(f"Invalid JSON schema: {e.message}") from e
        return exact_numbers(dict(schema))

    @property
    def resources(self) -> Registry:
        """Registered schemas as a ``referencing`` registry for bare-name refs."""
        return self._resources

    def get(self, name: str) -> RegisteredSchema:
        try:
            return self._schemas[name]
        except KeyError:
            raise UnknownSchemaError(name) from None

    def find(self, name: str) -> Optional[RegisteredSchema]:
        return self._schemas.get(name)

    def names(self) -> List[str]:
        return list(self._schemas)

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    # References

    def resolve_ref(
        self, ref: str, document: RegisteredSchema
    ) -> Tuple[Any, RegisteredSchema, str]:
        """
        Resolve a ``$ref`` relative to the document it appears in.

        Returns:
            (target subschema, document containing it, canonical reference name)

        Raises:
            UnknownSchemaError: A bare name is not registered
            SchemaRegistrationError: A local pointer does not resolve
        """
        name, _, fragment = ref.partition("#")
        if name and name != document.name:
            document = self.get(name)
        node = _resolve_pointer(document.schema, fragment, ref)
        return node, document, f"{document.name}#{fragment}"

    def find_cycle(self, document: RegisteredSchema) -> Optional[List[str]]:
        """Return the first reference cycle reachable from the document, if any.

        A cycle is a chain of references that comes back to its start
        without descending into a property or array item. Recursion through
        properties or items is legitimate and bounded by ``max_depth``.
        """
        acyclic: Set[str] = set()
        for node in iter_subschemas(document.schema):
            cycle = self._cycle_from(node, document, [], acyclic)
            if cycle:
                return cycle
        return None

    def ensure_acyclic(self, document: RegisteredSchema) -> None:
        cycle = self.find_cycle(document)
        if cycle:
            raise CyclicSchemaError(cycle)

    def _cycle_from(
        self,
        node: Any,
        document: RegisteredSchema,
        stack: List[str],
        acyclic: Set[str],
    ) -> Optional[List[str]]:
        for ref in same_position_refs(node):
            try:
                target, target_doc, canonical = self.resolve_ref(ref, document)
            except UnknownSchemaError:
                # Not registered yet; checked again when walking values
                continue
            if canonical in stack:
                return stack[stack.index(canonical):] + [canonical]
            if canonical in acyclic:
                continue
            cycle = self._cycle_from(target, target_doc, stack + [canonical], acyclic)
            if cycle:
                return cycle
            acyclic.add(canonical)
        return None


def same_position_refs(node: Any) -> List[str]:
    """References that apply to the same value as ``node`` itself."""
    if not isinstance(node, dict):
        return []
    refs: List[str] = []
    ref = node.get("$ref")
    if isinstance(ref, str):
        refs.append(ref)
    for keyword in _SAME_POSITION_LISTS:
        for sub in node.get(keyword) or ():
            refs.extend(same_position_refs(sub))
    if "not" in node:
        refs.extend(same_position_refs(node["not"]))
    return refs


def iter_subschemas(node: Any) -> Iterator[Dict[str, Any]]:
    """Yield ``node`` and every subschema nested in it."""
    if not isinstance(node, dict):
        return
    yield node
    for keyword in ("properties", "patternProperties", "$defs", "definitions"):
        for sub in (node.get(keyword) or {}).values():
            yield from iter_subschemas(sub)
    for keyword in ("items", "additionalProperties", "not"):
        yield from iter_subschemas(node.get(keyword))
    for keyword in ("prefixItems",) + _SAME_POSITION_LISTS:
        for sub in node.get(keyword) or ():
            yield from iter_subschemas(sub)


def _resolve_pointer(schema: Dict[str, Any], fragment: str, ref: str) -> Any:
    node: Any = schema
    if not fragment:
        return node
    if not fragment.startswith("/"):
        raise SchemaRegistrationError(f"unsupported reference {ref!r}")
    for part in fragment[1:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if isinstance(node, dict) and part in node:
            node = node[part]
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            raise SchemaRegistrationError(f"reference {ref!r} does not resolve")
    return node


def exact_numbers(value: Any) -> Any:
    """Deep copy of a JSON value with every float replaced by an exact Decimal."""
    if isinstance(value, float):
        # repr gives the shortest text that round-trips the float
        return Decimal(repr(value))
    if isinstance(value, Mapping):
        return {key: exact_numbers(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [exact_numbers(item) for item in value]
    return value
