from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

PathElement = Union[str, int]


def _escape(element: PathElement) -> str:
    return str(element).replace("~", "~0").replace("/", "~1")


@dataclass(frozen=True)
class Violation:
    """One failed check.

    Attributes:
        path: Property names and array indices from the root to the value
        reason: Human-readable description
        keyword: Schema keyword that failed (``required``, ``type``, ...)
    """
    path: Tuple[PathElement, ...]
    reason: str
    keyword: str = ""

    @property
    def pointer(self) -> str:
        """JSON pointer of the offending value; the empty string is the root."""
        return "".join("/" + _escape(p) for p in self.path)

    def __str__(self) -> str:
        return f"{self.pointer or 'root'}: {self.reason}"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one value.

    ``value`` holds the typed value (a model instance when a model was
    registered) and is None when there are violations; ``raw`` always
    holds what was validated.
    """
    value: Any = None
    violations: Tuple[Violation, ...] = field(default_factory=tuple)
    raw: Any = None
    schema_name: Optional[str] = None

    @property
    def valid(self) -> bool:
        return not self.violations

    def errors(self) -> List[str]:
        """Violations formatted as ``pointer: reason`` strings."""
        return [str(v) for v in self.violations]

    def __bool__(self) -> bool:
        return self.valid
