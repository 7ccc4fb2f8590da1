"""
Step metadata model - parameter and exit point definitions.

This module defines the immutable value types that describe what a step type
needs (its parameters) and how it can finish (its exit points). They are
declared once per step type, copied into the StepTypeRegistry at
registration time, and never mutated afterwards.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Sequence


class ParameterRole(Enum):
    """Where a parameter value comes from."""

    STANDARD = "standard"
    INFERRED_FOR_ORDER = "inferred_for_order"


_TRUE_STRINGS = {"true", "yes", "1", "on"}
_FALSE_STRINGS = {"false", "no", "0", "off"}


class ParameterType(Enum):
    """
    Semantic type tag of a parameter.

    Each tag knows how to coerce a loosely typed value coming out of a
    serialized description (YAML, JSON, database row) into the value the step
    expects. Coercion raises TypeError or ValueError on malformed input.
    """

    FLOAT = "float"
    INT = "int"
    STR = "str"
    BOOL = "bool"
    ANY = "any"

    def coerce(self, value: Any) -> Any:
        """
        Convert value to this type.

        Args:
            value: Raw parameter value

        Returns:
            The coerced value

        Raises:
            TypeError: If the value has an incompatible type
            ValueError: If the value cannot be parsed
        """
        if self is ParameterType.ANY:
            return value

        if value is None:
            raise TypeError(f"Expected {self.value}, got None")

        if self is ParameterType.BOOL:
            if isinstance(value, bool):
                return value
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in _TRUE_STRINGS:
                    return True
                if lowered in _FALSE_STRINGS:
                    return False
                raise ValueError(f"Cannot interpret '{value}' as bool")
            raise TypeError(f"Expected bool, got {type(value).__name__}")

        if self is ParameterType.STR:
            if isinstance(value, str):
                return value
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return str(value)
            raise TypeError(f"Expected str, got {type(value).__name__}")

        # Numeric types never accept bools, even though bool is an int subclass
        if isinstance(value, bool):
            raise TypeError(f"Expected {self.value}, got bool")

        if self is ParameterType.FLOAT:
            if isinstance(value, (int, float)):
                number = float(value)
            elif isinstance(value, str):
                number = float(value.strip())
            else:
                raise TypeError(f"Expected float, got {type(value).__name__}")
            if not math.isfinite(number):
                raise ValueError(f"Expected a finite float, got {value!r}")
            return number

        # INT
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError(f"Expected an integral value, got {value}")
            return int(value)
        if isinstance(value, str):
            return int(value.strip())
        raise TypeError(f"Expected int, got {type(value).__name__}")


@dataclass(frozen=True)
class ParameterDefinition:
    """
    Definition of a named step parameter.

    Attributes:
        name: Parameter name as it appears in serialized descriptions
        type: Semantic type tag used to coerce raw values
        is_optional: Whether the step can run without a value
        role: STANDARD values are configured per step instance,
              INFERRED_FOR_ORDER values are supplied by the enclosing order
    """

    name: str
    type: ParameterType = ParameterType.ANY
    is_optional: bool = True
    role: ParameterRole = ParameterRole.STANDARD

    def __post_init__(self):
        if not self.name:
            raise ValueError("Parameter name cannot be empty")

    @property
    def is_inferred_for_order(self) -> bool:
        return self.role is ParameterRole.INFERRED_FOR_ORDER


@dataclass(frozen=True, eq=False)
class ExitPointDefinition:
    """
    Definition of a named exit point.

    Two exit points with the same name are the same exit point, even when
    constructed independently; equality and hashing ignore is_error.

    Attributes:
        name: Exit point name (edges reference it by this name)
        is_error: Whether leaving through this exit signals a failure
    """

    name: str
    is_error: bool = False

    def __post_init__(self):
        if not self.name:
            raise ValueError("Exit point name cannot be empty")

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ExitPointDefinition):
            return self.name == other.name
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.name)


DEFAULT_EXIT = ExitPointDefinition(name="Done", is_error=False)


def ensure_unique_names(items: Sequence[Any], kind: str, owner: str) -> None:
    """
    Validate that every item in a definition list has a distinct name.

    Args:
        items: ParameterDefinition or ExitPointDefinition instances
        kind: Human-readable kind used in the error message
        owner: Step type name used in the error message

    Raises:
        ValueError: If a name occurs more than once
    """
    seen = set()
    duplicates = []
    for item in items:
        if item.name in seen and item.name not in duplicates:
            duplicates.append(item.name)
        seen.add(item.name)
    if duplicates:
        raise ValueError(f"Step type '{owner}' declares duplicate {kind} names: {duplicates}")


def dedupe_by_name(parameters: Iterable[ParameterDefinition]) -> List[ParameterDefinition]:
    """Keep the first parameter of each name, preserving order."""
    seen = set()
    result: List[ParameterDefinition] = []
    for parameter in parameters:
        if parameter.name in seen:
            continue
        seen.add(parameter.name)
        result.append(parameter)
    return result


@dataclass(frozen=True)
class ParameterBindResult:
    """
    Outcome of binding one serialized value onto a step instance.

    Attributes:
        name: Parameter name from the serialized description
        success: Whether the value was assigned
        value: The coerced value when successful
        error: Reason for the failure otherwise
    """

    name: str
    success: bool
    value: Any = None
    error: str = field(default="")
