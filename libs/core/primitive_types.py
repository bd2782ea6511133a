"""Statically enumerated primitive field types.

Every content-type field declares one of these names as its ``type``. The
catalog is the queryable capability the content-type validator depends on;
descriptors carry their own constraint struct and know how to check a value.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union


@dataclass(frozen=True)
class TextConstraints:
    min_length: int = 0
    max_length: int = 255
    pattern: Optional[str] = None


@dataclass(frozen=True)
class LongTextConstraints:
    max_length: int = 100_000
    rich_text: bool = False


@dataclass(frozen=True)
class NumberConstraints:
    min: Optional[float] = None
    max: Optional[float] = None
    integer: bool = False


@dataclass(frozen=True)
class DecimalConstraints:
    min: Optional[Decimal] = None
    max: Optional[Decimal] = None
    precision: int = 2


@dataclass(frozen=True)
class BooleanConstraints:
    pass


@dataclass(frozen=True)
class DateConstraints:
    min_date: Optional[date] = None
    max_date: Optional[date] = None


@dataclass(frozen=True)
class JsonConstraints:
    allow_arrays: bool = True
    allow_objects: bool = True


Constraints = Union[
    TextConstraints,
    LongTextConstraints,
    NumberConstraints,
    DecimalConstraints,
    BooleanConstraints,
    DateConstraints,
    JsonConstraints,
]


@dataclass(frozen=True)
class PrimitiveType:
    name: str
    description: str
    constraints: Constraints
    capabilities: Tuple[str, ...] = field(default=())
    free_form: bool = False

    def validate_value(self, value: Any) -> List[str]:
        checker = _CHECKERS[type(self.constraints)]
        return checker(self.name, self.constraints, value)


def _check_text(name: str, constraints: TextConstraints, value: Any) -> List[str]:
    if not isinstance(value, str):
        return [f"{name} value must be a string"]
    errors: List[str] = []
    if len(value) < constraints.min_length:
        errors.append(f"{name} must be at least {constraints.min_length} characters")
    if len(value) > constraints.max_length:
        errors.append(f"{name} cannot exceed {constraints.max_length} characters")
    if constraints.pattern and not re.search(constraints.pattern, value):
        errors.append(f"{name} does not match required pattern: {constraints.pattern}")
    return errors


def _check_long_text(name: str, constraints: LongTextConstraints, value: Any) -> List[str]:
    if not isinstance(value, str):
        return [f"{name} value must be a string"]
    if len(value) > constraints.max_length:
        return [f"{name} cannot exceed {constraints.max_length} characters"]
    return []


def _check_number(name: str, constraints: NumberConstraints, value: Any) -> List[str]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return [f"{name} value must be a number"]
    errors: List[str] = []
    if constraints.integer and not float(value).is_integer():
        errors.append(f"{name} value must be an integer")
    if constraints.min is not None and value < constraints.min:
        errors.append(f"{name} value must be at least {constraints.min}")
    if constraints.max is not None and value > constraints.max:
        errors.append(f"{name} value cannot exceed {constraints.max}")
    return errors


def _check_decimal(name: str, constraints: DecimalConstraints, value: Any) -> List[str]:
    if isinstance(value, bool):
        return [f"{name} value must be a decimal number"]
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return [f"{name} value must be a decimal number"]
    if not number.is_finite():
        return [f"{name} value must be finite"]
    errors: List[str] = []
    exponent = number.as_tuple().exponent
    if isinstance(exponent, int) and -exponent > constraints.precision:
        errors.append(f"{name} value allows at most {constraints.precision} decimal places")
    if constraints.min is not None and number < constraints.min:
        errors.append(f"{name} value must be at least {constraints.min}")
    if constraints.max is not None and number > constraints.max:
        errors.append(f"{name} value cannot exceed {constraints.max}")
    return errors


def _check_boolean(name: str, constraints: BooleanConstraints, value: Any) -> List[str]:
    del constraints
    if not isinstance(value, bool):
        return [f"{name} value must be true or false"]
    return []


def _check_date(name: str, constraints: DateConstraints, value: Any) -> List[str]:
    parsed: Optional[date]
    if isinstance(value, datetime):
        parsed = value.date()
    elif isinstance(value, date):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return [f"{name} value must be an ISO 8601 date"]
    else:
        return [f"{name} value must be an ISO 8601 date"]
    errors: List[str] = []
    if constraints.min_date and parsed < constraints.min_date:
        errors.append(f"{name} value must be on or after {constraints.min_date.isoformat()}")
    if constraints.max_date and parsed > constraints.max_date:
        errors.append(f"{name} value must be on or before {constraints.max_date.isoformat()}")
    return errors


def _check_json(name: str, constraints: JsonConstraints, value: Any) -> List[str]:
    if isinstance(value, dict):
        return [] if constraints.allow_objects else [f"{name} value cannot be an object"]
    if isinstance(value, list):
        return [] if constraints.allow_arrays else [f"{name} value cannot be an array"]
    return [f"{name} value must be an object or array"]


_CHECKERS = {
    TextConstraints: _check_text,
    LongTextConstraints: _check_long_text,
    NumberConstraints: _check_number,
    DecimalConstraints: _check_decimal,
    BooleanConstraints: _check_boolean,
    DateConstraints: _check_date,
    JsonConstraints: _check_json,
}


BUILTIN_PRIMITIVES: Tuple[PrimitiveType, ...] = (
    PrimitiveType(
        name="Text",
        description="Short text field for titles, names, and brief content",
        constraints=TextConstraints(),
        capabilities=("stores-text", "searchable", "sortable"),
    ),
    PrimitiveType(
        name="LongText",
        description="Long text field for rich content and descriptions",
        constraints=LongTextConstraints(rich_text=True),
        capabilities=("stores-long-text", "searchable"),
        free_form=True,
    ),
    PrimitiveType(
        name="Number",
        description="Numeric field for integers and counts",
        constraints=NumberConstraints(),
        capabilities=("stores-number", "sortable"),
    ),
    PrimitiveType(
        name="Decimal",
        description="Decimal field for precise numeric values",
        constraints=DecimalConstraints(),
        capabilities=("stores-decimal", "sortable"),
    ),
    PrimitiveType(
        name="Boolean",
        description="Boolean field for true/false values",
        constraints=BooleanConstraints(),
        capabilities=("stores-boolean",),
    ),
    PrimitiveType(
        name="Date",
        description="Date and time field",
        constraints=DateConstraints(),
        capabilities=("stores-date", "sortable"),
    ),
    PrimitiveType(
        name="Json",
        description="JSON field for structured data",
        constraints=JsonConstraints(),
        capabilities=("stores-json",),
        free_form=True,
    ),
)


class PrimitiveTypeCatalog:
    def __init__(self, primitives: Iterable[PrimitiveType] = BUILTIN_PRIMITIVES) -> None:
        self._types: Dict[str, PrimitiveType] = {}
        for primitive in primitives:
            if primitive.name in self._types:
                raise ValueError(f"primitive type already registered: {primitive.name}")
            self._types[primitive.name] = primitive

    def list_primitive_type_names(self) -> List[str]:
        return list(self._types)

    def get(self, name: str) -> Optional[PrimitiveType]:
        return self._types.get(name)

    def has(self, name: str) -> bool:
        return name in self._types

    def free_form_type_names(self) -> List[str]:
        return [name for name, primitive in self._types.items() if primitive.free_form]

    def validate_value(self, name: str, value: Any) -> List[str]:
        primitive = self._types.get(name)
        if primitive is None:
            return [f"Unknown primitive type: {name}"]
        return primitive.validate_value(value)

    def describe(self) -> str:
        return "\n".join(
            f"- {primitive.name}: {primitive.description}" for primitive in self._types.values()
        )
