"""Custom business-rule conditions as a small expression tree.

Rules arrive as plain mappings (YAML or JSON) and are parsed once into
condition objects::

    {"exists": "price"}
    {"equals": {"field": "status", "value": "published"}}
    {"gt": {"field": "price", "value": 0}}
    {"all": [{"exists": "sku"}, {"lt": {"field": "inventory", "value": 1000}}]}

Field names may be dotted paths into nested mappings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

from .errors import ConfigError

_MISSING = object()


def resolve_field(data: Mapping[str, Any], path: str) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


@dataclass(frozen=True)
class Exists:
    field: str

    def evaluate(self, data: Mapping[str, Any]) -> bool:
        value = resolve_field(data, self.field)
        return value is not _MISSING and value is not None and value != ""


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any

    def evaluate(self, data: Mapping[str, Any]) -> bool:
        return resolve_field(data, self.field) == self.value


@dataclass(frozen=True)
class GreaterThan:
    field: str
    value: float

    def evaluate(self, data: Mapping[str, Any]) -> bool:
        actual = resolve_field(data, self.field)
        return _is_number(actual) and actual > self.value


@dataclass(frozen=True)
class LessThan:
    field: str
    value: float

    def evaluate(self, data: Mapping[str, Any]) -> bool:
        actual = resolve_field(data, self.field)
        return _is_number(actual) and actual < self.value


@dataclass(frozen=True)
class AllOf:
    conditions: Tuple["Condition", ...]

    def evaluate(self, data: Mapping[str, Any]) -> bool:
        return all(condition.evaluate(data) for condition in self.conditions)


@dataclass(frozen=True)
class AnyOf:
    conditions: Tuple["Condition", ...]

    def evaluate(self, data: Mapping[str, Any]) -> bool:
        return any(condition.evaluate(data) for condition in self.conditions)


Condition = Union[Exists, Equals, GreaterThan, LessThan, AllOf, AnyOf]


class RuleAction(str, Enum):
    error = "error"
    warning = "warning"


@dataclass(frozen=True)
class CustomRule:
    name: str
    condition: Condition
    action: RuleAction
    message: str

    def check(self, data: Mapping[str, Any]) -> bool:
        return self.condition.evaluate(data)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _field_and_value(operator: str, raw: Any, numeric: bool) -> Tuple[str, Any]:
    if not isinstance(raw, Mapping) or "field" not in raw or "value" not in raw:
        raise ConfigError(f"'{operator}' condition needs 'field' and 'value'")
    field, value = raw["field"], raw["value"]
    if not isinstance(field, str) or not field:
        raise ConfigError(f"'{operator}' condition field must be a non-empty string")
    if numeric and not _is_number(value):
        raise ConfigError(f"'{operator}' condition value must be a number")
    return field, value


def _parse_all(raw: Any, operator: str) -> Tuple[Condition, ...]:
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)) or not raw:
        raise ConfigError(f"'{operator}' condition needs a non-empty list")
    return tuple(parse_condition(item) for item in raw)


def parse_condition(raw: Any) -> Condition:
    if not isinstance(raw, Mapping) or len(raw) != 1:
        raise ConfigError(f"condition must be a mapping with exactly one operator: {raw!r}")
    operator, argument = next(iter(raw.items()))
    if operator == "exists":
        if not isinstance(argument, str) or not argument:
            raise ConfigError("'exists' condition needs a field name")
        return Exists(argument)
    if operator == "equals":
        return Equals(*_field_and_value(operator, argument, numeric=False))
    if operator == "gt":
        return GreaterThan(*_field_and_value(operator, argument, numeric=True))
    if operator == "lt":
        return LessThan(*_field_and_value(operator, argument, numeric=True))
    if operator == "all":
        return AllOf(_parse_all(argument, operator))
    if operator == "any":
        return AnyOf(_parse_all(argument, operator))
    raise ConfigError(f"unknown condition operator: {operator}")


def parse_rule(raw: Mapping[str, Any]) -> CustomRule:
    if not isinstance(raw, Mapping):
        raise ConfigError("rule must be a mapping")
    name = raw.get("name")
    message = raw.get("message")
    if not isinstance(name, str) or not name:
        raise ConfigError("rule needs a name")
    if not isinstance(message, str) or not message:
        raise ConfigError(f"rule {name} needs a message")
    try:
        action = RuleAction(raw.get("action", RuleAction.error.value))
    except ValueError as exc:
        raise ConfigError(f"rule {name} has invalid action: {raw.get('action')}") from exc
    if "condition" not in raw:
        raise ConfigError(f"rule {name} needs a condition")
    return CustomRule(name=name, condition=parse_condition(raw["condition"]), action=action, message=message)


def parse_rules(raw: Sequence[Mapping[str, Any]]) -> List[CustomRule]:
    return [parse_rule(item) for item in raw]


def describe(condition: Condition) -> Dict[str, Any]:
    if isinstance(condition, Exists):
        return {"exists": condition.field}
    if isinstance(condition, Equals):
        return {"equals": {"field": condition.field, "value": condition.value}}
    if isinstance(condition, GreaterThan):
        return {"gt": {"field": condition.field, "value": condition.value}}
    if isinstance(condition, LessThan):
        return {"lt": {"field": condition.field, "value": condition.value}}
    key = "all" if isinstance(condition, AllOf) else "any"
    return {key: [describe(item) for item in condition.conditions]}
