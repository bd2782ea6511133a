from __future__ import annotations

import copy
import re
from typing import Any, Dict, List, Type, Union

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from libs.core.errors import FieldError, SchemaValidationFailure, ToolExecutionError

ParameterSchema = Union[Dict[str, Any], Type[BaseModel]]

_REQUIRED_RE = re.compile(r"^'(?P<name>.+)' is a required property$")


class SchemaValidator:
    """Validates tool parameters against a JSON Schema or a pydantic model.

    Returns the parsed value with declared defaults filled in, or raises
    ``SchemaValidationFailure`` listing one entry per offending field.
    """

    def __init__(self, max_errors: int = 50) -> None:
        self.max_errors = max_errors

    def validate(self, schema: ParameterSchema | None, payload: Any) -> Any:
        if schema is None:
            return payload
        if isinstance(schema, type) and issubclass(schema, BaseModel):
            return self._validate_model(schema, payload)
        if isinstance(schema, dict):
            return self._validate_json_schema(schema, payload)
        raise ToolExecutionError(f"Unsupported parameter schema: {schema!r}", code="INVALID_SCHEMA")

    def check_schema(self, schema: ParameterSchema | None) -> None:
        if isinstance(schema, dict):
            self._validator_for(schema)

    def _validate_model(self, model: Type[BaseModel], payload: Any) -> Dict[str, Any]:
        try:
            parsed = model.model_validate(payload)
        except PydanticValidationError as exc:
            errors = [
                FieldError(_join_path(error["loc"]), error["msg"])
                for error in exc.errors()[: self.max_errors]
            ]
            raise SchemaValidationFailure(errors) from exc
        return parsed.model_dump()

    def _validate_json_schema(self, schema: Dict[str, Any], payload: Any) -> Any:
        validator = self._validator_for(schema)
        candidate = apply_defaults(schema, copy.deepcopy(payload))
        raw_errors = sorted(validator.iter_errors(candidate), key=lambda err: list(err.path))
        if raw_errors:
            errors = [_field_error(err) for err in raw_errors[: self.max_errors]]
            raise SchemaValidationFailure(errors)
        return candidate

    def _validator_for(self, schema: Dict[str, Any]) -> Draft202012Validator:
        try:
            Draft202012Validator.check_schema(schema)
        except SchemaError as exc:
            raise ToolExecutionError(
                f"Invalid parameter schema: {exc.message}", code="INVALID_SCHEMA"
            ) from exc
        return Draft202012Validator(schema)


def apply_defaults(schema: Dict[str, Any], payload: Any) -> Any:
    if not isinstance(payload, dict):
        return payload
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        return payload
    for name, subschema in properties.items():
        if not isinstance(subschema, dict):
            continue
        if name not in payload and "default" in subschema:
            payload[name] = copy.deepcopy(subschema["default"])
        if name in payload:
            value = payload[name]
            if isinstance(value, dict):
                apply_defaults(subschema, value)
            elif isinstance(value, list) and isinstance(subschema.get("items"), dict):
                for item in value:
                    apply_defaults(subschema["items"], item)
    return payload


def _field_error(error: Any) -> FieldError:
    path = [str(part) for part in error.path]
    if error.validator == "required":
        match = _REQUIRED_RE.match(error.message)
        if match:
            path.append(match.group("name"))
    return FieldError("/".join(path) or "<root>", error.message)


def _join_path(loc: Any) -> str:
    parts = [str(part) for part in loc]
    return "/".join(parts) or "<root>"


def summarize_errors(errors: List[FieldError]) -> str:
    return "; ".join(f"{err.path}: {err.message}" for err in errors[:5])
