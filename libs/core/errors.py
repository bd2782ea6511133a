from __future__ import annotations

from typing import Any, List, Optional


class ToolingError(Exception):
    pass


class ConfigError(ToolingError):
    pass


class ToolRegistryError(ToolingError):
    pass


class DuplicateToolError(ToolRegistryError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Tool "{name}" is already registered')
        self.name = name


class FieldError:
    __slots__ = ("path", "message")

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.message = message

    def as_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message}

    def __repr__(self) -> str:
        return f"FieldError(path={self.path!r}, message={self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldError):
            return NotImplemented
        return (self.path, self.message) == (other.path, other.message)


class SchemaValidationFailure(ToolingError):
    def __init__(self, errors: List[FieldError]) -> None:
        summary = "; ".join(f"{err.path}: {err.message}" for err in errors[:5])
        super().__init__(f"input schema validation failed: {summary}")
        self.errors = errors


class ToolValidationError(ToolingError):
    def __init__(self, message: str, errors: List[FieldError]) -> None:
        super().__init__(message)
        self.errors = errors


class ToolExecutionError(ToolingError):
    def __init__(self, message: str, code: str = "EXECUTION_ERROR", details: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.details = details


class ToolTimeoutError(ToolExecutionError):
    def __init__(self, timeout_ms: float) -> None:
        super().__init__("Tool execution timeout", code="TIMEOUT", details={"timeout": timeout_ms})
        self.timeout_ms = timeout_ms


class StoreError(ToolingError):
    pass


class RecordNotFoundError(StoreError):
    def __init__(self, kind: str, record_id: Optional[str]) -> None:
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class TransactionClosedError(StoreError):
    pass
