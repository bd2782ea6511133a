from __future__ import annotations

import re
from typing import Any

MAX_IDENTIFIER_LENGTH = 100

_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9_\- ]")


class SanitizationError(ValueError):
    pass


def _sanitize_identifier(value: Any, label: str) -> str:
    if not isinstance(value, str):
        raise SanitizationError(f"{label} must be a string")
    cleaned = value.strip()
    if len(cleaned) > MAX_IDENTIFIER_LENGTH:
        raise SanitizationError(f"{label} exceeds {MAX_IDENTIFIER_LENGTH} characters")
    bad = sorted(set(_DISALLOWED_RE.findall(cleaned)))
    if bad:
        raise SanitizationError(f"{label} contains disallowed characters: {''.join(bad)!r}")
    return cleaned


def sanitize_type_name(value: Any) -> str:
    return _sanitize_identifier(value, "type name")


def sanitize_field_name(value: Any) -> str:
    cleaned = _sanitize_identifier(value, "field name")
    if not cleaned:
        raise SanitizationError("field name is required")
    return cleaned
