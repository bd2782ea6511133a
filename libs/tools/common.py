from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Optional, TypeVar

from libs.core.models import ExecutionResult
from libs.core.store import SqlStore, TransactionHandle
from libs.framework.tool_runtime import ExecutionContext

T = TypeVar("T")

FIELD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "type": {"type": "string"},
        "required": {"type": "boolean", "default": False},
        "label": {"type": "string"},
        "validation": {"type": "object"},
    },
    "required": ["name", "type"],
}

RELATIONSHIP_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "relationType": {"type": "string"},
        "targetType": {"type": "string"},
    },
    "required": ["name", "relationType", "targetType"],
}

STATUS_VALUES = ["draft", "published", "archived"]


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def not_found(label: str, record_id: str) -> ExecutionResult:
    return ExecutionResult.fail(f"{label} with ID '{record_id}' not found", "contract.not_found")


async def read_with(
    store: SqlStore, context: ExecutionContext, fn: Callable[[TransactionHandle], T]
) -> T:
    if context.transaction is not None:
        return fn(context.transaction)
    return await store.read(fn)


def website_view(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "category": row["category"],
        "description": row["description"],
        "businessRequirements": row.get("business_requirements") or {},
        "metadata": row.get("metadata") or {},
        "createdAt": iso(row["created_at"]),
        "updatedAt": iso(row["updated_at"]),
    }


def content_type_view(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "websiteId": row["website_id"],
        "name": row["name"],
        "category": row["category"],
        "fields": row.get("fields") or [],
        "relationships": row.get("relationships") or [],
        "settings": row.get("settings") or {},
        "createdAt": iso(row["created_at"]),
        "updatedAt": iso(row["updated_at"]),
    }


def content_item_view(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "websiteId": row["website_id"],
        "contentTypeId": row["content_type_id"],
        "slug": row.get("slug"),
        "status": row["status"],
        "data": row.get("data") or {},
        "metadata": row.get("metadata") or {},
        "publishedAt": iso(row.get("published_at")),
        "createdAt": iso(row["created_at"]),
        "updatedAt": iso(row["updated_at"]),
    }
