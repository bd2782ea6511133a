from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from libs.core.business_rules import CATEGORY_MODELS, BusinessRulesEngine, RuleViolation
from libs.core.models import ContentItemStatus, ExecutionResult, FieldDefinition, ToolSpec
from libs.core.primitive_types import PrimitiveTypeCatalog
from libs.core.store import SqlStore, TransactionHandle
from libs.framework.tool_runtime import ExecutionContext, Tool

from .common import STATUS_VALUES, content_item_view, not_found, parse_timestamp, read_with

SORT_COLUMNS = {"createdAt": "created_at", "updatedAt": "updated_at", "slug": "slug"}
MAX_PAGE_SIZE = 20


def _field_definitions(content_type: Mapping[str, Any]) -> List[FieldDefinition]:
    return [
        FieldDefinition.model_validate(field)
        for field in content_type.get("fields") or []
        if isinstance(field, dict) and "name" in field and "type" in field
    ]


def _rule_violations(field: FieldDefinition, value: Any) -> List[RuleViolation]:
    rules = field.validation or {}
    name = field.name
    messages: List[str] = []
    is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
    if isinstance(value, str):
        if rules.get("minLength") is not None and len(value) < int(rules["minLength"]):
            messages.append(f"Field '{name}' must be at least {rules['minLength']} characters")
        if rules.get("maxLength") is not None and len(value) > int(rules["maxLength"]):
            messages.append(f"Field '{name}' must not exceed {rules['maxLength']} characters")
        if rules.get("pattern") and re.search(str(rules["pattern"]), value) is None:
            messages.append(f"Field '{name}' does not match the required pattern")
    if is_number:
        if rules.get("min") is not None and value < float(rules["min"]):
            messages.append(f"Field '{name}' must be at least {rules['min']}")
        if rules.get("max") is not None and value > float(rules["max"]):
            messages.append(f"Field '{name}' must not exceed {rules['max']}")
    return [RuleViolation(field=name, message=message) for message in messages]


def check_item_data(
    fields: Iterable[FieldDefinition],
    data: Mapping[str, Any],
    primitives: PrimitiveTypeCatalog,
    *,
    changed: Optional[Mapping[str, Any]] = None,
) -> List[RuleViolation]:
    """Check ``data`` against the content type's field definitions.

    Required fields are checked against the whole of ``data``; value checks
    run only for the keys in ``changed`` when it is given.
    """
    checked = data if changed is None else changed
    violations: List[RuleViolation] = []
    for field in fields:
        if field.required and field.name not in data:
            violations.append(
                RuleViolation(
                    field=field.name,
                    message=f"Required field '{field.label or field.name}' is missing",
                )
            )
        if field.name not in checked:
            continue
        value = checked[field.name]
        violations.extend(
            RuleViolation(field=field.name, message=f"Field '{field.name}': {message}")
            for message in primitives.validate_value(field.type, value)
        )
        violations.extend(_rule_violations(field, value))
    return violations


def _category_errors(
    rules: BusinessRulesEngine,
    website: Mapping[str, Any],
    data: Mapping[str, Any],
    only: Optional[Iterable[str]] = None,
) -> List[RuleViolation]:
    category = (website.get("category") or "").lower()
    if category not in CATEGORY_MODELS:
        return []
    verdict = rules.validate_for_category(data, category)
    if only is None:
        return list(verdict.errors)
    keys = set(only)
    return [error for error in verdict.errors if error.field in keys]


def _invalid(violations: List[RuleViolation]) -> ExecutionResult:
    return ExecutionResult.fail(
        "Validation failed",
        "contract.content_invalid",
        data={"validationErrors": [violation.model_dump() for violation in violations]},
    )


def _published_at(status: str, requested: Optional[str], current: Optional[datetime]) -> Optional[datetime]:
    if requested:
        return parse_timestamp(requested)
    if status == ContentItemStatus.published.value and current is None:
        return datetime.utcnow()
    return current


def register_content_item_tools(
    registry,
    *,
    store: SqlStore,
    primitives: PrimitiveTypeCatalog,
    rules: BusinessRulesEngine | None = None,
) -> None:
    rules = rules or BusinessRulesEngine()

    def create_content_item(payload: Dict[str, Any], context: ExecutionContext) -> ExecutionResult:
        handle: TransactionHandle = context.transaction
        website_id = payload["websiteId"]
        type_id = payload["contentTypeId"]
        website = handle.get("website", website_id)
        if website is None:
            return not_found("Website", website_id)
        content_type = handle.get("content_type", type_id)
        if content_type is None or content_type["website_id"] != website_id:
            return not_found("Content type", type_id)

        data = payload["data"]
        violations = check_item_data(_field_definitions(content_type), data, primitives)
        violations.extend(_category_errors(rules, website, data))
        if violations:
            return _invalid(violations)

        status = payload["status"]
        row = handle.create(
            "content_item",
            website_id=website_id,
            content_type_id=type_id,
            slug=payload.get("slug"),
            data=data,
            metadata=payload.get("metadata") or {},
            status=status,
            published_at=_published_at(status, payload.get("publishedAt"), None),
        )
        item = content_item_view(row)
        item["contentType"] = {"id": content_type["id"], "name": content_type["name"]}
        return ExecutionResult.ok({"item": item})

    registry.register(
        Tool(
            spec=ToolSpec(
                name="create_content_item",
                description="Create a content item whose data is checked against its content type",
                parameter_schema={
                    "type": "object",
                    "properties": {
                        "websiteId": {"type": "string"},
                        "contentTypeId": {"type": "string"},
                        "slug": {"type": "string"},
                        "data": {"type": "object"},
                        "metadata": {"type": "object"},
                        "status": {"type": "string", "enum": STATUS_VALUES, "default": "draft"},
                        "publishedAt": {"type": "string", "format": "date-time"},
                    },
                    "required": ["websiteId", "contentTypeId", "data"],
                },
                requires_transaction=True,
            ),
            handler=create_content_item,
        )
    )

    def update_content_item(payload: Dict[str, Any], context: ExecutionContext) -> ExecutionResult:
        handle: TransactionHandle = context.transaction
        item_id = payload["id"]
        existing = handle.get("content_item", item_id)
        if existing is None:
            return not_found("Content item", item_id)
        content_type = handle.get("content_type", existing["content_type_id"])
        if content_type is None:
            return not_found("Content type", existing["content_type_id"])

        changed = payload.get("data")
        data = {**(existing.get("data") or {}), **(changed or {})}
        violations = check_item_data(
            _field_definitions(content_type), data, primitives, changed=changed or {}
        )
        if changed:
            website = handle.get("website", existing["website_id"]) or {}
            violations.extend(_category_errors(rules, website, data, only=changed))
        if violations:
            return _invalid(violations)

        status = payload.get("status") or existing["status"]
        changes: Dict[str, Any] = {
            "data": data,
            "metadata": {**(existing.get("metadata") or {}), **(payload.get("metadata") or {})},
            "status": status,
            "published_at": _published_at(status, payload.get("publishedAt"), existing.get("published_at")),
        }
        if "slug" in payload:
            changes["slug"] = payload["slug"]
        row = handle.update("content_item", item_id, **changes)
        return ExecutionResult.ok(
            {
                "item": content_item_view(row),
                "changes": sorted(key for key in payload if key != "id"),
            }
        )

    registry.register(
        Tool(
            spec=ToolSpec(
                name="update_content_item",
                description="Update a content item; data and metadata are merged with what is stored",
                parameter_schema={
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "slug": {"type": "string"},
                        "data": {"type": "object"},
                        "metadata": {"type": "object"},
                        "status": {"type": "string", "enum": STATUS_VALUES},
                        "publishedAt": {"type": "string", "format": "date-time"},
                    },
                    "required": ["id"],
                },
                requires_transaction=True,
            ),
            handler=update_content_item,
        )
    )

    async def list_content_items(payload: Dict[str, Any], context: ExecutionContext) -> ExecutionResult:
        filters = {"website_id": payload["websiteId"]}
        if payload.get("contentTypeId"):
            filters["content_type_id"] = payload["contentTypeId"]
        if payload.get("status"):
            filters["status"] = payload["status"]
        limit = payload["limit"]
        page = payload["page"]

        def query(handle: TransactionHandle) -> tuple[List[Dict[str, Any]], int]:
            rows = handle.find(
                "content_item",
                order_by=SORT_COLUMNS[payload["sortBy"]],
                descending=payload["sortOrder"] == "desc",
                limit=limit,
                offset=(page - 1) * limit,
                **filters,
            )
            return rows, handle.count("content_item", **filters)

        rows, total = await read_with(store, context, query)
        total_pages = math.ceil(total / limit)
        return ExecutionResult.ok(
            {
                "items": [content_item_view(row) for row in rows],
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": total,
                    "totalPages": total_pages,
                    "hasNext": page < total_pages,
                    "hasPrev": page > 1,
                },
            }
        )

    registry.register(
        Tool(
            spec=ToolSpec(
                name="list_content_items",
                description="List a website's content items with filtering, sorting and paging",
                parameter_schema={
                    "type": "object",
                    "properties": {
                        "websiteId": {"type": "string"},
                        "contentTypeId": {"type": "string"},
                        "status": {"type": "string", "enum": STATUS_VALUES},
                        "limit": {"type": "integer", "minimum": 1, "maximum": MAX_PAGE_SIZE, "default": MAX_PAGE_SIZE},
                        "page": {"type": "integer", "minimum": 1, "default": 1},
                        "sortBy": {"type": "string", "enum": list(SORT_COLUMNS), "default": "updatedAt"},
                        "sortOrder": {"type": "string", "enum": ["asc", "desc"], "default": "desc"},
                    },
                    "required": ["websiteId"],
                },
            ),
            handler=list_content_items,
        )
    )

    def delete_content_item(payload: Dict[str, Any], context: ExecutionContext) -> ExecutionResult:
        handle: TransactionHandle = context.transaction
        item_id = payload["id"]
        existing = handle.get("content_item", item_id)
        if existing is None:
            return not_found("Content item", item_id)
        handle.delete("content_item", item_id)
        return ExecutionResult.ok({"deleted": True, "id": item_id, "slug": existing.get("slug")})

    registry.register(
        Tool(
            spec=ToolSpec(
                name="delete_content_item",
                description="Delete a content item",
                parameter_schema={
                    "type": "object",
                    "properties": {"id": {"type": "string"}},
                    "required": ["id"],
                },
                requires_transaction=True,
            ),
            handler=delete_content_item,
        )
    )
