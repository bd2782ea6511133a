from __future__ import annotations

from typing import Any, Dict, List, Optional

from libs.core.catalogs import PrimitiveCatalog
from libs.core.config import EngineConfig
from libs.core.content_type_validator import ContentTypeValidator
from libs.core.models import ContentTypeDefinition, ExecutionResult, ToolSpec
from libs.core.quality_score import score_definition
from libs.core.store import TransactionHandle, components_from_rows, content_type_from_row
from libs.core.type_context import DynamicContextBuilder
from libs.framework.tool_runtime import ExecutionContext, Tool

from .common import FIELD_SCHEMA, RELATIONSHIP_SCHEMA, content_type_view, not_found

DEFAULT_FIELDS: Dict[str, List[Dict[str, Any]]] = {
    "page": [
        {"name": "title", "type": "Text", "required": True, "label": "Title"},
        {"name": "slug", "type": "Text", "required": True, "label": "URL Slug"},
        {"name": "content", "type": "LongText", "required": True, "label": "Content"},
    ],
    "component": [
        {"name": "title", "type": "Text", "required": True, "label": "Title"},
        {"name": "content", "type": "LongText", "required": False, "label": "Content"},
    ],
}


def _stored_fields(definition: ContentTypeDefinition) -> List[Dict[str, Any]]:
    return [field.model_dump(by_alias=True, exclude_none=True) for field in definition.fields]


def _stored_relationships(definition: ContentTypeDefinition) -> List[Dict[str, Any]]:
    return [
        {"name": rel.name, "relationType": rel.relation_type, "targetType": rel.target_type}
        for rel in definition.relationships or []
    ]


def register_content_type_tools(
    registry,
    *,
    primitives: PrimitiveCatalog,
    context_builder: DynamicContextBuilder | None = None,
    config: EngineConfig | None = None,
) -> None:
    config = config or EngineConfig()

    def validator_for(
        handle: TransactionHandle, website_id: str, exclude_id: Optional[str] = None
    ) -> ContentTypeValidator:
        rows = [
            row
            for row in handle.find("content_type", order_by="name", website_id=website_id)
            if row["id"] != exclude_id
        ]
        return ContentTypeValidator(
            primitives.list_primitive_type_names(),
            [content_type_from_row(row) for row in rows],
            components_from_rows(rows),
            config=config,
            free_form_types=primitives.free_form_type_names(),
        )

    def check(
        handle: TransactionHandle,
        website_id: str,
        definition: ContentTypeDefinition,
        exclude_id: Optional[str] = None,
    ) -> tuple[Optional[ExecutionResult], Dict[str, Any]]:
        report = validator_for(handle, website_id, exclude_id).validate(definition)
        quality = score_definition(definition, primitives.list_primitive_type_names())
        extras = {
            "validation": report.model_dump(by_alias=True, mode="json"),
            "quality": quality.model_dump(by_alias=True, mode="json"),
        }
        if not report.is_valid:
            failure = ExecutionResult.fail(
                "Content type validation failed", "contract.content_type_invalid", data=extras
            )
            return failure, extras
        return None, extras

    def create_content_type(payload: Dict[str, Any], context: ExecutionContext) -> ExecutionResult:
        handle = context.transaction
        website_id = payload["websiteId"]
        if handle.get("website", website_id) is None:
            return not_found("Website", website_id)

        category = payload["category"]
        fields = payload.get("fields") or DEFAULT_FIELDS.get(category, [])
        definition = ContentTypeDefinition.model_validate(
            {
                "name": payload["name"],
                "category": category,
                "fields": fields,
                "relationships": payload.get("relationships"),
            }
        )
        failure, extras = check(handle, website_id, definition)
        if failure is not None:
            return failure

        row = handle.create(
            "content_type",
            website_id=website_id,
            name=definition.name,
            category=definition.category,
            fields=_stored_fields(definition),
            relationships=_stored_relationships(definition),
            settings=payload["settings"],
        )
        if context_builder is not None:
            handle.after_commit(
                lambda: context_builder.refresh_with_new_type(website_id, definition.name, definition)
            )
        return ExecutionResult.ok(
            {
                "contentType": content_type_view(row),
                "inferredFieldsCount": len(definition.fields) if not payload.get("fields") else 0,
                **extras,
            },
            quality=extras["quality"],
        )

    registry.register(
        Tool(
            spec=ToolSpec(
                name="create_content_type",
                description=(
                    "Create a content type after naming, primitive-type and duplicate checks. "
                    "Pages without fields get title, slug and content."
                ),
                parameter_schema={
                    "type": "object",
                    "properties": {
                        "websiteId": {"type": "string"},
                        "name": {"type": "string"},
                        "category": {"type": "string", "enum": ["page", "component"], "default": "page"},
                        "fields": {"type": "array", "items": FIELD_SCHEMA},
                        "relationships": {"type": "array", "items": RELATIONSHIP_SCHEMA},
                        "settings": {"type": "object", "default": {}},
                    },
                    "required": ["websiteId", "name"],
                },
                requires_transaction=True,
            ),
            handler=create_content_type,
        )
    )

    def update_content_type(payload: Dict[str, Any], context: ExecutionContext) -> ExecutionResult:
        handle = context.transaction
        type_id = payload["id"]
        existing = handle.get("content_type", type_id)
        if existing is None:
            return not_found("Content type", type_id)

        fields: List[Dict[str, Any]] = list(existing.get("fields") or [])
        added = payload.get("addFields") or []
        removed = payload.get("removeFields") or []
        if "fields" in payload:
            fields = list(payload["fields"])
        else:
            for new_field in added:
                index = next(
                    (i for i, field in enumerate(fields) if field.get("name") == new_field["name"]),
                    None,
                )
                if index is None:
                    fields.append(new_field)
                else:
                    fields[index] = {**fields[index], **new_field}
            fields = [field for field in fields if field.get("name") not in removed]

        definition = ContentTypeDefinition.model_validate(
            {
                "name": payload.get("name") or existing["name"],
                "category": payload.get("category") or existing["category"],
                "fields": fields,
                "relationships": existing.get("relationships") or None,
            }
        )
        failure, extras = check(handle, existing["website_id"], definition, exclude_id=type_id)
        if failure is not None:
            return failure

        changes: Dict[str, Any] = {
            "name": definition.name,
            "category": definition.category,
            "fields": _stored_fields(definition),
        }
        if "settings" in payload:
            changes["settings"] = {**(existing.get("settings") or {}), **payload["settings"]}
        row = handle.update("content_type", type_id, **changes)
        if context_builder is not None:
            handle.after_commit(lambda: context_builder.invalidate(existing["website_id"]))
        return ExecutionResult.ok(
            {
                "contentType": content_type_view(row),
                "fieldsModified": {
                    "added": len(added),
                    "removed": len(removed),
                    "total": len(definition.fields),
                },
                **extras,
            }
        )

    registry.register(
        Tool(
            spec=ToolSpec(
                name="update_content_type",
                description="Replace, add or remove fields of an existing content type",
                parameter_schema={
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "name": {"type": "string"},
                        "category": {"type": "string", "enum": ["page", "component"]},
                        "fields": {"type": "array", "items": FIELD_SCHEMA},
                        "addFields": {"type": "array", "items": FIELD_SCHEMA},
                        "removeFields": {"type": "array", "items": {"type": "string"}},
                        "settings": {"type": "object"},
                    },
                    "required": ["id"],
                },
                requires_transaction=True,
            ),
            handler=update_content_type,
        )
    )

    def delete_content_type(payload: Dict[str, Any], context: ExecutionContext) -> ExecutionResult:
        handle = context.transaction
        type_id = payload["id"]
        existing = handle.get("content_type", type_id)
        if existing is None:
            return not_found("Content type", type_id)
        items = handle.count("content_item", content_type_id=type_id)
        if items:
            return ExecutionResult.fail(
                f"Content type '{existing['name']}' still has {items} content items",
                "contract.in_use",
                data={"itemCount": items},
            )
        handle.delete("content_type", type_id)
        if context_builder is not None:
            handle.after_commit(lambda: context_builder.invalidate(existing["website_id"]))
        return ExecutionResult.ok({"deleted": True, "id": type_id, "name": existing["name"]})

    registry.register(
        Tool(
            spec=ToolSpec(
                name="delete_content_type",
                description="Delete a content type that has no content items",
                parameter_schema={
                    "type": "object",
                    "properties": {"id": {"type": "string"}},
                    "required": ["id"],
                },
                requires_transaction=True,
            ),
            handler=delete_content_type,
        )
    )
