from __future__ import annotations

from typing import Any, Dict, List

from libs.core.business_rules import CATEGORY_MODELS, BusinessRulesEngine, RuleViolation
from libs.core.errors import ConfigError
from libs.core.models import ExecutionResult, ToolSpec
from libs.core.rule_conditions import parse_rules
from libs.core.store import SqlStore
from libs.core.type_context import DynamicContextBuilder
from libs.framework.tool_runtime import ExecutionContext, Tool

from .common import not_found, read_with, website_view

CUSTOM_RULE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "condition": {"type": "object"},
        "action": {"type": "string", "enum": ["error", "warning"], "default": "error"},
        "message": {"type": "string", "minLength": 1},
    },
    "required": ["name", "condition", "message"],
}


def register_website_tools(
    registry,
    *,
    store: SqlStore,
    context_builder: DynamicContextBuilder,
    rules: BusinessRulesEngine | None = None,
) -> None:
    rules = rules or BusinessRulesEngine()

    def create_website(payload: Dict[str, Any], context: ExecutionContext) -> ExecutionResult:
        row = context.transaction.create(
            "website",
            name=payload["name"],
            category=payload["category"],
            description=payload["description"],
            business_requirements=payload["businessRequirements"],
            metadata={},
        )
        return ExecutionResult.ok({"website": website_view(row)})

    registry.register(
        Tool(
            spec=ToolSpec(
                name="create_website",
                description="Create a website that content types and items belong to",
                parameter_schema={
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "minLength": 1},
                        "category": {"type": "string", "default": "general"},
                        "description": {"type": "string", "default": ""},
                        "businessRequirements": {"type": "object", "default": {}},
                    },
                    "required": ["name"],
                },
                requires_transaction=True,
            ),
            handler=create_website,
        )
    )

    def update_business_requirements(
        payload: Dict[str, Any], context: ExecutionContext
    ) -> ExecutionResult:
        handle = context.transaction
        website_id = payload["websiteId"]
        existing = handle.get("website", website_id)
        if existing is None:
            return not_found("Website", website_id)

        if "customRules" in payload:
            try:
                parse_rules(payload["customRules"])
            except ConfigError as exc:
                return ExecutionResult.fail(f"Invalid custom rule: {exc}", "contract.rule_invalid")

        metadata = dict(existing.get("metadata") or {})
        for key in ("contentTypes", "requiredFields", "validationRules", "customRules"):
            if key in payload:
                metadata[key] = payload[key]
        if "seoRequirements" in payload:
            metadata["seoRequirements"] = {
                **(metadata.get("seoRequirements") or {}),
                **payload["seoRequirements"],
            }
        changes: Dict[str, Any] = {"metadata": metadata}
        if "category" in payload:
            changes["category"] = payload["category"]
        row = handle.update("website", website_id, **changes)
        return ExecutionResult.ok(
            {
                "websiteId": row["id"],
                "updated": {
                    "category": row["category"],
                    "contentTypes": metadata.get("contentTypes"),
                    "requiredFields": metadata.get("requiredFields"),
                    "validationRules": metadata.get("validationRules"),
                    "seoRequirements": metadata.get("seoRequirements"),
                    "customRules": metadata.get("customRules"),
                },
            }
        )

    registry.register(
        Tool(
            spec=ToolSpec(
                name="update_business_requirements",
                description="Update a website's category, required fields and custom validation rules",
                parameter_schema={
                    "type": "object",
                    "properties": {
                        "websiteId": {"type": "string"},
                        "category": {"type": "string"},
                        "contentTypes": {"type": "array", "items": {"type": "string"}},
                        "requiredFields": {
                            "type": "object",
                            "additionalProperties": {"type": "array", "items": {"type": "string"}},
                        },
                        "validationRules": {"type": "object"},
                        "seoRequirements": {
                            "type": "object",
                            "properties": {
                                "titleMinLength": {"type": "number"},
                                "titleMaxLength": {"type": "number"},
                                "descriptionMinLength": {"type": "number"},
                                "descriptionMaxLength": {"type": "number"},
                                "requireOgImage": {"type": "boolean"},
                                "requireCanonicalUrl": {"type": "boolean"},
                            },
                        },
                        "customRules": {"type": "array", "items": CUSTOM_RULE_SCHEMA},
                    },
                    "required": ["websiteId"],
                },
                requires_transaction=True,
            ),
            handler=update_business_requirements,
        )
    )

    async def get_website_context(
        payload: Dict[str, Any], context: ExecutionContext
    ) -> ExecutionResult:
        website_id = payload["websiteId"]
        website = await read_with(store, context, lambda handle: handle.get("website", website_id))
        if website is None:
            return not_found("Website", website_id)
        built = await context_builder.build_context(
            website_id,
            payload.get("projectName") or website["name"],
            refresh=payload["refresh"],
            max_tokens=payload.get("maxTokens"),
        )
        return ExecutionResult.ok(
            {
                "website": website_view(website),
                "context": built.model_dump(by_alias=True, mode="json"),
            }
        )

    registry.register(
        Tool(
            spec=ToolSpec(
                name="get_website_context",
                description="Summarize a website's existing content types and components",
                parameter_schema={
                    "type": "object",
                    "properties": {
                        "websiteId": {"type": "string"},
                        "projectName": {"type": "string"},
                        "refresh": {"type": "boolean", "default": False},
                        "maxTokens": {"type": "integer", "minimum": 1},
                    },
                    "required": ["websiteId"],
                },
            ),
            handler=get_website_context,
        )
    )

    async def validate_content(payload: Dict[str, Any], context: ExecutionContext) -> ExecutionResult:
        website_id = payload["websiteId"]
        website = await read_with(store, context, lambda handle: handle.get("website", website_id))
        if website is None:
            return not_found("Website", website_id)

        content = payload["content"]
        content_type = payload["contentType"]
        category = website["category"] or "general"
        metadata = website.get("metadata") or {}
        try:
            site_rules = BusinessRulesEngine(parse_rules(metadata.get("customRules") or []))
        except ConfigError as exc:
            return ExecutionResult.fail(f"Invalid custom rule: {exc}", "contract.rule_invalid")

        errors: List[RuleViolation] = []
        warnings: List[RuleViolation] = []
        if category.lower() in CATEGORY_MODELS:
            verdict = rules.validate_for_category(content, category)
            errors.extend(verdict.errors)
            warnings.extend(verdict.warnings)

        required = list(rules.get_required_fields(category, content_type))
        required.extend(
            name
            for name in (metadata.get("requiredFields") or {}).get(content_type, [])
            if name not in required
        )
        missing = [name for name in required if name not in content]
        known = {error.field for error in errors}
        errors.extend(
            RuleViolation(field=name, message=f"Required field '{name}' is missing")
            for name in missing
            if name not in known
        )
        rule_errors, rule_warnings = site_rules.check_custom_rules(content)
        errors.extend(rule_errors)
        warnings.extend(rule_warnings)

        if payload["strictMode"] and warnings:
            errors.extend(warnings)
            warnings = []

        completeness = min(100, round(len(content) / len(required) * 100)) if required else 0
        return ExecutionResult.ok(
            {
                "valid": not errors,
                "category": category,
                "contentType": content_type,
                "errors": [error.model_dump() for error in errors],
                "warnings": [warning.model_dump() for warning in warnings],
                "suggestions": {
                    "requiredFields": missing,
                    "recommendedFields": [
                        name
                        for name in rules.suggest_fields(category, "general")
                        if name not in content
                    ],
                },
                "summary": {
                    "totalErrors": len(errors),
                    "totalWarnings": len(warnings),
                    "completeness": completeness,
                },
            }
        )

    registry.register(
        Tool(
            spec=ToolSpec(
                name="validate_content",
                description="Validate content against the website's category and custom rules",
                parameter_schema={
                    "type": "object",
                    "properties": {
                        "websiteId": {"type": "string"},
                        "contentType": {"type": "string"},
                        "content": {"type": "object"},
                        "strictMode": {"type": "boolean", "default": False},
                    },
                    "required": ["websiteId", "contentType", "content"],
                },
            ),
            handler=validate_content,
        )
    )
