from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from .catalogs import ContentTypeCatalog, PrimitiveCatalog
from .config import EngineConfig
from .duplicate_scoring import DuplicateClassifier
from .events import CONTENT_TYPE_VALIDATED
from .input_sanitizer import SanitizationError, sanitize_field_name, sanitize_type_name
from .logging import get_logger, log_event
from .models import (
    ContentCategory,
    ContentTypeDefinition,
    DuplicateCheckResult,
    FieldDefinition,
    RelationshipDefinition,
    RelationType,
    ReusableComponent,
    Severity,
    SuggestionType,
    ValidationError,
    ValidationResult,
    ValidationSuggestion,
    ValidationWarning,
)
from .primitive_types import PrimitiveTypeCatalog

PASCAL_CASE_RE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
CAMEL_CASE_RE = re.compile(r"^[a-z][a-zA-Z0-9]*$")
VALID_RELATION_TYPES = [relation.value for relation in RelationType]
VALID_CATEGORIES = [category.value for category in ContentCategory]

DefinitionInput = Union[ContentTypeDefinition, Dict[str, Any]]


class ContentTypeValidator:
    """Validates a proposed content type against naming rules, the primitive
    catalog and a snapshot of the website's existing types.

    Every check runs even when earlier ones report errors; the verdict is
    valid only with zero errors and no duplicate.
    """

    def __init__(
        self,
        primitive_type_names: Iterable[str],
        existing_types: Iterable[ContentTypeDefinition] = (),
        reusable_components: Iterable[ReusableComponent] = (),
        *,
        config: EngineConfig | None = None,
        free_form_types: Sequence[str] | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.primitive_type_names = list(primitive_type_names)
        self._primitive_set = set(self.primitive_type_names)
        self.existing_types = list(existing_types)
        self.reusable_components = list(reusable_components)
        if free_form_types is None:
            free_form_types = PrimitiveTypeCatalog().free_form_type_names()
        self.free_form_types = set(free_form_types)
        self.classifier = DuplicateClassifier(self.existing_types, self.config)
        self._logger = get_logger("content_type_validator")

    @classmethod
    async def for_website(
        cls,
        website_id: str,
        primitives: PrimitiveCatalog,
        catalog: ContentTypeCatalog,
        *,
        config: EngineConfig | None = None,
    ) -> "ContentTypeValidator":
        existing = await catalog.load_content_types(website_id)
        components = await catalog.load_reusable_components(website_id)
        return cls(
            primitives.list_primitive_type_names(),
            existing,
            components,
            config=config,
            free_form_types=primitives.free_form_type_names(),
        )

    def validate(self, definition: DefinitionInput) -> ValidationResult:
        if not isinstance(definition, ContentTypeDefinition):
            try:
                definition = ContentTypeDefinition.model_validate(definition)
            except PydanticValidationError as exc:
                return self._malformed(exc)
        errors: List[ValidationError] = []
        warnings: List[ValidationWarning] = []
        suggestions: List[ValidationSuggestion] = []

        sanitized = self._sanitize(definition, errors)
        duplicate_check = self.classifier.classify(sanitized)
        self._validate_name(sanitized.name, errors, warnings)
        self._validate_category(sanitized.category, errors)
        self._validate_fields(sanitized.fields, errors, warnings)
        self._validate_primitive_usage(sanitized.fields, errors)
        if sanitized.relationships:
            self._validate_relationships(sanitized, errors, warnings)
        self._suggest_from_duplicates(duplicate_check, suggestions)
        self._suggest_component_reuse(sanitized.fields, suggestions)

        result = ValidationResult(
            is_valid=not errors and not duplicate_check.is_duplicate,
            errors=errors,
            warnings=warnings,
            suggestions=suggestions,
            duplicate_check=duplicate_check,
        )
        log_event(
            self._logger,
            CONTENT_TYPE_VALIDATED,
            {
                "type_name": sanitized.name,
                "is_valid": result.is_valid,
                "error_count": len(errors),
                "recommendation": duplicate_check.recommendation.value,
                "overlap": round(duplicate_check.overlap_percentage, 1),
            },
        )
        return result

    def _malformed(self, exc: PydanticValidationError) -> ValidationResult:
        errors = [
            ValidationError(
                field=".".join(str(part) for part in error["loc"]) or "<root>",
                message=error["msg"],
                severity=Severity.critical,
            )
            for error in exc.errors()
        ]
        log_event(
            self._logger,
            CONTENT_TYPE_VALIDATED,
            {"type_name": None, "is_valid": False, "error_count": len(errors), "malformed": True},
        )
        return ValidationResult(
            is_valid=False,
            errors=errors,
            duplicate_check=DuplicateCheckResult(is_duplicate=False),
        )

    def _sanitize(
        self, definition: ContentTypeDefinition, errors: List[ValidationError]
    ) -> ContentTypeDefinition:
        try:
            name = sanitize_type_name(definition.name)
        except SanitizationError as exc:
            errors.append(
                ValidationError(
                    field="name", message=f"Invalid type name: {exc}", severity=Severity.critical
                )
            )
            name = definition.name.strip()

        fields: List[FieldDefinition] = []
        for field in definition.fields:
            try:
                field_name = sanitize_field_name(field.name)
            except SanitizationError as exc:
                errors.append(
                    ValidationError(
                        field=f"fields.{field.name}",
                        message=f"Invalid field name: {exc}",
                        severity=Severity.critical,
                    )
                )
                field_name = field.name
            fields.append(field.model_copy(update={"name": field_name}))
        return definition.model_copy(update={"name": name, "fields": fields})

    def _validate_name(
        self, name: str, errors: List[ValidationError], warnings: List[ValidationWarning]
    ) -> None:
        if not name:
            errors.append(
                ValidationError(field="name", message="Type name is required", severity=Severity.medium)
            )
            return
        if not PASCAL_CASE_RE.match(name):
            errors.append(
                ValidationError(
                    field="name",
                    message="Type name must be in PascalCase (e.g., BlogPost)",
                    severity=Severity.medium,
                )
            )
        if len(name) > self.config.max_type_name_length:
            warnings.append(
                ValidationWarning(
                    field="name", message="Type name is very long, consider a shorter name"
                )
            )

    def _validate_category(self, category: str, errors: List[ValidationError]) -> None:
        if category not in VALID_CATEGORIES:
            errors.append(
                ValidationError(
                    field="category",
                    message=f"Invalid category. Must be one of: {', '.join(VALID_CATEGORIES)}",
                    severity=Severity.high,
                )
            )

    def _validate_fields(
        self,
        fields: List[FieldDefinition],
        errors: List[ValidationError],
        warnings: List[ValidationWarning],
    ) -> None:
        if not fields:
            errors.append(
                ValidationError(
                    field="fields", message="At least one field is required", severity=Severity.high
                )
            )
            return

        seen: set[str] = set()
        for field in fields:
            lowered = field.name.lower()
            if lowered in seen:
                errors.append(
                    ValidationError(
                        field=f"fields.{field.name}",
                        message=f"Duplicate field name: {field.name}",
                        severity=Severity.high,
                    )
                )
            seen.add(lowered)
            if not CAMEL_CASE_RE.match(field.name):
                errors.append(
                    ValidationError(
                        field=f"fields.{field.name}",
                        message="Field names must be in camelCase",
                        severity=Severity.medium,
                    )
                )

        if "title" not in seen:
            warnings.append(
                ValidationWarning(
                    field="fields", message='Consider adding a "title" field for better usability'
                )
            )

    def _validate_primitive_usage(
        self, fields: List[FieldDefinition], errors: List[ValidationError]
    ) -> None:
        allowed = ", ".join(self.primitive_type_names)
        for field in fields:
            if field.type not in self._primitive_set:
                errors.append(
                    ValidationError(
                        field=f"fields.{field.name}.type",
                        message=f'Invalid type "{field.type}". Must be one of: {allowed}',
                        severity=Severity.critical,
                    )
                )

    def _validate_relationships(
        self,
        definition: ContentTypeDefinition,
        errors: List[ValidationError],
        warnings: List[ValidationWarning],
    ) -> None:
        relationships: List[RelationshipDefinition] = definition.relationships or []
        for relationship in relationships:
            if relationship.relation_type not in VALID_RELATION_TYPES:
                errors.append(
                    ValidationError(
                        field=f"relationships.{relationship.name}.type",
                        message=(
                            "Invalid relationship type. Must be one of: "
                            f"{', '.join(VALID_RELATION_TYPES)}"
                        ),
                        severity=Severity.high,
                    )
                )
            target = relationship.target_type
            is_self_reference = target.lower() == definition.name.lower()
            if not is_self_reference and not self.classifier.has_type(target):
                warnings.append(
                    ValidationWarning(
                        field=f"relationships.{relationship.name}.targetType",
                        message=f'Target type "{target}" does not exist yet',
                    )
                )

    def _suggest_from_duplicates(
        self, duplicate_check: DuplicateCheckResult, suggestions: List[ValidationSuggestion]
    ) -> None:
        match_type = duplicate_check.match_type
        if not match_type:
            return
        if duplicate_check.is_duplicate:
            suggestions.append(
                ValidationSuggestion(
                    type=SuggestionType.reuse,
                    message=f'Consider using existing "{match_type}" instead',
                    existing_type=match_type,
                    confidence=duplicate_check.overlap_percentage,
                )
            )
        elif duplicate_check.overlap_percentage >= self.config.extend_threshold:
            suggestions.append(
                ValidationSuggestion(
                    type=SuggestionType.extend,
                    message=f'Consider extending "{match_type}" instead of creating new type',
                    existing_type=match_type,
                    confidence=duplicate_check.overlap_percentage,
                )
            )

    def _suggest_component_reuse(
        self, fields: List[FieldDefinition], suggestions: List[ValidationSuggestion]
    ) -> None:
        content_area = self._find_component("ContentArea")
        cta = self._find_component("CTA")
        for field in fields:
            if field.type not in self.free_form_types:
                continue
            lowered = field.name.lower()
            if content_area and ("content" in lowered or "body" in lowered):
                suggestions.append(
                    ValidationSuggestion(
                        type=SuggestionType.optimize,
                        message=f'Consider using "{content_area}" component for "{field.name}" field',
                        existing_type=content_area,
                        confidence=self.config.content_area_confidence,
                    )
                )
            if cta and ("cta" in lowered or "action" in lowered):
                suggestions.append(
                    ValidationSuggestion(
                        type=SuggestionType.optimize,
                        message=f'Consider using "{cta}" component for "{field.name}" field',
                        existing_type=cta,
                        confidence=self.config.cta_confidence,
                    )
                )

    def _find_component(self, marker: str) -> Optional[str]:
        for component in self.reusable_components:
            if marker in component.name:
                return component.name
        return None
