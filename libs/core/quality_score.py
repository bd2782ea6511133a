"""Heuristic 0-100 quality score for a proposed content type definition.

The total is the sum of four capped components: type compatibility (40),
field mapping (30), validation completeness (20) and platform support (10).
"""

from __future__ import annotations

import math
from typing import Dict, Iterable

from .content_type_validator import CAMEL_CASE_RE, PASCAL_CASE_RE, VALID_CATEGORIES, VALID_RELATION_TYPES
from .models import ContentTypeDefinition, QualityBreakdown, QualityScore, QualityThreshold

PLATFORM_SUPPORT: Dict[str, int] = {
    "Text": 10,
    "LongText": 10,
    "Number": 10,
    "Boolean": 10,
    "Date": 10,
    "Decimal": 9,
    "Json": 8,
}
DEFAULT_PLATFORM_SUPPORT = 5


def score_definition(
    definition: ContentTypeDefinition, primitive_names: Iterable[str]
) -> QualityScore:
    primitives = set(primitive_names)
    breakdown = QualityBreakdown(
        type_compatibility=_type_compatibility(definition, primitives),
        field_mapping=_field_mapping(definition),
        validation_completeness=_validation_completeness(definition),
        platform_support=_platform_support(definition),
    )
    total = (
        breakdown.type_compatibility
        + breakdown.field_mapping
        + breakdown.validation_completeness
        + breakdown.platform_support
    )
    threshold = threshold_for(total)
    return QualityScore(
        total=total,
        breakdown=breakdown,
        threshold=threshold,
        recommendation=_recommendation(threshold, breakdown),
    )


def threshold_for(total: int) -> QualityThreshold:
    if total > 90:
        return QualityThreshold.automatic
    if total >= 70:
        return QualityThreshold.review
    if total >= 50:
        return QualityThreshold.manual
    return QualityThreshold.rejected


def _type_compatibility(definition: ContentTypeDefinition, primitives: set[str]) -> int:
    fields = definition.fields
    score = 0
    if fields:
        valid = sum(1 for field in fields if field.type in primitives)
        score += math.floor(valid / len(fields) * 20)
    if PASCAL_CASE_RE.match(definition.name):
        score += 5
    if fields and all(CAMEL_CASE_RE.match(field.name) for field in fields):
        score += 5
    if definition.category in VALID_CATEGORIES:
        score += 5
    names = {field.name.lower() for field in fields}
    if "title" in names:
        score += 3
    if "slug" in names:
        score += 2
    return min(score, 40)


def _field_mapping(definition: ContentTypeDefinition) -> int:
    fields = definition.fields
    count = len(fields)
    if not count:
        return 0
    score = 0
    if 3 <= count <= 15:
        score += 10
    elif 2 <= count <= 20:
        score += 7
    elif count <= 30:
        score += 4

    distinct_types = len({field.type for field in fields})
    if distinct_types >= 3:
        score += 10
    elif distinct_types == 2:
        score += 7
    else:
        score += 4

    required_ratio = sum(1 for field in fields if field.required) / count
    if 0.2 <= required_ratio <= 0.6:
        score += 10
    elif 0 < required_ratio < 0.8:
        score += 7
    else:
        score += 3
    return min(score, 30)


def _validation_completeness(definition: ContentTypeDefinition) -> int:
    fields = definition.fields
    if not fields:
        return 0
    validated = [field for field in fields if field.validation]
    score = math.floor(len(validated) / len(fields) * 10)
    quality = 0
    for field in validated:
        rules = field.validation or {}
        if field.type == "Text" and ("maxLength" in rules or "pattern" in rules):
            quality += 2
        elif field.type == "Number" and ("min" in rules or "max" in rules):
            quality += 2
        elif "required" in rules:
            quality += 1
    return min(score + min(quality, 10), 20)


def _platform_support(definition: ContentTypeDefinition) -> int:
    fields = definition.fields
    score = 0
    if fields:
        total = sum(PLATFORM_SUPPORT.get(field.type, DEFAULT_PLATFORM_SUPPORT) for field in fields)
        score = total // len(fields)
    relationships = definition.relationships or []
    if relationships and all(rel.relation_type in VALID_RELATION_TYPES for rel in relationships):
        score += 1
    return min(score, 10)


def _recommendation(threshold: QualityThreshold, breakdown: QualityBreakdown) -> str:
    if threshold is QualityThreshold.automatic:
        return "High confidence - Type can be automatically applied"
    if threshold is QualityThreshold.rejected:
        return "Low confidence - Type definition needs significant revision"
    if threshold is QualityThreshold.review:
        issues = [
            label
            for label, weak in (
                ("type compatibility issues", breakdown.type_compatibility < 30),
                ("field mapping concerns", breakdown.field_mapping < 20),
                ("incomplete validation rules", breakdown.validation_completeness < 15),
                ("platform support limitations", breakdown.platform_support < 7),
            )
            if weak
        ]
        if issues:
            return f"Review recommended - Check {', '.join(issues)}"
        return "Review recommended - Minor adjustments may improve confidence"
    actions = [
        label
        for label, weak in (
            ("Fix type compatibility", breakdown.type_compatibility < 20),
            ("Improve field structure", breakdown.field_mapping < 15),
            ("Add validation rules", breakdown.validation_completeness < 10),
            ("Check platform support", breakdown.platform_support < 5),
        )
        if weak
    ]
    return f"Manual intervention required - {', '.join(actions)}".rstrip(" -")
