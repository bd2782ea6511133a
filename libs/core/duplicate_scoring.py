"""Duplicate classification for proposed content types.

Three heuristics are tried in order and the first that matches wins: exact
case-insensitive name, membership in a semantic synonym group, and
field-name overlap against every existing type.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .config import EngineConfig
from .models import ContentTypeDefinition, DuplicateCheckResult, Recommendation


@dataclass(frozen=True)
class OverlapMatch:
    percentage: float
    match_type: Optional[str]


def field_name_set(definition: ContentTypeDefinition) -> set[str]:
    return {field.name.lower() for field in definition.fields}


def overlap_percentage(proposed: set[str], existing: set[str]) -> float:
    denominator = max(len(proposed), len(existing))
    if denominator == 0:
        return 0.0
    return len(proposed & existing) / denominator * 100


class DuplicateClassifier:
    def __init__(
        self,
        existing_types: Iterable[ContentTypeDefinition],
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self._existing: Dict[str, ContentTypeDefinition] = {}
        for definition in existing_types:
            self._existing.setdefault(definition.name.lower(), definition)
        self._groups: List[set[str]] = [
            {name.lower() for name in group} for group in self.config.semantic_groups
        ]

    def has_type(self, name: str) -> bool:
        return name.lower() in self._existing

    def exact_match(self, name: str) -> Optional[str]:
        existing = self._existing.get(name.lower())
        return existing.name if existing else None

    def semantic_match(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for group in self._groups:
            if lowered not in group:
                continue
            for key, existing in self._existing.items():
                if key in group:
                    return existing.name
        return None

    def field_overlap(self, field_names: Sequence[str]) -> OverlapMatch:
        proposed = {name.lower() for name in field_names}
        best = OverlapMatch(percentage=0.0, match_type=None)
        for existing in self._existing.values():
            if not existing.fields:
                continue
            percentage = overlap_percentage(proposed, field_name_set(existing))
            if percentage > best.percentage:
                best = OverlapMatch(percentage=percentage, match_type=existing.name)
        return best

    def classify(self, definition: ContentTypeDefinition) -> DuplicateCheckResult:
        exact = self.exact_match(definition.name)
        if exact:
            return DuplicateCheckResult(
                is_duplicate=True,
                match_type=exact,
                overlap_percentage=self.config.exact_match_overlap,
                recommendation=Recommendation.use_existing,
            )

        semantic = self.semantic_match(definition.name)
        if semantic:
            return DuplicateCheckResult(
                is_duplicate=True,
                match_type=semantic,
                overlap_percentage=self.config.semantic_match_overlap,
                recommendation=Recommendation.use_existing,
            )

        overlap = self.field_overlap([field.name for field in definition.fields])
        if overlap.percentage >= self.config.duplicate_threshold:
            return DuplicateCheckResult(
                is_duplicate=True,
                match_type=overlap.match_type,
                overlap_percentage=overlap.percentage,
                recommendation=Recommendation.use_existing,
            )
        if overlap.percentage >= self.config.extend_threshold:
            return DuplicateCheckResult(
                is_duplicate=False,
                match_type=overlap.match_type,
                overlap_percentage=overlap.percentage,
                recommendation=Recommendation.extend_existing,
            )
        return DuplicateCheckResult(
            is_duplicate=False,
            overlap_percentage=overlap.percentage,
            recommendation=Recommendation.create_new,
        )

    def similarity(self, proposed: ContentTypeDefinition, existing: ContentTypeDefinition) -> float:
        """Pairwise 0-100 confidence that two definitions describe the same type."""
        if proposed.name.lower() == existing.name.lower():
            return self.config.exact_match_overlap
        pair = {proposed.name.lower(), existing.name.lower()}
        if any(pair <= group for group in self._groups):
            return self.config.semantic_match_overlap
        return overlap_percentage(field_name_set(proposed), field_name_set(existing))
