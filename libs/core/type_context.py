"""Prompt-ready snapshot of a website's content types.

The builder caches one ``DynamicContext`` per website for ``context_ttl_s``
seconds. Contexts are frozen; refreshing produces a new value and replaces
the cache entry, so a context handed out earlier never changes underneath
its holder.
"""

from __future__ import annotations

import math
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .catalogs import COMPONENT_PURPOSES, ContentTypeCatalog, PrimitiveCatalog
from .config import EngineConfig
from .errors import ConfigError
from .events import CONTEXT_BUILT, CONTEXT_PRUNED, CONTEXT_REFRESHED, CONTEXT_SESSION_CLEARED
from .logging import get_logger, log_event
from .models import (
    ContentCategory,
    ContentTypeDefinition,
    DynamicContext,
    ReusableComponent,
    SessionType,
    TypeSummary,
)

NO_CONTENT_TYPES = "No existing content types"
NO_COMPONENTS = "No reusable components"
NO_COMMON_PROPERTIES = "No common properties"
NO_SESSION_TYPES = "No types created this session"

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


@dataclass
class _CacheEntry:
    context: DynamicContext
    built_at: float


def summarize_type(definition: ContentTypeDefinition) -> TypeSummary:
    return TypeSummary(
        name=definition.name,
        category=definition.category,
        fields=tuple(definition.fields),
    )


def format_content_types(types: Sequence[TypeSummary]) -> str:
    if not types:
        return NO_CONTENT_TYPES
    rendered: List[str] = []
    for summary in types:
        if summary.field_summary is not None:
            rendered.append(f"{summary.name} ({summary.field_summary})")
            continue
        fields = ", ".join(
            f"{field.name}: {field.type}{'*' if field.required else ''}" for field in summary.fields
        )
        rendered.append(f"{summary.name} ({fields})")
    return "; ".join(rendered)


def format_content_types_list(types: Sequence[TypeSummary]) -> str:
    if not types:
        return NO_CONTENT_TYPES
    lines: List[str] = []
    for summary in types:
        if summary.field_summary is not None:
            lines.append(f"- {summary.name}: {summary.field_summary}")
            continue
        fields = ", ".join(
            f"{field.name}: {field.type}{' (required)' if field.required else ''}"
            for field in summary.fields
        )
        lines.append(f"- {summary.name}: {fields}")
    return "\n".join(lines)


def format_components(components: Sequence[ReusableComponent]) -> str:
    if not components:
        return NO_COMPONENTS
    return "; ".join(f"{component.name}: {component.purpose}" for component in components)


def common_properties(types: Iterable[TypeSummary], min_usage: int = 2) -> str:
    usage: "OrderedDict[str, Tuple[str, int]]" = OrderedDict()
    for summary in types:
        for field in summary.fields:
            field_type, count = usage.get(field.name, (field.type, 0))
            usage[field.name] = (field_type, count + 1)
    shared = [
        f"{name}: {field_type} (used in {count} types)"
        for name, (field_type, count) in usage.items()
        if count >= min_usage
    ]
    return ", ".join(shared) if shared else NO_COMMON_PROPERTIES


def estimate_tokens(context: DynamicContext, chars_per_token: int = 4) -> int:
    text = "\n".join(
        [
            ", ".join(context.available_types),
            context.existing_content_types,
            context.reusable_components,
            context.common_properties,
        ]
    )
    return math.ceil(len(text) / chars_per_token)


def prune_context(context: DynamicContext, max_tokens: int, chars_per_token: int = 4) -> DynamicContext:
    """Shrink ``context`` until its token estimate fits ``max_tokens``.

    Field lists are collapsed to ``"N fields"`` first, most verbose type
    first. Whole types are dropped from the end only once every list has
    been collapsed.
    """
    estimate = estimate_tokens(context, chars_per_token)
    if estimate <= max_tokens:
        return context.model_copy(update={"token_estimate": estimate})

    types = list(context.types)
    by_verbosity = sorted(
        (index for index, summary in enumerate(types) if summary.field_summary is None),
        key=lambda index: len(format_content_types([types[index]])),
        reverse=True,
    )
    current = context
    for index in by_verbosity:
        summary = types[index]
        types[index] = summary.model_copy(
            update={"fields": (), "field_summary": f"{len(summary.fields)} fields"}
        )
        current = _with_types(current, types)
        if estimate_tokens(current, chars_per_token) <= max_tokens:
            break

    while types and estimate_tokens(current, chars_per_token) > max_tokens:
        types.pop()
        current = _with_types(current, types)

    return current.model_copy(
        update={"pruned": True, "token_estimate": estimate_tokens(current, chars_per_token)}
    )


def _with_types(context: DynamicContext, types: Sequence[TypeSummary]) -> DynamicContext:
    return context.model_copy(
        update={
            "types": tuple(types),
            "existing_content_types": format_content_types(types),
        }
    )


class DynamicContextBuilder:
    def __init__(
        self,
        primitives: PrimitiveCatalog,
        catalog: ContentTypeCatalog,
        *,
        config: EngineConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.primitives = primitives
        self.catalog = catalog
        self.config = config or EngineConfig()
        self._clock = clock
        self._now = now
        self._cache: "OrderedDict[str, _CacheEntry]" = OrderedDict()
        self._session_types: List[SessionType] = []
        self._logger = get_logger("context_builder")

    @property
    def session_types(self) -> Tuple[SessionType, ...]:
        return tuple(self._session_types)

    def cached(self, website_id: str) -> Optional[DynamicContext]:
        entry = self._cache.get(website_id)
        return entry.context if entry else None

    async def build_context(
        self,
        website_id: str,
        project_name: str | None = None,
        *,
        refresh: bool = False,
        max_tokens: int | None = None,
    ) -> DynamicContext:
        entry = self._cache.get(website_id)
        if not refresh and entry is not None and self._age(entry) < self.config.context_ttl_s:
            context = entry.context.model_copy(update={"session_types": self.session_types})
            if project_name and project_name != context.project_name:
                context = context.model_copy(update={"project_name": project_name})
        else:
            context = await self._load(website_id, project_name)
            self._store(website_id, context)
            log_event(
                self._logger,
                CONTEXT_BUILT,
                {"website_id": website_id, "types": len(context.types), "tokens": context.token_estimate},
            )
        if max_tokens is not None:
            context = self._prune(context, max_tokens)
        return context

    async def refresh_with_new_type(
        self,
        website_id: str,
        type_name: str,
        definition: ContentTypeDefinition | Mapping | None = None,
    ) -> DynamicContext:
        self._session_types.append(SessionType(name=type_name, created_at=self._now()))
        entry = self._cache.get(website_id)
        if (
            definition is not None
            and entry is not None
            and self._age(entry) < self.config.fresh_append_window_s
        ):
            if not isinstance(definition, ContentTypeDefinition):
                definition = ContentTypeDefinition.model_validate(
                    {"name": type_name, **dict(definition)}
                )
            context = self._append_type(entry.context, type_name, definition)
            self._cache[website_id] = _CacheEntry(context=context, built_at=entry.built_at)
            log_event(
                self._logger,
                CONTEXT_REFRESHED,
                {"website_id": website_id, "type_name": type_name, "mode": "append"},
            )
            return context

        context = await self.build_context(website_id, refresh=True)
        log_event(
            self._logger,
            CONTEXT_REFRESHED,
            {"website_id": website_id, "type_name": type_name, "mode": "rebuild"},
        )
        return context

    def invalidate(self, website_id: str) -> None:
        self._cache.pop(website_id, None)

    def clear_session(self) -> None:
        self._session_types = []
        self._cache.clear()
        log_event(self._logger, CONTEXT_SESSION_CLEARED, {})

    def populate_template(
        self,
        template: str,
        context: DynamicContext,
        extra: Mapping[str, str] | None = None,
    ) -> str:
        if context.session_types:
            session_list = ", ".join(
                f"{session.name} (created this session)" for session in context.session_types
            )
        else:
            session_list = NO_SESSION_TYPES
        values: Dict[str, str] = {
            "availableTypes": ", ".join(context.available_types),
            "existingContentTypes": context.existing_content_types,
            "reusableComponents": context.reusable_components,
            "commonProperties": context.common_properties,
            "projectContext": f"Project: {context.project_name}",
            "projectName": context.project_name,
            "websiteId": context.website_id,
            "contentTypesList": format_content_types_list(context.types),
            "componentsList": ", ".join(context.components),
            "sessionTypes": session_list,
        }
        if extra:
            values.update({key: str(value) for key, value in extra.items()})
        return _PLACEHOLDER_RE.sub(lambda match: values.get(match.group(1), match.group(0)), template)

    def load_template(self, name: str) -> str:
        if not self.config.template_dir:
            raise ConfigError("template_dir is not configured")
        base = Path(self.config.template_dir).resolve()
        path = (base / name).resolve()
        if path != base and base not in path.parents:
            raise ConfigError(f"template path escapes template directory: {name}")
        if not path.is_file():
            raise FileNotFoundError(f"template not found: {name}")
        return path.read_text(encoding="utf-8")

    async def _load(self, website_id: str, project_name: str | None) -> DynamicContext:
        definitions = await self.catalog.load_content_types(website_id)
        components = await self.catalog.load_reusable_components(website_id)
        types = [summarize_type(definition) for definition in definitions]
        context = DynamicContext(
            website_id=website_id,
            project_name=project_name or f"Project {website_id}",
            available_types=tuple(self.primitives.list_primitive_type_names()),
            existing_content_types=format_content_types(types),
            reusable_components=format_components(components),
            common_properties=common_properties(types),
            types=tuple(types),
            components=tuple(component.name for component in components),
            session_types=self.session_types,
        )
        return context.model_copy(
            update={"token_estimate": estimate_tokens(context, self.config.chars_per_token)}
        )

    def _append_type(
        self, context: DynamicContext, type_name: str, definition: ContentTypeDefinition
    ) -> DynamicContext:
        update: Dict[str, object] = {"session_types": self.session_types}
        known = {summary.name.lower() for summary in context.types}
        if type_name.lower() not in known:
            types = list(context.types) + [
                TypeSummary(
                    name=definition.name or type_name,
                    category=definition.category,
                    fields=tuple(definition.fields),
                )
            ]
            update["types"] = tuple(types)
            update["existing_content_types"] = format_content_types(types)
            update["common_properties"] = common_properties(types)
            if definition.category == ContentCategory.component.value:
                purpose = COMPONENT_PURPOSES.get(type_name, f"{type_name} content type")
                update["components"] = context.components + (type_name,)
                if context.components:
                    update["reusable_components"] = f"{context.reusable_components}; {type_name}: {purpose}"
                else:
                    update["reusable_components"] = f"{type_name}: {purpose}"
        appended = context.model_copy(update=update)
        return appended.model_copy(
            update={"token_estimate": estimate_tokens(appended, self.config.chars_per_token)}
        )

    def _prune(self, context: DynamicContext, max_tokens: int) -> DynamicContext:
        pruned = prune_context(context, max_tokens, self.config.chars_per_token)
        if pruned.pruned and not context.pruned:
            log_event(
                self._logger,
                CONTEXT_PRUNED,
                {
                    "website_id": context.website_id,
                    "before": context.token_estimate,
                    "after": pruned.token_estimate,
                    "types_kept": len(pruned.types),
                },
            )
        return pruned

    def _store(self, website_id: str, context: DynamicContext) -> None:
        self._cache[website_id] = _CacheEntry(context=context, built_at=self._clock())
        self._cache.move_to_end(website_id)
        while len(self._cache) > self.config.context_cache_size:
            self._cache.popitem(last=False)

    def _age(self, entry: _CacheEntry) -> float:
        return self._clock() - entry.built_at
