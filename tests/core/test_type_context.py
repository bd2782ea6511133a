import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from libs.core.catalogs import StaticTypeCatalog
from libs.core.config import EngineConfig
from libs.core.errors import ConfigError
from libs.core.models import ContentTypeDefinition, FieldDefinition
from libs.core.primitive_types import PrimitiveTypeCatalog
from libs.core.type_context import (
    NO_COMPONENTS,
    NO_CONTENT_TYPES,
    NO_SESSION_TYPES,
    DynamicContextBuilder,
    estimate_tokens,
    prune_context,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _definition(name, category="page", **fields):
    return ContentTypeDefinition(
        name=name,
        category=category,
        fields=[
            FieldDefinition(name=field, type=field_type.rstrip("*"), required=field_type.endswith("*"))
            for field, field_type in fields.items()
        ],
    )


def _builder(catalog, clock=None, **config):
    times = iter(datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=i) for i in range(100))
    return DynamicContextBuilder(
        PrimitiveTypeCatalog(),
        catalog,
        config=EngineConfig(**config),
        clock=clock or FakeClock(),
        now=lambda: next(times),
    )


def _catalog():
    return StaticTypeCatalog(
        {
            "site-1": [
                _definition("BlogPost", title="Text*", body="LongText"),
                _definition("Author", title="Text*", bio="LongText"),
                _definition("HeroSection", category="component", title="Text*"),
            ]
        }
    )


def test_build_context_formats_catalog():
    builder = _builder(_catalog())
    context = asyncio.run(builder.build_context("site-1", "Acme"))
    assert context.project_name == "Acme"
    assert context.available_types[0] == "Text"
    assert context.existing_content_types.startswith("BlogPost (title: Text*, body: LongText); ")
    assert context.reusable_components == "HeroSection: Hero banner with media and CTA"
    assert context.common_properties == "title: Text (used in 3 types)"
    assert context.components == ("HeroSection",)
    assert context.token_estimate == estimate_tokens(context)
    assert not context.pruned


def test_empty_website_uses_placeholders():
    context = asyncio.run(_builder(StaticTypeCatalog()).build_context("empty"))
    assert context.existing_content_types == NO_CONTENT_TYPES
    assert context.reusable_components == NO_COMPONENTS
    assert context.project_name == "Project empty"


def test_cached_context_is_served_until_ttl_expires():
    catalog = _catalog()
    clock = FakeClock()
    builder = _builder(catalog, clock=clock, context_ttl_s=300)
    first = asyncio.run(builder.build_context("site-1"))

    catalog.add_content_type("site-1", _definition("Recipe", title="Text*"))
    clock.now += 299
    assert asyncio.run(builder.build_context("site-1")).types == first.types

    clock.now += 2
    refreshed = asyncio.run(builder.build_context("site-1"))
    assert "Recipe" in [summary.name for summary in refreshed.types]
    assert first.types != refreshed.types


def test_refresh_flag_bypasses_cache():
    catalog = _catalog()
    builder = _builder(catalog)
    asyncio.run(builder.build_context("site-1"))
    catalog.add_content_type("site-1", _definition("Recipe", title="Text*"))
    context = asyncio.run(builder.build_context("site-1", refresh=True))
    assert len(context.types) == 4


def test_session_types_accumulate_in_order():
    builder = _builder(_catalog())

    async def scenario():
        await builder.refresh_with_new_type("site-1", "Recipe")
        return await builder.refresh_with_new_type("site-1", "Ingredient")

    context = asyncio.run(scenario())
    assert [session.name for session in context.session_types] == ["Recipe", "Ingredient"]
    assert context.session_types[0].created_at < context.session_types[1].created_at
    assert [session.name for session in builder.session_types] == ["Recipe", "Ingredient"]


def test_fresh_cache_is_appended_without_reload():
    catalog = _catalog()
    builder = _builder(catalog)
    before = asyncio.run(builder.build_context("site-1"))
    definition = _definition("CTABlock", category="component", title="Text*")
    after = asyncio.run(builder.refresh_with_new_type("site-1", "CTABlock", definition))

    assert before.types[-1].name == "HeroSection"
    assert after.types[-1].name == "CTABlock"
    assert after.components == ("HeroSection", "CTABlock")
    assert after.reusable_components.endswith("; CTABlock: CTABlock content type")
    assert len(before.types) == 3
    assert builder.cached("site-1") is after


def test_stale_cache_is_rebuilt_on_refresh():
    catalog = _catalog()
    clock = FakeClock()
    builder = _builder(catalog, clock=clock, fresh_append_window_s=60)
    asyncio.run(builder.build_context("site-1"))
    clock.now += 61
    catalog.add_content_type("site-1", _definition("Recipe", title="Text*", steps="Json"))
    context = asyncio.run(
        builder.refresh_with_new_type("site-1", "Recipe", _definition("Recipe", title="Text*"))
    )
    recipe = [summary for summary in context.types if summary.name == "Recipe"][0]
    assert [field.name for field in recipe.fields] == ["title", "steps"]


def test_invalidate_and_clear_session():
    builder = _builder(_catalog())
    asyncio.run(builder.refresh_with_new_type("site-1", "Recipe"))
    builder.invalidate("site-1")
    assert builder.cached("site-1") is None
    asyncio.run(builder.build_context("site-1"))
    builder.clear_session()
    assert builder.session_types == ()
    assert builder.cached("site-1") is None


def test_cache_is_bounded():
    builder = _builder(StaticTypeCatalog(), context_cache_size=2)
    for website_id in ("a", "b", "c"):
        asyncio.run(builder.build_context(website_id))
    assert builder.cached("a") is None
    assert builder.cached("c") is not None


def test_prune_collapses_field_lists_before_dropping_types():
    context = asyncio.run(_builder(_catalog()).build_context("site-1"))
    budget = context.token_estimate - 5
    pruned = prune_context(context, budget)
    assert pruned.pruned
    assert pruned.token_estimate <= budget
    assert len(pruned.types) == 3
    assert any(summary.field_summary == "2 fields" for summary in pruned.types)


def test_prune_drops_types_when_collapsing_is_not_enough():
    context = asyncio.run(_builder(_catalog()).build_context("site-1"))
    floor = estimate_tokens(context.model_copy(update={"existing_content_types": NO_CONTENT_TYPES}))
    pruned = prune_context(context, floor)
    assert pruned.pruned
    assert len(pruned.types) < 3
    assert pruned.token_estimate <= floor


def test_context_within_budget_is_not_pruned():
    builder = _builder(_catalog())
    context = asyncio.run(builder.build_context("site-1", max_tokens=10_000))
    assert not context.pruned
    assert builder.cached("site-1").types == context.types


def test_populate_template():
    builder = _builder(_catalog())
    context = asyncio.run(builder.build_context("site-1", "Acme"))
    rendered = builder.populate_template(
        "{{projectContext}} | {{componentsList}} | {{sessionTypes}} | {{tone}} | {{unknown}}",
        context,
        {"tone": "friendly"},
    )
    assert rendered == f"Project: Acme | HeroSection | {NO_SESSION_TYPES} | friendly | {{{{unknown}}}}"


def test_load_template(tmp_path):
    (tmp_path / "system.txt").write_text("Types: {{availableTypes}}", encoding="utf-8")
    builder = _builder(_catalog(), template_dir=str(tmp_path))
    assert builder.load_template("system.txt") == "Types: {{availableTypes}}"
    with pytest.raises(ConfigError):
        builder.load_template("../secrets.txt")
    with pytest.raises(FileNotFoundError):
        builder.load_template("missing.txt")


def test_load_template_requires_directory():
    with pytest.raises(ConfigError):
        _builder(_catalog()).load_template("system.txt")
