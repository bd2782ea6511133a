from __future__ import annotations

from typing import Optional

from libs.framework.tool_runtime import ToolExecutor, ToolRegistry
from libs.tools.content_items import register_content_item_tools
from libs.tools.content_types import register_content_type_tools
from libs.tools.website import register_website_tools

from .business_rules import BusinessRulesEngine
from .catalogs import ContentTypeCatalog
from .config import EngineConfig
from .primitive_types import PrimitiveTypeCatalog
from .store import SqlStore, StoreTypeCatalog
from .type_context import DynamicContextBuilder


def default_registry(
    store: SqlStore,
    primitives: Optional[PrimitiveTypeCatalog] = None,
    type_catalog: Optional[ContentTypeCatalog] = None,
    config: Optional[EngineConfig] = None,
    *,
    context_builder: Optional[DynamicContextBuilder] = None,
    rules: Optional[BusinessRulesEngine] = None,
) -> ToolRegistry:
    """Registry holding the website, content-type and content-item tools.

    Mutating tools write through the transaction the executor hands them;
    the context builder is refreshed only after those transactions commit.
    """
    config = config or EngineConfig()
    primitives = primitives or PrimitiveTypeCatalog()
    type_catalog = type_catalog or StoreTypeCatalog(store)
    context_builder = context_builder or DynamicContextBuilder(primitives, type_catalog, config=config)
    rules = rules or BusinessRulesEngine()

    registry = ToolRegistry()
    register_website_tools(registry, store=store, context_builder=context_builder, rules=rules)
    register_content_type_tools(
        registry, primitives=primitives, context_builder=context_builder, config=config
    )
    register_content_item_tools(registry, store=store, primitives=primitives, rules=rules)
    return registry


def default_executor(
    store: SqlStore,
    primitives: Optional[PrimitiveTypeCatalog] = None,
    type_catalog: Optional[ContentTypeCatalog] = None,
    config: Optional[EngineConfig] = None,
    *,
    context_builder: Optional[DynamicContextBuilder] = None,
) -> ToolExecutor:
    config = config or EngineConfig()
    registry = default_registry(
        store, primitives, type_catalog, config, context_builder=context_builder
    )
    return ToolExecutor(registry, store=store, config=config)
