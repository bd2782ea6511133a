from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from .errors import ConfigError

DEFAULT_SEMANTIC_GROUPS: Tuple[Tuple[str, ...], ...] = (
    ("BlogPost", "ArticlePage", "NewsItem", "Post"),
    ("ProductPage", "ItemPage", "CatalogItem", "Product"),
    ("LandingPage", "MarketingPage", "CampaignPage"),
    ("HeroSection", "HeroBanner", "HeroComponent"),
    ("CTASection", "CTAComponent", "CallToAction"),
)


@dataclass(frozen=True)
class EngineConfig:
    default_timeout_ms: float = 30000
    context_ttl_s: float = 300
    fresh_append_window_s: float = 60
    context_cache_size: int = 100
    duplicate_threshold: float = 80
    extend_threshold: float = 50
    exact_match_overlap: float = 100
    semantic_match_overlap: float = 90
    content_area_confidence: float = 75
    cta_confidence: float = 80
    max_type_name_length: int = 50
    chars_per_token: int = 4
    semantic_groups: Tuple[Tuple[str, ...], ...] = field(default=DEFAULT_SEMANTIC_GROUPS)
    template_dir: str | None = None

    def __post_init__(self) -> None:
        if self.default_timeout_ms <= 0:
            raise ConfigError("default_timeout_ms must be positive")
        if self.context_ttl_s <= 0 or self.fresh_append_window_s <= 0:
            raise ConfigError("context ttl values must be positive")
        if self.context_cache_size < 1:
            raise ConfigError("context_cache_size must be at least 1")
        if not 0 <= self.extend_threshold <= self.duplicate_threshold <= 100:
            raise ConfigError("thresholds must satisfy 0 <= extend_threshold <= duplicate_threshold <= 100")
        if self.chars_per_token < 1:
            raise ConfigError("chars_per_token must be at least 1")


def load_engine_config(path: str | Path | None = None, **overrides: Any) -> EngineConfig:
    config = EngineConfig()
    values: Dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"config file not found: {config_path}")
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ConfigError("config file must contain a mapping")
        section = data.get("engine", {})
        if not isinstance(section, dict):
            raise ConfigError("engine section must be a mapping")
        values.update(section)
    values.update(overrides)
    known = {item.name for item in fields(EngineConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"unknown engine config keys: {', '.join(unknown)}")
    if "semantic_groups" in values:
        values["semantic_groups"] = _coerce_groups(values["semantic_groups"])
    return replace(config, **values)


def _coerce_groups(raw: Any) -> Tuple[Tuple[str, ...], ...]:
    if not isinstance(raw, (list, tuple)):
        raise ConfigError("semantic_groups must be a list of lists")
    groups: List[Tuple[str, ...]] = []
    for group in raw:
        if not isinstance(group, (list, tuple)) or not all(isinstance(name, str) for name in group):
            raise ConfigError("each semantic group must be a list of type names")
        groups.append(tuple(group))
    return tuple(groups)
