__all__ = [
    "models",
    "errors",
    "config",
    "events",
    "schemas",
    "tool_registry",
    "state_machine",
    "primitive_types",
    "catalogs",
    "input_sanitizer",
    "duplicate_scoring",
    "content_type_validator",
    "quality_score",
    "type_context",
    "business_rules",
    "rule_conditions",
    "store",
    "tracing",
    "logging",
]
