from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Type

from pydantic import BaseModel

from . import models

SCHEMA_TARGETS: Dict[str, Type[BaseModel]] = {
    "ToolCallRequest": models.ToolCallRequest,
    "ExecutionResult": models.ExecutionResult,
    "ContentTypeDefinition": models.ContentTypeDefinition,
    "ValidationResult": models.ValidationResult,
    "DuplicateCheckResult": models.DuplicateCheckResult,
    "DynamicContext": models.DynamicContext,
    "QualityScore": models.QualityScore,
}


def export_schemas(target_dir: Path) -> List[Path]:
    target_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for name, model in SCHEMA_TARGETS.items():
        schema_path = target_dir / f"{name}.json"
        schema_path.write_text(json.dumps(model.model_json_schema(by_alias=True), indent=2))
        written.append(schema_path)
    return written
