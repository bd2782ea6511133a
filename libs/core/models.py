from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Severity(str, Enum):
    critical = "critical"
    high = "high"
    medium = "medium"


class SuggestionType(str, Enum):
    reuse = "reuse"
    extend = "extend"
    rename = "rename"
    optimize = "optimize"


class Recommendation(str, Enum):
    use_existing = "use_existing"
    extend_existing = "extend_existing"
    create_new = "create_new"


class RelationType(str, Enum):
    one_to_one = "oneToOne"
    one_to_many = "oneToMany"
    many_to_one = "manyToOne"
    many_to_many = "manyToMany"


class ContentCategory(str, Enum):
    page = "page"
    component = "component"


class ExecutionState(str, Enum):
    received = "received"
    validating = "validating"
    validation_failed = "validation_failed"
    validated = "validated"
    executing = "executing"
    timed_out = "timed_out"
    completed = "completed"
    threw = "threw"


class ContentItemStatus(str, Enum):
    draft = "draft"
    published = "published"
    archived = "archived"


class ExecutionMetadata(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    execution_time_ms: float = 0.0
    tool_name: str = ""
    validated: Optional[bool] = None
    transactional: Optional[bool] = None
    state: Optional[ExecutionState] = None


class ExecutionResult(CamelModel):
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: ExecutionMetadata = Field(default_factory=ExecutionMetadata)

    @classmethod
    def ok(cls, data: Any = None, **metadata: Any) -> "ExecutionResult":
        return cls(success=True, data=data, metadata=ExecutionMetadata(**metadata))

    @classmethod
    def fail(
        cls, error: str, error_code: Optional[str] = None, data: Any = None, **metadata: Any
    ) -> "ExecutionResult":
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            data=data,
            metadata=ExecutionMetadata(**metadata),
        )


class ToolSpec(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, arbitrary_types_allowed=True
    )

    name: str = Field(min_length=1)
    description: str = ""
    parameter_schema: Any = None
    requires_transaction: bool = False
    timeout_ms: Optional[float] = None


class ToolCallRequest(CamelModel):
    name: str
    params: Dict[str, Any] = Field(default_factory=dict)


class FieldDefinition(CamelModel):
    name: str
    type: str
    required: bool = False
    label: Optional[str] = None
    validation: Optional[Dict[str, Any]] = None


class RelationshipDefinition(CamelModel):
    name: str
    relation_type: str = Field(validation_alias=AliasChoices("relationType", "relation_type", "type"))
    target_type: str


class ContentTypeDefinition(CamelModel):
    name: str
    category: str = ContentCategory.page.value
    fields: List[FieldDefinition] = Field(default_factory=list)
    relationships: Optional[List[RelationshipDefinition]] = None


class ValidationError(BaseModel):
    field: str
    message: str
    severity: Severity


class ValidationWarning(BaseModel):
    field: str
    message: str


class ValidationSuggestion(CamelModel):
    type: SuggestionType
    message: str
    existing_type: Optional[str] = None
    confidence: float


class DuplicateCheckResult(CamelModel):
    is_duplicate: bool
    match_type: Optional[str] = None
    overlap_percentage: float = 0.0
    recommendation: Recommendation = Recommendation.create_new


class ValidationResult(CamelModel):
    is_valid: bool
    errors: List[ValidationError] = Field(default_factory=list)
    warnings: List[ValidationWarning] = Field(default_factory=list)
    suggestions: List[ValidationSuggestion] = Field(default_factory=list)
    duplicate_check: DuplicateCheckResult

    def errors_for(self, field: str) -> List[ValidationError]:
        return [error for error in self.errors if error.field == field]


class ReusableComponent(BaseModel):
    name: str
    purpose: str = ""


class SessionType(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    created_at: datetime


class TypeSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    category: str = ContentCategory.page.value
    fields: Tuple[FieldDefinition, ...] = ()
    field_summary: Optional[str] = None


class DynamicContext(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    website_id: str
    project_name: str
    available_types: Tuple[str, ...] = ()
    existing_content_types: str = ""
    reusable_components: str = ""
    common_properties: str = ""
    types: Tuple[TypeSummary, ...] = ()
    components: Tuple[str, ...] = ()
    session_types: Tuple[SessionType, ...] = ()
    token_estimate: int = 0
    pruned: bool = False


class QualityThreshold(str, Enum):
    automatic = "automatic"
    review = "review"
    manual = "manual"
    rejected = "rejected"


class QualityBreakdown(CamelModel):
    type_compatibility: int
    field_mapping: int
    validation_completeness: int
    platform_support: int


class QualityScore(CamelModel):
    total: int
    breakdown: QualityBreakdown
    threshold: QualityThreshold
    recommendation: str
