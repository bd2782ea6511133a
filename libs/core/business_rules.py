from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, Field, HttpUrl, ValidationError, model_validator

from .models import CamelModel
from .rule_conditions import CustomRule, RuleAction, parse_rules


class BlogRequiredFields(CamelModel):
    title: str = Field(min_length=1)
    meta_description: str = Field(min_length=1)
    tags: List[str] = Field(min_length=1)
    author: str = Field(min_length=1)
    publish_date: datetime
    content: str = Field(min_length=1)


class Dimensions(CamelModel):
    length: float = Field(gt=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class ShippingInfo(CamelModel):
    weight: float = Field(gt=0)
    dimensions: Optional[Dimensions] = None


class EcommerceRequiredFields(CamelModel):
    title: str = Field(min_length=1)
    price: float = Field(gt=0)
    sku: str = Field(min_length=1)
    inventory: int = Field(ge=0)
    product_images: List[str] = Field(min_length=1)
    shipping_info: ShippingInfo
    description: str = Field(min_length=1)


class ProjectLinks(CamelModel):
    live: Optional[HttpUrl] = None
    github: Optional[HttpUrl] = None
    demo: Optional[HttpUrl] = None

    @model_validator(mode="after")
    def _require_one_link(self) -> "ProjectLinks":
        if not (self.live or self.github or self.demo):
            raise ValueError("At least one project link is required")
        return self


class PortfolioRequiredFields(CamelModel):
    project_title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    technologies: List[str] = Field(min_length=1)
    images: List[str] = Field(min_length=1)
    links: ProjectLinks


CATEGORY_MODELS: Dict[str, Type[BaseModel]] = {
    "blog": BlogRequiredFields,
    "ecommerce": EcommerceRequiredFields,
    "portfolio": PortfolioRequiredFields,
}

REQUIRED_MESSAGES: Dict[str, Dict[str, str]] = {
    "blog": {
        "title": "Title is required",
        "metaDescription": "Meta description is required for SEO",
        "tags": "At least one tag is required",
        "author": "Author is required",
        "content": "Content is required",
    },
    "ecommerce": {
        "title": "Product title is required",
        "price": "Price must be positive",
        "sku": "SKU is required",
        "inventory": "Inventory must be non-negative",
        "productImages": "At least one product image is required",
        "description": "Product description is required",
    },
    "portfolio": {
        "projectTitle": "Project title is required",
        "description": "Project description is required",
        "technologies": "At least one technology is required",
        "images": "At least one project image is required",
    },
}

CONTENT_TYPE_FIELDS: Dict[str, Dict[str, List[str]]] = {
    "blog": {
        "article": ["title", "content", "author", "publishDate", "tags", "metaDescription", "featuredImage"],
        "news": ["title", "content", "author", "publishDate", "tags", "metaDescription", "source", "breaking"],
        "tutorial": [
            "title", "content", "author", "publishDate", "tags", "metaDescription",
            "difficulty", "duration", "prerequisites",
        ],
    },
    "ecommerce": {
        "product": [
            "title", "price", "sku", "inventory", "productImages", "description",
            "shippingInfo", "category", "variants",
        ],
        "category": ["name", "description", "parentCategory", "image", "seoMetadata"],
        "promotion": ["code", "discount", "startDate", "endDate", "conditions", "applicableProducts"],
    },
    "portfolio": {
        "project": ["projectTitle", "description", "technologies", "images", "links", "client", "duration", "role"],
        "casestudy": [
            "projectTitle", "description", "technologies", "images", "links",
            "challenge", "solution", "results", "testimonial",
        ],
        "showcase": ["projectTitle", "description", "technologies", "images", "links", "awards", "metrics"],
    },
}

FIELD_SUGGESTIONS: Dict[str, Dict[str, List[str]]] = {
    "blog": {
        "seo": ["canonicalUrl", "ogImage", "ogDescription", "keywords", "structuredData"],
        "engagement": ["commentsEnabled", "relatedPosts", "callToAction", "newsletter", "socialSharing"],
        "analytics": ["viewCount", "readTime", "shareCount", "trackingId"],
    },
    "ecommerce": {
        "marketing": ["crossSells", "upSells", "bundles", "reviews", "ratings"],
        "inventory": ["reorderPoint", "leadTime", "supplier", "warehouseLocation", "backorderAllowed"],
        "pricing": ["compareAtPrice", "costPerItem", "taxable", "taxCode", "wholesalePrice"],
    },
    "portfolio": {
        "credibility": ["clientTestimonial", "projectBudget", "teamSize", "awards", "press"],
        "technical": ["architecture", "performance", "scalability", "security", "deployment"],
        "results": ["metrics", "roi", "userGrowth", "revenue", "efficiency"],
    },
}


class RuleViolation(BaseModel):
    field: str
    message: str


class CategoryValidation(BaseModel):
    valid: bool
    errors: List[RuleViolation] = Field(default_factory=list)
    warnings: List[RuleViolation] = Field(default_factory=list)


class BusinessRulesEngine:
    """Category-specific required fields plus optional custom rules.

    A custom rule fires when its condition evaluates true for the data; its
    message is then reported as an error or a warning according to its
    action.
    """

    def __init__(self, custom_rules: Iterable[CustomRule] = ()) -> None:
        self.custom_rules: List[CustomRule] = list(custom_rules)

    @classmethod
    def from_config(cls, raw_rules: Iterable[Mapping[str, Any]]) -> "BusinessRulesEngine":
        return cls(parse_rules(list(raw_rules)))

    def validate_for_category(self, data: Mapping[str, Any], category: str) -> CategoryValidation:
        key = category.lower()
        model = CATEGORY_MODELS.get(key)
        if model is None:
            return CategoryValidation(
                valid=False,
                errors=[RuleViolation(field="category", message=f"Unknown category: {category}")],
            )

        errors: List[RuleViolation] = []
        try:
            model.model_validate(dict(data))
        except ValidationError as exc:
            errors.extend(self._violations(key, exc))

        warnings = [
            RuleViolation(field=name, message=f"Consider adding '{name}' for better content quality")
            for name in self._all_suggestions(key)
            if name not in data
        ]
        rule_errors, rule_warnings = self.check_custom_rules(data)
        errors.extend(rule_errors)
        warnings.extend(rule_warnings)
        return CategoryValidation(valid=not errors, errors=errors, warnings=warnings)

    def check_custom_rules(
        self, data: Mapping[str, Any]
    ) -> Tuple[List[RuleViolation], List[RuleViolation]]:
        errors: List[RuleViolation] = []
        warnings: List[RuleViolation] = []
        for rule in self.custom_rules:
            if not rule.check(data):
                continue
            violation = RuleViolation(field=rule.name, message=rule.message)
            if rule.action is RuleAction.error:
                errors.append(violation)
            else:
                warnings.append(violation)
        return errors, warnings

    def get_required_fields(self, category: str, content_type: str | None = None) -> List[str]:
        key = category.lower()
        if content_type:
            typical = CONTENT_TYPE_FIELDS.get(key, {}).get(content_type.lower())
            if typical:
                return list(typical)
        model = CATEGORY_MODELS.get(key)
        if model is None:
            return []
        return [info.alias or name for name, info in model.model_fields.items()]

    def suggest_fields(self, category: str, purpose: str) -> List[str]:
        key = category.lower()
        specific = FIELD_SUGGESTIONS.get(key, {}).get(purpose.lower(), [])
        return list(dict.fromkeys([*specific, *self._all_suggestions(key)]))

    def _all_suggestions(self, key: str) -> List[str]:
        merged: List[str] = []
        for names in FIELD_SUGGESTIONS.get(key, {}).values():
            merged.extend(names)
        return list(dict.fromkeys(merged))

    def _violations(self, key: str, exc: ValidationError) -> List[RuleViolation]:
        messages = REQUIRED_MESSAGES.get(key, {})
        violations: List[RuleViolation] = []
        for error in exc.errors():
            path = ".".join(str(part) for part in error["loc"])
            message = messages.get(path) if len(error["loc"]) == 1 else None
            violations.append(RuleViolation(field=path, message=message or error["msg"]))
        return violations
