from __future__ import annotations

from typing import Dict, Iterable, List, Protocol

from .models import ContentTypeDefinition, ReusableComponent

COMPONENT_PURPOSES: Dict[str, str] = {
    "ContentArea": "Flexible content container for rich media and text",
    "CTAComponent": "Call-to-action component with button and text",
    "HeroSection": "Hero banner with media and CTA",
    "MediaGallery": "Gallery component for multiple images/videos",
    "RelatedContent": "Component for linking related items",
    "NavigationMenu": "Site navigation component",
    "MetaTags": "SEO metadata properties",
}


class PrimitiveCatalog(Protocol):
    def list_primitive_type_names(self) -> List[str]: ...

    def free_form_type_names(self) -> List[str]: ...


class ContentTypeCatalog(Protocol):
    async def load_content_types(self, website_id: str) -> List[ContentTypeDefinition]: ...

    async def load_reusable_components(self, website_id: str) -> List[ReusableComponent]: ...


class StaticTypeCatalog:
    """In-memory catalog keyed by website id."""

    def __init__(
        self,
        content_types: Dict[str, Iterable[ContentTypeDefinition]] | None = None,
        components: Dict[str, Iterable[ReusableComponent]] | None = None,
    ) -> None:
        self._content_types = {key: list(value) for key, value in (content_types or {}).items()}
        self._components = {key: list(value) for key, value in (components or {}).items()}

    def add_content_type(self, website_id: str, definition: ContentTypeDefinition) -> None:
        self._content_types.setdefault(website_id, []).append(definition)

    async def load_content_types(self, website_id: str) -> List[ContentTypeDefinition]:
        return list(self._content_types.get(website_id, []))

    async def load_reusable_components(self, website_id: str) -> List[ReusableComponent]:
        explicit = self._components.get(website_id)
        if explicit is not None:
            return list(explicit)
        return [
            ReusableComponent(
                name=definition.name,
                purpose=COMPONENT_PURPOSES.get(definition.name, f"{definition.name} content type"),
            )
            for definition in self._content_types.get(website_id, [])
            if definition.category == "component"
        ]
