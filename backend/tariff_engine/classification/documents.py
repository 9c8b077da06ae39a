"""Pydantic models for the classification service's JSON:API documents."""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_TAGS = re.compile(r"<[^>]*>")
_SPACES = re.compile(r"\s+")


def strip_html(text: str | None) -> str:
    if not text:
        return ""
    return _SPACES.sub(" ", _TAGS.sub(" ", text)).strip()


class ResourceRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str


class Relationship(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: ResourceRef | list[ResourceRef] | None = None


class Resource(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    relationships: dict[str, Relationship] = Field(default_factory=dict)

    def attr(self, name: str, default: Any = None) -> Any:
        value = self.attributes.get(name)
        return default if value is None else value

    def related_id(self, name: str) -> str | None:
        rel = self.relationships.get(name)
        if rel is None or rel.data is None or isinstance(rel.data, list):
            return None
        return rel.data.id


class JsonApiDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: Resource
    included: list[Resource] = Field(default_factory=list)

    def of_type(self, resource_type: str) -> list[Resource]:
        return [r for r in self.included if r.type == resource_type]

    def first_of_type(self, resource_type: str) -> Resource | None:
        for resource in self.included:
            if resource.type == resource_type:
                return resource
        return None

    def related(self, resource: Resource, name: str) -> Resource | None:
        """Resolve a to-one relationship against the included resources."""
        rel = resource.relationships.get(name)
        if rel is None or rel.data is None or isinstance(rel.data, list):
            return None
        for candidate in self.included:
            if candidate.type == rel.data.type and candidate.id == rel.data.id:
                return candidate
        return None
