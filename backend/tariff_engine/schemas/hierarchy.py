"""Pydantic schemas for classification hierarchy views."""

from pydantic import BaseModel, Field

from tariff_engine.schemas.tariff import RateLookupResponse


class BreadcrumbEntryResponse(BaseModel):
    code: str
    description: str
    level: str
    indent: int | None = None
    description_translated: str | None = None

    model_config = {"from_attributes": True}


class HsNodeResponse(BaseModel):
    code: str
    description: str
    level: str
    indent: int
    declarable: bool
    description_translated: str | None = None
    rates: RateLookupResponse | None = None

    model_config = {"from_attributes": True}


class ChildGroupResponse(BaseModel):
    code: str | None = None
    title: str
    title_translated: str | None = None
    children: list[HsNodeResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class HierarchyResponse(BaseModel):
    code: str
    description: str = ""
    description_translated: str | None = None
    level: str = ""
    section: BreadcrumbEntryResponse | None = None
    breadcrumb: list[BreadcrumbEntryResponse] = Field(default_factory=list)
    ancestors: list[HsNodeResponse] = Field(default_factory=list)
    children: list[HsNodeResponse] = Field(default_factory=list)
    child_groups: list[ChildGroupResponse] = Field(default_factory=list)
    total_children: int = 0
    declarable_count: int = 0
    is_declarable: bool = False
    has_more: bool = False
    error: str | None = None

    model_config = {"from_attributes": True}
