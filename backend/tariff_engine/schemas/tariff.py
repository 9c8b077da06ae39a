"""Pydantic schemas for tariff rate lookups."""

from pydantic import BaseModel, Field

from tariff_engine.tariff_merger.measures import MeasureKind


class MeasureSummaryResponse(BaseModel):
    type: str
    type_id: str | None = None
    kind: MeasureKind
    geographical_area: str | None = None
    geographical_area_id: str | None = None
    duty_expression: str | None = None
    rate: float | None = None
    start_date: str | None = None
    end_date: str | None = None
    type_translated: str | None = None
    geographical_area_translated: str | None = None

    model_config = {"from_attributes": True}


class SuggestedCodeResponse(BaseModel):
    code: str
    description: str

    model_config = {"from_attributes": True}


class RateLookupResponse(BaseModel):
    hs_code: str
    hs_code_10: str
    original_hs_code: str
    matched_hs_code: str
    exact_match: bool = True
    description: str = ""
    origin_country_code: str | None = None
    duty_rate: float | None = None
    vat_rate: float | None = None
    anti_dumping_rate: float | None = None
    countervailing_rate: float | None = None
    measures: list[MeasureSummaryResponse] = Field(default_factory=list)
    suggested_codes: list[SuggestedCodeResponse] = Field(default_factory=list)
    note: str | None = None

    model_config = {"from_attributes": True}


class BatchLookupErrorResponse(BaseModel):
    hs_code: str
    error: str

    model_config = {"from_attributes": True}


class BatchLookupResponse(BaseModel):
    results: list[RateLookupResponse] = Field(default_factory=list)
    errors: list[BatchLookupErrorResponse] = Field(default_factory=list)
    total_count: int = 0

    model_config = {"from_attributes": True}
