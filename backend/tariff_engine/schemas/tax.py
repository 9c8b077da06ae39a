"""Pydantic schemas for import tax calculation results."""

import uuid

from pydantic import BaseModel, Field


class BatchTotalsResponse(BaseModel):
    total_value: float = 0.0
    total_customs_value: float = 0.0
    total_duty: float = 0.0
    total_vat: float = 0.0
    total_other_tax: float = 0.0
    total_tax: float = 0.0

    model_config = {"from_attributes": True}


class ItemTaxResponse(BaseModel):
    item_id: uuid.UUID
    line_number: int
    hs_code: str | None = None
    origin_country_code: str | None = None
    total_value: float
    customs_value: float
    freight_allocation: float = 0.0
    insurance_allocation: float = 0.0
    duty_rate: float = 0.0
    vat_rate: float = 0.0
    anti_dumping_rate: float = 0.0
    countervailing_rate: float = 0.0
    duty_amount: float = 0.0
    anti_dumping_amount: float = 0.0
    countervailing_amount: float = 0.0
    other_tax_amount: float = 0.0
    vat_amount: float = 0.0
    total_tax: float = 0.0

    model_config = {"from_attributes": True}


class ItemErrorResponse(BaseModel):
    item_id: uuid.UUID
    line_number: int
    error: str

    model_config = {"from_attributes": True}


class BatchTaxResponse(BaseModel):
    batch_id: uuid.UUID
    incoterm: str
    duties_prepaid: bool = False
    totals: BatchTotalsResponse
    items: list[ItemTaxResponse] = Field(default_factory=list)
    item_errors: list[ItemErrorResponse] = Field(default_factory=list)
    processing_time_ms: int = 0

    model_config = {"from_attributes": True}


class HsCodeBreakdownResponse(BaseModel):
    hs_code: str
    item_count: int
    customs_value: float
    duty: float
    vat: float
    other_tax: float
    total_tax: float

    model_config = {"from_attributes": True}


class TaxDetailsResponse(BaseModel):
    batch_id: uuid.UUID
    clearance_type: str
    is_deferred: bool
    totals: BatchTotalsResponse
    payable_vat: float
    deferred_vat: float
    payable_total: float
    by_hs_code: list[HsCodeBreakdownResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}
