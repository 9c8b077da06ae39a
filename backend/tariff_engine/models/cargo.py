"""ORM models for shipment batches and their line items."""

import enum
import uuid

from sqlalchemy import (
    Enum as SAEnum,
    Float,
    ForeignKey,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tariff_engine.models.base import Base, TimestampMixin


class MatchStatus(str, enum.Enum):
    PENDING = "pending"
    MATCHED = "matched"
    AUTO_APPROVED = "auto_approved"
    APPROVED = "approved"
    REJECTED = "rejected"


class ClearanceType(str, enum.Enum):
    NORMAL = "40"
    DEFERRED_VAT = "42"


class ImportBatch(Base, TimestampMixin):
    __tablename__ = "import_batches"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    currency: Mapped[str] = mapped_column(String(10), default="EUR")
    clearance_type: Mapped[str] = mapped_column(String(4), default=ClearanceType.NORMAL.value)

    # Trade terms
    incoterm: Mapped[str | None] = mapped_column(String(10), nullable=True)
    international_freight: Mapped[float] = mapped_column(Float, default=0.0)
    domestic_freight_export: Mapped[float] = mapped_column(Float, default=0.0)
    domestic_freight_import: Mapped[float] = mapped_column(Float, default=0.0)
    unloading_cost: Mapped[float] = mapped_column(Float, default=0.0)
    insurance_cost: Mapped[float] = mapped_column(Float, default=0.0)
    freight_allocation_method: Mapped[str] = mapped_column(String(20), default="by_value")

    # Derived from items; only written by summation
    total_value: Mapped[float] = mapped_column(Float, default=0.0)
    total_customs_value: Mapped[float] = mapped_column(Float, default=0.0)
    total_duty: Mapped[float] = mapped_column(Float, default=0.0)
    total_vat: Mapped[float] = mapped_column(Float, default=0.0)
    total_other_tax: Mapped[float] = mapped_column(Float, default=0.0)
    total_tax: Mapped[float] = mapped_column(Float, default=0.0)

    items: Mapped[list["CargoItem"]] = relationship(
        back_populates="batch", cascade="all, delete-orphan", order_by="CargoItem.line_number"
    )


class CargoItem(Base, TimestampMixin):
    __tablename__ = "cargo_items"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    batch_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("import_batches.id"))
    line_number: Mapped[int] = mapped_column(default=0)
    product_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    material: Mapped[str | None] = mapped_column(String(200), nullable=True)
    origin_country_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    matched_hs_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    match_status: Mapped[MatchStatus] = mapped_column(
        SAEnum(MatchStatus, name="match_status", values_callable=lambda e: [m.value for m in e]),
        default=MatchStatus.PENDING,
    )
    quantity: Mapped[float | None] = mapped_column(Float, nullable=True)
    weight_kg: Mapped[float] = mapped_column(Float, default=0.0)
    total_value: Mapped[float] = mapped_column(Float, default=0.0)

    # Valuation
    customs_value: Mapped[float] = mapped_column(Float, default=0.0)
    freight_allocation: Mapped[float] = mapped_column(Float, default=0.0)
    insurance_allocation: Mapped[float] = mapped_column(Float, default=0.0)
    domestic_freight_allocation: Mapped[float] = mapped_column(Float, default=0.0)
    unloading_allocation: Mapped[float] = mapped_column(Float, default=0.0)

    # Applied rates (percent)
    duty_rate: Mapped[float] = mapped_column(Float, default=0.0)
    vat_rate: Mapped[float] = mapped_column(Float, default=0.0)
    anti_dumping_rate: Mapped[float] = mapped_column(Float, default=0.0)
    countervailing_rate: Mapped[float] = mapped_column(Float, default=0.0)

    # Computed amounts
    duty_amount: Mapped[float] = mapped_column(Float, default=0.0)
    vat_amount: Mapped[float] = mapped_column(Float, default=0.0)
    anti_dumping_amount: Mapped[float] = mapped_column(Float, default=0.0)
    countervailing_amount: Mapped[float] = mapped_column(Float, default=0.0)
    other_tax_amount: Mapped[float] = mapped_column(Float, default=0.0)
    total_tax: Mapped[float] = mapped_column(Float, default=0.0)

    batch: Mapped["ImportBatch"] = relationship(back_populates="items")
