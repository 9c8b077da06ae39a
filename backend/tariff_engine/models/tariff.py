"""ORM models for the tariff store: canonical rates and their change history."""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from tariff_engine.models.base import Base, TimestampMixin


class TariffRate(Base, TimestampMixin):
    __tablename__ = "tariff_rates"
    __table_args__ = (
        UniqueConstraint(
            "hs_code", "hs_code_10", "origin_country_code", "measure_type",
            name="uq_tariff_rates_key",
        ),
        Index("ix_tariff_rates_hs_code_10", "hs_code_10"),
        Index("ix_tariff_rates_hs_code", "hs_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    hs_code: Mapped[str] = mapped_column(String(8))
    hs_code_10: Mapped[str] = mapped_column(String(10))
    # Empty string means "all origins" so the unique key stays comparable
    origin_country_code: Mapped[str] = mapped_column(String(10), default="")
    origin_country: Mapped[str | None] = mapped_column(String(200), nullable=True)
    material: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    description_translated: Mapped[str | None] = mapped_column(Text, nullable=True)
    duty_rate: Mapped[float] = mapped_column(Float, default=0.0)
    vat_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    anti_dumping_rate: Mapped[float] = mapped_column(Float, default=0.0)
    countervailing_rate: Mapped[float] = mapped_column(Float, default=0.0)
    preferential_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    has_anti_dumping: Mapped[bool] = mapped_column(Boolean, default=False)
    has_countervailing: Mapped[bool] = mapped_column(Boolean, default=False)
    measure_type: Mapped[str] = mapped_column(String(200), default="Third country duty")
    measure_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    legal_base: Mapped[str | None] = mapped_column(String(200), nullable=True)
    unit: Mapped[str | None] = mapped_column(String(50), nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class TariffRateHistory(Base):
    __tablename__ = "tariff_rate_history"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tariff_rate_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("tariff_rates.id"))
    hs_code_10: Mapped[str] = mapped_column(String(10))
    origin_country_code: Mapped[str] = mapped_column(String(10), default="")
    old_duty_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    new_duty_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    old_vat_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    new_vat_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
