"""Tariff store, import batches and audit log

Revision ID: 001_tariff_engine
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import ENUM as PgENUM
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_tariff_engine"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    # ── Enum types via raw SQL (avoids sa.Enum auto-create conflicts) ──
    op.execute(
        "CREATE TYPE match_status AS ENUM ('pending', 'matched', 'auto_approved', 'approved', 'rejected')"
    )
    match_status = PgENUM(
        "pending", "matched", "auto_approved", "approved", "rejected",
        name="match_status", create_type=False,
    )

    # ── Tariff store ──
    op.create_table(
        "tariff_rates",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("hs_code", sa.String(8), nullable=False),
        sa.Column("hs_code_10", sa.String(10), nullable=False),
        sa.Column("origin_country_code", sa.String(10), nullable=False, server_default=""),
        sa.Column("origin_country", sa.String(200), nullable=True),
        sa.Column("material", sa.String(200), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("description_translated", sa.Text, nullable=True),
        sa.Column("duty_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("vat_rate", sa.Float, nullable=True),
        sa.Column("anti_dumping_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("countervailing_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column("preferential_rate", sa.Float, nullable=True),
        sa.Column("has_anti_dumping", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("has_countervailing", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("measure_type", sa.String(200), nullable=False, server_default="Third country duty"),
        sa.Column("measure_code", sa.String(10), nullable=True),
        sa.Column("legal_base", sa.String(200), nullable=True),
        sa.Column("unit", sa.String(50), nullable=True),
        sa.Column("start_date", sa.Date, nullable=True),
        sa.Column("end_date", sa.Date, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint(
            "hs_code", "hs_code_10", "origin_country_code", "measure_type",
            name="uq_tariff_rates_key",
        ),
    )

    op.create_table(
        "tariff_rate_history",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tariff_rate_id", UUID(as_uuid=True), sa.ForeignKey("tariff_rates.id"), nullable=False),
        sa.Column("hs_code_10", sa.String(10), nullable=False),
        sa.Column("origin_country_code", sa.String(10), nullable=False, server_default=""),
        sa.Column("old_duty_rate", sa.Float, nullable=True),
        sa.Column("new_duty_rate", sa.Float, nullable=True),
        sa.Column("old_vat_rate", sa.Float, nullable=True),
        sa.Column("new_vat_rate", sa.Float, nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── Shipment line items ──
    op.create_table(
        "import_batches",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("reference", sa.String(100), nullable=True),
        sa.Column("currency", sa.String(10), nullable=False, server_default="EUR"),
        sa.Column("clearance_type", sa.String(4), nullable=False, server_default="40"),
        sa.Column("incoterm", sa.String(10), nullable=True),
        sa.Column("international_freight", sa.Float, nullable=False, server_default="0"),
        sa.Column("domestic_freight_export", sa.Float, nullable=False, server_default="0"),
        sa.Column("domestic_freight_import", sa.Float, nullable=False, server_default="0"),
        sa.Column("unloading_cost", sa.Float, nullable=False, server_default="0"),
        sa.Column("insurance_cost", sa.Float, nullable=False, server_default="0"),
        sa.Column("freight_allocation_method", sa.String(20), nullable=False, server_default="by_value"),
        sa.Column("total_value", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_customs_value", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_duty", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_vat", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_other_tax", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_tax", sa.Float, nullable=False, server_default="0"),
        *_timestamps(),
    )

    money = (
        "customs_value", "freight_allocation", "insurance_allocation",
        "domestic_freight_allocation", "unloading_allocation",
        "duty_rate", "vat_rate", "anti_dumping_rate", "countervailing_rate",
        "duty_amount", "vat_amount", "anti_dumping_amount", "countervailing_amount",
        "other_tax_amount", "total_tax",
    )
    op.create_table(
        "cargo_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "batch_id", UUID(as_uuid=True),
            sa.ForeignKey("import_batches.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("line_number", sa.Integer, nullable=False, server_default="0"),
        sa.Column("product_name", sa.Text, nullable=True),
        sa.Column("material", sa.String(200), nullable=True),
        sa.Column("origin_country_code", sa.String(10), nullable=True),
        sa.Column("matched_hs_code", sa.String(10), nullable=True),
        sa.Column("match_status", match_status, nullable=False, server_default="pending"),
        sa.Column("quantity", sa.Float, nullable=True),
        sa.Column("weight_kg", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_value", sa.Float, nullable=False, server_default="0"),
        *[sa.Column(name, sa.Float, nullable=False, server_default="0") for name in money],
        *_timestamps(),
    )

    # ── Audit log ──
    op.create_table(
        "audit_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=True),
        sa.Column("entity_id", UUID(as_uuid=True), nullable=True),
        sa.Column("actor", sa.String(200), nullable=False, server_default="system"),
        sa.Column("event_data", sa.JSON, nullable=True),
        sa.Column("previous_state", sa.JSON, nullable=True),
        sa.Column("new_state", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── Indexes ──
    op.create_index("ix_tariff_rates_hs_code_10", "tariff_rates", ["hs_code_10"])
    op.create_index("ix_tariff_rates_hs_code", "tariff_rates", ["hs_code"])
    op.create_index("ix_tariff_rate_history_tariff_rate_id", "tariff_rate_history", ["tariff_rate_id"])
    op.create_index("ix_cargo_items_batch_id", "cargo_items", ["batch_id"])
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_events_entity")
    op.drop_index("ix_cargo_items_batch_id")
    op.drop_index("ix_tariff_rate_history_tariff_rate_id")
    op.drop_index("ix_tariff_rates_hs_code")
    op.drop_index("ix_tariff_rates_hs_code_10")
    op.drop_table("audit_events")
    op.drop_table("cargo_items")
    op.drop_table("import_batches")
    op.drop_table("tariff_rate_history")
    op.drop_table("tariff_rates")
    op.execute("DROP TYPE IF EXISTS match_status")
