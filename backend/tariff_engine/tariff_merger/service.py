"""CatalogService — persists merged tariff catalogs into the tariff store.

Flow:
1. Parse classification and duty sheets (rate_parser)
2. Merge into an immutable TariffCatalog (pure, no I/O)
3. Upsert every record by (hs_code, hs_code_10, origin, measure_type)
4. Write rate history for duty/VAT changes
5. Deactivate rows the new snapshot no longer contains
6. Log an audit event
"""

import logging
import time
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tariff_engine.config import Settings
from tariff_engine.models.tariff import TariffRate, TariffRateHistory
from tariff_engine.observability import log_operation
from tariff_engine.rate_parser.parser import (
    RawSheet,
    parse_classification_sheets,
    parse_measure_sheets,
)
from tariff_engine.services.audit_service import AuditService
from tariff_engine.tariff_merger.merger import CanonicalTariffRecord, TariffCatalog, merge_catalog

logger = logging.getLogger("tariff.catalog")

# Fields copied from a canonical record onto its store row
RECORD_FIELDS = (
    "origin_country",
    "description",
    "description_translated",
    "duty_rate",
    "vat_rate",
    "anti_dumping_rate",
    "countervailing_rate",
    "preferential_rate",
    "has_anti_dumping",
    "has_countervailing",
    "measure_code",
    "legal_base",
    "unit",
    "start_date",
    "end_date",
)

RateKey = tuple[str, str, str, str]


@dataclass
class CatalogRefreshResult:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    deactivated: int = 0
    duplicates: int = 0
    history_rows: int = 0
    processing_time_ms: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.unchanged


def record_key(record: CanonicalTariffRecord) -> RateKey:
    return (
        record.hs_code,
        record.hs_code_10,
        record.origin_country_code or "",
        record.measure_type,
    )


def row_key(row: TariffRate) -> RateKey:
    return (row.hs_code, row.hs_code_10, row.origin_country_code or "", row.measure_type)


class CatalogService:
    """Writes catalog snapshots to the tariff store."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def import_sheets(
        self,
        db: AsyncSession,
        classification_sheets: list[RawSheet],
        measure_sheets: list[RawSheet],
    ) -> CatalogRefreshResult:
        """Parse, merge and persist raw sheets in one pass."""
        rows = parse_classification_sheets(
            classification_sheets, default_vat_rate=self.settings.default_vat_rate,
        )
        measures = parse_measure_sheets(measure_sheets)
        catalog = merge_catalog(rows, measures, default_vat_rate=self.settings.default_vat_rate)
        return await self.refresh(db, catalog)

    async def refresh(self, db: AsyncSession, catalog: TariffCatalog) -> CatalogRefreshResult:
        """Replace the store contents with the given snapshot."""
        start = time.perf_counter()
        result = CatalogRefreshResult()

        async with log_operation("catalog_refresh", records=len(catalog)) as op:
            existing_rows = (await db.execute(select(TariffRate))).scalars().all()
            existing: dict[RateKey, TariffRate] = {row_key(r): r for r in existing_rows}
            seen: set[RateKey] = set()

            for record in catalog:
                key = record_key(record)
                if key in seen:
                    result.duplicates += 1
                    continue
                seen.add(key)

                row = existing.get(key)
                if row is None:
                    db.add(self._new_row(record))
                    result.inserted += 1
                    continue

                if self._rates_changed(row, record):
                    db.add(TariffRateHistory(
                        tariff_rate_id=row.id,
                        hs_code_10=row.hs_code_10,
                        origin_country_code=row.origin_country_code,
                        old_duty_rate=row.duty_rate,
                        new_duty_rate=record.duty_rate,
                        old_vat_rate=row.vat_rate,
                        new_vat_rate=record.vat_rate,
                    ))
                    result.history_rows += 1

                if self._apply(row, record):
                    result.updated += 1
                else:
                    result.unchanged += 1

            for key, row in existing.items():
                if key not in seen and row.is_active:
                    row.is_active = False
                    result.deactivated += 1

            await db.flush()

            result.processing_time_ms = int((time.perf_counter() - start) * 1000)
            op.update(
                inserted=result.inserted,
                updated=result.updated,
                deactivated=result.deactivated,
            )

        await AuditService.log_event(
            db,
            event_type="tariff_catalog_refreshed",
            entity_type="tariff_catalog",
            event_data={
                "records": len(catalog),
                "inserted": result.inserted,
                "updated": result.updated,
                "unchanged": result.unchanged,
                "deactivated": result.deactivated,
                "duplicates": result.duplicates,
                "history_rows": result.history_rows,
            },
        )

        logger.info(
            "Catalog refresh: %d inserted, %d updated, %d unchanged, %d deactivated (%dms)",
            result.inserted, result.updated, result.unchanged, result.deactivated,
            result.processing_time_ms,
        )
        return result

    @staticmethod
    def _new_row(record: CanonicalTariffRecord) -> TariffRate:
        row = TariffRate(
            hs_code=record.hs_code,
            hs_code_10=record.hs_code_10,
            origin_country_code=record.origin_country_code or "",
            measure_type=record.measure_type,
            is_active=True,
        )
        for name in RECORD_FIELDS:
            setattr(row, name, getattr(record, name))
        return row

    @staticmethod
    def _rates_changed(row: TariffRate, record: CanonicalTariffRecord) -> bool:
        return row.duty_rate != record.duty_rate or row.vat_rate != record.vat_rate

    @staticmethod
    def _apply(row: TariffRate, record: CanonicalTariffRecord) -> bool:
        """Copy record fields onto the row; True when anything changed."""
        changed = not row.is_active
        row.is_active = True
        for name in RECORD_FIELDS:
            value = getattr(record, name)
            if getattr(row, name) != value:
                setattr(row, name, value)
                changed = True
        return changed
