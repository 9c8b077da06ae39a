"""TaxCalculationService — customs valuation and tax for import batches.

Flow:
1. Load the batch and its taxable (matched/approved) items
2. Allocate freight, insurance and local costs across items
3. Derive each item's customs value from the batch Incoterm
4. Optionally re-resolve origin-specific rates from the tariff store
5. Compute duty, anti-dumping, countervailing and VAT per item
6. Persist item figures, re-sum batch totals, log an audit event

A failing item is reported and skipped; the rest of the batch still runs.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tariff_engine.config import Settings
from tariff_engine.customs_calculator.allocation import (
    ALLOCATION_METHODS,
    ItemBasis,
    TradeTerms,
    allocate_batch_costs,
)
from tariff_engine.customs_calculator.incoterms import (
    ItemCosts,
    compute_customs_value,
    get_incoterm,
    is_known_incoterm,
)
from tariff_engine.customs_calculator.taxes import ItemTax, compute_item_tax, round_decimal
from tariff_engine.exceptions import (
    CargoItemNotFoundError,
    ImportBatchNotFoundError,
    ImportValidationError,
)
from tariff_engine.models.cargo import CargoItem, ClearanceType, ImportBatch, MatchStatus
from tariff_engine.observability import log_operation
from tariff_engine.services.audit_service import AuditService
from tariff_engine.tariff_lookup.store import OriginRateResolver, ResolvedRates

logger = logging.getLogger("tariff.calculator")

TAXABLE_STATUSES = (MatchStatus.MATCHED, MatchStatus.AUTO_APPROVED, MatchStatus.APPROVED)

TRADE_TERM_FIELDS = (
    "incoterm",
    "international_freight",
    "domestic_freight_export",
    "domestic_freight_import",
    "unloading_cost",
    "insurance_cost",
    "freight_allocation_method",
    "clearance_type",
)

COST_FIELDS = (
    "international_freight",
    "domestic_freight_export",
    "domestic_freight_import",
    "unloading_cost",
    "insurance_cost",
)


@dataclass
class CalculationOptions:
    recalculate_customs_value: bool = True
    update_origin_tariffs: bool = False


@dataclass
class ItemTaxResult:
    item_id: uuid.UUID
    line_number: int
    hs_code: str | None
    origin_country_code: str | None
    total_value: float
    customs_value: float
    freight_allocation: float
    insurance_allocation: float
    duty_rate: float
    vat_rate: float
    anti_dumping_rate: float
    countervailing_rate: float
    duty_amount: float
    anti_dumping_amount: float
    countervailing_amount: float
    other_tax_amount: float
    vat_amount: float
    total_tax: float


@dataclass
class ItemError:
    item_id: uuid.UUID
    line_number: int
    error: str


@dataclass
class BatchTotals:
    total_value: float = 0.0
    total_customs_value: float = 0.0
    total_duty: float = 0.0
    total_vat: float = 0.0
    total_other_tax: float = 0.0
    total_tax: float = 0.0


@dataclass
class BatchTaxResult:
    batch_id: uuid.UUID
    incoterm: str
    totals: BatchTotals
    items: list[ItemTaxResult] = field(default_factory=list)
    item_errors: list[ItemError] = field(default_factory=list)
    duties_prepaid: bool = False
    processing_time_ms: int = 0


@dataclass
class HsCodeBreakdown:
    hs_code: str
    item_count: int
    customs_value: float
    duty: float
    vat: float
    other_tax: float
    total_tax: float


@dataclass
class TaxDetails:
    batch_id: uuid.UUID
    clearance_type: str
    is_deferred: bool
    totals: BatchTotals
    payable_vat: float
    deferred_vat: float
    payable_total: float
    by_hs_code: list[HsCodeBreakdown] = field(default_factory=list)


def is_taxable(item: CargoItem) -> bool:
    return item.match_status in TAXABLE_STATUSES


def terms_from_batch(batch: ImportBatch) -> TradeTerms:
    return TradeTerms(
        incoterm=batch.incoterm,
        international_freight=batch.international_freight or 0.0,
        domestic_freight_export=batch.domestic_freight_export or 0.0,
        domestic_freight_import=batch.domestic_freight_import or 0.0,
        unloading_cost=batch.unloading_cost or 0.0,
        insurance_cost=batch.insurance_cost or 0.0,
        freight_allocation_method=batch.freight_allocation_method or "by_value",
    )


def sum_totals(items: list[CargoItem]) -> BatchTotals:
    """Batch totals as the sum of the given items' persisted figures."""

    def total(attr: str) -> float:
        return float(sum((round_decimal(getattr(i, attr)) for i in items), Decimal("0")))

    return BatchTotals(
        total_value=total("total_value"),
        total_customs_value=total("customs_value"),
        total_duty=total("duty_amount"),
        total_vat=total("vat_amount"),
        total_other_tax=total("other_tax_amount"),
        total_tax=total("total_tax"),
    )


def item_result(item: CargoItem) -> ItemTaxResult:
    return ItemTaxResult(
        item_id=item.id,
        line_number=item.line_number,
        hs_code=item.matched_hs_code,
        origin_country_code=item.origin_country_code,
        total_value=item.total_value,
        customs_value=item.customs_value,
        freight_allocation=item.freight_allocation,
        insurance_allocation=item.insurance_allocation,
        duty_rate=item.duty_rate,
        vat_rate=item.vat_rate,
        anti_dumping_rate=item.anti_dumping_rate,
        countervailing_rate=item.countervailing_rate,
        duty_amount=item.duty_amount,
        anti_dumping_amount=item.anti_dumping_amount,
        countervailing_amount=item.countervailing_amount,
        other_tax_amount=item.other_tax_amount,
        vat_amount=item.vat_amount,
        total_tax=item.total_tax,
    )


class TaxCalculationService:
    """Computes and persists customs values and taxes for import batches."""

    def __init__(self, settings: Settings, rates: OriginRateResolver | None = None):
        self.settings = settings
        self.rates = rates

    async def calculate_import_tax(
        self,
        db: AsyncSession,
        batch_id: uuid.UUID,
        options: CalculationOptions | None = None,
    ) -> BatchTaxResult:
        """Recalculate every taxable item of a batch and persist the results."""
        options = options or CalculationOptions()
        start = time.perf_counter()
        batch = await self._load_batch(db, batch_id)
        term = get_incoterm(batch.incoterm)
        taxable = [item for item in batch.items if is_taxable(item)]

        async with log_operation(
            "calculate_import_tax", batch_id=str(batch.id), items=len(taxable), incoterm=term.code,
        ) as op:
            costs: list[ItemCosts] | None = None
            if options.recalculate_customs_value and taxable:
                costs = allocate_batch_costs(
                    [ItemBasis(item.total_value or 0.0, item.weight_kg or 0.0) for item in taxable],
                    terms_from_batch(batch),
                    self.settings.insurance_estimate_rate,
                )

            results: list[ItemTaxResult] = []
            errors: list[ItemError] = []
            for index, item in enumerate(taxable):
                # Every taxable item keeps its cost share, failed ones included
                item_costs = costs[index] if costs is not None else None
                if item_costs is not None:
                    self._apply_costs(item, item_costs)
                try:
                    self._validate_item(item, options)
                    if options.update_origin_tariffs:
                        await self._refresh_origin_rates(db, item)
                    customs_value = self._customs_value(item, batch.incoterm, item_costs)
                    tax = self._tax_for(item, customs_value)
                except Exception as e:
                    logger.warning("Tax calculation failed for item %s: %s", item.id, e)
                    errors.append(ItemError(item_id=item.id, line_number=item.line_number, error=str(e)))
                    continue

                self._apply_tax(item, tax)
                results.append(item_result(item))

            totals = self._store_totals(batch)
            await db.flush()
            op.update(calculated=len(results), failed=len(errors), total_tax=totals.total_tax)

        await AuditService.log_event(
            db,
            event_type="import_tax_calculated",
            entity_type="import_batch",
            entity_id=batch.id,
            event_data={
                "incoterm": term.code,
                "recalculate_customs_value": options.recalculate_customs_value,
                "update_origin_tariffs": options.update_origin_tariffs,
                "calculated": len(results),
                "failed": len(errors),
            },
            new_state={
                "total_customs_value": totals.total_customs_value,
                "total_duty": totals.total_duty,
                "total_vat": totals.total_vat,
                "total_other_tax": totals.total_other_tax,
                "total_tax": totals.total_tax,
            },
        )

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "Batch %s: %d items taxed, %d failed, total tax %.2f (%dms)",
            batch.id, len(results), len(errors), totals.total_tax, elapsed_ms,
        )
        return BatchTaxResult(
            batch_id=batch.id,
            incoterm=term.code,
            totals=totals,
            items=results,
            item_errors=errors,
            duties_prepaid=term.duties_prepaid,
            processing_time_ms=elapsed_ms,
        )

    async def update_trade_terms(self, db: AsyncSession, batch_id: uuid.UUID, **fields) -> ImportBatch:
        """Partial update of a batch's trade terms; None values are left unchanged."""
        unknown = set(fields) - set(TRADE_TERM_FIELDS)
        if unknown:
            raise ImportValidationError(f"Unknown trade term fields: {', '.join(sorted(unknown))}")

        updates = {k: v for k, v in fields.items() if v is not None}
        if "incoterm" in updates:
            if not is_known_incoterm(updates["incoterm"]):
                raise ImportValidationError(f"Unknown incoterm: {updates['incoterm']}")
            updates["incoterm"] = updates["incoterm"].strip().upper()
        method = updates.get("freight_allocation_method")
        if method is not None and method not in ALLOCATION_METHODS:
            raise ImportValidationError(f"Unknown freight allocation method: {method}")
        clearance = updates.get("clearance_type")
        if clearance is not None and clearance not in {c.value for c in ClearanceType}:
            raise ImportValidationError(f"Unknown clearance type: {clearance}")
        for name in COST_FIELDS:
            if name in updates and updates[name] < 0:
                raise ImportValidationError(f"{name} must not be negative")

        batch = await self._load_batch(db, batch_id)
        for name, value in updates.items():
            setattr(batch, name, value)
        await db.flush()
        return batch

    async def update_item_origin(
        self,
        db: AsyncSession,
        item_id: uuid.UUID,
        origin_country_code: str,
        material: str | None = None,
    ) -> ItemTaxResult:
        """Change an item's origin, re-resolve its rates and recompute its taxes."""
        item = await self._load_item(db, item_id)
        item.origin_country_code = (origin_country_code or "").strip().upper() or None
        if material is not None:
            item.material = material

        await self._refresh_origin_rates(db, item)
        self._apply_tax(item, self._tax_for(item, item.customs_value or item.total_value or 0.0))
        self._store_totals(item.batch)
        await db.flush()
        return item_result(item)

    async def update_item_tax(
        self,
        db: AsyncSession,
        item_id: uuid.UUID,
        hs_code: str | None = None,
        duty_rate: float | None = None,
        vat_rate: float | None = None,
        anti_dumping_rate: float | None = None,
        countervailing_rate: float | None = None,
    ) -> ItemTaxResult:
        """Reclassify an item and/or override its rates, then recompute.

        A changed HS code re-resolves rates from the store; explicitly
        supplied rates win over looked-up ones.
        """
        item = await self._load_item(db, item_id)

        if hs_code:
            digits = "".join(ch for ch in hs_code if ch.isdigit())
            if len(digits) < 4:
                raise ImportValidationError(f"HS code must have at least 4 digits: {hs_code!r}")
            code10 = digits[:10].ljust(10, "0")
            if code10 != item.matched_hs_code:
                item.matched_hs_code = code10
                if self.rates is not None:
                    resolved = await self.rates.by_code(db, code10, item.origin_country_code)
                    if resolved is not None:
                        self._apply_rates(item, resolved)
                    else:
                        logger.warning("No tariff found for reclassified item %s (%s)", item.id, code10)

        overrides = {
            "duty_rate": duty_rate,
            "vat_rate": vat_rate,
            "anti_dumping_rate": anti_dumping_rate,
            "countervailing_rate": countervailing_rate,
        }
        for name, value in overrides.items():
            if value is not None:
                if value < 0:
                    raise ImportValidationError(f"{name} must not be negative")
                setattr(item, name, float(value))

        self._apply_tax(item, self._tax_for(item, item.customs_value or item.total_value or 0.0))
        self._store_totals(item.batch)
        await db.flush()
        return item_result(item)

    async def recompute_batch_totals(self, db: AsyncSession, batch_id: uuid.UUID) -> BatchTotals:
        batch = await self._load_batch(db, batch_id)
        totals = self._store_totals(batch)
        await db.flush()
        return totals

    async def get_tax_details(self, db: AsyncSession, batch_id: uuid.UUID) -> TaxDetails:
        """Batch totals with the payable/deferred VAT split and a per-HS breakdown."""
        batch = await self._load_batch(db, batch_id)
        taxable = [item for item in batch.items if is_taxable(item)]
        totals = sum_totals(taxable)

        is_deferred = batch.clearance_type == ClearanceType.DEFERRED_VAT.value
        payable_vat = 0.0 if is_deferred else totals.total_vat
        deferred_vat = totals.total_vat if is_deferred else 0.0
        payable_total = float(
            round_decimal(totals.total_duty)
            + round_decimal(payable_vat)
            + round_decimal(totals.total_other_tax)
        )

        grouped: dict[str, list[CargoItem]] = {}
        for item in taxable:
            grouped.setdefault(item.matched_hs_code or "unclassified", []).append(item)
        breakdown = []
        for hs_code, items in sorted(grouped.items()):
            sums = sum_totals(items)
            breakdown.append(HsCodeBreakdown(
                hs_code=hs_code,
                item_count=len(items),
                customs_value=sums.total_customs_value,
                duty=sums.total_duty,
                vat=sums.total_vat,
                other_tax=sums.total_other_tax,
                total_tax=sums.total_tax,
            ))

        return TaxDetails(
            batch_id=batch.id,
            clearance_type=batch.clearance_type,
            is_deferred=is_deferred,
            totals=totals,
            payable_vat=payable_vat,
            deferred_vat=deferred_vat,
            payable_total=payable_total,
            by_hs_code=breakdown,
        )

    # ── internals ──

    async def _load_batch(self, db: AsyncSession, batch_id: uuid.UUID) -> ImportBatch:
        result = await db.execute(
            select(ImportBatch)
            .options(selectinload(ImportBatch.items))
            .where(ImportBatch.id == batch_id)
        )
        batch = result.scalar_one_or_none()
        if batch is None:
            raise ImportBatchNotFoundError(batch_id)
        return batch

    async def _load_item(self, db: AsyncSession, item_id: uuid.UUID) -> CargoItem:
        result = await db.execute(
            select(CargoItem)
            .options(selectinload(CargoItem.batch).selectinload(ImportBatch.items))
            .where(CargoItem.id == item_id)
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise CargoItemNotFoundError(item_id)
        return item

    @staticmethod
    def _validate_item(item: CargoItem, options: CalculationOptions) -> None:
        if item.total_value is None:
            raise ImportValidationError(f"Line {item.line_number}: declared value is required")
        if item.total_value < 0:
            raise ImportValidationError(f"Line {item.line_number}: declared value must not be negative")
        if options.update_origin_tariffs and not item.matched_hs_code:
            raise ImportValidationError(f"Line {item.line_number}: HS code is required to refresh tariffs")

    async def _refresh_origin_rates(self, db: AsyncSession, item: CargoItem) -> None:
        if self.rates is None or not item.matched_hs_code:
            return
        resolved = await self.rates.by_origin(
            db, item.matched_hs_code, item.origin_country_code, item.material,
        )
        if resolved is None:
            logger.warning(
                "No tariff for %s from %s; keeping current rates",
                item.matched_hs_code, item.origin_country_code,
            )
            return
        self._apply_rates(item, resolved)

    def _apply_rates(self, item: CargoItem, resolved: ResolvedRates) -> None:
        item.duty_rate = resolved.duty_rate
        item.anti_dumping_rate = resolved.anti_dumping_rate
        item.countervailing_rate = resolved.countervailing_rate
        if resolved.vat_rate is not None:
            item.vat_rate = resolved.vat_rate
        elif not item.vat_rate:
            item.vat_rate = self.settings.default_vat_rate

    @staticmethod
    def _customs_value(item: CargoItem, incoterm: str | None, costs: ItemCosts | None) -> float:
        if costs is None:
            return item.customs_value or item.total_value or 0.0
        return compute_customs_value(incoterm, costs).customs_value

    @staticmethod
    def _tax_for(item: CargoItem, customs_value: float) -> ItemTax:
        return compute_item_tax(
            customs_value,
            duty_rate=item.duty_rate,
            vat_rate=item.vat_rate,
            anti_dumping_rate=item.anti_dumping_rate,
            countervailing_rate=item.countervailing_rate,
        )

    @staticmethod
    def _apply_costs(item: CargoItem, costs: ItemCosts) -> None:
        item.freight_allocation = costs.international_freight
        item.insurance_allocation = costs.insurance
        item.domestic_freight_allocation = costs.domestic_freight_import
        item.unloading_allocation = costs.unloading_cost

    @staticmethod
    def _apply_tax(item: CargoItem, tax: ItemTax) -> None:
        item.customs_value = tax.customs_value
        item.duty_amount = tax.duty_amount
        item.anti_dumping_amount = tax.anti_dumping_amount
        item.countervailing_amount = tax.countervailing_amount
        item.other_tax_amount = tax.other_tax_amount
        item.vat_amount = tax.vat_amount
        item.total_tax = tax.total_tax

    @staticmethod
    def _store_totals(batch: ImportBatch) -> BatchTotals:
        totals = sum_totals([item for item in batch.items if is_taxable(item)])
        batch.total_value = totals.total_value
        batch.total_customs_value = totals.total_customs_value
        batch.total_duty = totals.total_duty
        batch.total_vat = totals.total_vat
        batch.total_other_tax = totals.total_other_tax
        batch.total_tax = totals.total_tax
        return totals
