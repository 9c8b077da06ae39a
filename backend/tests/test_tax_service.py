"""Tests for TaxCalculationService against an in-process database."""

import uuid
from unittest.mock import AsyncMock

import pytest

from tariff_engine.customs_calculator.service import CalculationOptions, TaxCalculationService
from tariff_engine.exceptions import (
    CargoItemNotFoundError,
    ClassificationNotFoundError,
    ImportBatchNotFoundError,
    ImportValidationError,
)
from tariff_engine.models.cargo import CargoItem, ImportBatch, MatchStatus
from tariff_engine.models.tariff import TariffRate
from tariff_engine.services.audit_service import AuditService
from tariff_engine.tariff_lookup.store import OriginRateResolver, ResolvedRates, StoreRateLookup


async def make_batch(db, items: list[dict], **terms) -> ImportBatch:
    batch = ImportBatch(id=uuid.uuid4(), reference="IMP-2026-001", **terms)
    for line, fields in enumerate(items, start=1):
        fields = {"match_status": MatchStatus.MATCHED, "vat_rate": 19.0, **fields}
        batch.items.append(CargoItem(id=uuid.uuid4(), line_number=line, **fields))
    db.add(batch)
    await db.flush()
    return batch


async def add_rate(db, hs10: str, origin: str = "", **fields) -> TariffRate:
    rate = TariffRate(
        id=uuid.uuid4(),
        hs_code=hs10[:8],
        hs_code_10=hs10,
        origin_country_code=origin,
        measure_type=fields.pop("measure_type", "Third country duty"),
        is_active=fields.pop("is_active", True),
        **fields,
    )
    db.add(rate)
    await db.flush()
    return rate


SCREWS = {
    "product_name": "Hex bolts M8",
    "matched_hs_code": "7318150000",
    "origin_country_code": "CN",
    "total_value": 1000.0,
    "weight_kg": 10.0,
    "duty_rate": 12.0,
    "anti_dumping_rate": 36.1,
}


class TestCalculateImportTax:
    @pytest.mark.asyncio
    async def test_cif_batch_matches_worked_example(self, db_session, settings):
        batch = await make_batch(db_session, [SCREWS], incoterm="CIF", international_freight=150.0)

        result = await TaxCalculationService(settings).calculate_import_tax(db_session, batch.id)

        assert result.item_errors == []
        item = result.items[0]
        assert item.customs_value == 1000.0
        assert item.duty_amount == 120.0
        assert item.anti_dumping_amount == 361.0
        assert item.vat_amount == 281.39
        assert item.total_tax == 762.39
        assert result.totals.total_tax == 762.39
        assert batch.total_tax == 762.39
        assert batch.total_customs_value == 1000.0

    @pytest.mark.asyncio
    async def test_fob_adds_allocated_costs(self, db_session, settings):
        batch = await make_batch(
            db_session,
            [
                {**SCREWS, "total_value": 1000.0},
                {**SCREWS, "total_value": 2000.0, "anti_dumping_rate": 0.0},
                {**SCREWS, "total_value": 3000.0, "duty_rate": 0.0},
            ],
            incoterm="FOB",
            international_freight=150.0,
            domestic_freight_import=20.0,
            insurance_cost=5.0,
        )

        result = await TaxCalculationService(settings).calculate_import_tax(db_session, batch.id)

        assert sum(i.freight_allocation for i in result.items) == pytest.approx(150.0, abs=0.01)
        assert sum(i.insurance_allocation for i in result.items) == pytest.approx(5.0, abs=0.01)
        assert result.totals.total_customs_value == pytest.approx(6175.0, abs=0.01)
        assert result.items[0].freight_allocation == 25.0
        assert result.items[0].customs_value == pytest.approx(1000.0 + 25.0 + 3.33 + 0.83, abs=0.01)

    @pytest.mark.asyncio
    async def test_only_matched_items_are_taxed(self, db_session, settings):
        batch = await make_batch(db_session, [
            SCREWS,
            {**SCREWS, "match_status": MatchStatus.PENDING},
            {**SCREWS, "match_status": MatchStatus.REJECTED},
            {**SCREWS, "match_status": MatchStatus.APPROVED},
        ], incoterm="CIF")

        result = await TaxCalculationService(settings).calculate_import_tax(db_session, batch.id)

        assert [i.line_number for i in result.items] == [1, 4]
        assert result.totals.total_value == 2000.0
        assert batch.items[1].total_tax == 0.0

    @pytest.mark.asyncio
    async def test_failing_item_does_not_abort_batch(self, db_session, settings):
        batch = await make_batch(db_session, [SCREWS, {**SCREWS, "total_value": -5.0}], incoterm="CIF")

        result = await TaxCalculationService(settings).calculate_import_tax(db_session, batch.id)

        assert len(result.items) == 1
        assert len(result.item_errors) == 1
        assert result.item_errors[0].line_number == 2
        assert "must not be negative" in result.item_errors[0].error

    @pytest.mark.asyncio
    async def test_failed_item_keeps_its_cost_share(self, db_session, settings):
        batch = await make_batch(
            db_session,
            [SCREWS, {**SCREWS, "total_value": 2000.0, "matched_hs_code": None}],
            incoterm="FOB",
            international_freight=150.0,
        )

        result = await TaxCalculationService(settings).calculate_import_tax(
            db_session, batch.id, CalculationOptions(update_origin_tariffs=True),
        )

        assert result.item_errors[0].error == "Line 2: HS code is required to refresh tariffs"
        assert [i.freight_allocation for i in batch.items] == [50.0, 100.0]
        assert sum(i.freight_allocation for i in batch.items) == pytest.approx(150.0, abs=0.01)

    @pytest.mark.asyncio
    async def test_recalculation_is_idempotent(self, db_session, settings):
        batch = await make_batch(db_session, [SCREWS, {**SCREWS, "total_value": 777.77}],
                                 incoterm="FOB", international_freight=99.99)
        service = TaxCalculationService(settings)

        first = await service.calculate_import_tax(db_session, batch.id)
        second = await service.calculate_import_tax(db_session, batch.id)

        assert [i.total_tax for i in first.items] == [i.total_tax for i in second.items]
        assert first.totals == second.totals

    @pytest.mark.asyncio
    async def test_keeps_customs_value_when_not_recalculating(self, db_session, settings):
        batch = await make_batch(db_session, [{**SCREWS, "customs_value": 1500.0}],
                                 incoterm="EXW", international_freight=500.0)

        result = await TaxCalculationService(settings).calculate_import_tax(
            db_session, batch.id, CalculationOptions(recalculate_customs_value=False),
        )

        assert result.items[0].customs_value == 1500.0
        assert result.items[0].duty_amount == 180.0

    @pytest.mark.asyncio
    async def test_update_origin_tariffs_uses_resolver(self, db_session, settings):
        resolver = AsyncMock(spec=OriginRateResolver)
        resolver.by_origin.return_value = ResolvedRates(
            hs_code="7318150000", duty_rate=3.7, vat_rate=19.0,
            anti_dumping_rate=85.5, countervailing_rate=0.0, source="store",
        )
        batch = await make_batch(db_session, [SCREWS], incoterm="CIF")

        result = await TaxCalculationService(settings, resolver).calculate_import_tax(
            db_session, batch.id, CalculationOptions(update_origin_tariffs=True),
        )

        resolver.by_origin.assert_awaited_once()
        assert result.items[0].duty_rate == 3.7
        assert result.items[0].anti_dumping_amount == 855.0

    @pytest.mark.asyncio
    async def test_ddp_is_flagged(self, db_session, settings):
        batch = await make_batch(db_session, [SCREWS], incoterm="DDP")
        result = await TaxCalculationService(settings).calculate_import_tax(db_session, batch.id)
        assert result.duties_prepaid is True

    @pytest.mark.asyncio
    async def test_writes_audit_event(self, db_session, settings):
        batch = await make_batch(db_session, [SCREWS], incoterm="CIF")
        await TaxCalculationService(settings).calculate_import_tax(db_session, batch.id)

        events = await AuditService.get_events(db_session, entity_id=batch.id)

        assert [e.event_type for e in events] == ["import_tax_calculated"]
        assert events[0].new_state["total_tax"] == 762.39

    @pytest.mark.asyncio
    async def test_unknown_batch(self, db_session, settings):
        with pytest.raises(ImportBatchNotFoundError):
            await TaxCalculationService(settings).calculate_import_tax(db_session, uuid.uuid4())


class TestUpdateTradeTerms:
    @pytest.mark.asyncio
    async def test_partial_update(self, db_session, settings):
        batch = await make_batch(db_session, [SCREWS], incoterm="CIF", international_freight=100.0)

        updated = await TaxCalculationService(settings).update_trade_terms(
            db_session, batch.id, incoterm="fob", international_freight=None, unloading_cost=12.5,
        )

        assert updated.incoterm == "FOB"
        assert updated.international_freight == 100.0
        assert updated.unloading_cost == 12.5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fields", [
        {"incoterm": "XYZ"},
        {"freight_allocation_method": "by_volume"},
        {"clearance_type": "99"},
        {"international_freight": -1.0},
        {"currency": "USD"},
    ])
    async def test_rejects_invalid_fields(self, db_session, settings, fields):
        batch = await make_batch(db_session, [SCREWS])
        with pytest.raises(ImportValidationError):
            await TaxCalculationService(settings).update_trade_terms(db_session, batch.id, **fields)


class TestUpdateItemOrigin:
    @pytest.mark.asyncio
    async def test_reresolves_origin_rates_from_store(self, db_session, settings):
        await add_rate(db_session, "7318150000", duty_rate=3.7, vat_rate=19.0)
        await add_rate(db_session, "7318150000", "CN", measure_type="Definitive anti-dumping duty",
                       duty_rate=3.7, vat_rate=19.0, anti_dumping_rate=85.5)
        batch = await make_batch(db_session, [{**SCREWS, "origin_country_code": "TW"}], incoterm="CIF")
        service = TaxCalculationService(settings, OriginRateResolver(StoreRateLookup()))
        await service.calculate_import_tax(db_session, batch.id)

        result = await service.update_item_origin(db_session, batch.items[0].id, "cn")

        assert result.origin_country_code == "CN"
        assert result.duty_rate == 3.7
        assert result.anti_dumping_rate == 85.5
        assert result.anti_dumping_amount == 855.0
        assert batch.total_other_tax == 855.0

    @pytest.mark.asyncio
    async def test_material_is_stored(self, db_session, settings):
        batch = await make_batch(db_session, [SCREWS], incoterm="CIF")
        service = TaxCalculationService(settings)

        await service.update_item_origin(db_session, batch.items[0].id, "CN", material="stainless steel")

        assert batch.items[0].material == "stainless steel"

    @pytest.mark.asyncio
    async def test_remote_not_found_keeps_rates(self, db_session, settings):
        remote = AsyncMock()
        remote.lookup.side_effect = ClassificationNotFoundError("7318150000", ["7318150000"])
        batch = await make_batch(db_session, [SCREWS], incoterm="CIF")
        service = TaxCalculationService(settings, OriginRateResolver(StoreRateLookup(), remote=remote))

        result = await service.update_item_origin(db_session, batch.items[0].id, "VN")

        assert result.duty_rate == 12.0
        assert result.total_tax == 762.39

    @pytest.mark.asyncio
    async def test_missing_item(self, db_session, settings):
        with pytest.raises(CargoItemNotFoundError, match="product not found"):
            await TaxCalculationService(settings).update_item_origin(db_session, uuid.uuid4(), "CN")


class TestUpdateItemTax:
    @pytest.mark.asyncio
    async def test_explicit_rates_override(self, db_session, settings):
        batch = await make_batch(db_session, [SCREWS], incoterm="CIF")

        result = await TaxCalculationService(settings).update_item_tax(
            db_session, batch.items[0].id, duty_rate=0.0, anti_dumping_rate=0.0,
        )

        assert result.duty_amount == 0.0
        assert result.vat_amount == 190.0
        assert batch.total_tax == 190.0

    @pytest.mark.asyncio
    async def test_reclassification_uses_prefix_match(self, db_session, settings):
        await add_rate(db_session, "8471300090", duty_rate=0.0, vat_rate=21.0)
        await add_rate(db_session, "8471300010", duty_rate=2.0, vat_rate=21.0)
        batch = await make_batch(db_session, [SCREWS], incoterm="CIF")
        service = TaxCalculationService(settings, OriginRateResolver(StoreRateLookup()))

        result = await service.update_item_tax(db_session, batch.items[0].id, hs_code="8471.30.00")

        assert result.hs_code == "8471300000"
        assert result.duty_rate == 2.0
        assert result.vat_rate == 21.0

    @pytest.mark.asyncio
    async def test_explicit_rate_beats_looked_up_rate(self, db_session, settings):
        await add_rate(db_session, "8471300000", duty_rate=2.0, vat_rate=21.0)
        batch = await make_batch(db_session, [SCREWS], incoterm="CIF")
        service = TaxCalculationService(settings, OriginRateResolver(StoreRateLookup()))

        result = await service.update_item_tax(
            db_session, batch.items[0].id, hs_code="8471300000", duty_rate=1.0,
        )

        assert result.duty_rate == 1.0
        assert result.vat_rate == 21.0

    @pytest.mark.asyncio
    async def test_rejects_short_code(self, db_session, settings):
        batch = await make_batch(db_session, [SCREWS])
        with pytest.raises(ImportValidationError):
            await TaxCalculationService(settings).update_item_tax(db_session, batch.items[0].id, hs_code="84")


class TestRecomputeBatchTotals:
    @pytest.mark.asyncio
    async def test_sums_taxable_items_only(self, db_session, settings):
        batch = await make_batch(db_session, [
            {**SCREWS, "customs_value": 1000.0, "duty_amount": 120.0, "total_tax": 120.0},
            {**SCREWS, "customs_value": 500.0, "duty_amount": 60.0, "total_tax": 60.0,
             "match_status": MatchStatus.PENDING},
        ])

        totals = await TaxCalculationService(settings).recompute_batch_totals(db_session, batch.id)

        assert totals.total_duty == 120.0
        assert totals.total_customs_value == 1000.0
        assert batch.total_tax == 120.0


class TestGetTaxDetails:
    @pytest.mark.asyncio
    async def test_deferred_vat_split(self, db_session, settings):
        batch = await make_batch(
            db_session,
            [SCREWS, {**SCREWS, "matched_hs_code": "8471300000", "anti_dumping_rate": 0.0}],
            incoterm="CIF",
            clearance_type="42",
        )
        service = TaxCalculationService(settings)
        await service.calculate_import_tax(db_session, batch.id)

        details = await service.get_tax_details(db_session, batch.id)

        assert details.is_deferred is True
        assert details.payable_vat == 0.0
        assert details.deferred_vat == details.totals.total_vat
        assert details.payable_total == pytest.approx(
            details.totals.total_duty + details.totals.total_other_tax, abs=0.001,
        )
        assert [b.hs_code for b in details.by_hs_code] == ["7318150000", "8471300000"]
        assert details.by_hs_code[0].other_tax == 361.0

    @pytest.mark.asyncio
    async def test_normal_clearance_pays_vat(self, db_session, settings):
        batch = await make_batch(db_session, [SCREWS], incoterm="CIF")
        service = TaxCalculationService(settings)
        await service.calculate_import_tax(db_session, batch.id)

        details = await service.get_tax_details(db_session, batch.id)

        assert details.is_deferred is False
        assert details.payable_vat == 281.39
        assert details.deferred_vat == 0.0
        assert details.payable_total == 762.39
