"""Tests for origin-specific rate resolution against the tariff store."""

import uuid
from unittest.mock import AsyncMock

import pytest

from tariff_engine.exceptions import ClassificationNotFoundError
from tariff_engine.models.tariff import TariffRate
from tariff_engine.tariff_lookup.rates import RateLookupResult
from tariff_engine.tariff_lookup.store import OriginRateResolver, StoreRateLookup


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


@pytest.fixture
async def screws(db_session):
    await add_rate(db_session, "7318150000", duty_rate=3.7, vat_rate=19.0)
    await add_rate(db_session, "7318150000", "CN", measure_type="Definitive anti-dumping duty",
                   duty_rate=3.7, anti_dumping_rate=85.5)
    await add_rate(db_session, "7318150000", "CN", measure_type="Anti-dumping duty (stainless)",
                   material="stainless steel", duty_rate=3.7, anti_dumping_rate=20.0)
    await add_rate(db_session, "7318150000", "TW", measure_type="Definitive anti-dumping duty",
                   duty_rate=3.7, anti_dumping_rate=22.0)
    await add_rate(db_session, "7318150000", "VN", measure_type="Definitive anti-dumping duty",
                   duty_rate=3.7, anti_dumping_rate=99.0, is_active=False)


class TestStoreRateLookup:
    @pytest.mark.asyncio
    async def test_material_and_origin(self, db_session, screws):
        row = await StoreRateLookup().by_origin(db_session, "7318150000", "CN", "stainless steel")
        assert row.anti_dumping_rate == 20.0

    @pytest.mark.asyncio
    async def test_material_never_borrows_another_origin(self, db_session, screws):
        row = await StoreRateLookup().by_origin(db_session, "7318150000", "IN", "stainless steel")
        assert row.origin_country_code == ""
        assert row.material is None

    @pytest.mark.asyncio
    async def test_material_matches_description_case_insensitively(self, db_session):
        await add_rate(db_session, "6911100000", duty_rate=12.0, description="Tableware of porcelain")
        await add_rate(db_session, "6911100000", "CN", measure_type="Definitive anti-dumping duty",
                       duty_rate=12.0, anti_dumping_rate=58.8, description="Other tableware")
        await add_rate(db_session, "6911100000", "CN", measure_type="Anti-dumping duty (bone china)",
                       duty_rate=12.0, anti_dumping_rate=17.6, description_translated="Porzellan, Knochen")

        by_description = await StoreRateLookup().by_origin(db_session, "6911100000", "IN", "PORCELAIN")
        by_translation = await StoreRateLookup().by_origin(db_session, "6911100000", "CN", "porzellan")

        assert by_description.origin_country_code == ""
        assert by_translation.anti_dumping_rate == 17.6

    @pytest.mark.asyncio
    async def test_origin_takes_highest_anti_dumping(self, db_session, screws):
        row = await StoreRateLookup().by_origin(db_session, "7318150000", "CN")
        assert row.anti_dumping_rate == 85.5

    @pytest.mark.asyncio
    async def test_unknown_origin_falls_back_to_baseline(self, db_session, screws):
        row = await StoreRateLookup().by_origin(db_session, "7318.15.00.00", "BR")
        assert row.origin_country_code == ""
        assert row.duty_rate == 3.7

    @pytest.mark.asyncio
    async def test_inactive_rows_are_ignored(self, db_session, screws):
        row = await StoreRateLookup().by_origin(db_session, "7318150000", "VN")
        assert row.anti_dumping_rate == 0.0

    @pytest.mark.asyncio
    async def test_erga_omnes_counts_as_baseline(self, db_session):
        await add_rate(db_session, "8504409000", "1011", duty_rate=2.7)
        row = await StoreRateLookup().by_origin(db_session, "8504409000", "US")
        assert row.duty_rate == 2.7

    @pytest.mark.asyncio
    async def test_stem_fallback_prefers_origin(self, db_session, screws):
        row = await StoreRateLookup().by_origin(db_session, "7318150090", "TW")
        assert row.hs_code_10 == "7318150000"
        assert row.origin_country_code == "TW"

    @pytest.mark.asyncio
    async def test_stem_fallback_skips_other_origins(self, db_session):
        await add_rate(db_session, "7318150010", "IN", measure_type="Definitive anti-dumping duty",
                       anti_dumping_rate=50.0)

        assert await StoreRateLookup().by_origin(db_session, "7318150090", "CN") is None
        assert await StoreRateLookup().by_origin(db_session, "7318150090", None) is None

    @pytest.mark.asyncio
    async def test_stem_fallback_uses_generic_row_for_other_origin(self, db_session):
        await add_rate(db_session, "7318150010", "IN", measure_type="Definitive anti-dumping duty",
                       anti_dumping_rate=50.0)
        await add_rate(db_session, "7318150010", duty_rate=3.7)

        row = await StoreRateLookup().by_origin(db_session, "7318150090", "CN")

        assert row.origin_country_code == ""
        assert row.duty_rate == 3.7

    @pytest.mark.asyncio
    async def test_nothing_under_stem(self, db_session, screws):
        assert await StoreRateLookup().by_origin(db_session, "8471300000", "CN") is None

    @pytest.mark.asyncio
    async def test_by_code_exact_returns_baseline(self, db_session, screws):
        row, exact = await StoreRateLookup().by_code(db_session, "7318150000")
        assert exact is True
        assert row.origin_country_code == ""

    @pytest.mark.asyncio
    async def test_by_code_prefix_match(self, db_session):
        await add_rate(db_session, "8471300090", duty_rate=0.0)
        await add_rate(db_session, "8471300010", duty_rate=2.0)

        row, exact = await StoreRateLookup().by_code(db_session, "84713000")

        assert exact is False
        assert row.hs_code_10 == "8471300010"


class TestOriginRateResolver:
    @pytest.mark.asyncio
    async def test_store_hit(self, db_session, screws):
        resolved = await OriginRateResolver(StoreRateLookup()).by_origin(db_session, "7318150000", "CN")

        assert resolved.source == "store"
        assert resolved.exact_match is True
        assert resolved.anti_dumping_rate == 85.5
        assert resolved.countervailing_rate == 0.0

    @pytest.mark.asyncio
    async def test_stem_hit_is_not_exact(self, db_session, screws):
        resolved = await OriginRateResolver(StoreRateLookup()).by_origin(db_session, "7318150090", "TW")
        assert resolved.exact_match is False

    @pytest.mark.asyncio
    async def test_remote_fills_gaps(self, db_session):
        remote = AsyncMock()
        remote.lookup.return_value = RateLookupResult(
            hs_code="84713000", hs_code_10="8471300000", original_hs_code="8471300010",
            matched_hs_code="8471300000", exact_match=False, duty_rate=0.0, vat_rate=20.0,
            anti_dumping_rate=None,
        )

        resolved = await OriginRateResolver(StoreRateLookup(), remote=remote).by_origin(
            db_session, "8471300010", "CN",
        )

        remote.lookup.assert_awaited_once_with("8471300010", "CN")
        assert resolved.source == "remote"
        assert resolved.hs_code == "8471300000"
        assert resolved.exact_match is False
        assert resolved.anti_dumping_rate == 0.0
        assert resolved.vat_rate == 20.0

    @pytest.mark.asyncio
    async def test_remote_not_found_is_none(self, db_session):
        remote = AsyncMock()
        remote.lookup.side_effect = ClassificationNotFoundError("8471300010")

        resolver = OriginRateResolver(StoreRateLookup(), remote=remote)

        assert await resolver.by_code(db_session, "8471300010") is None

    @pytest.mark.asyncio
    async def test_without_remote(self, db_session):
        assert await OriginRateResolver(StoreRateLookup()).by_origin(db_session, "8471300010", None) is None
