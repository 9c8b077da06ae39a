"""Rate resolution against the local tariff store, with remote fallback."""

import logging
from dataclasses import dataclass

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tariff_engine.exceptions import ClassificationNotFoundError
from tariff_engine.models.tariff import TariffRate
from tariff_engine.tariff_lookup.service import TariffLookupService, normalize_code

logger = logging.getLogger("tariff.lookup.store")

GENERIC_ORIGIN_VALUES = ("", "ERGA_OMNES", "1011")


@dataclass
class ResolvedRates:
    hs_code: str
    duty_rate: float
    vat_rate: float | None
    anti_dumping_rate: float
    countervailing_rate: float
    source: str
    exact_match: bool = True


def rates_from_row(row: TariffRate, exact_match: bool = True) -> ResolvedRates:
    return ResolvedRates(
        hs_code=row.hs_code_10,
        duty_rate=row.duty_rate or 0.0,
        vat_rate=row.vat_rate,
        anti_dumping_rate=row.anti_dumping_rate or 0.0,
        countervailing_rate=row.countervailing_rate or 0.0,
        source="store",
        exact_match=exact_match,
    )


class StoreRateLookup:
    """Queries active tariff_rates rows."""

    _penalty_order = (TariffRate.anti_dumping_rate.desc(), TariffRate.duty_rate.desc())

    async def by_origin(
        self,
        db: AsyncSession,
        hs_code: str,
        origin: str | None,
        material: str | None = None,
    ) -> TariffRate | None:
        """Most specific row for the code, origin and material.

        Tries material+origin, material on the origin or generic rows, origin
        alone, the generic baseline, then the 8-digit stem. Rows for other
        origins are never returned. Within a step the requested origin sorts
        first, then the highest anti-dumping and duty rate.
        """
        code10 = normalize_code(hs_code).ljust(10, "0")
        active = TariffRate.is_active.is_(True)
        exact = and_(TariffRate.hs_code_10 == code10, active)
        generic = or_(
            TariffRate.origin_country_code.in_(GENERIC_ORIGIN_VALUES),
            TariffRate.origin_country_code.is_(None),
        )
        scope = or_(TariffRate.origin_country_code == origin, generic) if origin else generic

        steps = []
        if material:
            pattern = f"%{material.strip()}%"
            mentions = or_(
                TariffRate.material.ilike(pattern),
                TariffRate.description.ilike(pattern),
                TariffRate.description_translated.ilike(pattern),
            )
            if origin:
                steps.append(and_(exact, mentions, TariffRate.origin_country_code == origin))
            steps.append(and_(exact, mentions, scope))
        if origin:
            steps.append(and_(exact, TariffRate.origin_country_code == origin))
        steps.append(and_(exact, generic))
        steps.append(and_(TariffRate.hs_code == code10[:8], active, scope))

        order = self._penalty_order
        if origin:
            order = ((TariffRate.origin_country_code == origin).desc(), *order)

        for condition in steps:
            row = (await db.execute(
                select(TariffRate).where(condition).order_by(*order).limit(1)
            )).scalars().first()
            if row is not None:
                return row
        return None

    async def by_code(self, db: AsyncSession, hs_code: str) -> tuple[TariffRate | None, bool]:
        """Baseline row for a reclassified item: exact 10-digit, else first 8-digit match.

        Returns (row, exact_match).
        """
        code10 = normalize_code(hs_code).ljust(10, "0")
        row = (await db.execute(
            select(TariffRate)
            .where(TariffRate.hs_code_10 == code10, TariffRate.is_active.is_(True))
            .order_by(TariffRate.origin_country_code.asc(), TariffRate.measure_type.asc())
            .limit(1)
        )).scalars().first()
        if row is not None:
            return row, True

        row = (await db.execute(
            select(TariffRate)
            .where(TariffRate.hs_code_10.like(f"{code10[:8]}%"), TariffRate.is_active.is_(True))
            .order_by(TariffRate.hs_code_10.asc(), TariffRate.origin_country_code.asc())
            .limit(1)
        )).scalars().first()
        return row, False


class OriginRateResolver:
    """Store first; the remote lookup service fills gaps when configured."""

    def __init__(self, store: StoreRateLookup, remote: TariffLookupService | None = None):
        self.store = store
        self.remote = remote

    async def by_origin(
        self,
        db: AsyncSession,
        hs_code: str,
        origin: str | None,
        material: str | None = None,
    ) -> ResolvedRates | None:
        row = await self.store.by_origin(db, hs_code, origin, material)
        if row is not None:
            return rates_from_row(row, exact_match=row.hs_code_10 == normalize_code(hs_code).ljust(10, "0"))
        return await self._remote(hs_code, origin)

    async def by_code(self, db: AsyncSession, hs_code: str, origin: str | None = None) -> ResolvedRates | None:
        row, exact = await self.store.by_code(db, hs_code)
        if row is not None:
            return rates_from_row(row, exact_match=exact)
        return await self._remote(hs_code, origin)

    async def _remote(self, hs_code: str, origin: str | None) -> ResolvedRates | None:
        if self.remote is None:
            return None
        try:
            result = await self.remote.lookup(hs_code, origin)
        except ClassificationNotFoundError as e:
            logger.warning("No rates for %s: %s", hs_code, e)
            return None
        return ResolvedRates(
            hs_code=result.matched_hs_code,
            duty_rate=result.duty_rate or 0.0,
            vat_rate=result.vat_rate,
            anti_dumping_rate=result.anti_dumping_rate or 0.0,
            countervailing_rate=result.countervailing_rate or 0.0,
            source="remote",
            exact_match=result.exact_match,
        )
