"""Pure merge of classification rows and duty measures into a tariff catalog.

No DB or network dependency: takes parsed rows, returns an immutable
TariffCatalog snapshot that the store refresh and lookups consume.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from tariff_engine.tariff_merger.measures import (
    THIRD_COUNTRY_MEASURE_CODE,
    THIRD_COUNTRY_MEASURE_TYPE,
    MeasureKind,
    TariffMeasure,
    is_generic_origin,
)

logger = logging.getLogger("tariff.merger")


@dataclass(frozen=True)
class ClassificationRow:
    """One nomenclature row: a code with its descriptions and validity."""

    hs_code: str
    hs_code_10: str
    description: str = ""
    description_translated: str | None = None
    duty_rate: float | None = None
    vat_rate: float | None = None
    unit: str | None = None
    start_date: date | None = None
    end_date: date | None = None


@dataclass(frozen=True)
class CanonicalTariffRecord:
    """Merge output for one (HS10, origin-or-none) pair."""

    hs_code: str
    hs_code_10: str
    measure_kind: MeasureKind
    description: str = ""
    description_translated: str | None = None
    origin_country_code: str | None = None
    origin_country: str | None = None
    duty_rate: float = 0.0
    vat_rate: float | None = None
    anti_dumping_rate: float = 0.0
    countervailing_rate: float = 0.0
    preferential_rate: float | None = None
    has_anti_dumping: bool = False
    has_countervailing: bool = False
    measure_type: str = THIRD_COUNTRY_MEASURE_TYPE
    measure_code: str | None = THIRD_COUNTRY_MEASURE_CODE
    legal_base: str | None = None
    unit: str | None = None
    start_date: date | None = None
    end_date: date | None = None


@dataclass(frozen=True)
class TariffCatalog:
    """Immutable merge snapshot; superseded wholesale by the next merge."""

    records: tuple[CanonicalTariffRecord, ...] = ()

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def for_hs10(self, hs_code_10: str) -> list[CanonicalTariffRecord]:
        return [r for r in self.records if r.hs_code_10 == hs_code_10]

    def third_country_records(self) -> list[CanonicalTariffRecord]:
        return [r for r in self.records if r.measure_kind == MeasureKind.THIRD_COUNTRY]


@dataclass
class MeasureBucket:
    """Duty measures for one HS8 code, grouped by kind."""

    third_country: TariffMeasure | None = None
    anti_dumping: list[TariffMeasure] = field(default_factory=list)
    countervailing: list[TariffMeasure] = field(default_factory=list)
    preferential: list[TariffMeasure] = field(default_factory=list)
    other: list[TariffMeasure] = field(default_factory=list)

    def add(self, measure: TariffMeasure) -> None:
        kind = measure.measure_kind
        if kind == MeasureKind.THIRD_COUNTRY:
            # First row wins unless it has no rate and the newcomer does
            if self.third_country is None or (
                measure.duty_rate is not None and self.third_country.duty_rate is None
            ):
                self.third_country = measure
        elif kind == MeasureKind.ANTI_DUMPING:
            self.anti_dumping.append(measure)
        elif kind == MeasureKind.COUNTERVAILING:
            self.countervailing.append(measure)
        elif kind == MeasureKind.PREFERENTIAL:
            self.preferential.append(measure)
        else:
            self.other.append(measure)

    @property
    def third_country_rate(self) -> float | None:
        return self.third_country.duty_rate if self.third_country else None


def group_measures(measures: list[TariffMeasure]) -> dict[str, MeasureBucket]:
    """Group measures by HS8 code, preserving first-seen order."""
    buckets: dict[str, MeasureBucket] = {}
    for measure in measures:
        buckets.setdefault(measure.hs_code, MeasureBucket()).add(measure)
    return buckets


def max_rate_measure(measures: list[TariffMeasure]) -> TariffMeasure | None:
    """Measure carrying the highest rate; the first one wins ties."""
    best: TariffMeasure | None = None
    for measure in measures:
        if best is None or (measure.duty_rate or 0.0) > (best.duty_rate or 0.0):
            best = measure
    return best


def merge_catalog(
    classifications: list[ClassificationRow],
    measures: list[TariffMeasure],
    default_vat_rate: float | None = None,
) -> TariffCatalog:
    """Combine classification rows with duty measures into canonical records.

    Emits one base record per distinct classification code, one extra record
    per origin-specific penalty/preference measure on the first occurrence of
    each HS8, and standalone records for measures whose HS8 has no
    classification row.
    """
    buckets = group_measures(measures)
    records: list[CanonicalTariffRecord] = []
    seen_hs10: set[str] = set()
    seen_hs8: set[str] = set()

    for row in classifications:
        if row.hs_code_10 in seen_hs10:
            logger.debug("Duplicate classification row for %s skipped", row.hs_code_10)
            continue
        seen_hs10.add(row.hs_code_10)

        bucket = buckets.get(row.hs_code, MeasureBucket())
        base = _base_record(row, bucket)
        records.append(base)

        if row.hs_code not in seen_hs8:
            seen_hs8.add(row.hs_code)
            records.extend(_origin_records(row, bucket, base))

    standalone = 0
    for hs8, bucket in buckets.items():
        if hs8 in seen_hs8:
            continue
        for record in _standalone_records(bucket, default_vat_rate):
            records.append(record)
            standalone += 1

    logger.info(
        "Merged %d classification rows and %d measures into %d records (%d standalone)",
        len(classifications), len(measures), len(records), standalone,
    )
    return TariffCatalog(records=tuple(records))


def _base_record(row: ClassificationRow, bucket: MeasureBucket) -> CanonicalTariffRecord:
    tc = bucket.third_country
    duty_rate = bucket.third_country_rate
    if duty_rate is None:
        duty_rate = row.duty_rate if row.duty_rate is not None else 0.0

    ad = max_rate_measure(bucket.anti_dumping)
    cvd = max_rate_measure(bucket.countervailing)

    # Provenance is the baseline's; penalty measures keep theirs on the origin records
    return CanonicalTariffRecord(
        hs_code=row.hs_code,
        hs_code_10=row.hs_code_10,
        measure_kind=MeasureKind.THIRD_COUNTRY,
        description=row.description,
        description_translated=row.description_translated,
        duty_rate=duty_rate,
        vat_rate=row.vat_rate,
        anti_dumping_rate=(ad.duty_rate or 0.0) if ad else 0.0,
        countervailing_rate=(cvd.duty_rate or 0.0) if cvd else 0.0,
        has_anti_dumping=bool(bucket.anti_dumping),
        has_countervailing=bool(bucket.countervailing),
        measure_type=(tc.measure_type if tc and tc.measure_type else THIRD_COUNTRY_MEASURE_TYPE),
        measure_code=(tc.measure_code if tc and tc.measure_code else THIRD_COUNTRY_MEASURE_CODE),
        legal_base=tc.legal_base if tc else None,
        unit=row.unit,
        start_date=row.start_date or (tc.start_date if tc else None),
        end_date=row.end_date or (tc.end_date if tc else None),
    )


def _measure_record(
    measure: TariffMeasure,
    hs_code_10: str,
    description: str,
    description_translated: str | None,
    duty_rate: float,
    vat_rate: float | None,
    unit: str | None = None,
) -> CanonicalTariffRecord:
    kind = measure.measure_kind
    rate = measure.duty_rate or 0.0
    return CanonicalTariffRecord(
        hs_code=measure.hs_code,
        hs_code_10=hs_code_10,
        measure_kind=kind,
        description=description,
        description_translated=description_translated,
        origin_country_code=measure.origin_country_code,
        origin_country=measure.origin_country,
        duty_rate=duty_rate,
        vat_rate=vat_rate,
        anti_dumping_rate=rate if kind == MeasureKind.ANTI_DUMPING else 0.0,
        countervailing_rate=rate if kind == MeasureKind.COUNTERVAILING else 0.0,
        preferential_rate=measure.duty_rate if kind == MeasureKind.PREFERENTIAL else None,
        has_anti_dumping=kind == MeasureKind.ANTI_DUMPING,
        has_countervailing=kind == MeasureKind.COUNTERVAILING,
        measure_type=measure.measure_type or (
            THIRD_COUNTRY_MEASURE_TYPE if kind == MeasureKind.THIRD_COUNTRY else kind.value
        ),
        measure_code=measure.measure_code or (
            THIRD_COUNTRY_MEASURE_CODE if kind == MeasureKind.THIRD_COUNTRY else None
        ),
        legal_base=measure.legal_base,
        unit=unit,
        start_date=measure.start_date,
        end_date=measure.end_date,
    )


def _origin_records(
    row: ClassificationRow,
    bucket: MeasureBucket,
    base: CanonicalTariffRecord,
) -> list[CanonicalTariffRecord]:
    """Origin-specific records emitted once per HS8."""

    def emit(measure: TariffMeasure, duty_rate: float) -> CanonicalTariffRecord:
        return _measure_record(
            measure, row.hs_code_10, row.description, row.description_translated,
            duty_rate, row.vat_rate, row.unit,
        )

    out = [emit(m, base.duty_rate) for m in bucket.anti_dumping]
    out.extend(emit(m, base.duty_rate) for m in bucket.countervailing)

    seen_preferential: set[str] = set()
    for measure in bucket.preferential:
        key = measure.origin_country_code or measure.origin_country or "unknown"
        if key in seen_preferential:
            continue
        seen_preferential.add(key)
        out.append(emit(measure, base.duty_rate))

    seen_other: set[tuple[str | None, str]] = set()
    for measure in bucket.other:
        if not measure.has_specific_origin:
            continue
        key = (measure.origin_country_code, measure.measure_type)
        if key in seen_other:
            continue
        seen_other.add(key)
        rate = measure.duty_rate if measure.duty_rate is not None else base.duty_rate
        out.append(emit(measure, rate))

    return out


def _standalone_records(
    bucket: MeasureBucket,
    default_vat_rate: float | None,
) -> list[CanonicalTariffRecord]:
    """Records for an HS8 that only appears in the duty schedule."""
    baseline_rate = bucket.third_country_rate or 0.0
    out: list[CanonicalTariffRecord] = []

    def emit(measure: TariffMeasure) -> CanonicalTariffRecord:
        if measure.measure_kind in (MeasureKind.ANTI_DUMPING, MeasureKind.COUNTERVAILING):
            # Penalties are additive; they never become the base rate
            duty_rate = 0.0
        elif measure.measure_kind == MeasureKind.THIRD_COUNTRY:
            duty_rate = measure.duty_rate or 0.0
        else:
            duty_rate = measure.duty_rate if measure.duty_rate is not None else baseline_rate
        return _measure_record(
            measure, measure.hs_code_10, f"HS {measure.hs_code}", None,
            duty_rate, default_vat_rate,
        )

    if bucket.third_country is not None:
        out.append(emit(bucket.third_country))
    for group in (bucket.anti_dumping, bucket.countervailing, bucket.preferential, bucket.other):
        out.extend(emit(m) for m in group if m.has_specific_origin)
    return out
