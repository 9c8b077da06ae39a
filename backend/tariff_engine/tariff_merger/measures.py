"""Duty-measure records and their classification into measure kinds."""

import enum
from dataclasses import dataclass
from datetime import date


class MeasureKind(str, enum.Enum):
    THIRD_COUNTRY = "third_country"
    ANTI_DUMPING = "anti_dumping"
    COUNTERVAILING = "countervailing"
    PREFERENTIAL = "preferential"
    OTHER = "other"


# Measure type code -> kind. Checked before the free-text fallback.
MEASURE_CODE_KINDS: dict[str, MeasureKind] = {
    "103": MeasureKind.THIRD_COUNTRY,
    "551": MeasureKind.ANTI_DUMPING,
    "552": MeasureKind.ANTI_DUMPING,
    "553": MeasureKind.COUNTERVAILING,
    "554": MeasureKind.COUNTERVAILING,
    "142": MeasureKind.PREFERENTIAL,
    "143": MeasureKind.PREFERENTIAL,
}

# Ordered: the first matching phrase wins
MEASURE_TEXT_KINDS: list[tuple[str, MeasureKind]] = [
    ("third country", MeasureKind.THIRD_COUNTRY),
    ("anti-dumping", MeasureKind.ANTI_DUMPING),
    ("countervailing", MeasureKind.COUNTERVAILING),
    ("preferential", MeasureKind.PREFERENTIAL),
    ("tariff preference", MeasureKind.PREFERENTIAL),
]

# Placeholder geographical areas meaning "everyone" (erga omnes, all third countries)
GENERIC_ORIGIN_CODES = {"1008", "1011"}
GENERIC_ORIGIN_PREFIXES = ("10", "20")

THIRD_COUNTRY_MEASURE_TYPE = "Third country duty"
THIRD_COUNTRY_MEASURE_CODE = "103"


@dataclass(frozen=True)
class TariffMeasure:
    """One row of a duty schedule."""

    hs_code: str
    hs_code_10: str
    measure_kind: MeasureKind
    measure_type: str = ""
    measure_code: str | None = None
    duty_rate: float | None = None
    origin_country_code: str | None = None
    origin_country: str | None = None
    legal_base: str | None = None
    quota_order_number: str | None = None
    additional_code: str | None = None
    start_date: date | None = None
    end_date: date | None = None

    @property
    def has_specific_origin(self) -> bool:
        return not is_generic_origin(self.origin_country_code)


def classify_measure(measure_code: str | None, measure_type: str | None) -> MeasureKind:
    """Classify a measure by code first, then by its free-text type."""
    code = (measure_code or "").strip()
    if code in MEASURE_CODE_KINDS:
        return MEASURE_CODE_KINDS[code]

    text = (measure_type or "").lower()
    for phrase, kind in MEASURE_TEXT_KINDS:
        if phrase in text:
            return kind
    return MeasureKind.OTHER


def is_generic_origin(origin_code: str | None) -> bool:
    """True for empty origins and placeholder world/EU-aggregate area codes."""
    code = (origin_code or "").strip()
    if not code:
        return True
    if code in GENERIC_ORIGIN_CODES:
        return True
    return code.startswith(GENERIC_ORIGIN_PREFIXES)
