"""Pure rate extraction from commodity documents — no network dependency."""

import re
from dataclasses import dataclass, field

from tariff_engine.classification.documents import JsonApiDocument, strip_html
from tariff_engine.tariff_merger.measures import MeasureKind, classify_measure

ERGA_OMNES = "1011"
THIRD_COUNTRIES = "2005"
# Geographical areas applying to every origin, in order of preference
GENERIC_AREA_PRIORITY = {ERGA_OMNES: 0, THIRD_COUNTRIES: 1}

VAT_MEASURE_CODE = "305"
STANDARD_VAT_RATE = 20.0

_RATE = re.compile(r"(\d+(?:\.\d+)?)\s*%?")


@dataclass
class MeasureSummary:
    type: str
    type_id: str | None
    kind: MeasureKind
    geographical_area: str | None
    geographical_area_id: str | None
    duty_expression: str | None
    rate: float | None
    start_date: str | None = None
    end_date: str | None = None
    type_translated: str | None = None
    geographical_area_translated: str | None = None


@dataclass
class SuggestedCode:
    code: str
    description: str


@dataclass
class RateLookupResult:
    hs_code: str
    hs_code_10: str
    original_hs_code: str
    matched_hs_code: str
    exact_match: bool = True
    description: str = ""
    origin_country_code: str | None = None
    duty_rate: float | None = None
    vat_rate: float | None = None
    anti_dumping_rate: float | None = None
    countervailing_rate: float | None = None
    measures: list[MeasureSummary] = field(default_factory=list)
    suggested_codes: list[SuggestedCode] = field(default_factory=list)
    note: str | None = None


def rate_from_expression(expression: str | None) -> float | None:
    """Leading number of a duty expression such as '<span>6.00</span> %'."""
    if not expression:
        return None
    match = _RATE.search(strip_html(expression))
    return float(match.group(1)) if match else None


def is_vat_measure(type_id: str | None, description: str) -> bool:
    text = description.lower()
    return type_id == VAT_MEASURE_CODE or "value added tax" in text or re.search(r"\bvat\b", text) is not None


def extract_measures(document: JsonApiDocument) -> list[MeasureSummary]:
    """Resolve each included measure's type, area and duty expression."""
    measures: list[MeasureSummary] = []
    for resource in document.of_type("measure"):
        measure_type = document.related(resource, "measure_type")
        area = document.related(resource, "geographical_area")
        expression = document.related(resource, "duty_expression")

        type_id = resource.related_id("measure_type")
        area_id = resource.related_id("geographical_area")
        description = measure_type.attr("description", "") if measure_type else ""
        expression_text = None
        if expression is not None:
            expression_text = expression.attr("formatted_base") or expression.attr("base")

        measures.append(MeasureSummary(
            type=description or "Unknown",
            type_id=type_id,
            kind=classify_measure(type_id, description),
            geographical_area=area.attr("description") if area else None,
            geographical_area_id=area_id,
            duty_expression=expression_text,
            rate=rate_from_expression(expression_text),
            start_date=resource.attr("effective_start_date"),
            end_date=resource.attr("effective_end_date"),
        ))
    return measures


def third_country_rate(measures: list[MeasureSummary]) -> float | None:
    """Baseline duty, preferring erga omnes over 'third countries' areas."""
    candidates = [m for m in measures if m.kind == MeasureKind.THIRD_COUNTRY]
    if not candidates:
        return None
    candidates.sort(key=lambda m: GENERIC_AREA_PRIORITY.get(m.geographical_area_id or "", 99))
    best = candidates[0]
    # A baseline measure without an expression means duty free
    return best.rate if best.rate is not None else 0.0


def penalty_rate(
    measures: list[MeasureSummary],
    kind: MeasureKind,
    origin: str | None = None,
) -> float | None:
    """Highest anti-dumping or countervailing rate applicable to the origin.

    Without an origin every measure of the kind counts, so the conservative
    maximum is returned.
    """
    applicable = [m for m in measures if m.kind == kind]
    if origin:
        applicable = [
            m for m in applicable
            if not m.geographical_area_id
            or m.geographical_area_id in (origin, ERGA_OMNES, THIRD_COUNTRIES)
        ]
    rates = [m.rate for m in applicable if m.rate is not None]
    return max(rates) if rates else None


def vat_rate(measures: list[MeasureSummary], default: float = STANDARD_VAT_RATE) -> float:
    """Standard rate when present, else the highest non-zero one."""
    rates = [
        m.rate for m in measures
        if is_vat_measure(m.type_id, m.type) and m.rate is not None
    ]
    if not rates:
        return default
    if STANDARD_VAT_RATE in rates:
        return STANDARD_VAT_RATE
    non_zero = [r for r in rates if r > 0]
    return max(non_zero) if non_zero else 0.0


def build_lookup_result(
    document: JsonApiDocument,
    original_code: str,
    origin: str | None,
    default_vat_rate: float = STANDARD_VAT_RATE,
) -> RateLookupResult:
    """Rates for one commodity document."""
    commodity = document.data
    code = str(commodity.attr("goods_nomenclature_item_id", "")) or original_code
    measures = extract_measures(document)
    return RateLookupResult(
        hs_code=code[:8],
        hs_code_10=code,
        original_hs_code=original_code,
        matched_hs_code=code,
        exact_match=code == original_code,
        description=strip_html(commodity.attr("description") or commodity.attr("formatted_description")),
        origin_country_code=origin,
        duty_rate=third_country_rate(measures),
        vat_rate=vat_rate(measures, default_vat_rate),
        anti_dumping_rate=penalty_rate(measures, MeasureKind.ANTI_DUMPING, origin),
        countervailing_rate=penalty_rate(measures, MeasureKind.COUNTERVAILING, origin),
        measures=measures,
    )
