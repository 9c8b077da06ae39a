"""
Rate parser: turns raw tabular rows into typed classification and measure records.

Rows come from an external producer (spreadsheet reader, CSV export) as
lists of cell values with the header in the first row. Sheets without a
detectable code column are skipped; malformed codes are dropped row by row.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from tariff_engine.rate_parser.columns import (
    CLASSIFICATION_COLUMNS,
    MEASURE_COLUMNS,
    detect_columns,
)
from tariff_engine.tariff_merger.measures import (
    MeasureKind,
    TariffMeasure,
    classify_measure,
)
from tariff_engine.tariff_merger.merger import ClassificationRow

logger = logging.getLogger("tariff.parser")

MIN_CODE_DIGITS = 4

# Excel serial day 0; 1900 leap-year bug already absorbed by starting on the 30th
EXCEL_EPOCH = date(1899, 12, 30)

FREE_RATE_TOKENS = {"FREE", "0", "-", "EXEMPT"}

_PLAIN_RATE = re.compile(r"^(\d+(?:\.\d+)?)\s*%?$")
_LEADING_AD_VALOREM = re.compile(r"^(\d+(?:\.\d+)?)\s*%")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
_DMY_DATE = re.compile(r"^(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})$")
_YMD_SLASH_DATE = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")

AGREEMENT_KEYWORDS: list[tuple[str, str]] = [
    ("GSP+", "GSP+"),
    ("EBA", "EBA"),
    ("GSP", "GSP"),
    ("EPA", "EPA"),
    ("FTA", "FTA"),
    ("CUSTOMS UNION", "CU"),
    ("CU", "CU"),
]


@dataclass
class RawSheet:
    """A sheet as produced by the external tabular reader."""

    name: str
    rows: list[list] = field(default_factory=list)


@dataclass(frozen=True)
class TradeAgreement:
    origin_code: str
    origin: str | None
    kind: str
    rate: float | None
    start_date: date | None = None
    end_date: date | None = None


def normalize_hs_code(raw) -> tuple[str, str] | None:
    """Strip non-digits and pad to (hs8, hs10); None when too short."""
    if raw is None:
        return None
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    digits = re.sub(r"\D", "", str(raw))
    if len(digits) < MIN_CODE_DIGITS:
        return None
    return digits[:8].ljust(8, "0"), digits[:10].ljust(10, "0")


def parse_duty_rate(value) -> float | None:
    """Parse a duty cell into a percentage.

    Compound rates ("12% + 3.5 EUR/100 kg") keep only their ad-valorem part;
    specific-only duties return None.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip().upper()
    if not text:
        return None
    if text in FREE_RATE_TOKENS:
        return 0.0

    match = _PLAIN_RATE.match(text) or _LEADING_AD_VALOREM.match(text)
    if match:
        return float(match.group(1))
    return None


def parse_date(value) -> date | None:
    """Parse Excel serials and the common textual date layouts."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value <= 0:
            return None
        return EXCEL_EPOCH + timedelta(days=int(value))

    text = str(value).strip()
    try:
        if match := _ISO_DATE.match(text):
            year, month, day = match.groups()
        elif match := _DMY_DATE.match(text):
            day, month, year = match.groups()
        elif match := _YMD_SLASH_DATE.match(text):
            year, month, day = match.groups()
        else:
            return None
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def _cell(row: list, mapping: dict[str, int], name: str):
    index = mapping.get(name)
    if index is None or index >= len(row):
        return None
    return row[index]


def _text(row: list, mapping: dict[str, int], name: str) -> str | None:
    value = _cell(row, mapping, name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_classification_sheets(
    sheets: list[RawSheet],
    default_vat_rate: float | None = None,
) -> list[ClassificationRow]:
    """Parse nomenclature sheets into classification rows."""
    results: list[ClassificationRow] = []

    for sheet in sheets:
        if len(sheet.rows) < 2:
            continue
        mapping = detect_columns(sheet.rows[0], CLASSIFICATION_COLUMNS)
        if "code" not in mapping:
            logger.warning("Sheet %r: no code column found, skipping", sheet.name)
            continue

        dropped = 0
        for row in sheet.rows[1:]:
            codes = normalize_hs_code(_cell(row, mapping, "code"))
            if codes is None:
                dropped += 1
                continue
            vat_rate = parse_duty_rate(_cell(row, mapping, "vat_rate"))
            results.append(ClassificationRow(
                hs_code=codes[0],
                hs_code_10=codes[1],
                description=_text(row, mapping, "description") or "",
                description_translated=_text(row, mapping, "description_translated"),
                duty_rate=parse_duty_rate(_cell(row, mapping, "duty_rate")),
                vat_rate=vat_rate if vat_rate is not None else default_vat_rate,
                unit=_text(row, mapping, "unit"),
                start_date=parse_date(_cell(row, mapping, "start_date")),
                end_date=parse_date(_cell(row, mapping, "end_date")),
            ))

        if dropped:
            logger.debug("Sheet %r: dropped %d rows with malformed codes", sheet.name, dropped)

    logger.info("Parsed %d classification rows from %d sheets", len(results), len(sheets))
    return results


def parse_measure_sheets(sheets: list[RawSheet]) -> list[TariffMeasure]:
    """Parse duty-schedule sheets into classified measures."""
    results: list[TariffMeasure] = []

    for sheet in sheets:
        if len(sheet.rows) < 2:
            continue
        mapping = detect_columns(sheet.rows[0], MEASURE_COLUMNS)
        if "code" not in mapping:
            logger.warning("Sheet %r: no code column found, skipping", sheet.name)
            continue

        for row in sheet.rows[1:]:
            codes = normalize_hs_code(_cell(row, mapping, "code"))
            if codes is None:
                continue

            measure_type = _text(row, mapping, "measure_type") or ""
            measure_code = _text(row, mapping, "measure_code")
            kind = classify_measure(measure_code, measure_type)
            duty_rate = parse_duty_rate(_cell(row, mapping, "duty_rate"))
            if kind == MeasureKind.PREFERENTIAL and "preferential_rate" in mapping:
                preferential = parse_duty_rate(_cell(row, mapping, "preferential_rate"))
                if preferential is not None:
                    duty_rate = preferential

            results.append(TariffMeasure(
                hs_code=codes[0],
                hs_code_10=codes[1],
                measure_kind=kind,
                measure_type=measure_type,
                measure_code=measure_code,
                duty_rate=duty_rate,
                origin_country_code=_text(row, mapping, "origin_country_code"),
                origin_country=_text(row, mapping, "origin_country"),
                legal_base=_text(row, mapping, "legal_base"),
                quota_order_number=_text(row, mapping, "quota_order_number"),
                additional_code=_text(row, mapping, "additional_code"),
                start_date=parse_date(_cell(row, mapping, "start_date")),
                end_date=parse_date(_cell(row, mapping, "end_date")),
            ))

    logger.info("Parsed %d duty measures from %d sheets", len(results), len(sheets))
    return results


def extract_trade_agreements(measures: list[TariffMeasure]) -> list[TradeAgreement]:
    """Summarize preferential measures as one agreement per origin."""
    agreements: dict[str, TradeAgreement] = {}

    for measure in measures:
        if measure.measure_kind != MeasureKind.PREFERENTIAL:
            continue
        origin_code = measure.origin_country_code
        if not origin_code or origin_code == "1011" or origin_code in agreements:
            continue

        haystack = f"{origin_code} {measure.origin_country or ''} {measure.measure_type}".upper()
        kind = "OTHER"
        for keyword, agreement_kind in AGREEMENT_KEYWORDS:
            if re.search(rf"(?<![A-Z]){re.escape(keyword)}(?![A-Z])", haystack):
                kind = agreement_kind
                break

        agreements[origin_code] = TradeAgreement(
            origin_code=origin_code,
            origin=measure.origin_country,
            kind=kind,
            rate=measure.duty_rate,
            start_date=measure.start_date,
            end_date=measure.end_date,
        )

    return list(agreements.values())
