"""Header detection for classification and duty-schedule sheets."""

import re

# Logical field -> pattern, anchored and matched against the trimmed header cell
CODE_PATTERN = r"goods\s*code|cn8|cn.?code|code|taric|hs.?code|nomenclature"
START_DATE_PATTERN = r"start\s*date|valid.?from|effective"
END_DATE_PATTERN = r"end\s*date|valid.?to|expiry"

CLASSIFICATION_COLUMNS: dict[str, str] = {
    "code": CODE_PATTERN,
    "description": r"description|desc|text|name|goods.?desc",
    "description_translated": r"description.?cn|desc.?cn|中文|chinese|translation",
    "duty_rate": r"duty|duty.?rate|tariff|关税",
    "vat_rate": r"vat|vat.?rate|增值税",
    "unit": r"unit|uom|计量单位",
    "start_date": START_DATE_PATTERN,
    "end_date": END_DATE_PATTERN,
}

MEASURE_COLUMNS: dict[str, str] = {
    "code": CODE_PATTERN,
    "duty_rate": r"duty|third.?country|erga.?omnes|mfn|duty.?rate",
    "preferential_rate": r"preferential|pref|gsp|fta",
    "measure_type": r"measure\s*type|meas\.?\s*type|type",
    "measure_code": r"meas\.?\s*type\s*code|measure\s*type\s*code",
    "origin_country": r"origin|geo|geographical|country|area",
    "origin_country_code": r"origin\s*code|country\s*code|geo\s*code",
    "additional_code": r"add\.?\s*code|additional.?code",
    "legal_base": r"legal\s*base|regulation",
    "quota_order_number": r"order\s*no\.?|order\s*number|quota",
    "start_date": START_DATE_PATTERN,
    "end_date": END_DATE_PATTERN,
}

_compiled: dict[str, re.Pattern] = {}


def _pattern(expr: str) -> re.Pattern:
    if expr not in _compiled:
        _compiled[expr] = re.compile(rf"^(?:{expr})$", re.IGNORECASE)
    return _compiled[expr]


def detect_columns(header: list, patterns: dict[str, str]) -> dict[str, int]:
    """Map logical field names to column indexes.

    The first header cell matching a field's pattern wins. Fields with no
    matching header are absent from the result.
    """
    cells = [str(h if h is not None else "").strip().lower() for h in header]
    mapping: dict[str, int] = {}
    for field_name, expr in patterns.items():
        pattern = _pattern(expr)
        for index, cell in enumerate(cells):
            if pattern.match(cell):
                mapping[field_name] = index
                break
    return mapping
