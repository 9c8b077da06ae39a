from tariff_engine.rate_parser.parser import (
    RawSheet,
    TradeAgreement,
    extract_trade_agreements,
    normalize_hs_code,
    parse_classification_sheets,
    parse_date,
    parse_duty_rate,
    parse_measure_sheets,
)
from tariff_engine.rate_parser.sources import read_csv_sheet, read_csv_sheets

__all__ = [
    "RawSheet",
    "TradeAgreement",
    "extract_trade_agreements",
    "normalize_hs_code",
    "parse_classification_sheets",
    "parse_date",
    "parse_duty_rate",
    "parse_measure_sheets",
    "read_csv_sheet",
    "read_csv_sheets",
]
