"""Pure duty/VAT computation — no DB dependency, easy to unit test."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps the shortest repr, so 0.1 stays 0.1 instead of its binary expansion
    return Decimal(str(value))


def round_decimal(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_money(value) -> float:
    """Round half-up to 2 decimal places."""
    return float(round_decimal(value))


@dataclass
class ItemTax:
    customs_value: float
    duty_rate: float
    vat_rate: float
    anti_dumping_rate: float
    countervailing_rate: float
    duty_amount: float
    anti_dumping_amount: float
    countervailing_amount: float
    other_tax_amount: float
    vat_base: float
    vat_amount: float
    total_tax: float


def compute_item_tax(
    customs_value: float,
    duty_rate: float | None = 0.0,
    vat_rate: float | None = 0.0,
    anti_dumping_rate: float | None = 0.0,
    countervailing_rate: float | None = 0.0,
) -> ItemTax:
    """Duty, penalties and VAT for one item; VAT compounds on duty and penalties.

    Each component is rounded before it enters the VAT base, so the stored
    VAT always equals round(base * rate / 100) of the stored figures.
    """
    value = round_decimal(customs_value)
    hundred = Decimal(100)

    duty = round_decimal(value * to_decimal(duty_rate) / hundred)
    anti_dumping = round_decimal(value * to_decimal(anti_dumping_rate) / hundred)
    countervailing = round_decimal(value * to_decimal(countervailing_rate) / hundred)
    other = anti_dumping + countervailing
    vat_base = value + duty + other
    vat = round_decimal(vat_base * to_decimal(vat_rate) / hundred)

    return ItemTax(
        customs_value=float(value),
        duty_rate=float(to_decimal(duty_rate)),
        vat_rate=float(to_decimal(vat_rate)),
        anti_dumping_rate=float(to_decimal(anti_dumping_rate)),
        countervailing_rate=float(to_decimal(countervailing_rate)),
        duty_amount=float(duty),
        anti_dumping_amount=float(anti_dumping),
        countervailing_amount=float(countervailing),
        other_tax_amount=float(other),
        vat_base=float(vat_base),
        vat_amount=float(vat),
        total_tax=float(duty + vat + other),
    )
