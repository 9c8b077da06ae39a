"""Incoterm catalogue and customs-value formulas — no DB dependency."""

import enum
from dataclasses import dataclass

from tariff_engine.customs_calculator.taxes import round_money


class IncotermGroup(str, enum.Enum):
    E = "E"
    F = "F"
    C = "C"
    D = "D"


class ValuationBasis(str, enum.Enum):
    """Which costs sit outside the declared price and must be added."""

    EX_WORKS = "ex_works"          # nothing included: add every leg
    FREE_CARRIER = "free_carrier"  # export leg included: add from loading onward
    DELIVERED = "delivered"        # freight and insurance included: add nothing


@dataclass(frozen=True)
class Incoterm:
    code: str
    name: str
    group: IncotermGroup
    basis: ValuationBasis
    duties_prepaid: bool = False


INCOTERMS: dict[str, Incoterm] = {
    "EXW": Incoterm("EXW", "Ex Works", IncotermGroup.E, ValuationBasis.EX_WORKS),
    "FCA": Incoterm("FCA", "Free Carrier", IncotermGroup.F, ValuationBasis.FREE_CARRIER),
    "FAS": Incoterm("FAS", "Free Alongside Ship", IncotermGroup.F, ValuationBasis.FREE_CARRIER),
    "FOB": Incoterm("FOB", "Free On Board", IncotermGroup.F, ValuationBasis.FREE_CARRIER),
    "CFR": Incoterm("CFR", "Cost and Freight", IncotermGroup.C, ValuationBasis.DELIVERED),
    "CIF": Incoterm("CIF", "Cost, Insurance and Freight", IncotermGroup.C, ValuationBasis.DELIVERED),
    "CPT": Incoterm("CPT", "Carriage Paid To", IncotermGroup.C, ValuationBasis.DELIVERED),
    "CIP": Incoterm("CIP", "Carriage and Insurance Paid To", IncotermGroup.C, ValuationBasis.DELIVERED),
    "DAP": Incoterm("DAP", "Delivered At Place", IncotermGroup.D, ValuationBasis.DELIVERED),
    "DPU": Incoterm("DPU", "Delivered at Place Unloaded", IncotermGroup.D, ValuationBasis.DELIVERED),
    "DDP": Incoterm("DDP", "Delivered Duty Paid", IncotermGroup.D, ValuationBasis.DELIVERED, duties_prepaid=True),
    # Withdrawn in Incoterms 2010 but still seen on legacy contracts
    "DDU": Incoterm("DDU", "Delivered Duty Unpaid", IncotermGroup.D, ValuationBasis.DELIVERED),
}

DEFAULT_INCOTERM = "FOB"


def get_incoterm(code: str | None) -> Incoterm:
    """Incoterm for a code; unknown or empty codes are valued as FOB."""
    return INCOTERMS.get((code or "").strip().upper(), INCOTERMS[DEFAULT_INCOTERM])


def is_known_incoterm(code: str | None) -> bool:
    return (code or "").strip().upper() in INCOTERMS


@dataclass
class ItemCosts:
    """Per-item shares of the batch's cost legs."""

    declared_value: float
    international_freight: float = 0.0
    domestic_freight_export: float = 0.0
    domestic_freight_import: float = 0.0
    unloading_cost: float = 0.0
    insurance: float = 0.0


@dataclass
class CustomsValuation:
    incoterm: str
    customs_value: float
    added_costs: float
    duties_prepaid: bool = False


def compute_customs_value(incoterm: str | None, costs: ItemCosts) -> CustomsValuation:
    """Dutiable value of one item under the given trade term."""
    term = get_incoterm(incoterm)

    if term.basis == ValuationBasis.EX_WORKS:
        added = (
            costs.domestic_freight_export
            + costs.international_freight
            + costs.domestic_freight_import
            + costs.unloading_cost
            + costs.insurance
        )
    elif term.basis == ValuationBasis.FREE_CARRIER:
        added = (
            costs.international_freight
            + costs.domestic_freight_import
            + costs.unloading_cost
            + costs.insurance
        )
    else:
        added = 0.0

    return CustomsValuation(
        incoterm=term.code,
        customs_value=round_money(costs.declared_value + added),
        added_costs=round_money(added),
        duties_prepaid=term.duties_prepaid,
    )
