"""Proportional allocation of batch-level costs to line items — no DB dependency.

Shares are rounded half-up to cents and the rounding residue is booked on
the item with the largest weight, so allocations always sum to the input.
"""

from dataclasses import dataclass

from tariff_engine.customs_calculator.incoterms import ItemCosts
from tariff_engine.customs_calculator.taxes import round_decimal, round_money, to_decimal

ALLOCATION_METHODS = ("by_value", "by_weight")
DEFAULT_ALLOCATION_METHOD = "by_value"


@dataclass
class TradeTerms:
    incoterm: str | None = None
    international_freight: float = 0.0
    domestic_freight_export: float = 0.0
    domestic_freight_import: float = 0.0
    unloading_cost: float = 0.0
    insurance_cost: float = 0.0
    freight_allocation_method: str = DEFAULT_ALLOCATION_METHOD


@dataclass
class ItemBasis:
    declared_value: float
    weight_kg: float = 0.0


def allocate(amount: float, weights: list[float]) -> list[float]:
    """Split `amount` across items in proportion to `weights`.

    Falls back to an equal split when the weights sum to zero.
    """
    count = len(weights)
    if count == 0:
        return []

    total = round_decimal(amount)
    clean = [max(to_decimal(w), to_decimal(0)) for w in weights]
    base = sum(clean)

    if base > 0:
        shares = [round_decimal(total * w / base) for w in clean]
        residue_index = max(range(count), key=lambda i: clean[i])
    else:
        shares = [round_decimal(total / count)] * count
        residue_index = count - 1

    residue = total - sum(shares)
    if residue:
        shares[residue_index] += residue
    return [float(s) for s in shares]


def estimate_insurance(total_value: float, international_freight: float, rate_percent: float) -> float:
    """Insurance estimate on cost plus freight, used when none was declared."""
    if rate_percent <= 0:
        return 0.0
    return round_money(to_decimal(total_value + international_freight) * to_decimal(rate_percent) / 100)


def allocate_batch_costs(
    items: list[ItemBasis],
    terms: TradeTerms,
    insurance_estimate_rate: float = 0.0,
) -> list[ItemCosts]:
    """Per-item cost shares for every leg of the batch.

    Freight, export-leg freight and insurance follow the configured method;
    import-leg freight and unloading always follow declared value.
    """
    values = [item.declared_value or 0.0 for item in items]
    if terms.freight_allocation_method == "by_weight":
        method_weights = [item.weight_kg or 0.0 for item in items]
    else:
        method_weights = values

    insurance_total = terms.insurance_cost or 0.0
    if not insurance_total and insurance_estimate_rate:
        insurance_total = estimate_insurance(
            sum(values), terms.international_freight or 0.0, insurance_estimate_rate,
        )

    freight = allocate(terms.international_freight or 0.0, method_weights)
    export_leg = allocate(terms.domestic_freight_export or 0.0, method_weights)
    insurance = allocate(insurance_total, method_weights)
    import_leg = allocate(terms.domestic_freight_import or 0.0, values)
    unloading = allocate(terms.unloading_cost or 0.0, values)

    return [
        ItemCosts(
            declared_value=values[i],
            international_freight=freight[i],
            domestic_freight_export=export_leg[i],
            domestic_freight_import=import_leg[i],
            unloading_cost=unloading[i],
            insurance=insurance[i],
        )
        for i in range(len(items))
    ]
