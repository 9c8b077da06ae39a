"""Tests for Incoterm valuation, cost allocation and tax arithmetic."""

from decimal import Decimal

import pytest

from tariff_engine.customs_calculator.allocation import (
    ItemBasis,
    TradeTerms,
    allocate,
    allocate_batch_costs,
    estimate_insurance,
)
from tariff_engine.customs_calculator.incoterms import (
    INCOTERMS,
    IncotermGroup,
    ItemCosts,
    compute_customs_value,
    get_incoterm,
    is_known_incoterm,
)
from tariff_engine.customs_calculator.taxes import compute_item_tax, round_money, to_decimal


@pytest.fixture
def costs() -> ItemCosts:
    return ItemCosts(
        declared_value=1000.0,
        international_freight=150.0,
        domestic_freight_export=30.0,
        domestic_freight_import=20.0,
        unloading_cost=0.0,
        insurance=5.0,
    )


class TestIncoterms:
    def test_all_2020_terms_plus_ddu(self):
        assert set(INCOTERMS) == {
            "EXW", "FCA", "FAS", "FOB", "CFR", "CIF", "CPT", "CIP", "DAP", "DPU", "DDP", "DDU",
        }

    def test_ddu_is_a_d_term(self):
        assert INCOTERMS["DDU"].group == IncotermGroup.D

    @pytest.mark.parametrize("code", ["fob", " CIF ", "DDP"])
    def test_known(self, code):
        assert is_known_incoterm(code)

    @pytest.mark.parametrize("code", [None, "", "XYZ"])
    def test_unknown_defaults_to_fob(self, code):
        assert not is_known_incoterm(code)
        assert get_incoterm(code).code == "FOB"


class TestCustomsValue:
    @pytest.mark.parametrize("incoterm", ["FOB", "FCA", "FAS"])
    def test_free_carrier_terms_add_from_loading(self, costs, incoterm):
        assert compute_customs_value(incoterm, costs).customs_value == 1175.0

    def test_ex_works_adds_export_leg(self, costs):
        valuation = compute_customs_value("EXW", costs)
        assert valuation.customs_value == 1205.0
        assert valuation.added_costs == 205.0

    @pytest.mark.parametrize("incoterm", ["CFR", "CIF", "CPT", "CIP", "DAP", "DPU", "DDU"])
    def test_delivered_terms_use_declared_value(self, costs, incoterm):
        valuation = compute_customs_value(incoterm, costs)
        assert valuation.customs_value == 1000.0
        assert valuation.duties_prepaid is False

    def test_ddp_flags_prepaid_duties(self, costs):
        valuation = compute_customs_value("DDP", costs)
        assert valuation.customs_value == 1000.0
        assert valuation.duties_prepaid is True

    def test_unknown_term_valued_as_fob(self, costs):
        valuation = compute_customs_value("ZZZ", costs)
        assert valuation.incoterm == "FOB"
        assert valuation.customs_value == 1175.0


class TestComputeItemTax:
    def test_worked_example(self):
        tax = compute_item_tax(1000.0, duty_rate=12.0, vat_rate=19.0, anti_dumping_rate=36.1)

        assert tax.duty_amount == 120.00
        assert tax.anti_dumping_amount == 361.00
        assert tax.other_tax_amount == 361.00
        assert tax.vat_base == 1481.00
        assert tax.vat_amount == 281.39
        assert tax.total_tax == 762.39

    def test_countervailing_adds_to_other_tax(self):
        tax = compute_item_tax(200.0, duty_rate=0, vat_rate=20, anti_dumping_rate=10, countervailing_rate=5)
        assert tax.anti_dumping_amount == 20.0
        assert tax.countervailing_amount == 10.0
        assert tax.other_tax_amount == 30.0
        assert tax.vat_amount == 46.0

    def test_rounds_half_up(self):
        assert compute_item_tax(1.25, duty_rate=10.0).duty_amount == 0.13

    def test_missing_rates_are_zero(self):
        tax = compute_item_tax(500.0, duty_rate=None, vat_rate=None, anti_dumping_rate=None)
        assert tax.total_tax == 0.0
        assert tax.customs_value == 500.0

    @pytest.mark.parametrize("customs_value,duty,vat,ad,cvd", [
        (1000.0, 12.0, 19.0, 36.1, 0.0),
        (1234.56, 4.7, 21.0, 0.0, 3.3),
        (0.99, 2.5, 20.0, 17.4, 0.0),
        (98765.43, 6.5, 7.0, 48.5, 11.1),
        (333.33, 0.0, 19.0, 0.0, 0.0),
    ])
    def test_vat_compounds_on_rounded_components(self, customs_value, duty, vat, ad, cvd):
        tax = compute_item_tax(customs_value, duty, vat, ad, cvd)

        base = to_decimal(tax.customs_value) + to_decimal(tax.duty_amount) + to_decimal(tax.other_tax_amount)
        assert tax.vat_amount == round_money(base * to_decimal(vat) / Decimal(100))
        assert round_money(tax.duty_amount + tax.vat_amount + tax.other_tax_amount) == tax.total_tax

    def test_recomputation_is_identical(self):
        first = compute_item_tax(1175.0, 12.0, 19.0, 36.1, 0.0)
        assert compute_item_tax(1175.0, 12.0, 19.0, 36.1, 0.0) == first


class TestAllocate:
    def test_residue_goes_to_largest_weight(self):
        # 16.67 * 3 + 50.00 overshoots by a cent
        assert allocate(100.0, [1.0, 3.0, 1.0, 1.0]) == [16.67, 49.99, 16.67, 16.67]

    def test_equal_weights_residue_on_first_largest(self):
        assert allocate(100.0, [1.0, 1.0, 1.0]) == [33.34, 33.33, 33.33]

    def test_zero_base_splits_equally_residue_last(self):
        assert allocate(100.0, [0.0, 0.0, 0.0]) == [33.33, 33.33, 33.34]

    def test_negative_weights_count_as_zero(self):
        assert allocate(10.0, [-5.0, 5.0]) == [0.0, 10.0]

    def test_empty_and_zero(self):
        assert allocate(100.0, []) == []
        assert allocate(0.0, [1.0, 2.0]) == [0.0, 0.0]

    @pytest.mark.parametrize("amount,weights", [
        (150.0, [1000.0, 2500.0, 333.33]),
        (0.07, [1.0, 1.0, 1.0, 1.0, 1.0]),
        (1999.99, [0.1, 0.2, 0.3, 0.4]),
        (12345.67, [7.0] * 9),
        (10.0, [0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0]),
    ])
    def test_allocations_sum_to_input(self, amount, weights):
        shares = allocate(amount, weights)
        assert abs(sum(to_decimal(s) for s in shares) - to_decimal(amount)) <= Decimal("0.01")
        assert sum(to_decimal(s) for s in shares) == to_decimal(amount)


class TestAllocateBatchCosts:
    @pytest.fixture
    def items(self) -> list[ItemBasis]:
        return [ItemBasis(declared_value=1000.0, weight_kg=30.0), ItemBasis(declared_value=3000.0, weight_kg=10.0)]

    def test_by_value(self, items):
        terms = TradeTerms(incoterm="FOB", international_freight=400.0, domestic_freight_import=40.0)
        shares = allocate_batch_costs(items, terms)
        assert [s.international_freight for s in shares] == [100.0, 300.0]
        assert [s.domestic_freight_import for s in shares] == [10.0, 30.0]
        assert [s.declared_value for s in shares] == [1000.0, 3000.0]

    def test_by_weight_only_moves_method_legs(self, items):
        terms = TradeTerms(
            incoterm="EXW",
            international_freight=400.0,
            domestic_freight_export=80.0,
            domestic_freight_import=40.0,
            unloading_cost=20.0,
            insurance_cost=8.0,
            freight_allocation_method="by_weight",
        )
        shares = allocate_batch_costs(items, terms)
        assert [s.international_freight for s in shares] == [300.0, 100.0]
        assert [s.domestic_freight_export for s in shares] == [60.0, 20.0]
        assert [s.insurance for s in shares] == [6.0, 2.0]
        # Import leg and unloading always follow declared value
        assert [s.domestic_freight_import for s in shares] == [10.0, 30.0]
        assert [s.unloading_cost for s in shares] == [5.0, 15.0]

    def test_insurance_estimate_when_none_declared(self, items):
        terms = TradeTerms(incoterm="FOB", international_freight=400.0)
        shares = allocate_batch_costs(items, terms, insurance_estimate_rate=1.0)
        assert [s.insurance for s in shares] == [11.0, 33.0]

    def test_declared_insurance_beats_estimate(self, items):
        terms = TradeTerms(incoterm="FOB", insurance_cost=4.0)
        shares = allocate_batch_costs(items, terms, insurance_estimate_rate=1.0)
        assert [s.insurance for s in shares] == [1.0, 3.0]

    def test_estimate_disabled_by_default(self):
        assert estimate_insurance(4000.0, 400.0, 0.0) == 0.0
        assert estimate_insurance(4000.0, 400.0, 0.5) == 22.0
