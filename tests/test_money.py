from decimal import Decimal

import pytest

from odontia.core.exceptions import ValidationError
from odontia.services import money


def test_calculate_totals_reference_invoice():
    totals = money.calculate_totals([(2, "50"), (1, "30")], tax_pct=10, discount_pct=5)

    assert totals.subtotal == Decimal("130.00")
    assert totals.tax_amount == Decimal("13.00")
    assert totals.discount_amount == Decimal("6.50")
    assert totals.total == Decimal("136.50")


def test_calculate_totals_without_rates():
    totals = money.calculate_totals([(3, "19.99")])

    assert totals.subtotal == Decimal("59.97")
    assert totals.tax_amount == money.ZERO
    assert totals.discount_amount == money.ZERO
    assert totals.total == Decimal("59.97")


def test_calculate_totals_empty_items():
    totals = money.calculate_totals([], tax_pct=10)
    assert totals.total == money.ZERO


def test_rounding_is_half_up_to_cents():
    assert money.to_money("2.345") == Decimal("2.35")
    assert money.to_money("2.344") == Decimal("2.34")
    assert money.line_total("0.5", "0.05") == Decimal("0.03")


def test_float_input_goes_through_str():
    # 0.1 + 0.2 in binary floats is 0.30000000000000004
    assert money.to_money(0.1) + money.to_money(0.2) == Decimal("0.30")
    assert money.to_decimal(19.99) == Decimal("19.99")


def test_tax_on_rounded_subtotal():
    totals = money.calculate_totals([(1, "10.05")], tax_pct="7.5")
    # 10.05 * 7.5% = 0.75375
    assert totals.tax_amount == Decimal("0.75")
    assert totals.total == Decimal("10.80")


@pytest.mark.parametrize("items", [[(-1, "10")], [(1, "-10")]])
def test_negative_quantity_or_price_rejected(items):
    with pytest.raises(ValidationError):
        money.calculate_totals(items)


@pytest.mark.parametrize("rate", ["-1", "100.01", "250"])
def test_rate_out_of_range_rejected(rate):
    with pytest.raises(ValidationError):
        money.calculate_totals([(1, "10")], tax_pct=rate)
    with pytest.raises(ValidationError):
        money.calculate_totals([(1, "10")], discount_pct=rate)


def test_full_discount_gives_zero_total():
    totals = money.calculate_totals([(1, "80")], discount_pct=100)
    assert totals.total == money.ZERO


@pytest.mark.parametrize("value", [0, "0.00", "-5", "0.004", "abc", True, "NaN"])
def test_positive_money_rejects_non_positive_or_invalid(value):
    with pytest.raises(ValidationError):
        money.positive_money(value)


def test_positive_money_rounds():
    assert money.positive_money("10.005") == Decimal("10.01")


def test_sum_money():
    assert money.sum_money(["10.10", 5, Decimal("0.005")]) == Decimal("15.11")
    assert money.sum_money([]) == money.ZERO


@pytest.mark.parametrize(
    "numerator,denominator,expected",
    [(0, 0, 0), (0, 4, 0), (1, 4, 25), (4, 4, 100), (1, 3, 33), (2, 3, 67), (1, 8, 13)],
)
def test_round_percentage(numerator, denominator, expected):
    assert money.round_percentage(numerator, denominator) == expected


def test_quantities_and_rates_rounded_to_stored_precision():
    assert money.to_quantity("0.333") == Decimal("0.33")
    assert money.to_quantity("1.005") == Decimal("1.01")
    assert money.validate_rate("10.125", "tax_rate") == Decimal("10.13")
    # 0.33 x 30, not 0.333 x 30
    assert money.line_total("0.333", "30") == Decimal("9.90")


def test_rate_rounding_applies_before_tax():
    totals = money.calculate_totals([(1, "1000")], tax_pct="10.125")
    assert totals.tax_amount == Decimal("101.30")
