"""
Money arithmetic for invoices and treatment plans.

Amounts are Decimal values quantized to cents with ROUND_HALF_UP. Every
intermediate amount (line total, tax, discount) is rounded before it is
summed, so stored columns always add up exactly.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Tuple, Union

from odontia.core.exceptions import ValidationError

Number = Union[int, str, float, Decimal]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal


def to_decimal(value: Number, field: str = "amount") -> Decimal:
    """Convert a boundary number to Decimal; floats go through str() to drop binary noise"""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")


def to_money(value: Number, field: str = "amount") -> Decimal:
    """Round to cents, half up"""
    return to_decimal(value, field).quantize(CENT, rounding=ROUND_HALF_UP)


def _non_negative(value: Number, field: str) -> Decimal:
    amount = to_decimal(value, field)
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    return amount


def positive_money(value: Number, field: str = "amount") -> Decimal:
    """Strictly positive amount rounded to cents"""
    amount = to_money(_non_negative(value, field), field)
    if amount == ZERO:
        raise ValidationError(f"{field} must be greater than zero")
    return amount


def to_quantity(value: Number, field: str = "quantity") -> Decimal:
    """Non-negative quantity with two decimal places, the precision it is stored with"""
    return _non_negative(value, field).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_rate(value: Number, field: str) -> Decimal:
    """Percentage in the 0-100 range, rounded to two decimal places"""
    rate = _non_negative(value, field)
    if rate > HUNDRED:
        raise ValidationError(f"{field} cannot exceed 100")
    return rate.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity: Number, unit_price: Number) -> Decimal:
    """Quantity and price are rounded to their stored precision before multiplying"""
    qty = to_quantity(quantity)
    price = to_money(_non_negative(unit_price, "unit_price"))
    return (qty * price).quantize(CENT, rounding=ROUND_HALF_UP)


def percentage_of(amount: Decimal, rate: Decimal) -> Decimal:
    return (amount * rate / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_totals(
    items: Iterable[Tuple[Number, Number]],
    tax_pct: Number = 0,
    discount_pct: Number = 0,
) -> InvoiceTotals:
    """
    Compute invoice totals from (quantity, unit_price) pairs.

    subtotal = sum of line totals
    tax      = subtotal * tax_pct / 100
    discount = subtotal * discount_pct / 100
    total    = subtotal + tax - discount

    Raises:
        ValidationError: negative quantity, price or rate, or a rate above 100
    """
    tax_rate = validate_rate(tax_pct, "tax_rate")
    discount_rate = validate_rate(discount_pct, "discount_rate")

    subtotal = ZERO
    for quantity, unit_price in items:
        subtotal += line_total(quantity, unit_price)

    tax_amount = percentage_of(subtotal, tax_rate)
    discount_amount = percentage_of(subtotal, discount_rate)
    return InvoiceTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        total=subtotal + tax_amount - discount_amount,
    )


def sum_money(values: Iterable[Number]) -> Decimal:
    total = ZERO
    for value in values:
        total += to_money(value)
    return total


def round_percentage(numerator: int, denominator: int) -> int:
    """Whole percent, half up; 0 when the denominator is 0"""
    if denominator == 0:
        return 0
    ratio = Decimal(numerator) * HUNDRED / Decimal(denominator)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
