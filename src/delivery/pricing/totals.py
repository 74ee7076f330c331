"""Order totals: subtotal, discount, tax and the grand total.

Pure derivation functions. The Order aggregate calls them explicitly
whenever its items or pricing inputs change.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from protean.exceptions import ValidationError

from delivery.pricing.fees import HUNDRED, ZERO, to_cents, to_decimal


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    tip: Decimal
    fee_total: Decimal
    total: Decimal


def line_total(unit_price, quantity: int, option_costs=()) -> Decimal:
    """Price of one order line. Option surcharges apply once per line."""
    return to_decimal(unit_price, "unit_price") * quantity + sum(
        (to_decimal(cost, "option_costs") for cost in option_costs), ZERO
    )


def subtotal_of(lines) -> Decimal:
    """Sum of ``(unit_price, quantity, option_costs)`` lines, in cents."""
    return to_cents(sum((line_total(*line) for line in lines), ZERO))


def discount_amount(subtotal: Decimal, discount_type: str | None, discount_value) -> Decimal:
    if not discount_type:
        return ZERO
    value = to_decimal(discount_value or 0, "discount_value")
    if value < ZERO:
        raise ValidationError({"discount_value": ["Discount cannot be negative"]})

    if discount_type == DiscountType.PERCENTAGE.value:
        if value > HUNDRED:
            raise ValidationError({"discount_value": ["Percentage discount cannot exceed 100"]})
        amount = subtotal * value / HUNDRED
    elif discount_type == DiscountType.FIXED.value:
        amount = value
    else:
        raise ValidationError({"discount_type": [f"Unknown discount type: {discount_type}"]})

    # A discount never takes the subtotal below zero
    return to_cents(min(amount, subtotal))


def compute_totals(
    subtotal: Decimal,
    fee_total: Decimal,
    tip,
    tax_rate: Decimal,
    discount_type: str | None = None,
    discount_value=None,
) -> OrderTotals:
    tip = to_cents(to_decimal(tip or 0, "tip"))
    if tip < ZERO:
        raise ValidationError({"tip": ["Tip cannot be negative"]})

    discount = discount_amount(subtotal, discount_type, discount_value)
    tax = to_cents(subtotal * tax_rate)
    total = subtotal + fee_total + tax + tip - discount

    return OrderTotals(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        tip=tip,
        fee_total=fee_total,
        total=to_cents(total),
    )
