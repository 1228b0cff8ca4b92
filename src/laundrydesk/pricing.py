"""Order pricing.

Pure functions over line quantities, stored unit prices and a discount rule.
Amounts are ``Decimal`` and keep full precision; ``round_money`` is applied
only when a value leaves the system (responses, reports).
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

from .errors import BusinessRuleError, ValidationError

CENT = Decimal("0.01")
HUNDRED = Decimal(100)

# column ranges: INTEGER, NUMERIC(12,2), NUMERIC(14,2)
MAX_INT = 2_147_483_647
MAX_AMOUNT = Decimal("9999999999.99")
MAX_LINE_TOTAL = Decimal("999999999999.99")


@dataclass(frozen=True)
class PercentOff:
    amount: Decimal


@dataclass(frozen=True)
class FixedOff:
    amount: Decimal


DiscountRule = Union[PercentOff, FixedOff]


@dataclass(frozen=True)
class OrderTotals:
    gross: Decimal
    discount: Decimal
    net: Decimal


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def discount_rule(discount_type: str, amount) -> DiscountRule:
    amount = to_decimal(amount)
    if amount <= 0:
        raise ValidationError("Discount amount must be > 0.")
    if discount_type == "percent":
        if amount > HUNDRED:
            raise ValidationError("Percent discount cannot exceed 100.")
        return PercentOff(amount)
    if discount_type == "fixed":
        return FixedOff(amount)
    raise ValidationError(f"Unknown discount type: {discount_type!r}")


def line_total(quantity: int, price_per_unit) -> Decimal:
    price = to_decimal(price_per_unit)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer.")
    if quantity > MAX_INT:
        raise ValidationError(f"Quantity cannot exceed {MAX_INT}.")
    if price <= 0:
        raise ValidationError("Price per unit must be > 0.")
    total = price * quantity
    if total > MAX_LINE_TOTAL:
        raise ValidationError(f"Line total cannot exceed {MAX_LINE_TOTAL}.")
    return total


def gross_total(line_totals: Iterable[Decimal]) -> Decimal:
    return sum((to_decimal(t) for t in line_totals), Decimal(0))


def net_total(gross: Decimal, rule: DiscountRule | None) -> Decimal:
    if rule is None:
        return gross
    if isinstance(rule, PercentOff):
        return gross * (1 - rule.amount / HUNDRED)
    if isinstance(rule, FixedOff):
        net = gross - rule.amount
        if net < 0:
            raise BusinessRuleError("Discount exceeds order total.")
        return net
    raise TypeError(f"Unsupported discount rule: {rule!r}")


def order_totals(line_totals: Iterable[Decimal], rule: DiscountRule | None) -> OrderTotals:
    gross = gross_total(line_totals)
    net = net_total(gross, rule)
    return OrderTotals(gross=gross, discount=gross - net, net=net)


def round_money(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
