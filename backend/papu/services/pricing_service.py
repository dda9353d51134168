# Overview: Pure money calculations for remittances, combos and order totals.

"""
Financial Calculator

WHY: Every figure shown to a sender before confirming a remittance must be
reproducible server-side at creation time. The client never supplies the
delivered amount.

RULES:
- Money is integer minor units (cents); rates and percentages are Decimal.
- Rounding is half-up to the cent, applied once per computed figure.
- No I/O: functions take plain values or a profile-like object.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable

from ..errors import ValidationError


HUNDRED = Decimal("100")


def to_decimal(value, *, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so floats keep their printed value (0.1 -> "0.1")
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number")


def round_cents(value: Decimal) -> int:
    """Round a Decimal amount of cents half-up to an int."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def require_positive_int(value, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value <= 0:
        raise ValidationError(f"{field} must be positive")
    return value


@dataclass(frozen=True)
class RemittanceQuote:
    amount_cents: int
    commission_cents: int
    total_cents: int
    delivered_cents: int
    exchange_rate: Decimal
    commission_percentage: Decimal
    commission_fixed_cents: int
    currency_sent: str | None = None
    currency_delivered: str | None = None
    delivery_method: str | None = None

    def to_dict(self) -> dict:
        return {
            "amount_cents": self.amount_cents,
            "commission_cents": self.commission_cents,
            "total_cents": self.total_cents,
            "delivered_cents": self.delivered_cents,
            "exchange_rate": str(self.exchange_rate),
            "commission_percentage": str(self.commission_percentage),
            "commission_fixed_cents": self.commission_fixed_cents,
            "currency_sent": self.currency_sent,
            "currency_delivered": self.currency_delivered,
            "delivery_method": self.delivery_method,
        }


def check_amount_bounds(profile, amount_cents: int) -> None:
    min_amount = profile.min_amount_cents
    max_amount = profile.max_amount_cents
    if amount_cents < min_amount:
        raise ValidationError(
            f"Minimum amount is {min_amount} cents",
            details={"min_amount_cents": min_amount, "amount_cents": amount_cents},
        )
    if max_amount is not None and amount_cents > max_amount:
        raise ValidationError(
            f"Maximum amount is {max_amount} cents",
            details={"max_amount_cents": max_amount, "amount_cents": amount_cents},
        )


def calculate(profile, amount_cents: int) -> RemittanceQuote:
    """
    Convert an amount under a commission profile into payable and delivered figures.

    1. Reject if amount is outside [min, max] (max None = unbounded).
    2. commission = amount * pct / 100 + fixed
    3. total = amount + commission
    4. delivered = total * exchange_rate

    profile may be a RemittanceType row or anything exposing the same
    attributes (min_amount_cents, max_amount_cents, commission_percentage,
    commission_fixed_cents, exchange_rate).

    Example: min 1000, max 500000, pct 2, fixed 0, rate 120, amount 10000
    -> commission 200, total 10200, delivered 1224000.
    """
    amount_cents = require_positive_int(amount_cents, field="amount_cents")
    check_amount_bounds(profile, amount_cents)

    pct = to_decimal(profile.commission_percentage or 0, field="commission_percentage")
    fixed = int(profile.commission_fixed_cents or 0)
    rate = to_decimal(profile.exchange_rate, field="exchange_rate")

    if pct < 0 or fixed < 0:
        raise ValidationError("Commission cannot be negative")
    if rate <= 0:
        raise ValidationError("exchange_rate must be greater than 0")

    commission_cents = round_cents(Decimal(amount_cents) * pct / HUNDRED) + fixed
    total_cents = amount_cents + commission_cents
    delivered_cents = round_cents(Decimal(total_cents) * rate)

    return RemittanceQuote(
        amount_cents=amount_cents,
        commission_cents=commission_cents,
        total_cents=total_cents,
        delivered_cents=delivered_cents,
        exchange_rate=rate,
        commission_percentage=pct,
        commission_fixed_cents=fixed,
        currency_sent=getattr(profile, "currency_code", None),
        currency_delivered=getattr(profile, "delivery_currency", None),
        delivery_method=getattr(profile, "delivery_method", None),
    )


def calculate_combo_price(items: Iterable[tuple[int, int]], profit_margin_pct) -> dict:
    """
    Price a combo from its constituents.

    items: (unit_price_cents, quantity) pairs.
    Returns {"base_cents", "final_cents"}; the margin is the combo's own,
    not the constituent products' margins.
    """
    base_cents = 0
    for unit_price_cents, quantity in items:
        base_cents += int(unit_price_cents) * int(quantity)

    margin = to_decimal(profit_margin_pct or 0, field="profit_margin_pct")
    if margin < 0:
        raise ValidationError("profit_margin_pct cannot be negative")

    final_cents = round_cents(Decimal(base_cents) * (HUNDRED + margin) / HUNDRED)
    return {"base_cents": base_cents, "final_cents": final_cents}


def calculate_order_totals(line_totals_cents: Iterable[int], shipping_cents: int = 0) -> dict:
    subtotal = sum(int(v) for v in line_totals_cents)
    if isinstance(shipping_cents, bool) or not isinstance(shipping_cents, int) or shipping_cents < 0:
        raise ValidationError("shipping_cents must be a non-negative integer")
    return {
        "subtotal_cents": subtotal,
        "shipping_cents": shipping_cents,
        "total_cents": subtotal + shipping_cents,
    }
