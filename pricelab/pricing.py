"""Decimal arithmetic shared by the guardrail check and the simulation engine.

All rounding is ROUND_HALF_UP. Ratios are held at 4 decimal places before
they are scaled or applied; money at 2; units at 0.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

HUNDRED = Decimal("100")
ONE = Decimal("1")
ZERO = Decimal("0")

_CENTS = Decimal("0.01")
_RATIO = Decimal("0.0001")
_WHOLE = Decimal("1")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def round_ratio(value: Decimal) -> Decimal:
    return value.quantize(_RATIO, rounding=ROUND_HALF_UP)


def round_units(value: Decimal) -> Decimal:
    return value.quantize(_WHOLE, rounding=ROUND_HALF_UP)


def discounted_price(base_price: Decimal, discount_percent: Decimal) -> Decimal:
    """``base x (1 - discount/100)``, the multiplier held at 4 dp, result at 2 dp."""
    multiplier = ONE - round_ratio(discount_percent / HUNDRED)
    return round_money(base_price * multiplier)


def price_change_ratio(base_price: Decimal, new_price: Decimal) -> Decimal:
    """Signed ``(base - new) / base`` at 4 dp. Positive for a price cut."""
    return round_ratio((base_price - new_price) / base_price)


def change_percent(base_price: Decimal, new_price: Decimal) -> Decimal:
    """Absolute percentage distance of ``new_price`` from ``base_price``, 2 dp."""
    ratio = round_ratio(abs(new_price - base_price) / base_price)
    return round_money(ratio * HUNDRED)


def percent_change(baseline: Decimal, value: Decimal) -> Decimal:
    """``(value - baseline) / baseline x 100`` with the ratio at 4 dp; 0 for a 0 baseline."""
    if baseline == ZERO:
        return ZERO
    return round_ratio((value - baseline) / baseline) * HUNDRED


def line_amount(unit_amount: Decimal, units: Decimal) -> Decimal:
    return round_money(unit_amount * units)
