"""Guardrail validation: sanity rules and lever/reference-price consistency.

The consistency check prices the lever against reference prices effective on
the *validation date* (normally today), not on the experiment's start date.
Guardrails are therefore checked against current shelf prices; future-dated
prices that may apply during the experiment window are not considered. The
simulation engine, by contrast, prices each scope entry as of the start date.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, assert_never

import structlog

from pricelab.errors import (
    GuardrailViolation,
    InvalidGuardrail,
    MissingReferenceData,
    UnsupportedLeverKind,
)
from pricelab.metrics import guardrail_checks_total
from pricelab.models.experiment import LeverKind
from pricelab.pricing import ZERO, change_percent, discounted_price

if TYPE_CHECKING:
    from datetime import date

    from pricelab.models.experiment import GuardrailSet, Lever
    from pricelab.protocols import ReferenceDataPort

logger = structlog.get_logger()

MAX_CHANGE_PERCENT_CAP = Decimal("50")


@dataclass(frozen=True)
class LeverCheck:
    """Values computed by the consistency check, returned for audit records."""

    base_price: Decimal
    lever_price: Decimal
    change_percent: Decimal

    def as_details(self) -> dict[str, str]:
        return {
            "computedBasePrice": str(self.base_price),
            "computedLeverPrice": str(self.lever_price),
            "computedChangePercent": str(self.change_percent),
        }


def check_finite(**values: Decimal) -> None:
    """Reject NaN and infinite guardrail inputs before they reach a model."""
    for name, value in values.items():
        if not value.is_finite():
            raise InvalidGuardrail(f"{name} must be a finite number, got {value}")


def check_sanity(
    guardrails: GuardrailSet, max_change_cap: Decimal = MAX_CHANGE_PERCENT_CAP
) -> None:
    """Reject guardrails that are self-inconsistent. Pure, no I/O."""
    floor, ceiling = guardrails.price_floor, guardrails.price_ceiling
    if floor <= ZERO:
        raise InvalidGuardrail("priceFloor must be greater than 0")
    if ceiling <= ZERO:
        raise InvalidGuardrail("priceCeiling must be greater than 0")
    if floor >= ceiling:
        raise InvalidGuardrail(
            f"priceFloor ({floor}) must be less than priceCeiling ({ceiling})"
        )
    if guardrails.max_change_percent <= ZERO:
        raise InvalidGuardrail("maxChangePercent must be greater than 0")
    if guardrails.max_change_percent > max_change_cap:
        raise InvalidGuardrail(f"maxChangePercent must not exceed {max_change_cap}%")


def check_lever_consistency(
    guardrails: GuardrailSet,
    lever: Lever,
    reference: ReferenceDataPort,
    today: date,
) -> LeverCheck:
    """Verify the lever-implied price sits inside the guardrails.

    The base price is the minimum effective price for the lever's SKU across
    all stores, the case most sensitive to a discount.
    """
    match lever.kind:
        case LeverKind.PRICE_DISCOUNT:
            pass
        case (
            LeverKind.PERCENTAGE_CHANGE
            | LeverKind.ABSOLUTE_CHANGE
            | LeverKind.TARGET_PRICE
            | LeverKind.COMPETITOR_MATCH
        ):
            raise UnsupportedLeverKind(lever.kind)
        case _:
            assert_never(lever.kind)

    prices = reference.all_effective_prices(lever.sku_id, today)
    if not prices:
        raise MissingReferenceData(
            f"Cannot validate guardrails: no base price found for SKU {lever.sku_id}. "
            "Base price data is required for guardrail validation."
        )

    base_price = min(prices)
    if base_price <= ZERO:
        raise MissingReferenceData(
            f"Cannot validate guardrails: base price for SKU {lever.sku_id} is {base_price}. "
            "A positive base price is required for guardrail validation."
        )
    discount = lever.discount_percent
    lever_price = discounted_price(base_price, discount)

    if lever_price < guardrails.price_floor:
        raise GuardrailViolation(
            "priceFloor",
            f"Lever-implied price ({lever_price}) is below priceFloor "
            f"({guardrails.price_floor}). Computed from base price {base_price} "
            f"with {discount}% discount.",
        )
    if lever_price > guardrails.price_ceiling:
        raise GuardrailViolation(
            "priceCeiling",
            f"Lever-implied price ({lever_price}) exceeds priceCeiling "
            f"({guardrails.price_ceiling}). Computed from base price {base_price} "
            f"with {discount}% discount.",
        )

    pct = change_percent(base_price, lever_price)
    if pct > guardrails.max_change_percent:
        raise GuardrailViolation(
            "maxChangePercent",
            f"Price change ({pct}%) exceeds maxChangePercent "
            f"({guardrails.max_change_percent}%). Lever-implied price is {lever_price} "
            f"vs base price {base_price}.",
        )

    logger.info(
        "Lever consistency validated",
        sku_id=lever.sku_id,
        base_price=str(base_price),
        lever_price=str(lever_price),
        change_percent=str(pct),
    )
    return LeverCheck(base_price=base_price, lever_price=lever_price, change_percent=pct)


def validate_guardrails(
    guardrails: GuardrailSet,
    lever: Lever | None,
    reference: ReferenceDataPort,
    today: date,
    max_change_cap: Decimal = MAX_CHANGE_PERCENT_CAP,
) -> LeverCheck | None:
    """Sanity rules, then lever consistency when a lever is configured."""
    try:
        check_sanity(guardrails, max_change_cap)
        result = None
        if lever is not None:
            result = check_lever_consistency(guardrails, lever, reference, today)
    except (InvalidGuardrail, GuardrailViolation, MissingReferenceData, UnsupportedLeverKind):
        guardrail_checks_total.labels(outcome="rejected").inc()
        raise
    guardrail_checks_total.labels(outcome="passed").inc()
    return result
