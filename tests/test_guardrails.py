"""Tests for guardrail sanity rules and lever consistency."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from pricelab.errors import (
    GuardrailViolation,
    InvalidGuardrail,
    MissingReferenceData,
    UnsupportedLeverKind,
)
from pricelab.guardrails import (
    check_finite,
    check_lever_consistency,
    check_sanity,
    validate_guardrails,
)
from pricelab.models.experiment import GuardrailSet, Lever, LeverKind
from pricelab.protocols import ReferenceDataPort

D = Decimal
TODAY = date(2025, 6, 1)


class FakeReference:
    """In-memory reference data keyed by SKU."""

    def __init__(self, prices: dict[int, list[Decimal]] | None = None):
        self.prices = prices or {}
        self.calls: list[tuple[int, date]] = []

    def effective_price(self, sku_id: int, store_id: int, on: date) -> Decimal | None:
        prices = self.prices.get(sku_id)
        return prices[0] if prices else None

    def effective_cost(self, sku_id: int, on: date) -> Decimal | None:
        return None

    def all_effective_prices(self, sku_id: int, on: date) -> list[Decimal]:
        self.calls.append((sku_id, on))
        return list(self.prices.get(sku_id, []))


def _guardrails(floor: str = "50.00", ceiling: str = "150.00", max_change: str = "20"):
    return GuardrailSet(
        experiment_id=1,
        price_floor=D(floor),
        price_ceiling=D(ceiling),
        max_change_percent=D(max_change),
    )


def _lever(discount: str = "10", kind: LeverKind = LeverKind.PRICE_DISCOUNT) -> Lever:
    return Lever(experiment_id=1, sku_id=7, kind=kind, discount_percent=D(discount))


class TestSanity:
    def test_valid(self):
        check_sanity(_guardrails())

    @pytest.mark.parametrize(
        ("floor", "ceiling", "max_change", "message"),
        [
            ("0", "150", "20", "priceFloor must be greater than 0"),
            ("-1", "150", "20", "priceFloor must be greater than 0"),
            ("50", "0", "20", "priceCeiling must be greater than 0"),
            ("150", "150", "20", "must be less than priceCeiling"),
            ("160", "150", "20", "must be less than priceCeiling"),
            ("50", "150", "0", "maxChangePercent must be greater than 0"),
            ("50", "150", "50.01", "maxChangePercent must not exceed 50%"),
        ],
    )
    def test_invalid(self, floor: str, ceiling: str, max_change: str, message: str):
        with pytest.raises(InvalidGuardrail, match=message):
            check_sanity(_guardrails(floor, ceiling, max_change))

    def test_max_change_at_cap_passes(self):
        check_sanity(_guardrails(max_change="50"))

    def test_custom_cap(self):
        with pytest.raises(InvalidGuardrail, match="must not exceed 30%"):
            check_sanity(_guardrails(max_change="31"), max_change_cap=D("30"))


class TestFinite:
    def test_finite_values_pass(self):
        check_finite(priceFloor=D("1"), priceCeiling=D("-3"))

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_rejected(self, value: str):
        with pytest.raises(InvalidGuardrail, match="priceCeiling must be a finite number"):
            check_finite(priceFloor=D("1"), priceCeiling=D(value))


class TestLeverConsistency:
    def test_reference_scenario_passes(self):
        ref = FakeReference({7: [D("100.00")]})
        check = check_lever_consistency(_guardrails(), _lever("10"), ref, TODAY)
        assert check.base_price == D("100.00")
        assert str(check.lever_price) == "90.00"
        assert str(check.change_percent) == "10.00"
        assert check.as_details() == {
            "computedBasePrice": "100.00",
            "computedLeverPrice": "90.00",
            "computedChangePercent": "10.00",
        }

    def test_uses_validation_date(self):
        ref = FakeReference({7: [D("100.00")]})
        check_lever_consistency(_guardrails(), _lever(), ref, TODAY)
        assert ref.calls == [(7, TODAY)]

    def test_minimum_price_across_stores_is_the_base(self):
        ref = FakeReference({7: [D("120.00"), D("80.00"), D("100.00")]})
        check = check_lever_consistency(_guardrails(), _lever("10"), ref, TODAY)
        assert check.base_price == D("80.00")
        assert check.lever_price == D("72.00")

    def test_exact_floor_passes(self):
        ref = FakeReference({7: [D("100.00")]})
        check = check_lever_consistency(_guardrails(floor="90.00"), _lever("10"), ref, TODAY)
        assert check.lever_price == D("90.00")

    def test_one_cent_below_floor_fails(self):
        ref = FakeReference({7: [D("100.00")]})
        with pytest.raises(GuardrailViolation) as exc_info:
            check_lever_consistency(_guardrails(floor="90.01"), _lever("10"), ref, TODAY)
        assert exc_info.value.guardrail == "priceFloor"
        assert str(exc_info.value).startswith("Guardrail violation [priceFloor]: ")
        assert "below priceFloor (90.01)" in str(exc_info.value)

    def test_exact_ceiling_passes(self):
        ref = FakeReference({7: [D("100.00")]})
        check_lever_consistency(_guardrails(ceiling="90.00", floor="50"), _lever("10"), ref, TODAY)

    def test_one_cent_above_ceiling_fails(self):
        ref = FakeReference({7: [D("100.00")]})
        with pytest.raises(GuardrailViolation) as exc_info:
            check_lever_consistency(_guardrails(ceiling="89.99"), _lever("10"), ref, TODAY)
        assert exc_info.value.guardrail == "priceCeiling"

    def test_change_equal_to_max_passes(self):
        ref = FakeReference({7: [D("100.00")]})
        check = check_lever_consistency(_guardrails(max_change="10"), _lever("10"), ref, TODAY)
        assert check.change_percent == D("10.00")

    def test_change_above_max_fails(self):
        ref = FakeReference({7: [D("100.00")]})
        with pytest.raises(GuardrailViolation) as exc_info:
            check_lever_consistency(_guardrails(max_change="9.99"), _lever("10"), ref, TODAY)
        assert exc_info.value.guardrail == "maxChangePercent"
        assert "Price change (10.00%)" in exc_info.value.details

    def test_zero_base_price(self):
        ref = FakeReference({7: [D("0.00"), D("100.00")]})
        with pytest.raises(MissingReferenceData, match="base price for SKU 7 is 0.00"):
            check_lever_consistency(_guardrails(), _lever(), ref, TODAY)

    def test_missing_prices(self):
        with pytest.raises(MissingReferenceData, match="no base price found for SKU 7"):
            check_lever_consistency(_guardrails(), _lever(), FakeReference(), TODAY)

    @pytest.mark.parametrize(
        "kind", [k for k in LeverKind if k is not LeverKind.PRICE_DISCOUNT]
    )
    def test_unsupported_kinds(self, kind: LeverKind):
        ref = FakeReference({7: [D("100.00")]})
        with pytest.raises(UnsupportedLeverKind):
            check_lever_consistency(_guardrails(), _lever(kind=kind), ref, TODAY)
        assert ref.calls == []


class TestValidateGuardrails:
    def test_without_lever_only_sanity(self):
        assert validate_guardrails(_guardrails(), None, FakeReference(), TODAY) is None

    def test_sanity_runs_before_consistency(self):
        ref = FakeReference({7: [D("100.00")]})
        with pytest.raises(InvalidGuardrail):
            validate_guardrails(_guardrails(floor="200"), _lever(), ref, TODAY)
        assert ref.calls == []

    def test_returns_check(self):
        ref = FakeReference({7: [D("100.00")]})
        check = validate_guardrails(_guardrails(), _lever(), ref, TODAY)
        assert check is not None
        assert check.lever_price == D("90.00")

    def test_fake_satisfies_port(self):
        assert isinstance(FakeReference(), ReferenceDataPort)
