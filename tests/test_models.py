"""Tests for Pydantic domain models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from pricelab.models.audit import AuditAction, AuditRecord
from pricelab.models.experiment import Experiment, ExperimentStatus, Lever, LeverKind, ScopeEntry
from pricelab.models.reference import ReferenceCost, ReferencePrice, Store
from pricelab.models.simulation import DailyResult, SimulationRun, SimulationStatus, Variant


class TestExperiment:
    def test_create_minimal(self):
        exp = Experiment()
        assert exp.id is None
        assert exp.status == ExperimentStatus.DRAFT
        assert exp.total_days == 0

    def test_total_days_is_inclusive(self):
        exp = Experiment(name="x", start_date=date(2025, 6, 10), end_date=date(2025, 6, 14))
        assert exp.total_days == 5

    def test_total_days_without_end(self):
        assert Experiment(start_date=date(2025, 6, 10)).total_days == 0

    def test_frozen(self):
        exp = Experiment(name="Test")
        with pytest.raises(ValidationError):
            exp.name = "Changed"

    def test_model_copy_update(self):
        exp = Experiment(name="Original")
        updated = exp.model_copy(update={"name": "Updated"})
        assert updated.name == "Updated"
        assert exp.name == "Original"

    def test_serialization_roundtrip(self):
        exp = Experiment(
            name="Roundtrip",
            status=ExperimentStatus.APPROVED,
            start_date=date(2025, 1, 1),
            end_date=date(2025, 1, 31),
        )
        restored = Experiment.model_validate_json(exp.model_dump_json())
        assert restored.status == ExperimentStatus.APPROVED
        assert restored.total_days == 31


class TestConfiguration:
    def test_scope_key(self):
        assert ScopeEntry(store_id=3, sku_id=7).key == (3, 7)

    def test_scope_defaults_to_test_group(self):
        assert ScopeEntry(store_id=1, sku_id=1).is_test_group

    def test_lever_parses_decimal_strings(self):
        lever = Lever(sku_id=1, discount_percent="12.5")
        assert lever.discount_percent == Decimal("12.5")
        assert lever.kind == LeverKind.PRICE_DISCOUNT

    def test_unknown_lever_kind_rejected(self):
        with pytest.raises(ValidationError):
            Lever(sku_id=1, discount_percent="1", kind="bundle")


class TestReferenceData:
    def test_store_requires_code(self):
        with pytest.raises(ValidationError):
            Store()

    @pytest.mark.parametrize(
        ("on", "expected"),
        [
            (date(2024, 12, 31), False),
            (date(2025, 1, 1), True),
            (date(2025, 3, 31), True),
            (date(2025, 4, 1), False),
        ],
    )
    def test_price_window(self, on: date, expected: bool):
        price = ReferencePrice(
            sku_id=1, store_id=1, price=Decimal("9.99"),
            effective_from=date(2025, 1, 1), effective_until=date(2025, 3, 31),
        )
        assert price.is_effective(on) is expected

    def test_open_ended_cost(self):
        cost = ReferenceCost(sku_id=1, cost=Decimal("1"), effective_from=date(2025, 1, 1))
        assert cost.is_effective(date(2099, 1, 1))


class TestSimulation:
    def test_daily_result_variant(self):
        row = DailyResult(
            date=date(2025, 1, 1), store_id=1, sku_id=1, variant=Variant.TEST,
            base_price=Decimal("1"), simulated_price=Decimal("0.9"), unit_cost=Decimal("0.5"),
            projected_units=Decimal("115"), projected_revenue=Decimal("103.50"),
            projected_cost=Decimal("57.50"), projected_margin=Decimal("46.00"),
            baseline_units=Decimal("100"), baseline_revenue=Decimal("100.00"),
        )
        assert row.is_test

    def test_run_defaults(self):
        run = SimulationRun(experiment_id=1)
        assert run.status == SimulationStatus.PENDING
        assert run.projected_revenue_lift_pct is None


class TestAuditRecord:
    def test_action_from_string(self):
        record = AuditRecord(action="LEVER_SET", details={"sku": 1})
        assert record.action == AuditAction.LEVER_SET
        assert record.details == {"sku": 1}
