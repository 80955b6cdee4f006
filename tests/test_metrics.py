"""Tests for Prometheus metrics definitions and instrumentation."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
from prometheus_client import REGISTRY

from pricelab.errors import GuardrailViolation
from pricelab.metrics import (
    guardrail_checks_total,
    lifecycle_transitions_total,
    simulation_duration_seconds,
    simulation_rows_total,
    simulation_runs_total,
)

if TYPE_CHECKING:
    from pricelab.experiments import ExperimentService
    from pricelab.simulation import SimulationEngine


def _sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricDefinitions:
    """Counter._name strips '_total'; it is re-added in exported samples."""

    def test_lifecycle_transitions_counter(self):
        assert lifecycle_transitions_total._name == "pricelab_lifecycle_transitions"
        assert "action" in lifecycle_transitions_total._labelnames

    def test_guardrail_checks_counter(self):
        assert guardrail_checks_total._name == "pricelab_guardrail_checks"
        assert "outcome" in guardrail_checks_total._labelnames

    def test_simulation_runs_counter(self):
        assert simulation_runs_total._name == "pricelab_simulation_runs"
        assert "status" in simulation_runs_total._labelnames

    def test_simulation_duration_histogram(self):
        assert simulation_duration_seconds._name == "pricelab_simulation_duration_seconds"

    def test_simulation_rows_counter(self):
        assert simulation_rows_total._name == "pricelab_simulation_rows"


class TestInstrumentation:
    def test_submit_counts_transition_and_guardrail_pass(
        self, service: ExperimentService, configured_experiment
    ):
        submits = _sample("pricelab_lifecycle_transitions_total", {"action": "submit"})
        passed = _sample("pricelab_guardrail_checks_total", {"outcome": "passed"})

        service.submit(configured_experiment.id)

        assert (
            _sample("pricelab_lifecycle_transitions_total", {"action": "submit"}) == submits + 1
        )
        assert _sample("pricelab_guardrail_checks_total", {"outcome": "passed"}) > passed

    def test_guardrail_rejection_counted(
        self, service: ExperimentService, configured_experiment
    ):
        rejected = _sample("pricelab_guardrail_checks_total", {"outcome": "rejected"})
        with pytest.raises(GuardrailViolation):
            service.configure_guardrails(
                configured_experiment.id, Decimal("95"), Decimal("150"), Decimal("20")
            )
        assert _sample("pricelab_guardrail_checks_total", {"outcome": "rejected"}) == rejected + 1

    def test_completed_run_counted(self, engine: SimulationEngine, approved_experiment):
        completed = _sample("pricelab_simulation_runs_total", {"status": "completed"})
        rows = _sample("pricelab_simulation_rows_total")
        observed = _sample("pricelab_simulation_duration_seconds_count")

        engine.run_simulation(approved_experiment.id)

        assert _sample("pricelab_simulation_runs_total", {"status": "completed"}) == completed + 1
        assert _sample("pricelab_simulation_rows_total") == rows + 10
        assert _sample("pricelab_simulation_duration_seconds_count") == observed + 1
