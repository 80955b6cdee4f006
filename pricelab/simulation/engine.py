"""Deterministic projection of an approved experiment into daily results.

For every scope entry and every day of the experiment window the engine emits
a CONTROL row at the reference price and baseline volume, and a TEST row at
the lever price with volume scaled by a linear elasticity model::

    units_multiplier = 1 + round4((base - test) / base) x elasticity_factor

Prices and costs are looked up once per entry, as of the start date. The
multiplier is not clamped; a lever that raised prices far enough would drive
test units to zero or below.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, assert_never

import structlog

from pricelab import lifecycle
from pricelab.errors import InvalidState, MissingPrerequisite, NotFound, UnsupportedLeverKind
from pricelab.lifecycle import LifecycleAction
from pricelab.logging import experiment_context
from pricelab.metrics import (
    lifecycle_transitions_total,
    simulation_duration_seconds,
    simulation_rows_total,
    simulation_runs_total,
)
from pricelab.models.audit import AuditAction
from pricelab.models.experiment import ExperimentStatus, LeverKind
from pricelab.models.simulation import DailyResult, SimulationRun, SimulationStatus, Variant
from pricelab.pricing import (
    ONE,
    ZERO,
    discounted_price,
    line_amount,
    percent_change,
    price_change_ratio,
    round_money,
    round_units,
)

if TYPE_CHECKING:
    from datetime import date

    from pricelab.config import Settings
    from pricelab.db import Database
    from pricelab.models.experiment import Experiment, Lever, ScopeEntry

logger = structlog.get_logger()


@dataclass
class _Totals:
    units_test: Decimal = ZERO
    units_control: Decimal = ZERO
    revenue_test: Decimal = ZERO
    revenue_control: Decimal = ZERO
    margin_test: Decimal = ZERO
    margin_control: Decimal = ZERO
    rows: list[DailyResult] = field(default_factory=list)

    def add(self, row: DailyResult) -> None:
        self.rows.append(row)
        if row.is_test:
            self.units_test += row.projected_units
            self.revenue_test += row.projected_revenue
            self.margin_test += row.projected_margin
        else:
            self.units_control += row.projected_units
            self.revenue_control += row.projected_revenue
            self.margin_control += row.projected_margin

    @property
    def revenue_lift_pct(self) -> Decimal | None:
        if self.revenue_control <= ZERO:
            return None
        return percent_change(self.revenue_control, self.revenue_test)


def units_multiplier(base_price: Decimal, test_price: Decimal, elasticity: Decimal) -> Decimal:
    return ONE + price_change_ratio(base_price, test_price) * elasticity


def project_row(
    day: date,
    entry: ScopeEntry,
    variant: Variant,
    base_price: Decimal,
    price: Decimal,
    unit_cost: Decimal,
    units: Decimal,
    baseline_units: Decimal,
) -> DailyResult:
    revenue = line_amount(price, units)
    cost = line_amount(unit_cost, units)
    return DailyResult(
        date=day,
        store_id=entry.store_id,
        sku_id=entry.sku_id,
        variant=variant,
        base_price=base_price,
        simulated_price=price,
        unit_cost=unit_cost,
        projected_units=units,
        projected_revenue=revenue,
        projected_cost=cost,
        projected_margin=revenue - cost,
        baseline_units=baseline_units,
        baseline_revenue=round_money(base_price * baseline_units),
    )


class SimulationEngine:
    def __init__(self, db: Database, settings: Settings):
        self.db = db
        self.elasticity_factor = settings.elasticity_factor
        self.baseline_units = Decimal(settings.baseline_daily_units)
        self.actor = settings.actor

    def run_simulation(self, experiment_id: int) -> SimulationRun:
        """Simulate an APPROVED experiment and persist the run atomically.

        Raises InvalidState if the experiment is not APPROVED (including when a
        concurrent caller started it first), MissingPrerequisite when scope,
        lever, price or cost data is missing, and UnsupportedLeverKind for
        anything but a price discount. Failures after the run was opened leave
        the run and the experiment FAILED with no result rows, then re-raise.
        """
        with experiment_context(experiment_id):
            experiment = self.db.get_experiment(experiment_id)
            if experiment is None:
                raise NotFound("Experiment", experiment_id)
            lifecycle.validate(experiment.status, LifecycleAction.START_SIMULATION)
            scope, lever = self._load_prerequisites(experiment)

            run = self.db.start_run(experiment_id, experiment.total_days)
            if run is None:
                current = self.db.get_experiment(experiment_id)
                raise InvalidState(
                    current.status, LifecycleAction.START_SIMULATION.value,
                    (ExperimentStatus.APPROVED,),
                )
            lifecycle_transitions_total.labels(action=LifecycleAction.START_SIMULATION).inc()

            with experiment_context(experiment_id, run_id=run.id):
                logger.info(
                    "Simulation started",
                    days=experiment.total_days,
                    start_date=str(experiment.start_date),
                    end_date=str(experiment.end_date),
                    scope_entries=len(scope),
                )
                self.db.record_audit(
                    AuditAction.SIMULATION_STARTED,
                    experiment_id,
                    {"runId": run.id, "totalDays": experiment.total_days},
                    actor=self.actor,
                )
                started = time.perf_counter()
                try:
                    totals = self._project(experiment, scope, lever)
                    completed = self.db.complete_run(
                        run.model_copy(
                            update={
                                "projected_units_test": totals.units_test,
                                "projected_units_control": totals.units_control,
                                "projected_revenue_test": totals.revenue_test,
                                "projected_revenue_control": totals.revenue_control,
                                "projected_margin_test": totals.margin_test,
                                "projected_margin_control": totals.margin_control,
                                "projected_revenue_lift_pct": totals.revenue_lift_pct,
                            }
                        ),
                        totals.rows,
                    )
                except Exception as exc:
                    self._fail(run, exc)
                    raise
                finally:
                    simulation_duration_seconds.observe(time.perf_counter() - started)

                self._record_success(completed, lever, len(totals.rows))
                return completed

    def _load_prerequisites(self, experiment: Experiment) -> tuple[list[ScopeEntry], Lever]:
        scope = self.db.list_scope(experiment.id)
        if not scope:
            raise MissingPrerequisite(f"No scope entries found for experiment {experiment.id}")
        lever = self.db.get_lever(experiment.id)
        if lever is None:
            raise MissingPrerequisite(f"No lever configured for experiment {experiment.id}")
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
        if experiment.start_date is None or experiment.end_date is None:
            raise MissingPrerequisite(
                f"Experiment {experiment.id} has no start or end date to simulate"
            )
        return scope, lever

    def _project(self, experiment: Experiment, scope: list[ScopeEntry], lever: Lever) -> _Totals:
        start, end = experiment.start_date, experiment.end_date
        totals = _Totals()
        for entry in scope:
            base_price = self.db.effective_price(entry.sku_id, entry.store_id, start)
            if base_price is None:
                raise MissingPrerequisite(
                    f"No base price found for SKU {entry.sku_id} at store {entry.store_id} "
                    f"on date {start}. Base price data is required."
                )
            if base_price <= ZERO:
                raise MissingPrerequisite(
                    f"Base price for SKU {entry.sku_id} at store {entry.store_id} on date {start} "
                    f"is {base_price}. A positive base price is required."
                )
            unit_cost = self.db.effective_cost(entry.sku_id, start)
            if unit_cost is None:
                raise MissingPrerequisite(
                    f"No cost found for SKU {entry.sku_id} on date {start}. "
                    "Cost data is required for margin calculation."
                )

            test_price = discounted_price(base_price, lever.discount_percent)
            multiplier = units_multiplier(base_price, test_price, self.elasticity_factor)
            test_units = round_units(self.baseline_units * multiplier)

            day = start
            while day <= end:
                totals.add(
                    project_row(
                        day, entry, Variant.CONTROL, base_price, base_price, unit_cost,
                        self.baseline_units, self.baseline_units,
                    )
                )
                totals.add(
                    project_row(
                        day, entry, Variant.TEST, base_price, test_price, unit_cost,
                        test_units, self.baseline_units,
                    )
                )
                day += timedelta(days=1)
        return totals

    def _fail(self, run: SimulationRun, exc: Exception) -> None:
        failed = self.db.fail_run(run.id, str(exc))
        simulation_runs_total.labels(status=SimulationStatus.FAILED).inc()
        lifecycle_transitions_total.labels(action=LifecycleAction.FAIL_SIMULATION).inc()
        logger.error("Simulation failed", error=str(exc), exc_info=True)
        self.db.record_audit(
            AuditAction.SIMULATION_FAILED,
            failed.experiment_id,
            {"runId": failed.id, "error": str(exc)},
            actor=self.actor,
        )

    def _record_success(self, run: SimulationRun, lever: Lever, row_count: int) -> None:
        simulation_runs_total.labels(status=SimulationStatus.COMPLETED).inc()
        simulation_rows_total.inc(row_count)
        lifecycle_transitions_total.labels(action=LifecycleAction.COMPLETE_SIMULATION).inc()
        logger.info(
            "Simulation completed",
            days=run.total_days_simulated,
            rows=row_count,
            revenue_lift_pct=str(run.projected_revenue_lift_pct),
        )
        self.db.record_audit(
            AuditAction.SIMULATION_COMPLETED,
            run.experiment_id,
            {
                "runId": run.id,
                "leverType": lever.kind.name,
                "discountPercentage": str(lever.discount_percent),
                "totalDaysSimulated": run.total_days_simulated,
                "resultRows": row_count,
                "projectedRevenueTest": str(run.projected_revenue_test),
                "projectedRevenueControl": str(run.projected_revenue_control),
                "projectedRevenueLiftPct": str(run.projected_revenue_lift_pct),
            },
            actor=self.actor,
        )
