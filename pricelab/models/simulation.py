"""Simulation runs, daily result rows and aggregate views."""

from __future__ import annotations

import datetime as dt
from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

_ZERO = Decimal("0")


class SimulationStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Variant(StrEnum):
    CONTROL = "CONTROL"
    TEST = "TEST"


class DailyResult(BaseModel):
    """One projected (date, store, SKU, variant) row. margin == revenue - cost."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    run_id: int | None = None
    date: dt.date
    store_id: int
    sku_id: int
    variant: Variant
    base_price: Decimal
    simulated_price: Decimal
    unit_cost: Decimal
    projected_units: Decimal
    projected_revenue: Decimal
    projected_cost: Decimal
    projected_margin: Decimal
    baseline_units: Decimal
    baseline_revenue: Decimal

    @property
    def is_test(self) -> bool:
        return self.variant == Variant.TEST


class SimulationRun(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int | None = None
    experiment_id: int
    status: SimulationStatus = SimulationStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    total_days_simulated: int | None = None

    projected_units_test: Decimal | None = None
    projected_units_control: Decimal | None = None
    projected_revenue_test: Decimal | None = None
    projected_revenue_control: Decimal | None = None
    projected_margin_test: Decimal | None = None
    projected_margin_control: Decimal | None = None
    projected_revenue_lift_pct: Decimal | None = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class VariantMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    units: Decimal = _ZERO
    revenue: Decimal = _ZERO
    margin: Decimal = _ZERO


class DeltaMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    units: Decimal = _ZERO
    revenue: Decimal = _ZERO
    margin: Decimal = _ZERO
    revenue_pct: Decimal = _ZERO
    margin_pct: Decimal = _ZERO


class SimulationSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: int | None
    control: VariantMetrics
    test: VariantMetrics
    delta: DeltaMetrics


class BreakdownRow(BaseModel):
    """Control/test/delta for one store, SKU or date bucket."""

    model_config = ConfigDict(frozen=True)

    store_id: int | None = None
    sku_id: int | None = None
    date: dt.date | None = None
    control: VariantMetrics
    test: VariantMetrics
    delta: DeltaMetrics
