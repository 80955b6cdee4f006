"""SQLAlchemy ORM models mapping to the pricing lab tables.

Decimal amounts are stored as TEXT holding the exact ``str(Decimal)`` so a
value read back is identical to the value written. Dates are ISO-8601 TEXT
(``YYYY-MM-DD``), which compares correctly as a string.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow_str() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class Base(DeclarativeBase):
    pass


# --- Reference data ---


class StoreRow(Base):
    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    region: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)


class SkuRow(Base):
    __tablename__ = "skus"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)


class ReferencePriceRow(Base):
    __tablename__ = "reference_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sku_id: Mapped[int] = mapped_column(Integer, ForeignKey("skus.id"), nullable=False)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id"), nullable=False)
    price: Mapped[str] = mapped_column(Text, nullable=False)
    effective_from: Mapped[str] = mapped_column(Text, nullable=False)
    effective_until: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (
        Index("idx_reference_prices_sku_store", "sku_id", "store_id"),
        Index("idx_reference_prices_effective", "effective_from"),
    )


class ReferenceCostRow(Base):
    __tablename__ = "reference_costs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sku_id: Mapped[int] = mapped_column(Integer, ForeignKey("skus.id"), nullable=False)
    cost: Mapped[str] = mapped_column(Text, nullable=False)
    effective_from: Mapped[str] = mapped_column(Text, nullable=False)
    effective_until: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (Index("idx_reference_costs_sku", "sku_id"),)


# --- Experiments ---


class ExperimentRow(Base):
    __tablename__ = "experiments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    hypothesis: Mapped[str] = mapped_column(Text, nullable=False, default="")
    business_justification: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft")
    start_date: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    end_date: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    # Review fields
    approved_by: Mapped[str] = mapped_column(Text, nullable=False, default="")
    rejection_reason: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Timestamps
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'pending_approval', 'approved', 'running', "
            "'completed', 'failed', 'rejected')",
            name="ck_experiments_status",
        ),
        Index("idx_experiments_status", "status"),
    )


class ScopeEntryRow(Base):
    __tablename__ = "experiment_scopes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("experiments.id", ondelete="CASCADE"), nullable=False
    )
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id"), nullable=False)
    sku_id: Mapped[int] = mapped_column(Integer, ForeignKey("skus.id"), nullable=False)
    is_test_group: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (
        UniqueConstraint(
            "experiment_id", "store_id", "sku_id", name="uq_scope_experiment_store_sku"
        ),
        Index("idx_scope_experiment", "experiment_id"),
    )


class LeverRow(Base):
    __tablename__ = "experiment_levers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # One lever per experiment
    experiment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("experiments.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    kind: Mapped[str] = mapped_column(Text, nullable=False, default="price_discount")
    sku_id: Mapped[int] = mapped_column(Integer, ForeignKey("skus.id"), nullable=False)
    discount_percent: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (
        CheckConstraint(
            "kind IN ('price_discount', 'percentage_change', 'absolute_change', "
            "'target_price', 'competitor_match')",
            name="ck_levers_kind",
        ),
    )


class GuardrailsRow(Base):
    __tablename__ = "experiment_guardrails"

    experiment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("experiments.id", ondelete="CASCADE"), primary_key=True
    )
    price_floor: Mapped[str] = mapped_column(Text, nullable=False)
    price_ceiling: Mapped[str] = mapped_column(Text, nullable=False)
    max_change_percent: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)


# --- Simulation ---


class SimulationRunRow(Base):
    __tablename__ = "simulation_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("experiments.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    started_at: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    completed_at: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    total_days_simulated: Mapped[int | None] = mapped_column(Integer, nullable=True)

    projected_units_test: Mapped[str | None] = mapped_column(Text, nullable=True)
    projected_units_control: Mapped[str | None] = mapped_column(Text, nullable=True)
    projected_revenue_test: Mapped[str | None] = mapped_column(Text, nullable=True)
    projected_revenue_control: Mapped[str | None] = mapped_column(Text, nullable=True)
    projected_margin_test: Mapped[str | None] = mapped_column(Text, nullable=True)
    projected_margin_control: Mapped[str | None] = mapped_column(Text, nullable=True)
    projected_revenue_lift_pct: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed')",
            name="ck_simulation_runs_status",
        ),
        Index("idx_simulation_runs_experiment", "experiment_id"),
    )


class DailyResultRow(Base):
    __tablename__ = "simulation_results_daily"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("simulation_runs.id", ondelete="CASCADE"), nullable=False
    )
    simulation_date: Mapped[str] = mapped_column(Text, nullable=False)
    store_id: Mapped[int] = mapped_column(Integer, ForeignKey("stores.id"), nullable=False)
    sku_id: Mapped[int] = mapped_column(Integer, ForeignKey("skus.id"), nullable=False)
    variant: Mapped[str] = mapped_column(Text, nullable=False)
    base_price: Mapped[str] = mapped_column(Text, nullable=False)
    simulated_price: Mapped[str] = mapped_column(Text, nullable=False)
    unit_cost: Mapped[str] = mapped_column(Text, nullable=False)
    projected_units: Mapped[str] = mapped_column(Text, nullable=False)
    projected_revenue: Mapped[str] = mapped_column(Text, nullable=False)
    projected_cost: Mapped[str] = mapped_column(Text, nullable=False)
    projected_margin: Mapped[str] = mapped_column(Text, nullable=False)
    baseline_units: Mapped[str] = mapped_column(Text, nullable=False)
    baseline_revenue: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        CheckConstraint("variant IN ('CONTROL', 'TEST')", name="ck_results_variant"),
        Index("idx_results_run", "run_id"),
        Index("idx_results_run_date", "run_id", "simulation_date"),
    )


# --- Audit ---


class AuditLogRow(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("experiments.id"), nullable=True
    )
    action: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[str] = mapped_column(Text, nullable=False, default="")
    details_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (Index("idx_audit_log_experiment", "experiment_id"),)
