"""initial schema

Revision ID: 4b1e7c2a9f30
Revises:
Create Date: 2026-10-18 09:12:41.220417

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4b1e7c2a9f30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all pricing lab tables."""
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("code", sa.Text, nullable=False, unique=True),
        sa.Column("name", sa.Text, nullable=False, server_default=""),
        sa.Column("region", sa.Text, nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.Text, nullable=False),
    )

    op.create_table(
        "skus",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("code", sa.Text, nullable=False, unique=True),
        sa.Column("name", sa.Text, nullable=False, server_default=""),
        sa.Column("category", sa.Text, nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.Text, nullable=False),
    )

    op.create_table(
        "reference_prices",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("sku_id", sa.Integer, sa.ForeignKey("skus.id"), nullable=False),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.id"), nullable=False),
        sa.Column("price", sa.Text, nullable=False),
        sa.Column("effective_from", sa.Text, nullable=False),
        sa.Column("effective_until", sa.Text, nullable=True),
        sa.Column("created_at", sa.Text, nullable=False),
    )
    op.create_index(
        "idx_reference_prices_sku_store", "reference_prices", ["sku_id", "store_id"]
    )
    op.create_index("idx_reference_prices_effective", "reference_prices", ["effective_from"])

    op.create_table(
        "reference_costs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("sku_id", sa.Integer, sa.ForeignKey("skus.id"), nullable=False),
        sa.Column("cost", sa.Text, nullable=False),
        sa.Column("effective_from", sa.Text, nullable=False),
        sa.Column("effective_until", sa.Text, nullable=True),
        sa.Column("created_at", sa.Text, nullable=False),
    )
    op.create_index("idx_reference_costs_sku", "reference_costs", ["sku_id"])

    op.create_table(
        "experiments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.Text, nullable=False, server_default=""),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("hypothesis", sa.Text, nullable=False, server_default=""),
        sa.Column("business_justification", sa.Text, nullable=False, server_default=""),
        sa.Column("status", sa.Text, nullable=False, server_default="draft"),
        sa.Column("start_date", sa.Text, nullable=True),
        sa.Column("end_date", sa.Text, nullable=True),
        sa.Column("approved_by", sa.Text, nullable=False, server_default=""),
        sa.Column("rejection_reason", sa.Text, nullable=False, server_default=""),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
        sa.CheckConstraint(
            "status IN ('draft', 'pending_approval', 'approved', 'running', "
            "'completed', 'failed', 'rejected')",
            name="ck_experiments_status",
        ),
    )
    op.create_index("idx_experiments_status", "experiments", ["status"])

    op.create_table(
        "experiment_scopes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "experiment_id",
            sa.Integer,
            sa.ForeignKey("experiments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.id"), nullable=False),
        sa.Column("sku_id", sa.Integer, sa.ForeignKey("skus.id"), nullable=False),
        sa.Column("is_test_group", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.UniqueConstraint(
            "experiment_id", "store_id", "sku_id", name="uq_scope_experiment_store_sku"
        ),
    )
    op.create_index("idx_scope_experiment", "experiment_scopes", ["experiment_id"])

    op.create_table(
        "experiment_levers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "experiment_id",
            sa.Integer,
            sa.ForeignKey("experiments.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("kind", sa.Text, nullable=False, server_default="price_discount"),
        sa.Column("sku_id", sa.Integer, sa.ForeignKey("skus.id"), nullable=False),
        sa.Column("discount_percent", sa.Text, nullable=False),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
        sa.CheckConstraint(
            "kind IN ('price_discount', 'percentage_change', 'absolute_change', "
            "'target_price', 'competitor_match')",
            name="ck_levers_kind",
        ),
    )

    op.create_table(
        "experiment_guardrails",
        sa.Column(
            "experiment_id",
            sa.Integer,
            sa.ForeignKey("experiments.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("price_floor", sa.Text, nullable=False),
        sa.Column("price_ceiling", sa.Text, nullable=False),
        sa.Column("max_change_percent", sa.Text, nullable=False),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
    )

    op.create_table(
        "simulation_runs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "experiment_id", sa.Integer, sa.ForeignKey("experiments.id"), nullable=False
        ),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("started_at", sa.Text, nullable=True),
        sa.Column("completed_at", sa.Text, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("total_days_simulated", sa.Integer, nullable=True),
        sa.Column("projected_units_test", sa.Text, nullable=True),
        sa.Column("projected_units_control", sa.Text, nullable=True),
        sa.Column("projected_revenue_test", sa.Text, nullable=True),
        sa.Column("projected_revenue_control", sa.Text, nullable=True),
        sa.Column("projected_margin_test", sa.Text, nullable=True),
        sa.Column("projected_margin_control", sa.Text, nullable=True),
        sa.Column("projected_revenue_lift_pct", sa.Text, nullable=True),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed')",
            name="ck_simulation_runs_status",
        ),
    )
    op.create_index("idx_simulation_runs_experiment", "simulation_runs", ["experiment_id"])

    op.create_table(
        "simulation_results_daily",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "run_id",
            sa.Integer,
            sa.ForeignKey("simulation_runs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("simulation_date", sa.Text, nullable=False),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.id"), nullable=False),
        sa.Column("sku_id", sa.Integer, sa.ForeignKey("skus.id"), nullable=False),
        sa.Column("variant", sa.Text, nullable=False),
        sa.Column("base_price", sa.Text, nullable=False),
        sa.Column("simulated_price", sa.Text, nullable=False),
        sa.Column("unit_cost", sa.Text, nullable=False),
        sa.Column("projected_units", sa.Text, nullable=False),
        sa.Column("projected_revenue", sa.Text, nullable=False),
        sa.Column("projected_cost", sa.Text, nullable=False),
        sa.Column("projected_margin", sa.Text, nullable=False),
        sa.Column("baseline_units", sa.Text, nullable=False),
        sa.Column("baseline_revenue", sa.Text, nullable=False),
        sa.CheckConstraint("variant IN ('CONTROL', 'TEST')", name="ck_results_variant"),
    )
    op.create_index("idx_results_run", "simulation_results_daily", ["run_id"])
    op.create_index(
        "idx_results_run_date", "simulation_results_daily", ["run_id", "simulation_date"]
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "experiment_id", sa.Integer, sa.ForeignKey("experiments.id"), nullable=True
        ),
        sa.Column("action", sa.Text, nullable=False),
        sa.Column("actor", sa.Text, nullable=False, server_default=""),
        sa.Column("details_json", sa.Text, nullable=False, server_default="{}"),
        sa.Column("created_at", sa.Text, nullable=False),
    )
    op.create_index("idx_audit_log_experiment", "audit_log", ["experiment_id"])


def downgrade() -> None:
    """Drop all pricing lab tables, dependents first."""
    op.drop_table("audit_log")
    op.drop_table("simulation_results_daily")
    op.drop_table("simulation_runs")
    op.drop_table("experiment_guardrails")
    op.drop_table("experiment_levers")
    op.drop_table("experiment_scopes")
    op.drop_table("experiments")
    op.drop_table("reference_costs")
    op.drop_table("reference_prices")
    op.drop_table("skus")
    op.drop_table("stores")
