"""Prometheus metric definitions for the pricing lab."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# --- Lifecycle ---

lifecycle_transitions_total = Counter(
    "pricelab_lifecycle_transitions_total",
    "Experiment status transitions performed",
    labelnames=["action"],
)

# --- Guardrails ---

guardrail_checks_total = Counter(
    "pricelab_guardrail_checks_total",
    "Guardrail validations by outcome",
    labelnames=["outcome"],
)

# --- Simulation ---

simulation_runs_total = Counter(
    "pricelab_simulation_runs_total",
    "Simulation runs finished, by final status",
    labelnames=["status"],
)

simulation_duration_seconds = Histogram(
    "pricelab_simulation_duration_seconds",
    "Wall time of one simulation run",
    buckets=(0.01, 0.05, 0.1, 0.5, 1, 2, 5, 10, 30),
)

simulation_rows_total = Counter(
    "pricelab_simulation_rows_total",
    "Daily result rows written by completed simulation runs",
)
