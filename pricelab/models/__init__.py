"""Re-exports all Pydantic models."""

from pricelab.models.audit import AuditAction, AuditRecord
from pricelab.models.experiment import (
    Experiment,
    ExperimentStatus,
    GuardrailSet,
    Lever,
    LeverKind,
    ScopeEntry,
)
from pricelab.models.reference import ReferenceCost, ReferencePrice, Sku, Store
from pricelab.models.simulation import (
    BreakdownRow,
    DailyResult,
    DeltaMetrics,
    SimulationRun,
    SimulationStatus,
    SimulationSummary,
    Variant,
    VariantMetrics,
)

__all__ = [
    "AuditAction",
    "AuditRecord",
    "BreakdownRow",
    "DailyResult",
    "DeltaMetrics",
    "Experiment",
    "ExperimentStatus",
    "GuardrailSet",
    "Lever",
    "LeverKind",
    "ReferenceCost",
    "ReferencePrice",
    "ScopeEntry",
    "SimulationRun",
    "SimulationStatus",
    "SimulationSummary",
    "Sku",
    "Store",
    "Variant",
    "VariantMetrics",
]
