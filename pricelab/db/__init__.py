"""Database package: engine, ORM models, and CRUD facade."""

from pricelab.db.engine import connection_pragmas, create_db_engine, create_session_factory
from pricelab.db.facade import Database
from pricelab.db.orm import (
    AuditLogRow,
    Base,
    DailyResultRow,
    ExperimentRow,
    GuardrailsRow,
    LeverRow,
    ReferenceCostRow,
    ReferencePriceRow,
    ScopeEntryRow,
    SimulationRunRow,
    SkuRow,
    StoreRow,
)

__all__ = [
    "AuditLogRow",
    "Base",
    "DailyResultRow",
    "Database",
    "ExperimentRow",
    "GuardrailsRow",
    "LeverRow",
    "ReferenceCostRow",
    "ReferencePriceRow",
    "ScopeEntryRow",
    "SimulationRunRow",
    "SkuRow",
    "StoreRow",
    "connection_pragmas",
    "create_db_engine",
    "create_session_factory",
]
