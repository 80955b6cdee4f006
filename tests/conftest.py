"""Shared test fixtures."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from pricelab.config import Settings
from pricelab.db import Database
from pricelab.experiments import ExperimentService
from pricelab.models.experiment import Experiment, ExperimentStatus, ScopeEntry
from pricelab.models.reference import ReferenceCost, ReferencePrice, Sku, Store
from pricelab.simulation import ResultsQueryService, SimulationEngine

TODAY = date(2025, 6, 1)
START = date(2025, 6, 10)
END = date(2025, 6, 14)


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        log_level="DEBUG",
        log_format="console",
        actor="tester",
        _env_file=None,
    )


@pytest.fixture()
def db(tmp_path) -> Database:
    db = Database(tmp_path / "test.db")
    db.init_schema()
    yield db
    db.close()


@pytest.fixture()
def service(db: Database, settings: Settings) -> ExperimentService:
    return ExperimentService(db, settings, today_fn=lambda: TODAY)


@pytest.fixture()
def engine(db: Database, settings: Settings) -> SimulationEngine:
    return SimulationEngine(db, settings)


@pytest.fixture()
def results(db: Database, settings: Settings) -> ResultsQueryService:
    return ResultsQueryService(db, settings)


@pytest.fixture()
def store(db: Database) -> Store:
    return db.create_store(Store(code="S001", name="Downtown", region="North"))


@pytest.fixture()
def sku(db: Database) -> Sku:
    return db.create_sku(Sku(code="SKU-MILK-1L", name="Milk 1L", category="Dairy"))


@pytest.fixture()
def reference_data(db: Database, store: Store, sku: Sku) -> tuple[Store, Sku]:
    """Base price 100.00 and unit cost 60.00, open-ended from before TODAY."""
    db.add_reference_price(
        ReferencePrice(
            sku_id=sku.id, store_id=store.id, price=Decimal("100.00"),
            effective_from=date(2025, 1, 1),
        )
    )
    db.add_reference_cost(
        ReferenceCost(sku_id=sku.id, cost=Decimal("60.00"), effective_from=date(2025, 1, 1))
    )
    return store, sku


@pytest.fixture()
def draft_experiment(service: ExperimentService) -> Experiment:
    return service.create_experiment("Milk discount", start_date=START, end_date=END)


@pytest.fixture()
def configured_experiment(
    service: ExperimentService,
    draft_experiment: Experiment,
    reference_data: tuple[Store, Sku],
) -> Experiment:
    """DRAFT experiment with one scope entry, a 10% discount and valid guardrails."""
    store, sku = reference_data
    service.add_scope_entries(
        draft_experiment.id, [ScopeEntry(store_id=store.id, sku_id=sku.id)]
    )
    service.set_lever(draft_experiment.id, sku.id, Decimal("10"))
    service.configure_guardrails(
        draft_experiment.id, Decimal("50.00"), Decimal("150.00"), Decimal("20")
    )
    return service.get_experiment(draft_experiment.id)


@pytest.fixture()
def approved_experiment(
    service: ExperimentService, configured_experiment: Experiment
) -> Experiment:
    service.submit(configured_experiment.id)
    approved = service.approve(configured_experiment.id, approved_by="reviewer")
    assert approved.status == ExperimentStatus.APPROVED
    return approved
