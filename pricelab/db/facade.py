"""SQLAlchemy-backed database connection and CRUD helpers."""

from __future__ import annotations

import json
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select, text, update

from pricelab.db.engine import create_db_engine, create_session_factory
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
from pricelab.models.simulation import DailyResult, SimulationRun, SimulationStatus, Variant

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from sqlalchemy import Engine
    from sqlalchemy.orm import Session, sessionmaker


class Database:
    """SQLAlchemy-backed wrapper with CRUD helpers for experiments, reference data and runs.

    Also serves as the reference-data and audit collaborator
    (``ReferenceDataPort`` / ``AuditPort``).
    """

    def __init__(self, db_path: str | Path = ":memory:"):
        self.db_path = str(db_path)
        self._engine: Engine = create_db_engine(self.db_path)
        self._session_factory: sessionmaker[Session] = create_session_factory(self._engine)

    @property
    def engine(self) -> Engine:
        """Expose the SQLAlchemy engine for inspection and advanced use."""
        return self._engine

    @property
    def Session(self) -> sessionmaker[Session]:  # noqa: N802
        """Expose the session factory for consumers that need direct access."""
        return self._session_factory

    def init_schema(self) -> None:
        """Create all tables via ORM metadata."""
        Base.metadata.create_all(self._engine)

    def close(self) -> None:
        self._engine.dispose()

    def check_connection(self) -> bool:
        """Verify the database is reachable. Returns True or raises."""
        with self._session_factory() as session:
            session.execute(text("SELECT 1"))
        return True

    # --- Reference data ---

    def create_store(self, store: Store) -> Store:
        with self._session_factory() as session:
            row = StoreRow(
                code=store.code, name=store.name, region=store.region, is_active=store.is_active
            )
            session.add(row)
            session.commit()
            return store.model_copy(update={"id": row.id})

    def get_store(self, store_id: int) -> Store | None:
        with self._session_factory() as session:
            row = session.get(StoreRow, store_id)
            return None if row is None else self._row_to_store(row)

    def list_stores(self) -> list[Store]:
        with self._session_factory() as session:
            rows = session.scalars(select(StoreRow).order_by(StoreRow.id)).all()
            return [self._row_to_store(r) for r in rows]

    def existing_store_ids(self, store_ids: Iterable[int]) -> set[int]:
        with self._session_factory() as session:
            stmt = select(StoreRow.id).where(StoreRow.id.in_(list(store_ids)))
            return set(session.scalars(stmt).all())

    def create_sku(self, sku: Sku) -> Sku:
        with self._session_factory() as session:
            row = SkuRow(
                code=sku.code, name=sku.name, category=sku.category, is_active=sku.is_active
            )
            session.add(row)
            session.commit()
            return sku.model_copy(update={"id": row.id})

    def get_sku(self, sku_id: int) -> Sku | None:
        with self._session_factory() as session:
            row = session.get(SkuRow, sku_id)
            return None if row is None else self._row_to_sku(row)

    def list_skus(self) -> list[Sku]:
        with self._session_factory() as session:
            rows = session.scalars(select(SkuRow).order_by(SkuRow.id)).all()
            return [self._row_to_sku(r) for r in rows]

    def existing_sku_ids(self, sku_ids: Iterable[int]) -> set[int]:
        with self._session_factory() as session:
            stmt = select(SkuRow.id).where(SkuRow.id.in_(list(sku_ids)))
            return set(session.scalars(stmt).all())

    def add_reference_price(self, price: ReferencePrice) -> ReferencePrice:
        with self._session_factory() as session:
            row = ReferencePriceRow(
                sku_id=price.sku_id,
                store_id=price.store_id,
                price=str(price.price),
                effective_from=price.effective_from.isoformat(),
                effective_until=_date_str_opt(price.effective_until),
            )
            session.add(row)
            session.commit()
            return price.model_copy(update={"id": row.id})

    def add_reference_cost(self, cost: ReferenceCost) -> ReferenceCost:
        with self._session_factory() as session:
            row = ReferenceCostRow(
                sku_id=cost.sku_id,
                cost=str(cost.cost),
                effective_from=cost.effective_from.isoformat(),
                effective_until=_date_str_opt(cost.effective_until),
            )
            session.add(row)
            session.commit()
            return cost.model_copy(update={"id": row.id})

    def effective_price(self, sku_id: int, store_id: int, on: date) -> Decimal | None:
        """Price for (SKU, store) effective on ``on``; the latest effective_from wins."""
        day = on.isoformat()
        with self._session_factory() as session:
            stmt = (
                select(ReferencePriceRow.price)
                .where(
                    ReferencePriceRow.sku_id == sku_id,
                    ReferencePriceRow.store_id == store_id,
                    ReferencePriceRow.effective_from <= day,
                    (ReferencePriceRow.effective_until.is_(None))
                    | (ReferencePriceRow.effective_until >= day),
                )
                .order_by(ReferencePriceRow.effective_from.desc(), ReferencePriceRow.id.desc())
                .limit(1)
            )
            value = session.scalars(stmt).first()
            return None if value is None else Decimal(value)

    def effective_cost(self, sku_id: int, on: date) -> Decimal | None:
        day = on.isoformat()
        with self._session_factory() as session:
            stmt = (
                select(ReferenceCostRow.cost)
                .where(
                    ReferenceCostRow.sku_id == sku_id,
                    ReferenceCostRow.effective_from <= day,
                    (ReferenceCostRow.effective_until.is_(None))
                    | (ReferenceCostRow.effective_until >= day),
                )
                .order_by(ReferenceCostRow.effective_from.desc(), ReferenceCostRow.id.desc())
                .limit(1)
            )
            value = session.scalars(stmt).first()
            return None if value is None else Decimal(value)

    def all_effective_prices(self, sku_id: int, on: date) -> list[Decimal]:
        """Every price row for the SKU effective on ``on``, across all stores."""
        day = on.isoformat()
        with self._session_factory() as session:
            stmt = select(ReferencePriceRow.price).where(
                ReferencePriceRow.sku_id == sku_id,
                ReferencePriceRow.effective_from <= day,
                (ReferencePriceRow.effective_until.is_(None))
                | (ReferencePriceRow.effective_until >= day),
            )
            return [Decimal(v) for v in session.scalars(stmt).all()]

    # --- Experiments ---

    def create_experiment(self, experiment: Experiment) -> Experiment:
        with self._session_factory() as session:
            row = ExperimentRow(
                name=experiment.name,
                description=experiment.description,
                hypothesis=experiment.hypothesis,
                business_justification=experiment.business_justification,
                status=experiment.status.value,
                start_date=_date_str_opt(experiment.start_date),
                end_date=_date_str_opt(experiment.end_date),
            )
            session.add(row)
            session.commit()
            return self._row_to_experiment(row)

    def get_experiment(self, experiment_id: int) -> Experiment | None:
        with self._session_factory() as session:
            row = session.get(ExperimentRow, experiment_id)
            if row is None:
                return None
            return self._row_to_experiment(row)

    def list_experiments(self, status: ExperimentStatus | None = None) -> list[Experiment]:
        with self._session_factory() as session:
            stmt = select(ExperimentRow).order_by(ExperimentRow.id)
            if status:
                stmt = stmt.where(ExperimentRow.status == status.value)
            rows = session.scalars(stmt).all()
            return [self._row_to_experiment(r) for r in rows]

    def update_experiment_details(self, experiment: Experiment) -> Experiment | None:
        """Overwrite the descriptive fields and dates. Status is left untouched."""
        with self._session_factory() as session:
            row = session.get(ExperimentRow, experiment.id)
            if row is None:
                return None
            row.name = experiment.name
            row.description = experiment.description
            row.hypothesis = experiment.hypothesis
            row.business_justification = experiment.business_justification
            row.start_date = _date_str_opt(experiment.start_date)
            row.end_date = _date_str_opt(experiment.end_date)
            row.updated_at = _utcnow_str()
            session.commit()
            return self._row_to_experiment(row)

    def compare_and_set_status(
        self,
        experiment_id: int,
        expected: ExperimentStatus,
        new_status: ExperimentStatus,
        **fields: str,
    ) -> bool:
        """Move to ``new_status`` only if the stored status is still ``expected``.

        Extra ``fields`` (e.g. approved_by, rejection_reason) are written in the
        same statement. Returns False when another caller changed the status first.
        """
        with self._session_factory() as session:
            updated = self._cas_status(session, experiment_id, expected, new_status, **fields)
            session.commit()
            return updated

    @staticmethod
    def _cas_status(
        session: Session,
        experiment_id: int,
        expected: ExperimentStatus,
        new_status: ExperimentStatus,
        **fields: str,
    ) -> bool:
        result = session.execute(
            update(ExperimentRow)
            .where(ExperimentRow.id == experiment_id, ExperimentRow.status == expected.value)
            .values(status=new_status.value, updated_at=_utcnow_str(), **fields)
        )
        return result.rowcount == 1

    # --- Scope ---

    def add_scope_entries(self, experiment_id: int, entries: Sequence[ScopeEntry]) -> None:
        """Insert all entries in one transaction."""
        with self._session_factory() as session:
            session.add_all(
                ScopeEntryRow(
                    experiment_id=experiment_id,
                    store_id=e.store_id,
                    sku_id=e.sku_id,
                    is_test_group=e.is_test_group,
                )
                for e in entries
            )
            session.commit()

    def remove_scope_entry(self, experiment_id: int, store_id: int, sku_id: int) -> bool:
        with self._session_factory() as session:
            result = session.execute(
                delete(ScopeEntryRow).where(
                    ScopeEntryRow.experiment_id == experiment_id,
                    ScopeEntryRow.store_id == store_id,
                    ScopeEntryRow.sku_id == sku_id,
                )
            )
            session.commit()
            return result.rowcount == 1

    def list_scope(self, experiment_id: int) -> list[ScopeEntry]:
        with self._session_factory() as session:
            stmt = (
                select(ScopeEntryRow)
                .where(ScopeEntryRow.experiment_id == experiment_id)
                .order_by(ScopeEntryRow.id)
            )
            return [
                ScopeEntry(
                    id=r.id,
                    experiment_id=r.experiment_id,
                    store_id=r.store_id,
                    sku_id=r.sku_id,
                    is_test_group=r.is_test_group,
                )
                for r in session.scalars(stmt).all()
            ]

    def sku_in_scope(self, experiment_id: int, sku_id: int) -> bool:
        with self._session_factory() as session:
            stmt = select(func.count(ScopeEntryRow.id)).where(
                ScopeEntryRow.experiment_id == experiment_id, ScopeEntryRow.sku_id == sku_id
            )
            return session.scalar(stmt) > 0

    # --- Lever ---

    def upsert_lever(self, lever: Lever) -> Lever:
        with self._session_factory() as session:
            stmt = select(LeverRow).where(LeverRow.experiment_id == lever.experiment_id)
            row = session.scalars(stmt).first()
            if row is None:
                row = LeverRow(experiment_id=lever.experiment_id)
                session.add(row)
            row.kind = lever.kind.value
            row.sku_id = lever.sku_id
            row.discount_percent = str(lever.discount_percent)
            row.updated_at = _utcnow_str()
            session.commit()
            return self._row_to_lever(row)

    def get_lever(self, experiment_id: int) -> Lever | None:
        with self._session_factory() as session:
            stmt = select(LeverRow).where(LeverRow.experiment_id == experiment_id)
            row = session.scalars(stmt).first()
            return None if row is None else self._row_to_lever(row)

    def delete_lever(self, experiment_id: int) -> bool:
        with self._session_factory() as session:
            result = session.execute(
                delete(LeverRow).where(LeverRow.experiment_id == experiment_id)
            )
            session.commit()
            return result.rowcount == 1

    # --- Guardrails ---

    def upsert_guardrails(self, guardrails: GuardrailSet) -> GuardrailSet:
        with self._session_factory() as session:
            row = session.get(GuardrailsRow, guardrails.experiment_id)
            if row is None:
                row = GuardrailsRow(experiment_id=guardrails.experiment_id)
                session.add(row)
            row.price_floor = str(guardrails.price_floor)
            row.price_ceiling = str(guardrails.price_ceiling)
            row.max_change_percent = str(guardrails.max_change_percent)
            row.updated_at = _utcnow_str()
            session.commit()
            return self._row_to_guardrails(row)

    def get_guardrails(self, experiment_id: int) -> GuardrailSet | None:
        with self._session_factory() as session:
            row = session.get(GuardrailsRow, experiment_id)
            return None if row is None else self._row_to_guardrails(row)

    def delete_guardrails(self, experiment_id: int) -> bool:
        with self._session_factory() as session:
            result = session.execute(
                delete(GuardrailsRow).where(GuardrailsRow.experiment_id == experiment_id)
            )
            session.commit()
            return result.rowcount == 1

    # --- Simulation runs ---

    def start_run(self, experiment_id: int, total_days: int) -> SimulationRun | None:
        """Atomically move the experiment APPROVED -> RUNNING and open a RUNNING run.

        Returns None (and writes nothing) when the experiment is no longer APPROVED.
        """
        with self._session_factory() as session:
            if not self._cas_status(
                session, experiment_id, ExperimentStatus.APPROVED, ExperimentStatus.RUNNING
            ):
                session.rollback()
                return None
            row = SimulationRunRow(
                experiment_id=experiment_id,
                status=SimulationStatus.RUNNING.value,
                started_at=_utcnow_str(),
                total_days_simulated=total_days,
            )
            session.add(row)
            session.commit()
            return self._row_to_run(row)

    def complete_run(self, run: SimulationRun, results: Sequence[DailyResult]) -> SimulationRun:
        """Write every result row, the run totals and both status changes as one unit.

        Raises RuntimeError, with nothing persisted, if the experiment left RUNNING.
        """
        with self._session_factory() as session:
            if not self._cas_status(
                session, run.experiment_id, ExperimentStatus.RUNNING, ExperimentStatus.COMPLETED
            ):
                session.rollback()
                raise RuntimeError(
                    f"Experiment {run.experiment_id} is no longer RUNNING; "
                    f"results of run {run.id} were not saved"
                )
            session.add_all(self._result_to_row(run.id, r) for r in results)
            row = session.get(SimulationRunRow, run.id)
            row.status = SimulationStatus.COMPLETED.value
            row.completed_at = _utcnow_str()
            row.total_days_simulated = run.total_days_simulated
            row.projected_units_test = _dec_str_opt(run.projected_units_test)
            row.projected_units_control = _dec_str_opt(run.projected_units_control)
            row.projected_revenue_test = _dec_str_opt(run.projected_revenue_test)
            row.projected_revenue_control = _dec_str_opt(run.projected_revenue_control)
            row.projected_margin_test = _dec_str_opt(run.projected_margin_test)
            row.projected_margin_control = _dec_str_opt(run.projected_margin_control)
            row.projected_revenue_lift_pct = _dec_str_opt(run.projected_revenue_lift_pct)
            session.commit()
            return self._row_to_run(row)

    def fail_run(self, run_id: int, error_message: str) -> SimulationRun:
        """Mark the run FAILED, drop any result rows, and move the experiment to FAILED."""
        with self._session_factory() as session:
            row = session.get(SimulationRunRow, run_id)
            session.execute(delete(DailyResultRow).where(DailyResultRow.run_id == run_id))
            row.status = SimulationStatus.FAILED.value
            row.completed_at = _utcnow_str()
            row.error_message = error_message
            self._cas_status(
                session, row.experiment_id, ExperimentStatus.RUNNING, ExperimentStatus.FAILED
            )
            session.commit()
            return self._row_to_run(row)

    def get_run(self, run_id: int) -> SimulationRun | None:
        with self._session_factory() as session:
            row = session.get(SimulationRunRow, run_id)
            return None if row is None else self._row_to_run(row)

    def list_runs(self, experiment_id: int, limit: int | None = None) -> list[SimulationRun]:
        """Runs of an experiment, newest first."""
        with self._session_factory() as session:
            stmt = (
                select(SimulationRunRow)
                .where(SimulationRunRow.experiment_id == experiment_id)
                .order_by(SimulationRunRow.id.desc())
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            return [self._row_to_run(r) for r in session.scalars(stmt).all()]

    def get_results(
        self,
        run_id: int,
        store_id: int | None = None,
        sku_id: int | None = None,
    ) -> list[DailyResult]:
        """Result rows ordered by date, store, SKU, then CONTROL before TEST."""
        with self._session_factory() as session:
            stmt = select(DailyResultRow).where(DailyResultRow.run_id == run_id)
            if store_id is not None:
                stmt = stmt.where(DailyResultRow.store_id == store_id)
            if sku_id is not None:
                stmt = stmt.where(DailyResultRow.sku_id == sku_id)
            stmt = stmt.order_by(
                DailyResultRow.simulation_date,
                DailyResultRow.store_id,
                DailyResultRow.sku_id,
                DailyResultRow.variant,
            )
            return [self._row_to_result(r) for r in session.scalars(stmt).all()]

    def count_results(self, run_id: int) -> int:
        with self._session_factory() as session:
            stmt = select(func.count(DailyResultRow.id)).where(DailyResultRow.run_id == run_id)
            return session.scalar(stmt) or 0

    # --- Audit log ---

    def record_audit(
        self,
        action: AuditAction,
        experiment_id: int | None,
        details: dict[str, Any],
        actor: str = "",
    ) -> None:
        with self._session_factory() as session:
            session.add(
                AuditLogRow(
                    experiment_id=experiment_id,
                    action=action.value,
                    actor=actor,
                    details_json=json.dumps(details, default=str, sort_keys=True),
                )
            )
            session.commit()

    def get_audit_log(self, experiment_id: int) -> list[AuditRecord]:
        with self._session_factory() as session:
            stmt = (
                select(AuditLogRow)
                .where(AuditLogRow.experiment_id == experiment_id)
                .order_by(AuditLogRow.id)
            )
            return [
                AuditRecord(
                    id=r.id,
                    action=AuditAction(r.action),
                    experiment_id=r.experiment_id,
                    actor=r.actor,
                    details=json.loads(r.details_json),
                    created_at=_parse_dt(r.created_at),
                )
                for r in session.scalars(stmt).all()
            ]

    # --- Helpers ---

    @staticmethod
    def _row_to_store(row: StoreRow) -> Store:
        return Store(
            id=row.id, code=row.code, name=row.name, region=row.region, is_active=row.is_active
        )

    @staticmethod
    def _row_to_sku(row: SkuRow) -> Sku:
        return Sku(
            id=row.id,
            code=row.code,
            name=row.name,
            category=row.category,
            is_active=row.is_active,
        )

    @staticmethod
    def _row_to_experiment(row: ExperimentRow) -> Experiment:
        return Experiment(
            id=row.id,
            name=row.name,
            description=row.description,
            hypothesis=row.hypothesis,
            business_justification=row.business_justification,
            status=ExperimentStatus(row.status),
            start_date=_parse_date_opt(row.start_date),
            end_date=_parse_date_opt(row.end_date),
            approved_by=row.approved_by,
            rejection_reason=row.rejection_reason,
            created_at=_parse_dt(row.created_at),
            updated_at=_parse_dt(row.updated_at),
        )

    @staticmethod
    def _row_to_lever(row: LeverRow) -> Lever:
        return Lever(
            id=row.id,
            experiment_id=row.experiment_id,
            kind=LeverKind(row.kind),
            sku_id=row.sku_id,
            discount_percent=Decimal(row.discount_percent),
        )

    @staticmethod
    def _row_to_guardrails(row: GuardrailsRow) -> GuardrailSet:
        return GuardrailSet(
            experiment_id=row.experiment_id,
            price_floor=Decimal(row.price_floor),
            price_ceiling=Decimal(row.price_ceiling),
            max_change_percent=Decimal(row.max_change_percent),
        )

    @staticmethod
    def _row_to_run(row: SimulationRunRow) -> SimulationRun:
        return SimulationRun(
            id=row.id,
            experiment_id=row.experiment_id,
            status=SimulationStatus(row.status),
            started_at=_parse_dt_opt(row.started_at),
            completed_at=_parse_dt_opt(row.completed_at),
            error_message=row.error_message,
            total_days_simulated=row.total_days_simulated,
            projected_units_test=_parse_dec_opt(row.projected_units_test),
            projected_units_control=_parse_dec_opt(row.projected_units_control),
            projected_revenue_test=_parse_dec_opt(row.projected_revenue_test),
            projected_revenue_control=_parse_dec_opt(row.projected_revenue_control),
            projected_margin_test=_parse_dec_opt(row.projected_margin_test),
            projected_margin_control=_parse_dec_opt(row.projected_margin_control),
            projected_revenue_lift_pct=_parse_dec_opt(row.projected_revenue_lift_pct),
            created_at=_parse_dt(row.created_at),
        )

    @staticmethod
    def _result_to_row(run_id: int | None, result: DailyResult) -> DailyResultRow:
        return DailyResultRow(
            run_id=run_id,
            simulation_date=result.date.isoformat(),
            store_id=result.store_id,
            sku_id=result.sku_id,
            variant=result.variant.value,
            base_price=str(result.base_price),
            simulated_price=str(result.simulated_price),
            unit_cost=str(result.unit_cost),
            projected_units=str(result.projected_units),
            projected_revenue=str(result.projected_revenue),
            projected_cost=str(result.projected_cost),
            projected_margin=str(result.projected_margin),
            baseline_units=str(result.baseline_units),
            baseline_revenue=str(result.baseline_revenue),
        )

    @staticmethod
    def _row_to_result(row: DailyResultRow) -> DailyResult:
        return DailyResult(
            id=row.id,
            run_id=row.run_id,
            date=date.fromisoformat(row.simulation_date),
            store_id=row.store_id,
            sku_id=row.sku_id,
            variant=Variant(row.variant),
            base_price=Decimal(row.base_price),
            simulated_price=Decimal(row.simulated_price),
            unit_cost=Decimal(row.unit_cost),
            projected_units=Decimal(row.projected_units),
            projected_revenue=Decimal(row.projected_revenue),
            projected_cost=Decimal(row.projected_cost),
            projected_margin=Decimal(row.projected_margin),
            baseline_units=Decimal(row.baseline_units),
            baseline_revenue=Decimal(row.baseline_revenue),
        )


def _utcnow_str() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_dt(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _parse_dt_opt(value: str | None) -> datetime | None:
    return None if value is None else _parse_dt(value)


def _parse_date_opt(value: str | None) -> date | None:
    return None if value is None else date.fromisoformat(value)


def _date_str_opt(value: date | None) -> str | None:
    return None if value is None else value.isoformat()


def _parse_dec_opt(value: str | None) -> Decimal | None:
    return None if value is None else Decimal(value)


def _dec_str_opt(value: Decimal | None) -> str | None:
    return None if value is None else str(value)
