"""Experiment configuration and review: scope, lever, guardrails, submit/approve/reject.

Every mutation checks the lifecycle first, validates, persists, then writes an
audit record. Status changes are compare-and-set updates so two reviewers
acting on the same experiment cannot both win.
"""

from __future__ import annotations

from collections import Counter
from datetime import date
from typing import TYPE_CHECKING, Any

import structlog

from pricelab import lifecycle
from pricelab.errors import (
    DuplicateEntry,
    DuplicateScope,
    DuplicateType,
    InvalidExperiment,
    InvalidLever,
    InvalidState,
    NotFound,
    UnsupportedLeverKind,
)
from pricelab.guardrails import check_finite, validate_guardrails
from pricelab.lifecycle import EditAction, LifecycleAction
from pricelab.metrics import lifecycle_transitions_total
from pricelab.models.audit import AuditAction
from pricelab.models.experiment import (
    Experiment,
    ExperimentStatus,
    GuardrailSet,
    Lever,
    LeverKind,
    ScopeEntry,
)
from pricelab.pricing import ZERO

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from decimal import Decimal

    from pricelab.config import Settings
    from pricelab.db import Database
    from pricelab.guardrails import LeverCheck

logger = structlog.get_logger()


class ExperimentService:
    """Application service over the ``Database`` facade.

    ``today_fn`` is the validation clock used for guardrail checks.
    """

    def __init__(
        self,
        db: Database,
        settings: Settings,
        today_fn: Callable[[], date] = date.today,
    ):
        self.db = db
        self.settings = settings
        self.today_fn = today_fn

    # --- Experiments ---

    def create_experiment(
        self,
        name: str,
        start_date: date | None = None,
        end_date: date | None = None,
        description: str = "",
        hypothesis: str = "",
        business_justification: str = "",
    ) -> Experiment:
        if not name.strip():
            raise InvalidExperiment("Experiment name is required.")
        experiment = self.db.create_experiment(
            Experiment(
                name=name.strip(),
                description=description,
                hypothesis=hypothesis,
                business_justification=business_justification,
                start_date=start_date,
                end_date=end_date,
            )
        )
        logger.info("Experiment created", experiment_id=experiment.id, name=experiment.name)
        self._audit(AuditAction.EXPERIMENT_CREATED, experiment.id, {"name": experiment.name})
        return experiment

    def update_experiment(
        self,
        experiment_id: int,
        *,
        name: str | None = None,
        description: str | None = None,
        hypothesis: str | None = None,
        business_justification: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Experiment:
        """Change descriptive fields or dates. Arguments left as None are kept."""
        experiment = self.get_experiment(experiment_id)
        lifecycle.require_draft(experiment, EditAction.UPDATE)
        changes: dict[str, Any] = {
            key: value
            for key, value in (
                ("name", name),
                ("description", description),
                ("hypothesis", hypothesis),
                ("business_justification", business_justification),
                ("start_date", start_date),
                ("end_date", end_date),
            )
            if value is not None
        }
        if "name" in changes and not changes["name"].strip():
            raise InvalidExperiment("Experiment name is required.")
        updated = self.db.update_experiment_details(experiment.model_copy(update=changes))
        self._audit(
            AuditAction.EXPERIMENT_UPDATED,
            experiment_id,
            {"fields": sorted(changes)},
        )
        return updated

    def get_experiment(self, experiment_id: int) -> Experiment:
        experiment = self.db.get_experiment(experiment_id)
        if experiment is None:
            raise NotFound("Experiment", experiment_id)
        return experiment

    def list_experiments(self, status: ExperimentStatus | None = None) -> list[Experiment]:
        return self.db.list_experiments(status)

    def list_pending_approvals(self) -> list[Experiment]:
        return self.db.list_experiments(ExperimentStatus.PENDING_APPROVAL)

    # --- Scope ---

    def add_scope_entries(
        self, experiment_id: int, entries: Sequence[ScopeEntry]
    ) -> list[ScopeEntry]:
        """Add (store, SKU) pairs. Any duplicate rejects the whole request."""
        experiment = self.get_experiment(experiment_id)
        lifecycle.require_draft(experiment, EditAction.MODIFY_SCOPE)

        counts = Counter(e.key for e in entries)
        duplicates = [
            DuplicateEntry(store_id, sku_id, DuplicateType.IN_REQUEST)
            for (store_id, sku_id), n in counts.items()
            if n > 1
        ]

        self._require_all_exist("Store", {e.store_id for e in entries}, self.db.existing_store_ids)
        self._require_all_exist("Sku", {e.sku_id for e in entries}, self.db.existing_sku_ids)

        existing = {s.key for s in self.db.list_scope(experiment_id)}
        duplicates.extend(
            DuplicateEntry(e.store_id, e.sku_id, DuplicateType.ALREADY_EXISTS)
            for e in entries
            if e.key in existing
        )
        if duplicates:
            raise DuplicateScope(duplicates)

        self.db.add_scope_entries(experiment_id, entries)
        logger.info("Scope entries added", experiment_id=experiment_id, count=len(entries))
        self._audit(AuditAction.SCOPE_ADDED, experiment_id, _scope_details(entries))
        return self.db.list_scope(experiment_id)

    def remove_scope_entries(
        self, experiment_id: int, pairs: Sequence[tuple[int, int]]
    ) -> list[ScopeEntry]:
        """Remove (store_id, sku_id) pairs; pairs not in scope are ignored."""
        experiment = self.get_experiment(experiment_id)
        lifecycle.require_draft(experiment, EditAction.MODIFY_SCOPE)

        removed = [
            ScopeEntry(store_id=store_id, sku_id=sku_id)
            for store_id, sku_id in pairs
            if self.db.remove_scope_entry(experiment_id, store_id, sku_id)
        ]
        if removed:
            logger.info("Scope entries removed", experiment_id=experiment_id, count=len(removed))
            self._audit(AuditAction.SCOPE_REMOVED, experiment_id, _scope_details(removed))
        else:
            logger.info("No matching scope entries to remove", experiment_id=experiment_id)
        return self.db.list_scope(experiment_id)

    def list_scope(self, experiment_id: int) -> list[ScopeEntry]:
        self.get_experiment(experiment_id)
        return self.db.list_scope(experiment_id)

    # --- Lever ---

    def set_lever(
        self,
        experiment_id: int,
        sku_id: int,
        discount_percent: Decimal,
        kind: LeverKind = LeverKind.PRICE_DISCOUNT,
    ) -> Lever:
        """Configure the experiment's single lever, replacing any existing one."""
        experiment = self.get_experiment(experiment_id)
        if self.db.get_sku(sku_id) is None:
            raise NotFound("Sku", sku_id)
        lifecycle.require_draft(experiment, EditAction.MODIFY_LEVER)

        if kind is not LeverKind.PRICE_DISCOUNT:
            raise UnsupportedLeverKind(kind)
        if not discount_percent.is_finite():
            raise InvalidLever(
                f"discountPercentage must be a finite number, got {discount_percent}"
            )
        if discount_percent <= ZERO:
            raise InvalidLever("discountPercentage must be greater than 0")
        if discount_percent > self.settings.max_discount_percent:
            raise InvalidLever(
                f"discountPercentage must not exceed {self.settings.max_discount_percent}%"
            )
        if not self.db.sku_in_scope(experiment_id, sku_id):
            raise InvalidLever(
                f"SKU {sku_id} is not in experiment scope. "
                "Add the SKU to experiment scope before configuring a lever for it."
            )

        replaced = self.db.get_lever(experiment_id) is not None
        lever = self.db.upsert_lever(
            Lever(
                experiment_id=experiment_id,
                kind=kind,
                sku_id=sku_id,
                discount_percent=discount_percent,
            )
        )
        logger.info(
            "Lever replaced" if replaced else "Lever created",
            experiment_id=experiment_id,
            sku_id=sku_id,
            discount_percent=str(discount_percent),
        )
        self._audit(
            AuditAction.LEVER_SET,
            experiment_id,
            {
                "type": kind.name,
                "skuId": sku_id,
                "discountPercentage": str(discount_percent),
                "replaced": replaced,
            },
        )
        return lever

    def remove_lever(self, experiment_id: int) -> None:
        experiment = self.get_experiment(experiment_id)
        lifecycle.require_draft(experiment, EditAction.MODIFY_LEVER)
        lever = self.db.get_lever(experiment_id)
        if lever is None:
            raise NotFound("Lever", f"experiment:{experiment_id}")
        self.db.delete_lever(experiment_id)
        self._audit(
            AuditAction.LEVER_REMOVED,
            experiment_id,
            {"type": lever.kind.name, "skuId": lever.sku_id},
        )

    def get_lever(self, experiment_id: int) -> Lever | None:
        self.get_experiment(experiment_id)
        return self.db.get_lever(experiment_id)

    # --- Guardrails ---

    def configure_guardrails(
        self,
        experiment_id: int,
        price_floor: Decimal,
        price_ceiling: Decimal,
        max_change_percent: Decimal,
    ) -> GuardrailSet:
        experiment = self.get_experiment(experiment_id)
        lifecycle.require_draft(experiment, EditAction.MODIFY_GUARDRAILS)

        check_finite(
            priceFloor=price_floor,
            priceCeiling=price_ceiling,
            maxChangePercent=max_change_percent,
        )
        guardrails = GuardrailSet(
            experiment_id=experiment_id,
            price_floor=price_floor,
            price_ceiling=price_ceiling,
            max_change_percent=max_change_percent,
        )
        check = self._validate_guardrails(guardrails, self.db.get_lever(experiment_id))
        saved = self.db.upsert_guardrails(guardrails)

        details: dict[str, Any] = {
            "priceFloor": str(price_floor),
            "priceCeiling": str(price_ceiling),
            "maxChangePercent": str(max_change_percent),
        }
        if check is not None:
            details.update(check.as_details())
        self._audit(AuditAction.GUARDRAILS_SET, experiment_id, details)
        return saved

    def remove_guardrails(self, experiment_id: int) -> None:
        experiment = self.get_experiment(experiment_id)
        lifecycle.require_draft(experiment, EditAction.MODIFY_GUARDRAILS)
        if not self.db.delete_guardrails(experiment_id):
            raise NotFound("Guardrails", f"experiment:{experiment_id}")
        self._audit(AuditAction.GUARDRAILS_REMOVED, experiment_id, {})

    def get_guardrails(self, experiment_id: int) -> GuardrailSet | None:
        self.get_experiment(experiment_id)
        return self.db.get_guardrails(experiment_id)

    # --- Review ---

    def submit(self, experiment_id: int) -> Experiment:
        """DRAFT -> PENDING_APPROVAL once the configuration is complete and valid."""
        experiment = self.get_experiment(experiment_id)
        lifecycle.validate(experiment.status, LifecycleAction.SUBMIT)

        if experiment.start_date is None:
            raise InvalidExperiment("Cannot submit experiment: startDate is required.")
        if experiment.end_date is None:
            raise InvalidExperiment("Cannot submit experiment: endDate is required.")
        if experiment.end_date <= experiment.start_date:
            raise InvalidExperiment(
                f"Cannot submit experiment: endDate ({experiment.end_date}) "
                f"must be after startDate ({experiment.start_date})."
            )
        if not self.db.list_scope(experiment_id):
            raise InvalidExperiment(
                "Cannot submit experiment without scope entries. "
                "Add at least one store+SKU pair."
            )
        lever = self.db.get_lever(experiment_id)
        if lever is None:
            raise InvalidExperiment("Cannot submit experiment without a pricing lever configured.")
        guardrails = self.db.get_guardrails(experiment_id)
        if guardrails is None:
            raise InvalidExperiment("Cannot submit experiment without guardrails configured.")
        check = self._validate_guardrails(guardrails, lever)

        submitted = self._transition(experiment, LifecycleAction.SUBMIT)
        details = _status_change(experiment.status, submitted.status)
        if check is not None:
            details.update(check.as_details())
        self._audit(AuditAction.EXPERIMENT_SUBMITTED, experiment_id, details)
        return submitted

    def approve(self, experiment_id: int, approved_by: str | None = None) -> Experiment:
        reviewer = approved_by or self.settings.actor
        experiment = self.get_experiment(experiment_id)
        approved = self._transition(experiment, LifecycleAction.APPROVE, approved_by=reviewer)
        details = _status_change(experiment.status, approved.status)
        details["approvedBy"] = reviewer
        self._audit(AuditAction.EXPERIMENT_APPROVED, experiment_id, details, actor=reviewer)
        return approved

    def reject(
        self, experiment_id: int, reason: str, approved_by: str | None = None
    ) -> Experiment:
        reviewer = approved_by or self.settings.actor
        experiment = self.get_experiment(experiment_id)
        lifecycle.validate(experiment.status, LifecycleAction.REJECT)
        if not reason.strip():
            raise InvalidExperiment("A rejection reason is required.")
        rejected = self._transition(
            experiment,
            LifecycleAction.REJECT,
            approved_by=reviewer,
            rejection_reason=reason.strip(),
        )
        details = _status_change(experiment.status, rejected.status)
        details.update({"rejectedBy": reviewer, "reason": reason.strip()})
        self._audit(AuditAction.EXPERIMENT_REJECTED, experiment_id, details, actor=reviewer)
        return rejected

    # --- Helpers ---

    def _transition(
        self, experiment: Experiment, action: LifecycleAction, **fields: str
    ) -> Experiment:
        target = lifecycle.validate(experiment.status, action)
        if not self.db.compare_and_set_status(experiment.id, experiment.status, target, **fields):
            current = self.get_experiment(experiment.id)
            raise InvalidState(current.status, action.value, (lifecycle.source_state(action),))
        lifecycle_transitions_total.labels(action=action.value).inc()
        logger.info(
            "Experiment status changed",
            experiment_id=experiment.id,
            action=action.value,
            from_status=experiment.status.name,
            to_status=target.name,
        )
        return self.get_experiment(experiment.id)

    def _validate_guardrails(
        self, guardrails: GuardrailSet, lever: Lever | None
    ) -> LeverCheck | None:
        return validate_guardrails(
            guardrails,
            lever,
            self.db,
            self.today_fn(),
            max_change_cap=self.settings.max_change_percent_cap,
        )

    @staticmethod
    def _require_all_exist(
        resource: str, ids: set[int], lookup: Callable[[set[int]], set[int]]
    ) -> None:
        missing = ids - lookup(ids)
        if missing:
            raise NotFound(resource, min(missing))

    def _audit(
        self,
        action: AuditAction,
        experiment_id: int | None,
        details: dict[str, Any],
        actor: str | None = None,
    ) -> None:
        self.db.record_audit(action, experiment_id, details, actor=actor or self.settings.actor)


def _scope_details(entries: Sequence[ScopeEntry]) -> dict[str, Any]:
    return {
        "count": len(entries),
        "entries": [{"storeId": e.store_id, "skuId": e.sku_id} for e in entries],
    }


def _status_change(old: ExperimentStatus, new: ExperimentStatus) -> dict[str, Any]:
    return {"previousStatus": old.name, "newStatus": new.name}
