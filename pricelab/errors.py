"""Domain exceptions. All of them describe conditions the caller can correct."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pricelab.models.experiment import ExperimentStatus, LeverKind

_PAST_PARTICIPLES = {
    "submit": "submitted",
    "approve": "approved",
    "reject": "rejected",
    "start simulation": "started",
    "complete simulation": "completed",
    "fail simulation": "marked as failed",
    "update": "updated",
    "modify scope": "modified",
    "modify lever": "modified",
    "modify guardrails": "modified",
}


class PricelabError(Exception):
    """Base class for all pricing lab domain errors."""


class NotFound(PricelabError, LookupError):
    def __init__(self, resource: str, identifier: object):
        super().__init__(f"{resource} not found with id: {identifier}")
        self.resource = resource
        self.identifier = identifier


class InvalidState(PricelabError):
    """An action was attempted in a lifecycle state that does not permit it."""

    def __init__(
        self,
        current_status: ExperimentStatus,
        action: str,
        allowed_statuses: Iterable[ExperimentStatus],
    ):
        self.current_status = current_status
        self.action = action
        self.allowed_statuses: tuple[ExperimentStatus, ...] = tuple(allowed_statuses)
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        allowed = ", ".join(s.name for s in self.allowed_statuses)
        state_word = "state" if len(self.allowed_statuses) == 1 else "states"
        participle = _PAST_PARTICIPLES.get(self.action.lower(), f"{self.action}ed")
        return (
            f"Cannot {self.action} experiment in state {self.current_status.name}. "
            f"Only experiments in {state_word} {allowed} can be {participle}."
        )


class InvalidExperiment(PricelabError):
    pass


class InvalidGuardrail(PricelabError):
    pass


class GuardrailViolation(PricelabError):
    """The lever-implied price breaks one of the configured guardrails."""

    def __init__(self, guardrail: str, details: str):
        super().__init__(f"Guardrail violation [{guardrail}]: {details}")
        self.guardrail = guardrail
        self.details = details


class InvalidLever(PricelabError):
    pass


class UnsupportedLeverKind(PricelabError):
    def __init__(self, kind: LeverKind):
        super().__init__(f"Unsupported lever kind: {kind.name}. Only PRICE_DISCOUNT is supported.")
        self.kind = kind


class MissingReferenceData(PricelabError):
    pass


class MissingPrerequisite(PricelabError):
    pass


class DuplicateType(StrEnum):
    IN_REQUEST = "in_request"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class DuplicateEntry:
    store_id: int
    sku_id: int
    type: DuplicateType


class DuplicateScope(PricelabError):
    def __init__(self, duplicates: list[DuplicateEntry]):
        self.duplicates = duplicates
        pairs = ", ".join(f"(storeId={d.store_id}, skuId={d.sku_id})" for d in duplicates)
        super().__init__(f"Duplicate scope entries detected: {pairs}")
