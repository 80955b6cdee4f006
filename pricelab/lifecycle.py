"""Experiment lifecycle state machine.

Allowed transitions::

    DRAFT            -> PENDING_APPROVAL   (submit)
    PENDING_APPROVAL -> APPROVED           (approve)
    PENDING_APPROVAL -> REJECTED           (reject)
    APPROVED         -> RUNNING            (start simulation)
    RUNNING          -> COMPLETED          (complete simulation)
    RUNNING          -> FAILED             (fail simulation)

COMPLETED, FAILED and REJECTED are terminal. A closed experiment is never
reopened; a retry is a new experiment.

This module only answers "is this action allowed now" and computes the target
status. Persisting the change and auditing it belong to the caller.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from pricelab.errors import InvalidState
from pricelab.models.experiment import ExperimentStatus

if TYPE_CHECKING:
    from pricelab.models.experiment import Experiment


class LifecycleAction(StrEnum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    START_SIMULATION = "start simulation"
    COMPLETE_SIMULATION = "complete simulation"
    FAIL_SIMULATION = "fail simulation"


class EditAction(StrEnum):
    """Non-transitioning mutations that are only legal while in DRAFT."""

    UPDATE = "update"
    MODIFY_SCOPE = "modify scope"
    MODIFY_LEVER = "modify lever"
    MODIFY_GUARDRAILS = "modify guardrails"


ALLOWED_TRANSITIONS: dict[ExperimentStatus, frozenset[ExperimentStatus]] = {
    ExperimentStatus.DRAFT: frozenset({ExperimentStatus.PENDING_APPROVAL}),
    ExperimentStatus.PENDING_APPROVAL: frozenset(
        {ExperimentStatus.APPROVED, ExperimentStatus.REJECTED}
    ),
    ExperimentStatus.APPROVED: frozenset({ExperimentStatus.RUNNING}),
    ExperimentStatus.RUNNING: frozenset({ExperimentStatus.COMPLETED, ExperimentStatus.FAILED}),
    ExperimentStatus.COMPLETED: frozenset(),
    ExperimentStatus.FAILED: frozenset(),
    ExperimentStatus.REJECTED: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)

# action -> (source state, target state)
_ACTION_RULES: dict[LifecycleAction, tuple[ExperimentStatus, ExperimentStatus]] = {
    LifecycleAction.SUBMIT: (ExperimentStatus.DRAFT, ExperimentStatus.PENDING_APPROVAL),
    LifecycleAction.APPROVE: (ExperimentStatus.PENDING_APPROVAL, ExperimentStatus.APPROVED),
    LifecycleAction.REJECT: (ExperimentStatus.PENDING_APPROVAL, ExperimentStatus.REJECTED),
    LifecycleAction.START_SIMULATION: (ExperimentStatus.APPROVED, ExperimentStatus.RUNNING),
    LifecycleAction.COMPLETE_SIMULATION: (ExperimentStatus.RUNNING, ExperimentStatus.COMPLETED),
    LifecycleAction.FAIL_SIMULATION: (ExperimentStatus.RUNNING, ExperimentStatus.FAILED),
}


def source_state(action: LifecycleAction) -> ExperimentStatus:
    return _ACTION_RULES[action][0]


def target_state(action: LifecycleAction) -> ExperimentStatus:
    return _ACTION_RULES[action][1]


def validate(status: ExperimentStatus, action: LifecycleAction) -> ExperimentStatus:
    """Return the status ``action`` leads to, or raise InvalidState."""
    source, target = _ACTION_RULES[action]
    require_state(status, action.value, source)
    return target


def require_state(status: ExperimentStatus, action: str, *allowed: ExperimentStatus) -> None:
    """Raise InvalidState unless ``status`` is one of ``allowed``."""
    if status not in allowed:
        raise InvalidState(status, action, allowed)


def require_draft(experiment: Experiment, action: EditAction) -> None:
    require_state(experiment.status, action.value, ExperimentStatus.DRAFT)


def transition(experiment: Experiment, action: LifecycleAction) -> Experiment:
    """Return a copy of ``experiment`` moved to the action's target status."""
    new_status = validate(experiment.status, action)
    return experiment.model_copy(update={"status": new_status})


def is_transition_allowed(from_status: ExperimentStatus, to_status: ExperimentStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def allowed_transitions(from_status: ExperimentStatus) -> frozenset[ExperimentStatus]:
    return ALLOWED_TRANSITIONS.get(from_status, frozenset())


def is_terminal(status: ExperimentStatus) -> bool:
    return status in TERMINAL_STATES
