"""Audit records emitted after lifecycle, configuration and simulation changes."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuditAction(StrEnum):
    EXPERIMENT_CREATED = "EXPERIMENT_CREATED"
    EXPERIMENT_UPDATED = "EXPERIMENT_UPDATED"
    EXPERIMENT_SUBMITTED = "EXPERIMENT_SUBMITTED"
    EXPERIMENT_APPROVED = "EXPERIMENT_APPROVED"
    EXPERIMENT_REJECTED = "EXPERIMENT_REJECTED"
    SCOPE_ADDED = "SCOPE_ADDED"
    SCOPE_REMOVED = "SCOPE_REMOVED"
    LEVER_SET = "LEVER_SET"
    LEVER_REMOVED = "LEVER_REMOVED"
    GUARDRAILS_SET = "GUARDRAILS_SET"
    GUARDRAILS_REMOVED = "GUARDRAILS_REMOVED"
    SIMULATION_STARTED = "SIMULATION_STARTED"
    SIMULATION_COMPLETED = "SIMULATION_COMPLETED"
    SIMULATION_FAILED = "SIMULATION_FAILED"


class AuditRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int | None = None
    action: AuditAction
    experiment_id: int | None = None
    actor: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
