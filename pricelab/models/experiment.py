"""Experiment aggregate: lifecycle status, scope, lever and guardrails."""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ExperimentStatus(StrEnum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"


class LeverKind(StrEnum):
    """Pricing action under test. Only PRICE_DISCOUNT is simulated."""

    PRICE_DISCOUNT = "price_discount"
    PERCENTAGE_CHANGE = "percentage_change"
    ABSOLUTE_CHANGE = "absolute_change"
    TARGET_PRICE = "target_price"
    COMPETITOR_MATCH = "competitor_match"


class Experiment(BaseModel):
    """One pricing experiment over an inclusive date range."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    name: str = ""
    description: str = ""
    hypothesis: str = ""
    business_justification: str = ""
    status: ExperimentStatus = ExperimentStatus.DRAFT
    start_date: date | None = None
    end_date: date | None = None

    # Review
    approved_by: str = ""
    rejection_reason: str = ""

    # Timestamps
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def total_days(self) -> int:
        """Inclusive number of calendar days between start and end."""
        if self.start_date is None or self.end_date is None:
            return 0
        return (self.end_date - self.start_date).days + 1


class ScopeEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int | None = None
    experiment_id: int | None = None
    store_id: int
    sku_id: int
    is_test_group: bool = True

    @property
    def key(self) -> tuple[int, int]:
        return (self.store_id, self.sku_id)


class Lever(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int | None = None
    experiment_id: int | None = None
    kind: LeverKind = LeverKind.PRICE_DISCOUNT
    sku_id: int
    discount_percent: Decimal


class GuardrailSet(BaseModel):
    """Price floor/ceiling and max change. Keyed by experiment id (1:1)."""

    model_config = ConfigDict(frozen=True)

    experiment_id: int | None = None
    price_floor: Decimal
    price_ceiling: Decimal
    max_change_percent: Decimal
