"""Port interfaces (Protocols) for the collaborators the core depends on."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import date
    from decimal import Decimal

    from pricelab.models.audit import AuditAction


@runtime_checkable
class ReferenceDataPort(Protocol):
    """Read-only lookups of reference prices and costs effective on a date."""

    def effective_price(self, sku_id: int, store_id: int, on: date) -> Decimal | None: ...
    def effective_cost(self, sku_id: int, on: date) -> Decimal | None: ...
    def all_effective_prices(self, sku_id: int, on: date) -> list[Decimal]: ...


@runtime_checkable
class AuditPort(Protocol):
    """Receives structured audit records; formatting and storage are its concern."""

    def record_audit(
        self,
        action: AuditAction,
        experiment_id: int | None,
        details: dict[str, Any],
        actor: str = "",
    ) -> None: ...
