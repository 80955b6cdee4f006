"""Externally owned reference data: stores, SKUs, prices and costs."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class Store(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int | None = None
    code: str
    name: str = ""
    region: str = ""
    is_active: bool = True


class Sku(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int | None = None
    code: str
    name: str = ""
    category: str = ""
    is_active: bool = True


class ReferencePrice(BaseModel):
    """Shelf price of a SKU at one store, valid over a date window."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    sku_id: int
    store_id: int
    price: Decimal
    effective_from: date
    effective_until: date | None = None

    def is_effective(self, on: date) -> bool:
        return self.effective_from <= on and (
            self.effective_until is None or self.effective_until >= on
        )


class ReferenceCost(BaseModel):
    """Unit cost of a SKU (chain-wide), valid over a date window."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    sku_id: int
    cost: Decimal
    effective_from: date
    effective_until: date | None = None

    def is_effective(self, on: date) -> bool:
        return self.effective_from <= on and (
            self.effective_until is None or self.effective_until >= on
        )
