"""Read-side queries over completed simulation runs: summaries, breakdowns, CSV export."""

from __future__ import annotations

import csv
from collections import defaultdict
from enum import StrEnum
from typing import TYPE_CHECKING

from pricelab.errors import NotFound
from pricelab.models.simulation import (
    BreakdownRow,
    DeltaMetrics,
    SimulationStatus,
    SimulationSummary,
    VariantMetrics,
)
from pricelab.pricing import ZERO, percent_change, round_units

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Iterable
    from typing import TextIO

    from pricelab.config import Settings
    from pricelab.db import Database
    from pricelab.models.simulation import DailyResult, SimulationRun

CSV_HEADER = (
    "runId",
    "experimentId",
    "date",
    "storeId",
    "skuId",
    "variant",
    "basePrice",
    "price",
    "unitCost",
    "units",
    "revenue",
    "margin",
)


class BreakdownBy(StrEnum):
    STORE = "STORE"
    SKU = "SKU"
    DATE = "DATE"


def parse_breakdown_by(value: str | None) -> BreakdownBy:
    if value is None or not value.strip():
        raise ValueError("Missing required 'by' parameter. Must be one of: STORE, SKU, DATE")
    try:
        return BreakdownBy(value.strip().upper())
    except ValueError:
        raise ValueError(
            f"Invalid 'by' parameter: {value}. Must be one of: STORE, SKU, DATE"
        ) from None


def aggregate(rows: Iterable[DailyResult]) -> tuple[VariantMetrics, VariantMetrics]:
    """Sum units, revenue and margin per variant. Returns (control, test)."""
    sums = {False: [ZERO, ZERO, ZERO], True: [ZERO, ZERO, ZERO]}
    for row in rows:
        acc = sums[row.is_test]
        acc[0] += row.projected_units
        acc[1] += row.projected_revenue
        acc[2] += row.projected_margin
    control, test = (
        VariantMetrics(units=u, revenue=r, margin=m) for u, r, m in (sums[False], sums[True])
    )
    return control, test


def delta(control: VariantMetrics, test: VariantMetrics) -> DeltaMetrics:
    return DeltaMetrics(
        units=test.units - control.units,
        revenue=test.revenue - control.revenue,
        margin=test.margin - control.margin,
        revenue_pct=percent_change(control.revenue, test.revenue),
        margin_pct=percent_change(control.margin, test.margin),
    )


def _grouped(
    rows: Iterable[DailyResult], key: Callable[[DailyResult], Hashable]
) -> list[tuple[Hashable, VariantMetrics, VariantMetrics, DeltaMetrics]]:
    groups: dict[Hashable, list[DailyResult]] = defaultdict(list)
    for row in rows:
        groups[key(row)].append(row)
    out = []
    for group_key in sorted(groups):
        control, test = aggregate(groups[group_key])
        out.append((group_key, control, test, delta(control, test)))
    return out


class ResultsQueryService:
    def __init__(self, db: Database, settings: Settings):
        self.db = db
        self.default_limit = settings.results_default_limit
        self.max_limit = settings.results_max_limit

    def get_run(self, run_id: int) -> SimulationRun:
        run = self.db.get_run(run_id)
        if run is None:
            raise NotFound("SimulationRun", run_id)
        return run

    def run_status(self, run_id: int) -> SimulationStatus:
        return self.get_run(run_id).status

    def list_runs(self, experiment_id: int, limit: int | None = None) -> list[SimulationRun]:
        """Newest first. A missing or non-positive limit uses the default; the max caps it."""
        if limit is None or limit <= 0:
            limit = self.default_limit
        return self.db.list_runs(experiment_id, min(limit, self.max_limit))

    def result_count(self, run_id: int) -> int:
        self.get_run(run_id)
        return self.db.count_results(run_id)

    def summary(self, run_id: int) -> SimulationSummary:
        self.get_run(run_id)
        control, test = aggregate(self.db.get_results(run_id))
        return SimulationSummary(
            run_id=run_id, control=control, test=test, delta=delta(control, test)
        )

    def timeseries(
        self,
        run_id: int,
        group_by: str | None = None,
        store_id: int | None = None,
        sku_id: int | None = None,
    ) -> list[BreakdownRow]:
        """Per-date control/test/delta. DATE is the only supported grouping."""
        self.get_run(run_id)
        if group_by and group_by.strip().upper() != BreakdownBy.DATE:
            raise ValueError(f"Invalid 'groupBy' parameter: {group_by}. Only DATE is supported")
        return self._by_date(run_id, store_id, sku_id)

    def breakdown(
        self,
        run_id: int,
        by: str | None,
        store_id: int | None = None,
        sku_id: int | None = None,
    ) -> list[BreakdownRow]:
        self.get_run(run_id)
        dimension = parse_breakdown_by(by)
        if dimension is BreakdownBy.DATE:
            return self._by_date(run_id, store_id, sku_id)

        rows = self.db.get_results(run_id, store_id=store_id, sku_id=sku_id)
        if dimension is BreakdownBy.STORE:
            return [
                BreakdownRow(store_id=k, control=c, test=t, delta=d)
                for k, c, t, d in _grouped(rows, lambda r: r.store_id)
            ]
        return [
            BreakdownRow(sku_id=k, control=c, test=t, delta=d)
            for k, c, t, d in _grouped(rows, lambda r: r.sku_id)
        ]

    def export_csv(self, run_id: int, out: TextIO) -> int:
        """Write every result row of the run as CSV. Returns the number of data rows."""
        run = self.get_run(run_id)
        writer = csv.writer(out, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        count = 0
        for row in self.db.get_results(run_id):
            writer.writerow(
                (
                    run_id,
                    run.experiment_id,
                    row.date.isoformat(),
                    row.store_id,
                    row.sku_id,
                    row.variant.value,
                    row.base_price,
                    row.simulated_price,
                    row.unit_cost,
                    round_units(row.projected_units),
                    row.projected_revenue,
                    row.projected_margin,
                )
            )
            count += 1
        return count

    def _by_date(
        self, run_id: int, store_id: int | None, sku_id: int | None
    ) -> list[BreakdownRow]:
        rows = self.db.get_results(run_id, store_id=store_id, sku_id=sku_id)
        return [
            BreakdownRow(date=k, control=c, test=t, delta=d)
            for k, c, t, d in _grouped(rows, lambda r: r.date)
        ]
