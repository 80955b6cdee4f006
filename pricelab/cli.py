"""Click CLI entry point for the pricing lab."""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

import click

from pricelab.config import Settings
from pricelab.db import Database, connection_pragmas
from pricelab.errors import PricelabError
from pricelab.experiments import ExperimentService
from pricelab.logging import configure_logging
from pricelab.models.experiment import ExperimentStatus, LeverKind, ScopeEntry
from pricelab.models.reference import ReferenceCost, ReferencePrice, Sku, Store
from pricelab.simulation import ResultsQueryService, SimulationEngine

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import date, datetime

    from pricelab.models.simulation import BreakdownRow, DeltaMetrics, VariantMetrics


class DecimalType(click.ParamType):
    name = "decimal"

    def convert(self, value, param, ctx):  # noqa: ANN001, ANN201
        try:
            result = value if isinstance(value, Decimal) else Decimal(str(value))
        except InvalidOperation:
            self.fail(f"{value!r} is not a valid decimal", param, ctx)
        if not result.is_finite():
            self.fail(f"{value!r} is not a finite decimal", param, ctx)
        return result


DECIMAL = DecimalType()
DATE = click.DateTime(formats=["%Y-%m-%d"])


def _get_db(settings: Settings) -> Database:
    settings.ensure_data_dir()
    db = Database(settings.db_path)
    db.init_schema()
    return db


@contextmanager
def _open_db(ctx: click.Context) -> Iterator[Database]:
    """Open the database; domain and argument errors exit with status 1."""
    db = _get_db(ctx.obj["settings"])
    try:
        yield db
    except (PricelabError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    finally:
        db.close()


def _as_date(value: datetime | None) -> date | None:
    return None if value is None else value.date()


def _parse_pairs(pairs: tuple[str, ...]) -> list[tuple[int, int]]:
    parsed = []
    for pair in pairs:
        store, sep, sku = pair.partition(":")
        if not sep or not store.isdigit() or not sku.isdigit():
            raise click.BadParameter(f"expected STORE_ID:SKU_ID, got {pair!r}")
        parsed.append((int(store), int(sku)))
    return parsed


def _metrics_line(label: str, m: VariantMetrics) -> str:
    return f"  {label:8s} units={m.units}  revenue={m.revenue}  margin={m.margin}"


def _delta_line(d: DeltaMetrics) -> str:
    return (
        f"  {'delta':8s} units={d.units}  revenue={d.revenue} ({d.revenue_pct}%)  "
        f"margin={d.margin} ({d.margin_pct}%)"
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Pricing lab: configure, approve and simulate pricing experiments."""
    ctx.ensure_object(dict)
    settings = ctx.obj.get("settings") or Settings()
    log_level = "DEBUG" if verbose else settings.log_level
    configure_logging(log_level=log_level, log_format=settings.log_format)
    ctx.obj["settings"] = settings
    ctx.obj["verbose"] = verbose


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the database schema."""
    with _open_db(ctx) as db:
        db.check_connection()
        pragmas = connection_pragmas(db.engine)
        click.echo(
            f"Database ready at {db.db_path} "
            f"(journal_mode={pragmas['journal_mode']}, foreign_keys={pragmas['foreign_keys']})"
        )


# --- Reference data ---


@cli.command("add-store")
@click.argument("code")
@click.option("--name", default="", help="Display name")
@click.option("--region", default="", help="Region label")
@click.pass_context
def add_store(ctx: click.Context, code: str, name: str, region: str) -> None:
    """Register a store."""
    with _open_db(ctx) as db:
        store = db.create_store(Store(code=code, name=name, region=region))
        click.echo(f"Store {store.id} created ({store.code}).")


@cli.command("add-sku")
@click.argument("code")
@click.option("--name", default="", help="Display name")
@click.option("--category", default="", help="Category label")
@click.pass_context
def add_sku(ctx: click.Context, code: str, name: str, category: str) -> None:
    """Register a SKU."""
    with _open_db(ctx) as db:
        sku = db.create_sku(Sku(code=code, name=name, category=category))
        click.echo(f"SKU {sku.id} created ({sku.code}).")


@cli.command("add-price")
@click.argument("sku_id", type=int)
@click.argument("store_id", type=int)
@click.argument("price", type=DECIMAL)
@click.option("--from", "effective_from", type=DATE, required=True, help="First effective day")
@click.option("--until", "effective_until", type=DATE, default=None, help="Last effective day")
@click.pass_context
def add_price(
    ctx: click.Context,
    sku_id: int,
    store_id: int,
    price: Decimal,
    effective_from: datetime,
    effective_until: datetime | None,
) -> None:
    """Add a reference shelf price for a SKU at a store."""
    with _open_db(ctx) as db:
        row = db.add_reference_price(
            ReferencePrice(
                sku_id=sku_id,
                store_id=store_id,
                price=price,
                effective_from=effective_from.date(),
                effective_until=_as_date(effective_until),
            )
        )
        click.echo(f"Price {row.id} added: SKU {sku_id} @ store {store_id} = {price}")


@cli.command("add-cost")
@click.argument("sku_id", type=int)
@click.argument("cost", type=DECIMAL)
@click.option("--from", "effective_from", type=DATE, required=True, help="First effective day")
@click.option("--until", "effective_until", type=DATE, default=None, help="Last effective day")
@click.pass_context
def add_cost(
    ctx: click.Context,
    sku_id: int,
    cost: Decimal,
    effective_from: datetime,
    effective_until: datetime | None,
) -> None:
    """Add a reference unit cost for a SKU."""
    with _open_db(ctx) as db:
        row = db.add_reference_cost(
            ReferenceCost(
                sku_id=sku_id,
                cost=cost,
                effective_from=effective_from.date(),
                effective_until=_as_date(effective_until),
            )
        )
        click.echo(f"Cost {row.id} added: SKU {sku_id} = {cost}")


# --- Experiment configuration ---


@cli.command()
@click.argument("name")
@click.option("--start", "start_date", type=DATE, default=None, help="First day (YYYY-MM-DD)")
@click.option("--end", "end_date", type=DATE, default=None, help="Last day (YYYY-MM-DD)")
@click.option("--description", default="")
@click.option("--hypothesis", default="")
@click.option("--justification", "business_justification", default="")
@click.pass_context
def create(
    ctx: click.Context,
    name: str,
    start_date: datetime | None,
    end_date: datetime | None,
    description: str,
    hypothesis: str,
    business_justification: str,
) -> None:
    """Create a DRAFT experiment."""
    with _open_db(ctx) as db:
        service = ExperimentService(db, ctx.obj["settings"])
        exp = service.create_experiment(
            name,
            start_date=_as_date(start_date),
            end_date=_as_date(end_date),
            description=description,
            hypothesis=hypothesis,
            business_justification=business_justification,
        )
        click.echo(f"Experiment {exp.id} created ({exp.status.name}).")


@cli.command("scope-add")
@click.argument("experiment_id", type=int)
@click.argument("pairs", nargs=-1, required=True)
@click.option("--control", is_flag=True, help="Mark the entries as control group")
@click.pass_context
def scope_add(
    ctx: click.Context, experiment_id: int, pairs: tuple[str, ...], control: bool
) -> None:
    """Add STORE_ID:SKU_ID pairs to an experiment's scope."""
    entries = [
        ScopeEntry(store_id=store_id, sku_id=sku_id, is_test_group=not control)
        for store_id, sku_id in _parse_pairs(pairs)
    ]
    with _open_db(ctx) as db:
        scope = ExperimentService(db, ctx.obj["settings"]).add_scope_entries(experiment_id, entries)
        click.echo(f"Experiment {experiment_id} scope: {len(scope)} entries.")


@cli.command("scope-rm")
@click.argument("experiment_id", type=int)
@click.argument("pairs", nargs=-1, required=True)
@click.pass_context
def scope_rm(ctx: click.Context, experiment_id: int, pairs: tuple[str, ...]) -> None:
    """Remove STORE_ID:SKU_ID pairs from an experiment's scope."""
    parsed = _parse_pairs(pairs)
    with _open_db(ctx) as db:
        scope = ExperimentService(db, ctx.obj["settings"]).remove_scope_entries(
            experiment_id, parsed
        )
        click.echo(f"Experiment {experiment_id} scope: {len(scope)} entries.")


@cli.command()
@click.argument("experiment_id", type=int)
@click.argument("sku_id", type=int, required=False)
@click.argument("discount", type=DECIMAL, required=False)
@click.option(
    "--kind",
    type=click.Choice([k.name for k in LeverKind], case_sensitive=False),
    default=LeverKind.PRICE_DISCOUNT.name,
    help="Lever kind",
)
@click.option("--remove", is_flag=True, help="Remove the configured lever")
@click.pass_context
def lever(
    ctx: click.Context,
    experiment_id: int,
    sku_id: int | None,
    discount: Decimal | None,
    kind: str,
    remove: bool,
) -> None:
    """Set (or --remove) the experiment's pricing lever."""
    with _open_db(ctx) as db:
        service = ExperimentService(db, ctx.obj["settings"])
        if remove:
            service.remove_lever(experiment_id)
            click.echo(f"Lever removed from experiment {experiment_id}.")
            return
        if sku_id is None or discount is None:
            raise click.UsageError("SKU_ID and DISCOUNT are required unless --remove is given")
        lev = service.set_lever(experiment_id, sku_id, discount, kind=LeverKind[kind.upper()])
        click.echo(
            f"Lever set on experiment {experiment_id}: {lev.kind.name} "
            f"{lev.discount_percent}% on SKU {lev.sku_id}"
        )


@cli.command()
@click.argument("experiment_id", type=int)
@click.argument("floor", type=DECIMAL, required=False)
@click.argument("ceiling", type=DECIMAL, required=False)
@click.argument("max_change", type=DECIMAL, required=False)
@click.option("--remove", is_flag=True, help="Remove the configured guardrails")
@click.pass_context
def guardrails(
    ctx: click.Context,
    experiment_id: int,
    floor: Decimal | None,
    ceiling: Decimal | None,
    max_change: Decimal | None,
    remove: bool,
) -> None:
    """Configure (or --remove) price floor, ceiling and max change percent."""
    with _open_db(ctx) as db:
        service = ExperimentService(db, ctx.obj["settings"])
        if remove:
            service.remove_guardrails(experiment_id)
            click.echo(f"Guardrails removed from experiment {experiment_id}.")
            return
        if floor is None or ceiling is None or max_change is None:
            raise click.UsageError(
                "FLOOR, CEILING and MAX_CHANGE are required unless --remove is given"
            )
        g = service.configure_guardrails(experiment_id, floor, ceiling, max_change)
        click.echo(
            f"Guardrails set on experiment {experiment_id}: floor={g.price_floor} "
            f"ceiling={g.price_ceiling} maxChange={g.max_change_percent}%"
        )


# --- Review ---


@cli.command()
@click.argument("experiment_id", type=int)
@click.pass_context
def submit(ctx: click.Context, experiment_id: int) -> None:
    """Submit a DRAFT experiment for approval."""
    with _open_db(ctx) as db:
        exp = ExperimentService(db, ctx.obj["settings"]).submit(experiment_id)
        click.echo(f"Experiment {experiment_id} submitted ({exp.status.name}).")


@cli.command()
@click.argument("experiment_id", type=int)
@click.option("--by", "approved_by", default=None, help="Reviewer name")
@click.pass_context
def approve(ctx: click.Context, experiment_id: int, approved_by: str | None) -> None:
    """Approve an experiment awaiting review."""
    with _open_db(ctx) as db:
        exp = ExperimentService(db, ctx.obj["settings"]).approve(experiment_id, approved_by)
        click.echo(f"Experiment {experiment_id} approved by {exp.approved_by}.")


@cli.command()
@click.argument("experiment_id", type=int)
@click.option("--reason", required=True, help="Why the experiment is rejected")
@click.option("--by", "approved_by", default=None, help="Reviewer name")
@click.pass_context
def reject(ctx: click.Context, experiment_id: int, reason: str, approved_by: str | None) -> None:
    """Reject an experiment awaiting review."""
    with _open_db(ctx) as db:
        ExperimentService(db, ctx.obj["settings"]).reject(experiment_id, reason, approved_by)
        click.echo(f"Experiment {experiment_id} rejected.")


# --- Simulation ---


@cli.command()
@click.argument("experiment_id", type=int)
@click.pass_context
def simulate(ctx: click.Context, experiment_id: int) -> None:
    """Run the simulation for an APPROVED experiment."""
    with _open_db(ctx) as db:
        run = SimulationEngine(db, ctx.obj["settings"]).run_simulation(experiment_id)
        click.echo(
            f"Run {run.id} {run.status.name}: {run.total_days_simulated} days, "
            f"revenue lift {run.projected_revenue_lift_pct}%"
        )


@cli.command("ls")
@click.option(
    "--status",
    type=click.Choice([s.name for s in ExperimentStatus], case_sensitive=False),
    default=None,
    help="Filter by status",
)
@click.pass_context
def list_experiments(ctx: click.Context, status: str | None) -> None:
    """List experiments."""
    with _open_db(ctx) as db:
        exp_status = ExperimentStatus[status.upper()] if status else None
        experiments = ExperimentService(db, ctx.obj["settings"]).list_experiments(exp_status)
        if not experiments:
            click.echo("No experiments found.")
            return
        for exp in experiments:
            window = f"{exp.start_date or '?'}..{exp.end_date or '?'}"
            click.echo(f"  [{exp.id}] {exp.status.name:16s} {window:22s} {exp.name}")


@cli.command()
@click.argument("experiment_id", type=int)
@click.pass_context
def inspect(ctx: click.Context, experiment_id: int) -> None:
    """Show an experiment's configuration."""
    with _open_db(ctx) as db:
        service = ExperimentService(db, ctx.obj["settings"])
        exp = service.get_experiment(experiment_id)
        click.echo(f"Experiment {exp.id}: {exp.name}")
        click.echo(f"  Status: {exp.status.name}")
        click.echo(f"  Window: {exp.start_date} .. {exp.end_date} ({exp.total_days} days)")
        if exp.approved_by:
            click.echo(f"  Reviewed by: {exp.approved_by}")
        if exp.rejection_reason:
            click.echo(f"  Rejection reason: {exp.rejection_reason}")

        scope = service.list_scope(experiment_id)
        click.echo(f"  Scope ({len(scope)}):")
        for entry in scope:
            group = "test" if entry.is_test_group else "control"
            click.echo(f"    store {entry.store_id} / SKU {entry.sku_id} [{group}]")

        lev = service.get_lever(experiment_id)
        if lev:
            click.echo(f"  Lever: {lev.kind.name} {lev.discount_percent}% on SKU {lev.sku_id}")
        g = service.get_guardrails(experiment_id)
        if g:
            click.echo(
                f"  Guardrails: floor={g.price_floor} ceiling={g.price_ceiling} "
                f"maxChange={g.max_change_percent}%"
            )


@cli.command()
@click.argument("experiment_id", type=int)
@click.option("--limit", type=int, default=None, help="Maximum runs to show")
@click.pass_context
def runs(ctx: click.Context, experiment_id: int, limit: int | None) -> None:
    """List simulation runs of an experiment, newest first."""
    with _open_db(ctx) as db:
        items = ResultsQueryService(db, ctx.obj["settings"]).list_runs(experiment_id, limit)
        if not items:
            click.echo("No runs found.")
            return
        for run in items:
            line = f"  [{run.id}] {run.status.name:10s} days={run.total_days_simulated}"
            if run.error_message:
                line += f"  error={run.error_message}"
            click.echo(line)


@cli.command()
@click.argument("run_id", type=int)
@click.pass_context
def summary(ctx: click.Context, run_id: int) -> None:
    """Show control vs test totals of a run."""
    with _open_db(ctx) as db:
        s = ResultsQueryService(db, ctx.obj["settings"]).summary(run_id)
        click.echo(f"Run {run_id}")
        click.echo(_metrics_line("control", s.control))
        click.echo(_metrics_line("test", s.test))
        click.echo(_delta_line(s.delta))


@cli.command()
@click.argument("run_id", type=int)
@click.option("--by", "by", required=True, help="STORE, SKU or DATE")
@click.option("--store", "store_id", type=int, default=None, help="Filter by store id")
@click.option("--sku", "sku_id", type=int, default=None, help="Filter by SKU id")
@click.pass_context
def breakdown(
    ctx: click.Context, run_id: int, by: str, store_id: int | None, sku_id: int | None
) -> None:
    """Break a run's results down by store, SKU or date."""
    with _open_db(ctx) as db:
        rows = ResultsQueryService(db, ctx.obj["settings"]).breakdown(
            run_id, by, store_id=store_id, sku_id=sku_id
        )
        for row in rows:
            click.echo(_breakdown_label(row))
            click.echo(_metrics_line("control", row.control))
            click.echo(_metrics_line("test", row.test))
            click.echo(_delta_line(row.delta))


def _breakdown_label(row: BreakdownRow) -> str:
    if row.store_id is not None:
        return f"store {row.store_id}"
    if row.sku_id is not None:
        return f"SKU {row.sku_id}"
    return str(row.date)


@cli.command()
@click.argument("run_id", type=int)
@click.option(
    "-o", "--output", type=click.Path(dir_okay=False), default=None, help="Output file"
)
@click.pass_context
def export(ctx: click.Context, run_id: int, output: str | None) -> None:
    """Export a run's daily results as CSV (stdout unless --output is given)."""
    with _open_db(ctx) as db:
        service = ResultsQueryService(db, ctx.obj["settings"])
        service.get_run(run_id)
        if output is None:
            service.export_csv(run_id, sys.stdout)
            return
        with open(output, "w", newline="", encoding="utf-8") as fh:
            count = service.export_csv(run_id, fh)
        click.echo(f"Exported {count} rows to {output}")


@cli.command()
@click.argument("experiment_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON records")
@click.pass_context
def audit(ctx: click.Context, experiment_id: int, as_json: bool) -> None:
    """Show the audit trail of an experiment."""
    with _open_db(ctx) as db:
        ExperimentService(db, ctx.obj["settings"]).get_experiment(experiment_id)
        for record in db.get_audit_log(experiment_id):
            if as_json:
                click.echo(record.model_dump_json())
            else:
                click.echo(
                    f"  [{record.created_at:%Y-%m-%d %H:%M:%S}] {record.action.value:22s} "
                    f"{record.actor}: {json.dumps(record.details, sort_keys=True)}"
                )


if __name__ == "__main__":
    cli()
