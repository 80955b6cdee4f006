"""Tests for the click CLI."""

from __future__ import annotations

import csv
import json
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner

from pricelab import cli as cli_module
from pricelab.cli import cli

if TYPE_CHECKING:
    from pathlib import Path

    from pricelab.config import Settings


@pytest.fixture()
def runner(monkeypatch) -> CliRunner:
    # Keep structlog's cached loggers off the runner's temporary streams
    monkeypatch.setattr(cli_module, "configure_logging", lambda **_: None)
    return CliRunner()


@pytest.fixture()
def invoke(runner: CliRunner, settings: Settings):
    def _invoke(*args: str):
        return runner.invoke(cli, list(args), obj={"settings": settings})

    return _invoke


@pytest.fixture()
def seeded(invoke) -> None:
    """Store 1, SKU 1, price 100.00 and cost 60.00 from 2025-01-01."""
    assert invoke("init-db").exit_code == 0
    assert invoke("add-store", "S001", "--name", "Downtown").exit_code == 0
    assert invoke("add-sku", "MILK", "--category", "Dairy").exit_code == 0
    assert invoke("add-price", "1", "1", "100.00", "--from", "2025-01-01").exit_code == 0
    assert invoke("add-cost", "1", "60.00", "--from", "2025-01-01").exit_code == 0


@pytest.fixture()
def configured(invoke, seeded) -> None:
    assert (
        invoke("create", "Milk discount", "--start", "2025-06-10", "--end", "2025-06-14").exit_code
        == 0
    )
    assert invoke("scope-add", "1", "1:1").exit_code == 0
    assert invoke("lever", "1", "1", "10").exit_code == 0
    assert invoke("guardrails", "1", "50", "150", "20").exit_code == 0


class TestReferenceCommands:
    def test_init_db(self, invoke, settings: Settings):
        result = invoke("init-db")
        assert result.exit_code == 0
        assert "Database ready" in result.output
        assert "(journal_mode=wal, foreign_keys=1)" in result.output
        assert settings.db_path.exists()

    def test_add_store_and_sku(self, invoke):
        assert "Store 1 created (S001)" in invoke("add-store", "S001").output
        assert "SKU 1 created (MILK)" in invoke("add-sku", "MILK").output

    def test_invalid_decimal(self, invoke, seeded):
        result = invoke("add-price", "1", "1", "abc", "--from", "2025-01-01")
        assert result.exit_code == 2
        assert "not a valid decimal" in result.output


class TestExperimentFlow:
    def test_full_flow(self, invoke, configured, tmp_path: Path):
        result = invoke("submit", "1")
        assert result.exit_code == 0, result.output
        assert "PENDING_APPROVAL" in result.output

        result = invoke("approve", "1", "--by", "carol")
        assert result.exit_code == 0
        assert "approved by carol" in result.output

        result = invoke("simulate", "1")
        assert result.exit_code == 0, result.output
        assert "Run 1 COMPLETED: 5 days, revenue lift 3.5" in result.output

        result = invoke("summary", "1")
        assert "units=500" in result.output
        assert "revenue=51750.00" in result.output

        result = invoke("breakdown", "1", "--by", "store")
        assert result.exit_code == 0
        assert "store 1" in result.output

        out = tmp_path / "run.csv"
        result = invoke("export", "1", "-o", str(out))
        assert result.exit_code == 0
        assert "Exported 10 rows" in result.output
        with open(out, newline="", encoding="utf-8") as fh:
            rows = list(csv.DictReader(fh))
        assert len(rows) == 10
        assert rows[1]["revenue"] == "10350.00"

        result = invoke("runs", "1")
        assert "[1] COMPLETED" in result.output

        result = invoke("ls", "--status", "completed")
        assert "Milk discount" in result.output

    def test_inspect(self, invoke, configured):
        result = invoke("inspect", "1")
        assert result.exit_code == 0
        assert "Status: DRAFT" in result.output
        assert "store 1 / SKU 1 [test]" in result.output
        assert "Lever: PRICE_DISCOUNT 10% on SKU 1" in result.output
        assert "floor=50 ceiling=150 maxChange=20%" in result.output

    def test_reject_requires_reason_option(self, invoke, configured):
        invoke("submit", "1")
        result = invoke("reject", "1")
        assert result.exit_code == 2

        result = invoke("reject", "1", "--reason", "Too deep")
        assert result.exit_code == 0
        assert "Rejection reason: Too deep" in invoke("inspect", "1").output

    def test_audit_json(self, invoke, configured):
        result = invoke("audit", "1", "--json")
        assert result.exit_code == 0
        records = [json.loads(line) for line in result.output.splitlines() if line.startswith("{")]
        actions = [r["action"] for r in records]
        assert actions == ["EXPERIMENT_CREATED", "SCOPE_ADDED", "LEVER_SET", "GUARDRAILS_SET"]

    def test_lever_remove(self, invoke, configured):
        result = invoke("lever", "1", "--remove")
        assert result.exit_code == 0
        assert "Lever removed" in result.output


class TestErrors:
    def test_domain_error_exits_one(self, invoke, seeded):
        result = invoke("simulate", "42")
        assert result.exit_code == 1
        assert "Error: Experiment not found with id: 42" in result.output

    def test_invalid_state(self, invoke, configured):
        result = invoke("simulate", "1")
        assert result.exit_code == 1
        assert "Only experiments in state APPROVED can be started" in result.output

    def test_guardrail_violation(self, invoke, configured):
        result = invoke("guardrails", "1", "95", "150", "20")
        assert result.exit_code == 1
        assert "Guardrail violation [priceFloor]" in result.output

    def test_invalid_breakdown_dimension(self, invoke, configured):
        invoke("submit", "1")
        invoke("approve", "1")
        invoke("simulate", "1")
        result = invoke("breakdown", "1", "--by", "week")
        assert result.exit_code == 1
        assert "Invalid 'by' parameter: week" in result.output

    def test_bad_scope_pair(self, invoke, configured):
        result = invoke("scope-add", "1", "1-1")
        assert result.exit_code == 2
        assert "expected STORE_ID:SKU_ID" in result.output

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "sNaN"])
    def test_non_finite_decimal_rejected(self, invoke, configured, value: str):
        result = invoke("lever", "1", "1", value)
        assert result.exit_code == 2
        assert "is not a finite decimal" in result.output
        assert "Lever: PRICE_DISCOUNT 10% on SKU 1" in invoke("inspect", "1").output

    def test_lever_requires_arguments(self, invoke, configured):
        result = invoke("lever", "1")
        assert result.exit_code == 2
