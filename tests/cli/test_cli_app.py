"""Tests for the claimrun Typer CLI."""

from __future__ import annotations

import importlib
import json

import pytest
from typer.testing import CliRunner

from claimrun.core.models import Run, WorkItem
from claimrun.core.states import ProcessState, RunState
from claimrun.store.sqlalchemy_store import SQLAlchemyStore

# claimrun.cli re-exports the Typer ``app``, shadowing the submodule attribute
cli_app = importlib.import_module("claimrun.cli.app")

runner = CliRunner()

FAST_ENV = {
    "CLAIMRUN_GENERATOR_DELAY": "0",
    "CLAIMRUN_POLL_INTERVAL": "0.01",
    "CLAIMRUN_PROCESSING_DELAY": "0",
    "CLAIMRUN_PROCESSING_RETRY_DELAY": "0",
    "CLAIMRUN_TRANSITION_RETRY_DELAY": "0",
    "CLAIMRUN_STATUS_INTERVAL": "0.01",
}


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch, tmp_path):
    # structlog writes to the real stdout; keep CliRunner output clean
    monkeypatch.setattr(cli_app, "configure_logging", lambda **kwargs: None)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


def test_help_lists_commands():
    result = runner.invoke(cli_app.app, ["--help"])
    assert result.exit_code == 0
    for command in ("run", "runs", "stats"):
        assert command in result.output


def test_version():
    result = runner.invoke(cli_app.app, ["--version"])
    assert result.exit_code == 0
    assert "claimrun 0.1.0" in result.output


class TestRunCommand:
    def test_run_to_done(self, db_url):
        result = runner.invoke(
            cli_app.app,
            ["run", "--label", "cli-run", "--db", db_url, "--target", "120", "--chunk-size", "50",
             "--batch-size", "40", "--claimers", "2", "--json"],
            env=FAST_ENV,
        )
        assert result.exit_code == 0, result.output

        store = SQLAlchemyStore.from_url(db_url)
        try:
            runs = store.list_runs()
            assert len(runs) == 1
            assert runs[0].name == "cli-run"
            assert runs[0].state is RunState.DONE
            assert store.count_by_state()[ProcessState.DONE_OK] == 120
        finally:
            store.dispose()

    def test_label_is_required(self, db_url):
        result = runner.invoke(cli_app.app, ["run", "--db", db_url])
        assert result.exit_code != 0

    def test_invalid_option_value(self, db_url):
        result = runner.invoke(cli_app.app, ["run", "--label", "x", "--db", db_url, "--batch-size", "0"])
        assert result.exit_code == 2

    def test_aborted_run_exits_one(self, db_url, monkeypatch):
        from claimrun.execution.orchestrator import RunReport

        async def fake_run(self):
            return RunReport(
                run_id=1,
                name=self.name,
                correlation_token=self.correlation_token,
                state=RunState.ABORTED,
                abort_reason="budget exhausted",
            )

        monkeypatch.setattr(cli_app.RunOrchestrator, "run", fake_run)
        result = runner.invoke(cli_app.app, ["run", "--label", "doomed", "--db", db_url], env=FAST_ENV)
        assert result.exit_code == 1
        assert "budget exhausted" in result.output


class TestInspectionCommands:
    @pytest.fixture
    def seeded(self, db_url):
        store = SQLAlchemyStore.from_url(db_url)
        store.create_schema()
        store.create_run(Run.new("first"))
        store.create_run(Run.new("second"))
        store.append_work_items([WorkItem.new(n) for n in "abc"])
        store.try_claim(store.fetch_pending(1))
        store.dispose()
        return db_url

    def test_runs_json(self, seeded):
        result = runner.invoke(cli_app.app, ["runs", "--db", seeded, "--json"])
        assert result.exit_code == 0, result.output
        rows = json.loads(result.output)
        assert [r["name"] for r in rows] == ["second", "first"]

    def test_runs_limit(self, seeded):
        result = runner.invoke(cli_app.app, ["runs", "--db", seeded, "--limit", "1", "--json"])
        assert [r["name"] for r in json.loads(result.output)] == ["second"]

    def test_runs_table(self, seeded):
        result = runner.invoke(cli_app.app, ["runs", "--db", seeded])
        assert result.exit_code == 0
        assert "Runs" in result.output

    def test_stats(self, seeded):
        result = runner.invoke(cli_app.app, ["stats", "--db", seeded, "--json"])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["PENDING"] == 2
        assert payload["CLAIMED"] == 1
        assert payload["TOTAL"] == 3

    def test_stats_on_empty_database(self, db_url):
        result = runner.invoke(cli_app.app, ["stats", "--db", db_url, "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["TOTAL"] == 0
