"""
Root Typer application for the claimrun CLI.

Commands::

    claimrun run   --label nightly --db sqlite:///claimrun.db
    claimrun runs  --db sqlite:///claimrun.db --limit 10
    claimrun stats --db sqlite:///claimrun.db

Every option falls back to the matching ``CLAIMRUN_*`` setting.
"""

from __future__ import annotations

import asyncio

import typer
from typer import Typer

from claimrun.cli.utils import (
    console,
    err_console,
    load_settings,
    open_store,
    print_dict,
    print_json,
    print_table,
)
from claimrun.core.errors import ClaimrunError
from claimrun.core.logging import configure_logging
from claimrun.execution.orchestrator import RunOrchestrator

app = Typer(
    name="claimrun",
    help="claimrun: optimistic-concurrency work claiming over a shared store.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        from claimrun import __version__

        typer.echo(f"claimrun {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """claimrun CLI: run the generate/process pipeline and inspect the store."""


@app.command("run")
def run(
    label: str = typer.Option(..., "--label", "-l", help="Run name stored on the run row"),
    db: str | None = typer.Option(None, "--db", "-d", help="SQLAlchemy database URL"),
    target: int | None = typer.Option(None, "--target", help="Work items to generate"),
    chunk_size: int | None = typer.Option(None, "--chunk-size", help="Items per generator append"),
    batch_size: int | None = typer.Option(None, "--batch-size", help="Items per claim"),
    claimers: int | None = typer.Option(None, "--claimers", help="Concurrent claim loops"),
    json_out: bool = typer.Option(False, "--json", help="Print the run report as JSON"),
) -> None:
    """Run the pipeline to completion or fatal abort.

    Exits 0 when the run ends Done and 1 when it ends Aborted.
    """
    settings = load_settings(
        database_url=db,
        target_count=target,
        chunk_size=chunk_size,
        batch_size=batch_size,
        claimers=claimers,
    )
    configure_logging(level=settings.log_level, json_format=settings.json_logs)

    store = open_store(settings.database_url)
    try:
        orchestrator = RunOrchestrator.from_settings(store, settings, name=label)
        report = asyncio.run(orchestrator.run())
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Run interrupted; marked Aborted[/yellow]")
        raise typer.Exit(code=1)
    finally:
        store.dispose()

    if json_out:
        print_json(report.to_dict())
    else:
        summary = {
            "run_id": report.run_id,
            "state": report.state.name,
            "generated": report.generator.generated,
            "processed": report.processor.processed,
            "succeeded": report.processor.succeeded,
            "failed": report.processor.failed,
            "conflicts": report.processor.conflicts,
        }
        if report.abort_reason:
            summary["abort_reason"] = report.abort_reason
        print_dict(summary, title=f"Run: {label}")

    if not report.succeeded:
        err_console.print(f"[bold red]Run {report.run_id} aborted[/bold red]; its results are invalid")
        raise typer.Exit(code=1)
    console.print(f"[bold green]Run {report.run_id} done[/bold green]")


@app.command("runs")
def list_runs(
    db: str | None = typer.Option(None, "--db", "-d", help="SQLAlchemy database URL"),
    limit: int = typer.Option(20, "--limit", "-n", min=1),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List recent runs, newest first."""
    settings = load_settings(database_url=db)
    store = open_store(settings.database_url)
    try:
        runs = store.list_runs(limit=limit)
    except ClaimrunError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc.message}")
        raise typer.Exit(code=1) from exc
    finally:
        store.dispose()

    rows = [r.to_dict() for r in runs]
    if json_out:
        print_json(rows)
    else:
        print_table(rows, title="Runs")


@app.command("stats")
def stats(
    db: str | None = typer.Option(None, "--db", "-d", help="SQLAlchemy database URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show work item counts per state."""
    settings = load_settings(database_url=db)
    store = open_store(settings.database_url)
    try:
        counts = store.count_by_state()
    except ClaimrunError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc.message}")
        raise typer.Exit(code=1) from exc
    finally:
        store.dispose()

    payload = {state.name: count for state, count in counts.items()}
    payload["TOTAL"] = sum(counts.values())
    if json_out:
        print_json(payload)
    else:
        print_dict(payload, title="Work items")
