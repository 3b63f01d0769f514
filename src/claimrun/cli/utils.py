"""
CLI utility helpers: settings, store construction and output formatting.
"""

from __future__ import annotations

import json
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from claimrun.core.errors import ClaimrunError
from claimrun.core.settings import ClaimrunSettings
from claimrun.store.sqlalchemy_store import SQLAlchemyStore

console = Console()
err_console = Console(stderr=True)


# ── Settings / store helpers ────────────────────────────────────────────


def load_settings(**overrides: Any) -> ClaimrunSettings:
    """Build settings from the environment plus non-None CLI overrides."""
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return ClaimrunSettings(**values)
    except ValidationError as exc:
        err_console.print(f"[bold red]Invalid configuration[/bold red]: {exc}")
        raise typer.Exit(code=2) from exc


def open_store(database_url: str) -> SQLAlchemyStore:
    """Open the store and make sure its tables exist."""
    store = SQLAlchemyStore.from_url(database_url)
    try:
        store.create_schema()
    except ClaimrunError as exc:
        store.dispose()
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc.message}")
        raise typer.Exit(code=1) from exc
    return store


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row.values()))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
