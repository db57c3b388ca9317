"""
CLI utility helpers: settings, engine construction, output formatting.
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from track_migrate.core.errors import ErrorCategory, MigrateError
from track_migrate.core.logging import configure_logging
from track_migrate.core.settings import MigrateSettings, get_settings
from track_migrate.migrations.engine import MigrationEngine

console = Console()
err_console = Console(stderr=True)


# ── Settings / engine ────────────────────────────────────────────────────


def load_settings() -> MigrateSettings:
    """Read settings from the environment and configure logging from them."""
    try:
        settings = get_settings()
    except ValidationError as exc:
        raise MigrateError(
            f"Invalid configuration: {exc}",
            category=ErrorCategory.CONFIG,
            cause=exc,
        ) from exc
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_format == "json",
    )
    return settings


def make_engine(settings: MigrateSettings) -> MigrationEngine:
    """Build the engine; the CLI's own environment is passed down explicitly."""
    return MigrationEngine.from_settings(settings, base_env=dict(os.environ))


@contextmanager
def handle_errors() -> Iterator[None]:
    """Render ``MigrateError`` as category/phase/unit and exit 1."""
    try:
        yield
    except MigrateError as exc:
        err_console.print(f"[bold red]Error[/bold red] {escape(exc.describe())}", soft_wrap=True)
        committed = exc.context.metadata.get("committed_tracks")
        if committed:
            err_console.print(
                f"[yellow]Committed before the failure:[/yellow] {escape(', '.join(committed))}",
                soft_wrap=True,
            )
        raise typer.Exit(code=1) from exc


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def print_json(data: Any) -> None:
    """Print a model, a list of models, or a dict as JSON on stdout."""
    payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
    console.print_json(json.dumps(payload, default=str))


def print_table(items: list, *, title: str = "", styles: dict[str, dict[str, str]] | None = None) -> None:
    """Render a list of models as a Rich table.

    ``styles`` maps a column to ``{value: style}`` for per-cell colouring.
    """
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    styles = styles or {}
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        cells = []
        for col, value in d.items():
            text = escape("" if value is None else str(value))
            style = styles.get(col, {}).get(str(value))
            cells.append(f"[{style}]{text}[/{style}]" if style else text)
        table.add_row(*cells)
    console.print(table)
