"""
Root Typer application for the track-migrate CLI.

Commands::

    track-migrate run PATH [--track T] [--all] [--dry-run] [--json]
    track-migrate status PATH [--track T] [--all] [--json]
    track-migrate history TRACK [--json]
    track-migrate add PATH DESCRIPTION [--track T] [--validation]
    track-migrate check

Connection parameters come from the standard ``PG*`` variables; tool
options from ``TRACK_MIGRATE_*`` (see ``track_migrate.core.settings``).
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.markup import escape

from track_migrate.cli.utils import (
    console,
    handle_errors,
    load_settings,
    make_engine,
    print_json,
    print_table,
)
from track_migrate.migrations.models import RunOutcome, RunReport
from track_migrate.migrations.scaffold import new_migration

app = typer.Typer(
    name="track-migrate",
    help="track-migrate: track-scoped, transactional PostgreSQL migrations.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

_STATUS_STYLES = {"status": {"applied": "green", "pending": "yellow"}}


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("track-migrate")
        except PackageNotFoundError:
            from track_migrate import __version__ as v
        typer.echo(f"track-migrate {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Apply, inspect and create track-scoped migrations."""


def _check_scope(track: str | None, all_tracks: bool) -> None:
    if track is not None and all_tracks:
        raise typer.BadParameter("--track and --all are mutually exclusive")


def _render_report(report: RunReport) -> None:
    track = escape(report.track)
    if report.outcome is RunOutcome.EMPTY:
        console.print(f"[dim]{track}: nothing to apply[/dim]")
    elif report.outcome is RunOutcome.DRY_RUN:
        console.print(
            f"[bold]{track}[/bold]: {len(report.pending)} pending migration(s) (dry run)"
        )
        for unit in report.pending:
            console.print(f"  [yellow]•[/yellow] {escape(unit.filename)}")
        console.print(report.script or "", markup=False, highlight=False, soft_wrap=True)
    else:
        console.print(
            f"[green]✓[/green] [bold]{track}[/bold]: applied {len(report.applied)} "
            f"migration(s) in {report.duration_ms:.0f} ms"
        )
        for applied in report.applied:
            console.print(f"  [green]•[/green] {escape(applied.filename)}")


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def run(
    path: Path = typer.Argument(..., help="Track directory (or root of track directories with --all)"),
    track: str | None = typer.Option(None, "--track", "-t", help="Expected track name"),
    all_tracks: bool = typer.Option(False, "--all", help="Run every track directory under PATH"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate and print the script without executing"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Apply pending migrations as one transaction per track."""
    _check_scope(track, all_tracks)
    with handle_errors():
        engine = make_engine(load_settings())
        if all_tracks:
            reports = engine.run_tree(path, dry_run=dry_run)
        else:
            reports = [engine.run(path, track=track, dry_run=dry_run)]

    if json_out:
        print_json(reports if all_tracks else reports[0])
        return
    for report in reports:
        _render_report(report)


@app.command()
def status(
    path: Path = typer.Argument(..., help="Track directory (or root with --all)"),
    track: str | None = typer.Option(None, "--track", "-t", help="Expected track name"),
    all_tracks: bool = typer.Option(False, "--all", help="Report every track directory under PATH"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show which migrations are applied and which are pending."""
    _check_scope(track, all_tracks)
    with handle_errors():
        engine = make_engine(load_settings())
        if all_tracks:
            records = engine.status_tree(path)
        else:
            records = engine.status(path, track=track)

    if json_out:
        print_json(records)
        return
    print_table(records, title="Migration Status", styles=_STATUS_STYLES)
    pending = sum(1 for record in records if record.status == "pending")
    console.print(f"\n[dim]{len(records)} migration(s), {pending} pending[/dim]")


@app.command()
def history(
    track: str = typer.Argument(..., help="Track name"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """List applied migrations of a track in application order."""
    with handle_errors():
        engine = make_engine(load_settings())
        records = engine.history(track)

    if json_out:
        print_json(records)
        return
    print_table(records, title=f"History: {track}")


@app.command()
def add(
    path: Path = typer.Argument(..., help="Track directory (created if missing)"),
    description: str = typer.Argument(..., help="What the migration does"),
    track: str | None = typer.Option(None, "--track", "-t", help="Track name (default: inferred)"),
    validation: bool = typer.Option(False, "--validation", help="Also create a validation script"),
) -> None:
    """Create a new, correctly named migration file."""
    with handle_errors():
        settings = load_settings()
        created = new_migration(
            path,
            description,
            track=track,
            with_validation=validation,
            validation_suffix=settings.validation_suffix,
        )
    for target in created:
        console.print(f"[green]Created[/green] {escape(str(target))}")


@app.command()
def check() -> None:
    """Check that the database is reachable with the configured parameters."""
    with handle_errors():
        settings = load_settings()
        engine = make_engine(settings)
        engine.check_connection()
    console.print(f"[green]✓[/green] Connected to {escape(settings.connection().describe())}")
