"""
CLI layer for track-migrate.

Provides a Typer application whose commands delegate to
``track_migrate.migrations``. This package handles only terminal
transport: reading settings, argument parsing, coloured output and
tables.

Entry point::

    track-migrate --help
"""

from track_migrate.cli.app import app

__all__ = ["app"]
