"""
track-migrate - track-scoped, transactional PostgreSQL migrations.

Plain ``.sql`` files named ``{timestamp}_{track}_{description}.sql`` live
in one directory per track. Each invocation discovers them, subtracts what
the track's metadata table already records, runs optional validation
scripts, and applies the remainder through ``psql`` as one transaction.

Packages:
    track_migrate.core        errors, result, settings, logging, hashing
    track_migrate.migrations  discovery, planning, validation, execution
    track_migrate.cli         ``track-migrate`` command-line interface
"""

__version__ = "0.1.0"
