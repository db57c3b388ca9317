"""
Track-scoped migration pipeline.

Manifesto:
    A migration directory is the source of truth for one track; the
    track's metadata table is the source of truth for what already ran.
    Everything pending is applied together or not at all.

    - **Fail-closed discovery:** One bad filename rejects the directory
    - **Name-based state:** A unit is applied iff its filename is recorded
    - **Gate before execute:** Validation scripts can veto the whole batch
    - **One transaction per track batch:** Payloads and bookkeeping rows
      commit or roll back together

Architecture:
    ::

        discovery.py   directory  → [MigrationUnit]     (sorted by timestamp)
        state.py       track      → {applied filenames} (migration_track_<track>)
        planner.py     catalog - applied → pending
        validation.py  pending    → pass / ValidationFailedError
        executor.py    pending    → one BEGIN … COMMIT script via psql
        engine.py      orchestrates the phases above
        scaffold.py    new, correctly named migration files

Examples:
    >>> from track_migrate.migrations import plan
    >>> plan([], {"20240101000000_core_init.sql"})
    []

Tags:
    migrations, postgresql, psql, transactions, track-migrate

Doc-Types:
    - API Reference
    - Migration Guide
"""

from track_migrate.migrations.discovery import discover, discover_tree, resolve_track
from track_migrate.migrations.engine import MigrationEngine
from track_migrate.migrations.executor import AtomicExecutor, CombinedScript
from track_migrate.migrations.filename import (
    format_filename,
    parse_filename,
    validate_timestamp,
    validate_track_name,
)
from track_migrate.migrations.models import (
    AppliedRecord,
    AppliedUnit,
    ExecutionReport,
    MigrationUnit,
    ParsedName,
    PayloadKind,
    RunOutcome,
    RunReport,
    StatusRecord,
    TrackPlan,
)
from track_migrate.migrations.planner import order_tracks, plan, plan_tracks
from track_migrate.migrations.psql import ClientResult, PsqlClient
from track_migrate.migrations.scaffold import new_migration
from track_migrate.migrations.state import AppliedStateStore
from track_migrate.migrations.validation import ValidationGate

__all__ = [
    "AppliedRecord",
    "AppliedStateStore",
    "AppliedUnit",
    "AtomicExecutor",
    "ClientResult",
    "CombinedScript",
    "ExecutionReport",
    "MigrationEngine",
    "MigrationUnit",
    "ParsedName",
    "PayloadKind",
    "PsqlClient",
    "RunOutcome",
    "RunReport",
    "StatusRecord",
    "TrackPlan",
    "ValidationGate",
    "discover",
    "discover_tree",
    "format_filename",
    "new_migration",
    "order_tracks",
    "parse_filename",
    "plan",
    "plan_tracks",
    "resolve_track",
    "validate_timestamp",
    "validate_track_name",
]
