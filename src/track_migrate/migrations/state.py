"""Applied-state store.

One metadata table per track, ``<prefix><track>`` (``migration_track_core``
by default). A row is written exactly once, by the bookkeeping insert that
the atomic executor places right after the unit's SQL inside the batch
transaction. This module never inserts on its own.

Table layout::

    id                 SERIAL PRIMARY KEY
    migration_name     TEXT NOT NULL, UNIQUE (<table>_migration_name_key)
    migration_hash     TEXT NOT NULL
    applied_at         TIMESTAMPTZ NOT NULL DEFAULT now()
    execution_time_ms  BIGINT NULL
"""

from __future__ import annotations

import re

from track_migrate.core.errors import AlreadyAppliedError, MalformedNameError
from track_migrate.core.logging import get_logger
from track_migrate.migrations.filename import validate_track_name
from track_migrate.migrations.models import AppliedRecord, MigrationUnit
from track_migrate.migrations.psql import PsqlClient

logger = get_logger(__name__)

DEFAULT_TABLE_PREFIX = "migration_track_"

# PostgreSQL truncates identifiers beyond this length.
_MAX_IDENTIFIER = 63
_UNIQUE_SUFFIX = "_migration_name_key"
_DUPLICATE_KEY_RE = re.compile(r"Key \(migration_name\)=\((?P<name>.*)\) already exists")


def quote_literal(value: str) -> str:
    """Render ``value`` as a SQL string literal."""
    return "'" + value.replace("'", "''") + "'"


class AppliedStateStore:
    """Reads and creates the per-track metadata tables.

    Example::

        store = AppliedStateStore(client)
        store.ensure_track_table("core")
        done = store.applied_names("core")
    """

    def __init__(self, client: PsqlClient, table_prefix: str = DEFAULT_TABLE_PREFIX) -> None:
        self._client = client
        self.table_prefix = table_prefix

    def table_name(self, track: str) -> str:
        """Metadata table for ``track``."""
        validate_track_name(track)
        table = f"{self.table_prefix}{track}"
        if len(table) + len(_UNIQUE_SUFFIX) > _MAX_IDENTIFIER:
            raise MalformedNameError(
                track, f"track name too long for metadata table {table!r}"
            )
        return table

    def constraint_name(self, track: str) -> str:
        return f"{self.table_name(track)}{_UNIQUE_SUFFIX}"

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def create_table_sql(self, track: str) -> str:
        table = self.table_name(track)
        return (
            f"CREATE TABLE IF NOT EXISTS {table} (\n"
            "    id SERIAL PRIMARY KEY,\n"
            "    migration_name TEXT NOT NULL,\n"
            "    migration_hash TEXT NOT NULL,\n"
            "    applied_at TIMESTAMPTZ NOT NULL DEFAULT now(),\n"
            "    execution_time_ms BIGINT,\n"
            f"    CONSTRAINT {self.constraint_name(track)} UNIQUE (migration_name)\n"
            ")"
        )

    def ensure_track_table(self, track: str) -> None:
        """Create the track's metadata table if it does not exist (idempotent)."""
        self._client.execute(self.create_table_sql(track))
        logger.debug("migration.state.table_ready", track=track, table=self.table_name(track))

    def table_exists(self, track: str) -> bool:
        rows = self._client.query(
            f"SELECT to_regclass({quote_literal(self.table_name(track))}) IS NOT NULL"
        )
        return bool(rows) and rows[0][0] == "t"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def applied_names(self, track: str) -> set[str]:
        """Filenames recorded for ``track``; empty when the table is absent."""
        if not self.table_exists(track):
            return set()
        rows = self._client.query(f"SELECT migration_name FROM {self.table_name(track)}")
        return {row[0] for row in rows}

    def history(self, track: str) -> list[AppliedRecord]:
        """All AppliedRecords for ``track`` in application order."""
        if not self.table_exists(track):
            return []
        rows = self._client.query(
            "SELECT migration_name, migration_hash, "
            "to_char(applied_at AT TIME ZONE 'UTC', 'YYYY-MM-DD\"T\"HH24:MI:SS.MS\"Z\"'), "
            f"execution_time_ms FROM {self.table_name(track)} ORDER BY applied_at, id"
        )
        return [
            AppliedRecord(
                migration_name=row[0],
                migration_hash=row[1],
                applied_at=row[2],
                execution_time_ms=int(row[3]) if row[3] else None,
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Bookkeeping inside the batch transaction
    # ------------------------------------------------------------------

    def record_applied_sql(
        self,
        track: str,
        unit: MigrationUnit,
        content_hash: str,
        *,
        execution_time_sql: str = "NULL",
    ) -> str:
        """Insert statement recording ``unit`` as applied.

        Only ever embedded in the executor's combined script, right after
        the unit's own SQL, so it commits or rolls back with it.
        """
        return (
            f"INSERT INTO {self.table_name(track)} "
            "(migration_name, migration_hash, execution_time_ms)\n"
            f"VALUES ({quote_literal(unit.filename)}, {quote_literal(content_hash)}, "
            f"{execution_time_sql});"
        )

    def classify_failure(self, track: str, stderr: str) -> AlreadyAppliedError | None:
        """Recognize a unique violation on the track's ``migration_name``.

        Any other failure returns ``None`` and is left to the caller.
        """
        constraint = self.constraint_name(track)
        if f'violates unique constraint "{constraint}"' not in stderr:
            return None
        match = _DUPLICATE_KEY_RE.search(stderr)
        detail = match.group(0) if match else stderr.strip().splitlines()[0]
        error = AlreadyAppliedError(track, detail)
        if match:
            error.with_context(migration=match.group("name"))
        return error


__all__ = ["DEFAULT_TABLE_PREFIX", "AppliedStateStore", "quote_literal"]
