"""Atomic executor.

Builds one combined script for a track's pending batch and runs it as a
single ``psql`` invocation with ``ON_ERROR_STOP``::

    BEGIN;
    SELECT pg_advisory_xact_lock(...)          -- optional, per track table
    \\echo 'track-migrate: applying <unit 1>'
    SELECT <now ms> AS track_migrate_started_ms \\gset
    <unit 1 SQL payload, verbatim>
    ;                                            -- empty statement, terminates the payload
    INSERT INTO <track table> (...) VALUES (<unit 1>, <hash>, <elapsed ms>);
    ...                                          -- same for every unit
    COMMIT;

The first failing statement aborts psql before ``COMMIT``, so the server
rolls back every payload and every bookkeeping row of the batch. The
executor performs no retry.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from track_migrate.core.errors import ExecutionFailedError, MigrateError, Phase
from track_migrate.core.hashing import compute_content_hash
from track_migrate.core.logging import get_logger
from track_migrate.migrations.models import AppliedUnit, ExecutionReport, MigrationUnit
from track_migrate.migrations.psql import PsqlClient
from track_migrate.migrations.state import AppliedStateStore, quote_literal

logger = get_logger(__name__)

UNIT_MARKER = "track-migrate: applying "
_TIMER_VAR = "track_migrate_started_ms"
_NOW_MS = "(extract(epoch FROM clock_timestamp()) * 1000)::bigint"


@dataclass
class CombinedScript:
    """The transactional script for one batch plus what it will record."""

    track: str
    text: str
    units: list[AppliedUnit] = field(default_factory=list)


class AtomicExecutor:
    """Applies a pending batch for one track in a single transaction.

    Parameters
    ----------
    client
        psql wrapper used to run the combined script.
    store
        Applied-state store providing table names and bookkeeping inserts.
    advisory_lock
        Take ``pg_advisory_xact_lock`` on the track table at ``BEGIN`` so
        concurrent batches for the same track run one after the other. The
        loser of a planning race still fails on the unique constraint.
    """

    def __init__(
        self,
        client: PsqlClient,
        store: AppliedStateStore,
        *,
        advisory_lock: bool = True,
    ) -> None:
        self._client = client
        self._store = store
        self.advisory_lock = advisory_lock

    # ------------------------------------------------------------------
    # Script assembly
    # ------------------------------------------------------------------

    def build_script(self, pending: list[MigrationUnit], track: str) -> CombinedScript:
        """Assemble the combined script; hashes are taken from the bytes sent."""
        table = self._store.table_name(track)
        lines = [
            f"-- track-migrate batch: track={track} units={len(pending)}",
            "BEGIN;",
        ]
        if self.advisory_lock:
            lines.append(
                f"SELECT pg_advisory_xact_lock(hashtext({quote_literal(table)})) "
                "AS track_migrate_lock \\gset"
            )

        applied: list[AppliedUnit] = []
        for unit in pending:
            if unit.track != track:
                raise MigrateError(
                    f"unit {unit.filename} belongs to track {unit.track!r}, "
                    f"not {track!r}"
                ).with_context(phase=Phase.EXECUTING, track=track, migration=unit.filename)

            payload = self._read_payload(unit)
            content_hash = compute_content_hash(payload)
            text = payload.decode("utf-8")
            if not text.endswith("\n"):
                text += "\n"

            lines.append(f"\\echo {quote_literal(UNIT_MARKER + unit.filename)}")
            lines.append(f"SELECT {_NOW_MS} AS {_TIMER_VAR} \\gset")
            lines.append(text.rstrip("\n"))
            # closes a trailing statement that lacks its own semicolon
            lines.append(";")
            lines.append(
                self._store.record_applied_sql(
                    track,
                    unit,
                    content_hash,
                    execution_time_sql=f"{_NOW_MS} - :{_TIMER_VAR}",
                )
            )
            applied.append(
                AppliedUnit(filename=unit.filename, track=track, content_hash=content_hash)
            )

        lines.append("COMMIT;")
        return CombinedScript(track=track, text="\n".join(lines) + "\n", units=applied)

    @staticmethod
    def _read_payload(unit: MigrationUnit) -> bytes:
        try:
            payload = unit.read_payload()
            payload.decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ExecutionFailedError(
                f"Cannot read SQL payload {unit.sql_path}: {exc}",
                cause=exc,
            ).with_context(
                phase=Phase.EXECUTING, track=unit.track, migration=unit.filename
            ) from exc
        return payload

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, pending: list[MigrationUnit], track: str) -> ExecutionReport:
        """Run the batch; return what was committed or raise.

        Raises
        ------
        AlreadyAppliedError
            A bookkeeping insert hit the unique constraint (lost race).
        ExecutionFailedError
            Any other failure; nothing from the batch persisted.
        """
        if not pending:
            return ExecutionReport(track=track)

        combined = self.build_script(pending, track)
        self._store.ensure_track_table(track)

        logger.info("migration.batch.started", track=track, units=len(pending))
        started = time.perf_counter()
        result = self._client.run_script(combined.text)
        duration_ms = (time.perf_counter() - started) * 1000

        if not result.ok:
            already = self._store.classify_failure(track, result.stderr)
            if already is not None:
                logger.error("migration.batch.already_applied", track=track, detail=already.detail)
                raise already
            failing = self._failing_unit(result.stdout)
            logger.error(
                "migration.batch.rolled_back",
                track=track,
                migration=failing,
                returncode=result.returncode,
                stderr=result.stderr.strip(),
            )
            raise ExecutionFailedError(
                f"Batch for track {track!r} failed"
                + (f" in {failing}" if failing else "")
                + f" and was rolled back: {self._first_error(result.stderr)}",
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            ).with_context(phase=Phase.EXECUTING, track=track, migration=failing)

        self._verify_recorded(pending, track, result.stdout)

        logger.info(
            "migration.batch.committed",
            track=track,
            applied=len(combined.units),
            duration_ms=round(duration_ms, 1),
        )
        return ExecutionReport(
            track=track,
            applied=combined.units,
            duration_ms=duration_ms,
            output=result.stdout,
        )

    def _verify_recorded(self, pending: list[MigrationUnit], track: str, stdout: str) -> None:
        """A zero exit without every row recorded means psql quit before COMMIT."""
        recorded = self._store.applied_names(track)
        missing = [unit.filename for unit in pending if unit.filename not in recorded]
        if missing:
            failing = self._failing_unit(stdout)
            raise ExecutionFailedError(
                f"psql exited cleanly but {len(missing)} unit(s) of track {track!r} were "
                f"not recorded (a script quit before COMMIT?): {', '.join(missing)}",
                returncode=0,
                stdout=stdout,
            ).with_context(phase=Phase.EXECUTING, track=track, migration=failing)

    @staticmethod
    def _failing_unit(stdout: str) -> str | None:
        """Last unit the script announced before stopping."""
        for line in reversed(stdout.splitlines()):
            if line.startswith(UNIT_MARKER):
                return line[len(UNIT_MARKER):].strip()
        return None

    @staticmethod
    def _first_error(stderr: str) -> str:
        for line in stderr.splitlines():
            if "ERROR:" in line:
                return line.strip()
        return stderr.strip() or "no diagnostic output"


__all__ = ["AtomicExecutor", "CombinedScript", "UNIT_MARKER"]
