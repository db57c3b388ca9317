"""Migration engine: discovery → planning → validation → atomic execution.

Per-invocation state machine::

    Discovering → Planning ─┬─→ Empty                         (terminal)
                            └─→ Validating ─┬─→ Gated-Fail    (terminal)
                                            └─→ Executing ─┬─→ Committed    (terminal)
                                                           └─→ Rolled-Back  (terminal)

Nothing is resumable; every invocation starts over from discovery, which
is safe because rolled-back or never-executed units are still pending.

The engine takes no lock across invocations beyond the executor's
transaction-scoped advisory lock; the unique constraint on
``migration_name`` turns a lost planning race into ``AlreadyAppliedError``.
"""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from track_migrate.core.errors import (
    AlreadyAppliedError,
    ExecutionFailedError,
    MigrateError,
    Phase,
    ValidationFailedError,
)
from track_migrate.core.logging import LogContext, get_logger
from track_migrate.core.settings import MigrateSettings
from track_migrate.migrations.discovery import discover, discover_tree, resolve_track
from track_migrate.migrations.executor import AtomicExecutor
from track_migrate.migrations.filename import DEFAULT_VALIDATION_SUFFIX
from track_migrate.migrations.models import (
    AppliedRecord,
    MigrationUnit,
    RunOutcome,
    RunReport,
    StatusRecord,
)
from track_migrate.migrations.planner import flatten, order_tracks, plan, plan_tracks
from track_migrate.migrations.psql import PsqlClient
from track_migrate.migrations.state import AppliedStateStore
from track_migrate.migrations.validation import ValidationGate

logger = get_logger(__name__)


@contextmanager
def _phase(phase: Phase, **context: Any) -> Iterator[None]:
    """Bind the running phase for logs; stamp it (and track/directory) onto escaping errors."""
    try:
        with LogContext(phase=phase.value):
            yield
    except MigrateError as exc:
        if exc.context.phase is None:
            exc.context.phase = phase
        for key, value in context.items():
            if getattr(exc.context, key, None) is None:
                setattr(exc.context, key, value)
        raise


class MigrationEngine:
    """Orchestrates one migration invocation.

    Build it from settings at the CLI boundary::

        engine = MigrationEngine.from_settings(get_settings(), base_env=os.environ)
        report = engine.run("db/migrations/core")

    or wire the collaborators directly (tests, embedding).
    """

    def __init__(
        self,
        client: PsqlClient,
        store: AppliedStateStore,
        gate: ValidationGate,
        executor: AtomicExecutor,
        *,
        validation_suffix: str = DEFAULT_VALIDATION_SUFFIX,
        strict_timestamps: bool = True,
    ) -> None:
        self._client = client
        self._store = store
        self._gate = gate
        self._executor = executor
        self.validation_suffix = validation_suffix
        self.strict_timestamps = strict_timestamps

    @classmethod
    def from_settings(
        cls,
        settings: MigrateSettings,
        *,
        base_env: Mapping[str, str] | None = None,
    ) -> MigrationEngine:
        """Wire every component from one settings object.

        Raises ``ConnectionInvalidError`` if required connection parameters
        are missing; nothing has been discovered or executed at that point.
        """
        connection = settings.connection().require()
        client = PsqlClient(connection, psql_path=settings.psql_path, base_env=base_env)
        store = AppliedStateStore(client, settings.table_prefix)
        gate = ValidationGate(
            connection,
            interpreter=settings.validation_interpreter,
            base_env=base_env,
        )
        executor = AtomicExecutor(client, store, advisory_lock=settings.advisory_lock)
        return cls(
            client,
            store,
            gate,
            executor,
            validation_suffix=settings.validation_suffix,
            strict_timestamps=settings.strict_timestamps,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check_connection(self) -> None:
        """Liveness probe against the target database."""
        self._client.ping()

    def run(
        self,
        directory: Path | str,
        *,
        track: str | None = None,
        dry_run: bool = False,
    ) -> RunReport:
        """Apply every pending unit of one track directory as one batch."""
        started = time.perf_counter()
        path = Path(directory)

        with _phase(Phase.DISCOVERING, directory=str(path)):
            units = self._discover(path, track)
            track = resolve_track(path, units, track)

        with LogContext(track=track):
            with _phase(Phase.PLANNING, track=track, directory=str(path)):
                self.check_connection()
                pending = plan(units, self._store.applied_names(track))

            report = self._apply(track, str(path), pending, dry_run=dry_run, gate=True)
            report.duration_ms = (time.perf_counter() - started) * 1000
            return report

    def run_tree(self, root: Path | str, *, dry_run: bool = False) -> list[RunReport]:
        """Apply every track directory under ``root``.

        The validation gate runs once over the whole cross-track plan before
        anything executes. Tracks then execute in order (``core`` first,
        the rest alphabetically), each as its own atomic batch; the first
        failure stops the run and later tracks stay pending. Tracks that
        committed before the failure stay committed; the raised error lists
        them under ``committed_tracks`` in its context metadata.
        """
        path = Path(root)
        with _phase(Phase.DISCOVERING, directory=str(path)):
            catalogs = discover_tree(
                path,
                validation_suffix=self.validation_suffix,
                strict_timestamps=self.strict_timestamps,
            )

        with _phase(Phase.PLANNING, directory=str(path)):
            self.check_connection()
            applied = {track: self._store.applied_names(track) for track in catalogs}
            plans = plan_tracks(catalogs, applied)

        everything = flatten(plans)
        if everything:
            self._validate(everything)

        reports: list[RunReport] = []
        for track_plan in plans:
            directory = str(catalogs[track_plan.track][0].sql_path.parent)
            with LogContext(track=track_plan.track):
                started = time.perf_counter()
                try:
                    report = self._apply(
                        track_plan.track,
                        directory,
                        track_plan.pending,
                        dry_run=dry_run,
                        gate=False,
                    )
                except MigrateError as exc:
                    committed = [
                        r.track for r in reports if r.outcome is RunOutcome.COMMITTED
                    ]
                    if committed:
                        logger.error("migration.tree.partial", committed_tracks=committed)
                    exc.with_context(committed_tracks=committed)
                    raise
                report.duration_ms = (time.perf_counter() - started) * 1000
                reports.append(report)
        return reports

    def status(self, directory: Path | str, *, track: str | None = None) -> list[StatusRecord]:
        """Applied/pending status for every unit of one track directory (read-only)."""
        path = Path(directory)
        with _phase(Phase.DISCOVERING, directory=str(path)):
            units = self._discover(path, track)
            track = resolve_track(path, units, track)
        with _phase(Phase.REPORTING, track=track, directory=str(path)):
            self.check_connection()
            return self._status_records(units, self._store.applied_names(track))

    def status_tree(self, root: Path | str) -> list[StatusRecord]:
        """Status for every track under ``root``, in track order (read-only)."""
        path = Path(root)
        with _phase(Phase.DISCOVERING, directory=str(path)):
            catalogs = discover_tree(
                path,
                validation_suffix=self.validation_suffix,
                strict_timestamps=self.strict_timestamps,
            )
        with _phase(Phase.REPORTING, directory=str(path)):
            self.check_connection()
            records: list[StatusRecord] = []
            for track in order_tracks(catalogs):
                records.extend(
                    self._status_records(catalogs[track], self._store.applied_names(track))
                )
            return records

    def history(self, track: str) -> list[AppliedRecord]:
        """AppliedRecords of ``track`` in application order (read-only)."""
        with _phase(Phase.REPORTING, track=track):
            self.check_connection()
            return self._store.history(track)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _discover(self, path: Path, track: str | None) -> list[MigrationUnit]:
        return discover(
            path,
            track=track,
            validation_suffix=self.validation_suffix,
            strict_timestamps=self.strict_timestamps,
        )

    def _apply(
        self,
        track: str,
        directory: str,
        pending: list[MigrationUnit],
        *,
        dry_run: bool,
        gate: bool,
    ) -> RunReport:
        if not pending:
            logger.info("migration.plan.empty", directory=directory)
            return RunReport(track=track, directory=directory, outcome=RunOutcome.EMPTY)

        logger.info(
            "migration.plan.ready",
            pending=len(pending),
            first=pending[0].filename,
            last=pending[-1].filename,
        )

        if gate:
            self._validate(pending)

        if dry_run:
            with _phase(Phase.EXECUTING, track=track, directory=directory):
                script = self._executor.build_script(pending, track)
            logger.info("migration.run.finished", outcome=RunOutcome.DRY_RUN.value)
            return RunReport(
                track=track,
                directory=directory,
                outcome=RunOutcome.DRY_RUN,
                pending=pending,
                script=script.text,
            )

        try:
            with _phase(Phase.EXECUTING, track=track, directory=directory):
                execution = self._executor.execute(pending, track)
        except (ExecutionFailedError, AlreadyAppliedError):
            logger.error("migration.run.finished", outcome=RunOutcome.ROLLED_BACK.value)
            raise

        logger.info("migration.run.finished", outcome=RunOutcome.COMMITTED.value)
        return RunReport(
            track=track,
            directory=directory,
            outcome=RunOutcome.COMMITTED,
            pending=pending,
            applied=execution.applied,
        )

    def _validate(self, pending: list[MigrationUnit]) -> None:
        try:
            with _phase(Phase.VALIDATING):
                self._gate.validate(pending)
        except ValidationFailedError:
            logger.error("migration.run.finished", outcome=RunOutcome.GATED.value)
            raise

    @staticmethod
    def _status_records(units: list[MigrationUnit], applied: set[str]) -> list[StatusRecord]:
        return [
            StatusRecord(
                filename=unit.filename,
                track=unit.track,
                description=unit.description,
                status="applied" if unit.filename in applied else "pending",
            )
            for unit in units
        ]


__all__ = ["MigrationEngine"]
