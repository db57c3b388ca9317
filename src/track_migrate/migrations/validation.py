"""Validation gate.

Before any SQL of a batch runs, every pending unit that has a paired
validation artifact gets it executed as its own process, with the target
database's ``PG*`` variables in the environment (so the script can call
``psql`` itself). Exit status 0 passes; anything else vetoes the whole
batch. Output is advisory and only logged.

The engine does not wrap validation in a transaction and does not enforce
that artifacts are read-only.
"""

from __future__ import annotations

import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from track_migrate.core.errors import ValidationFailedError
from track_migrate.core.logging import get_logger
from track_migrate.core.settings import ConnectionConfig, build_env
from track_migrate.migrations.models import MigrationUnit

logger = get_logger(__name__)


class ValidationGate:
    """Runs validation artifacts for a pending batch.

    Parameters
    ----------
    connection
        Database the batch targets; exported to each artifact as ``PG*``.
    interpreter
        Command prefix used to run an artifact (``["sh"]`` by default).
        An empty sequence executes the artifact directly.
    base_env
        Environment inherited by artifacts apart from ``PG*``.
    """

    def __init__(
        self,
        connection: ConnectionConfig,
        *,
        interpreter: Sequence[str] = ("sh",),
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.connection = connection
        self._interpreter = list(interpreter)
        self._env = build_env(base_env, connection)

    def validate(self, pending: list[MigrationUnit]) -> list[str]:
        """Run every artifact in plan order; return the filenames checked.

        Raises ``ValidationFailedError`` at the first failing artifact.
        Units without an artifact pass automatically.
        """
        checked: list[str] = []
        for unit in pending:
            if unit.validation_path is None:
                continue
            self._check(unit, unit.validation_path)
            checked.append(unit.filename)
        logger.info(
            "migration.validation.passed",
            pending=len(pending),
            checked=len(checked),
        )
        return checked

    def _check(self, unit: MigrationUnit, script: Path) -> None:
        cmd = [*self._interpreter, str(script.resolve())]
        env = dict(self._env)
        env["TRACK_MIGRATE_MIGRATION"] = unit.filename
        env["TRACK_MIGRATE_TRACK"] = unit.track

        logger.debug("migration.validation.run", migration=unit.filename, artifact=script.name)
        try:
            proc = subprocess.run(
                cmd,
                cwd=script.resolve().parent,
                env=env,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise ValidationFailedError(
                unit.filename,
                f"could not run {script.name}: {exc}",
                cause=exc,
            ).with_context(track=unit.track) from exc

        if proc.stdout.strip():
            logger.info(
                "migration.validation.output",
                migration=unit.filename,
                output=proc.stdout.strip(),
            )

        if proc.returncode != 0:
            logger.error(
                "migration.validation.failed",
                migration=unit.filename,
                returncode=proc.returncode,
                stderr=proc.stderr.strip(),
            )
            reason = f"{script.name} exited with status {proc.returncode}"
            if proc.stderr.strip():
                reason += f": {proc.stderr.strip().splitlines()[-1]}"
            raise ValidationFailedError(
                unit.filename,
                reason,
                stdout=proc.stdout,
                stderr=proc.stderr,
            ).with_context(track=unit.track)


__all__ = ["ValidationGate"]
