"""External SQL client wrapper.

All database access goes through the ``psql`` command-line client via
subprocess. The client is stateful and outside our control; this module
only shapes the invocation (connection environment, ``ON_ERROR_STOP``)
and turns its exit status and output into Python values.

psql exit status: 0 success, 1 fatal client error, 2 connection lost,
3 script error while ``ON_ERROR_STOP`` is set.
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass

from track_migrate.core.errors import ClientError, ConnectionInvalidError
from track_migrate.core.logging import get_logger
from track_migrate.core.settings import ConnectionConfig, build_env

logger = get_logger(__name__)


@dataclass
class ClientResult:
    """Outcome of one psql invocation."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class PsqlClient:
    """Runs SQL through ``psql``.

    Parameters
    ----------
    connection
        Target database. Rendered into ``PG*`` variables for the child.
    psql_path
        Binary name (looked up on ``PATH``) or explicit path.
    base_env
        Environment the child inherits apart from ``PG*`` (``PATH``,
        locale). Nothing is read from the current process implicitly.

    Example::

        client = PsqlClient(settings.connection(), base_env=os.environ)
        client.ping()
        result = client.run_script("BEGIN;\\nSELECT 1;\\nCOMMIT;\\n")
    """

    def __init__(
        self,
        connection: ConnectionConfig,
        *,
        psql_path: str = "psql",
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.connection = connection
        self._env = build_env(base_env, connection)
        self._psql = self._find_psql(psql_path, self._env.get("PATH"))

    # ------------------------------------------------------------------
    # Client discovery
    # ------------------------------------------------------------------

    @staticmethod
    def _find_psql(psql_path: str, search_path: str | None) -> str:
        """Resolve the psql binary."""
        found = shutil.which(psql_path, path=search_path)
        if found is None:
            raise ClientError(
                f"psql client not found: {psql_path!r}. Install the PostgreSQL "
                "client tools or set TRACK_MIGRATE_PSQL_PATH."
            )
        return found

    @property
    def environment(self) -> dict[str, str]:
        """Copy of the environment every psql child receives."""
        return dict(self._env)

    # ------------------------------------------------------------------
    # Invocations
    # ------------------------------------------------------------------

    def run_script(self, script: str) -> ClientResult:
        """Run a multi-statement script (fed on stdin) and stop at the first error."""
        return self._run(["-f", "-"], stdin=script)

    def execute(self, sql: str) -> None:
        """Run a standalone statement; raise ``ClientError`` if it fails."""
        result = self._run(["-c", sql])
        if not result.ok:
            raise ClientError(
                f"psql statement failed (exit {result.returncode}): {result.stderr.strip()}",
                stderr=result.stderr,
            )

    def query(self, sql: str) -> list[list[str]]:
        """Run a read query and return rows as lists of column strings.

        Output is unaligned, tuples-only and tab-separated; NULL comes back
        as an empty string.
        """
        result = self._run(["-A", "-t", "-F", "\t", "-c", sql])
        if not result.ok:
            raise ClientError(
                f"psql query failed (exit {result.returncode}): {result.stderr.strip()}",
                stderr=result.stderr,
            )
        return [line.split("\t") for line in result.stdout.splitlines() if line]

    def ping(self) -> None:
        """Liveness probe; raise ``ConnectionInvalidError`` if the database is unreachable."""
        result = self._run(["-A", "-t", "-c", "SELECT 1"])
        if not result.ok or result.stdout.strip() != "1":
            raise ConnectionInvalidError(
                f"Cannot reach database {self.connection.describe()}: "
                f"{result.stderr.strip() or 'unexpected probe output'}"
            )
        logger.debug("psql.ping.ok", database=self.connection.describe())

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run(self, args: list[str], stdin: str | None = None) -> ClientResult:
        # -X: ignore ~/.psqlrc, -q: quiet, -w: never prompt for a password
        cmd = [self._psql, "-X", "-q", "-w", "-v", "ON_ERROR_STOP=1", *args]
        logger.debug(
            "psql.exec",
            mode="script" if stdin is not None else "command",
            database=self.connection.describe(),
        )
        try:
            proc = subprocess.run(
                cmd,
                input=stdin,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=self._env,
            )
        except OSError as exc:
            raise ClientError(f"Failed to start psql ({self._psql}): {exc}", cause=exc) from exc
        return ClientResult(returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


__all__ = ["ClientResult", "PsqlClient"]
