"""Settings and connection configuration for track-migrate.

Configuration is read from the environment exactly once, at the CLI
boundary, and then handed to every component as explicit objects. No
component looks at ``os.environ`` on its own.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not mid-batch
    - **libpq-compatible:** Connection parameters use the standard ``PG*``
      variables so an existing ``psql`` setup works unchanged
    - **Namespaced tool options:** Everything else uses ``TRACK_MIGRATE_*``
    - **.env support:** Automatic loading via pydantic-settings

Features:
    - **ConnectionConfig:** Frozen model holding host/port/database/user/
      password/client encoding, rendered to a ``PG*`` mapping with ``to_env()``
    - **MigrateSettings:** Tool settings (psql path, table prefix,
      validation interpreter, advisory lock, logging)
    - **build_env():** Child-process environment = caller base + connection

Examples:
    >>> settings = MigrateSettings(_env_file=None, pghost="localhost",
    ...                            pgdatabase="app", pguser="deploy")
    >>> settings.connection().to_env()["PGDATABASE"]
    'app'

Tags:
    settings, configuration, pydantic, environment, track-migrate

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from functools import lru_cache

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from track_migrate.core.errors import ConnectionInvalidError

_PREFIX_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


class ConnectionConfig(BaseModel):
    """Connection parameters for the target database.

    Fields
    ──────
    host             : PGHOST (hostname or socket directory)
    port             : PGPORT
    database         : PGDATABASE
    user             : PGUSER
    password         : PGPASSWORD (optional; ``.pgpass`` also works)
    client_encoding  : PGCLIENTENCODING
    """

    model_config = ConfigDict(frozen=True)

    host: str | None = None
    port: int = 5432
    database: str | None = None
    user: str | None = None
    password: SecretStr | None = None
    client_encoding: str = "UTF8"

    def missing(self) -> list[str]:
        """Names of required parameters that are not set."""
        required = {"host": self.host, "database": self.database, "user": self.user}
        return [name for name, value in required.items() if not value]

    def require(self) -> ConnectionConfig:
        """Return self, or raise ``ConnectionInvalidError`` naming what is missing."""
        missing = self.missing()
        if missing:
            env_names = ", ".join(f"PG{name.upper()}" for name in missing)
            raise ConnectionInvalidError(
                f"Missing required connection parameters: {env_names}",
                missing=missing,
            )
        return self

    def to_env(self) -> dict[str, str]:
        """Render as the libpq environment variables ``psql`` understands."""
        env = {
            "PGPORT": str(self.port),
            "PGCLIENTENCODING": self.client_encoding,
        }
        if self.host:
            env["PGHOST"] = self.host
        if self.database:
            env["PGDATABASE"] = self.database
        if self.user:
            env["PGUSER"] = self.user
        if self.password is not None:
            env["PGPASSWORD"] = self.password.get_secret_value()
        return env

    def describe(self) -> str:
        """Password-free ``user@host:port/database`` summary for logs."""
        return f"{self.user}@{self.host}:{self.port}/{self.database}"


# libpq variables that decide *which* database is reached. Session options
# such as PGOPTIONS, PGSSLMODE or PGCONNECT_TIMEOUT pass through untouched.
_CONNECTION_VARS = frozenset(
    {
        "PGHOST",
        "PGHOSTADDR",
        "PGPORT",
        "PGDATABASE",
        "PGUSER",
        "PGPASSWORD",
        "PGSERVICE",
        "PGCLIENTENCODING",
    }
)


def build_env(base: Mapping[str, str] | None, connection: ConnectionConfig) -> dict[str, str]:
    """Build a child-process environment.

    ``base`` is whatever the caller decided to pass through (usually the
    CLI's own environment, for ``PATH`` and locale). Connection-defining
    ``PG*`` keys in it are dropped so the connection object is the only
    source of connection parameters.
    """
    env = {key: value for key, value in (base or {}).items() if key not in _CONNECTION_VARS}
    env.update(connection.to_env())
    return env


class MigrateSettings(BaseSettings):
    """Settings for a track-migrate invocation.

    Connection fields read the standard libpq variables (``PGHOST`` ...);
    tool fields read ``TRACK_MIGRATE_*`` (e.g. ``TRACK_MIGRATE_PSQL_PATH``).
    """

    model_config = SettingsConfigDict(
        env_prefix="TRACK_MIGRATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ── Connection (libpq names) ─────────────────────────────────
    pghost: str | None = Field(default=None, validation_alias=AliasChoices("pghost", "PGHOST"))
    pgport: int = Field(default=5432, validation_alias=AliasChoices("pgport", "PGPORT"))
    pgdatabase: str | None = Field(
        default=None, validation_alias=AliasChoices("pgdatabase", "PGDATABASE")
    )
    pguser: str | None = Field(default=None, validation_alias=AliasChoices("pguser", "PGUSER"))
    pgpassword: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("pgpassword", "PGPASSWORD")
    )
    pgclientencoding: str = Field(
        default="UTF8", validation_alias=AliasChoices("pgclientencoding", "PGCLIENTENCODING")
    )

    # ── Client ───────────────────────────────────────────────────
    psql_path: str = Field(default="psql", description="psql binary name or path")

    # ── Bookkeeping ──────────────────────────────────────────────
    table_prefix: str = Field(
        default="migration_track_",
        description="Per-track metadata table is <table_prefix><track>",
    )
    advisory_lock: bool = Field(
        default=True,
        description="Serialize batches per track with a transaction-scoped advisory lock",
    )

    # ── Migration sources ────────────────────────────────────────
    validation_suffix: str = Field(default=".sh")
    validation_interpreter: list[str] = Field(default_factory=lambda: ["sh"])
    strict_timestamps: bool = Field(default=True)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", description="console | json")

    @field_validator("table_prefix")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        if not _PREFIX_RE.match(value):
            raise ValueError(
                f"table_prefix must be a lowercase SQL identifier prefix, got {value!r}"
            )
        return value

    @field_validator("validation_suffix")
    @classmethod
    def _check_suffix(cls, value: str) -> str:
        if not value.startswith(".") or value == ".sql":
            raise ValueError(f"validation_suffix must start with '.' and differ from .sql, got {value!r}")
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', got {value!r}")
        return value

    def connection(self) -> ConnectionConfig:
        """Project the ``PG*`` fields into a ``ConnectionConfig``."""
        return ConnectionConfig(
            host=self.pghost,
            port=self.pgport,
            database=self.pgdatabase,
            user=self.pguser,
            password=self.pgpassword,
            client_encoding=self.pgclientencoding,
        )


@lru_cache(maxsize=1)
def get_settings() -> MigrateSettings:
    """Load and cache settings (CLI boundary only)."""
    return MigrateSettings()


__all__ = ["ConnectionConfig", "MigrateSettings", "build_env", "get_settings"]
