"""Data models shared by the migration pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class PayloadKind(str, Enum):
    """What a migration artifact contains, decided by its extension."""

    SQL = "sql"
    VALIDATION = "validation"


class RunOutcome(str, Enum):
    """Terminal state of one invocation."""

    EMPTY = "empty"
    DRY_RUN = "dry_run"
    GATED = "gated"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class ParsedName:
    """A filename split into its naming-scheme fields."""

    filename: str
    timestamp: str
    track: str
    description: str
    kind: PayloadKind

    @property
    def stem(self) -> str:
        """``{timestamp}_{track}_{description}``; pairs SQL with validation."""
        return f"{self.timestamp}_{self.track}_{self.description}"


@dataclass(frozen=True)
class MigrationUnit:
    """One discrete change: a SQL payload plus an optional validation artifact."""

    filename: str
    timestamp: str
    track: str
    description: str
    sql_path: Path
    validation_path: Path | None = None

    @property
    def has_validation(self) -> bool:
        return self.validation_path is not None

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.timestamp, self.filename)

    def read_payload(self) -> bytes:
        """Raw SQL payload bytes, exactly as they will be sent to psql."""
        return self.sql_path.read_bytes()


@dataclass
class AppliedRecord:
    """Row of a per-track metadata table."""

    migration_name: str
    migration_hash: str
    applied_at: str
    execution_time_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "migration_name": self.migration_name,
            "migration_hash": self.migration_hash,
            "applied_at": self.applied_at,
            "execution_time_ms": self.execution_time_ms,
        }


@dataclass(frozen=True)
class AppliedUnit:
    """A unit that was part of a committed batch."""

    filename: str
    track: str
    content_hash: str


@dataclass
class StatusRecord:
    """Status line for one catalog entry (read-only reporting)."""

    filename: str
    track: str
    description: str
    status: str  # "applied" | "pending"

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "track": self.track,
            "description": self.description,
            "status": self.status,
        }


@dataclass
class TrackPlan:
    """Pending units for one track, in execution order."""

    track: str
    pending: list[MigrationUnit] = field(default_factory=list)
    catalog_size: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.pending


@dataclass
class ExecutionReport:
    """What the atomic executor committed."""

    track: str
    applied: list[AppliedUnit] = field(default_factory=list)
    duration_ms: float = 0.0
    output: str = ""


@dataclass
class RunReport:
    """Result of one engine invocation for one track."""

    track: str
    directory: str
    outcome: RunOutcome
    pending: list[MigrationUnit] = field(default_factory=list)
    applied: list[AppliedUnit] = field(default_factory=list)
    script: str | None = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "track": self.track,
            "directory": self.directory,
            "outcome": self.outcome.value,
            "pending": [u.filename for u in self.pending],
            "applied": [
                {"filename": a.filename, "track": a.track, "migration_hash": a.content_hash}
                for a in self.applied
            ],
            "duration_ms": round(self.duration_ms, 3),
        }
        if self.script is not None:
            result["script"] = self.script
        return result
