"""Migration filename codec.

Names follow ``{timestamp}_{track}_{description}.{ext}``: a 14-digit
timestamp, the owning track, and a free-text slug (which may itself contain
underscores). ``.sql`` marks the executable payload; the validation suffix
(``.sh`` by default) marks the optional pre-flight artifact.

Everything here is pure: no filesystem access.
"""

from __future__ import annotations

import re

from track_migrate.core.errors import MalformedNameError
from track_migrate.core.result import Err, Ok, Result
from track_migrate.migrations.models import ParsedName, PayloadKind

SQL_SUFFIX = ".sql"
DEFAULT_VALIDATION_SUFFIX = ".sh"
DELIMITER = "_"
TIMESTAMP_LENGTH = 14

_TRACK_RE = re.compile(r"^[a-z][a-z0-9]*$")


def validate_timestamp(value: str) -> bool:
    """True iff ``value`` is exactly 14 ASCII digits (``YYYYMMDDHHMMSS``)."""
    return len(value) == TIMESTAMP_LENGTH and value.isascii() and value.isdigit()


def validate_track_name(track: str) -> str:
    """Return ``track`` if usable as a track name, else raise.

    Track names end up inside a table name and inside filenames split on
    ``_``, so they are restricted to a lowercase letter followed by
    lowercase letters/digits. Postgres folds unquoted identifiers, so
    ``Core`` and ``core`` would otherwise share one table.
    """
    if not _TRACK_RE.match(track or ""):
        raise MalformedNameError(
            track,
            "track names must start with a lowercase letter and contain only "
            "lowercase letters and digits",
        )
    return track


def payload_kind(filename: str, validation_suffix: str = DEFAULT_VALIDATION_SUFFIX) -> PayloadKind | None:
    """Classify a filename by extension; ``None`` when it is not a migration artifact."""
    if filename.endswith(SQL_SUFFIX):
        return PayloadKind.SQL
    if filename.endswith(validation_suffix):
        return PayloadKind.VALIDATION
    return None


def parse_filename(
    filename: str,
    validation_suffix: str = DEFAULT_VALIDATION_SUFFIX,
) -> Result[ParsedName]:
    """Split a migration filename into its fields.

    Returns ``Ok(ParsedName)`` or ``Err(MalformedNameError)``. The timestamp
    is carried through as-is; use ``validate_timestamp`` for the strict check.

    Examples:
        >>> parse_filename("20240101000000_core_create_users.sql").unwrap().description
        'create_users'
        >>> parse_filename("core_only.sql").is_err()
        True
    """
    if not filename:
        return Err(MalformedNameError(filename, "filename is empty"))

    kind = payload_kind(filename, validation_suffix)
    if kind is None:
        return Err(
            MalformedNameError(
                filename, f"extension must be {SQL_SUFFIX} or {validation_suffix}"
            )
        )

    suffix = SQL_SUFFIX if kind is PayloadKind.SQL else validation_suffix
    stem = filename[: -len(suffix)]

    fields = stem.split(DELIMITER, 2)
    if len(fields) < 3:
        return Err(
            MalformedNameError(
                filename,
                f"expected timestamp{DELIMITER}track{DELIMITER}description, "
                f"found {len(fields)} field(s)",
            )
        )

    timestamp, track, description = fields
    empty = [name for name, value in zip(("timestamp", "track", "description"), fields) if not value]
    if empty:
        return Err(MalformedNameError(filename, f"empty field(s): {', '.join(empty)}"))

    return Ok(
        ParsedName(
            filename=filename,
            timestamp=timestamp,
            track=track,
            description=description,
            kind=kind,
        )
    )


def format_filename(timestamp: str, track: str, description: str, suffix: str = SQL_SUFFIX) -> str:
    """Inverse of ``parse_filename`` for generated migrations."""
    return f"{timestamp}{DELIMITER}{track}{DELIMITER}{description}{suffix}"


__all__ = [
    "SQL_SUFFIX",
    "DEFAULT_VALIDATION_SUFFIX",
    "validate_timestamp",
    "validate_track_name",
    "payload_kind",
    "parse_filename",
    "format_filename",
]
