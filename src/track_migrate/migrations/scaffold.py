"""Generate new, correctly named migration files."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path

from track_migrate.core.errors import DiscoveryError, MalformedNameError, Phase
from track_migrate.migrations.discovery import discover, resolve_track
from track_migrate.migrations.filename import (
    DEFAULT_VALIDATION_SUFFIX,
    SQL_SUFFIX,
    format_filename,
)

_SLUG_RE = re.compile(r"[^a-z0-9]+")

_SQL_TEMPLATE = """\
-- Migration: {description}
-- Track: {track}
-- Created: {created}

"""

_VALIDATION_TEMPLATE = """\
#!/bin/sh
# Validation for {filename}
# Runs before the batch; exit non-zero to block every pending migration.
# PGHOST, PGPORT, PGDATABASE, PGUSER and PGPASSWORD are set for psql.
set -eu

exit 0
"""


def slugify(description: str) -> str:
    """``"Add custom fields!"`` -> ``"add_custom_fields"``."""
    slug = _SLUG_RE.sub("_", description.lower()).strip("_")
    if not slug:
        raise MalformedNameError(description, "description has no usable characters")
    return slug


def new_migration(
    directory: Path | str,
    description: str,
    *,
    track: str | None = None,
    now: datetime | None = None,
    with_validation: bool = False,
    validation_suffix: str = DEFAULT_VALIDATION_SUFFIX,
) -> list[Path]:
    """Create ``{timestamp}_{track}_{slug}.sql`` (and optionally a validation stub).

    The track is resolved the same way a run resolves it, so the new file
    always fits the directory. Existing files are never overwritten.
    """
    path = Path(directory)
    path.mkdir(parents=True, exist_ok=True)
    units = discover(path, track=track, validation_suffix=validation_suffix)
    track = resolve_track(path, units, track)

    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    timestamp = moment.strftime("%Y%m%d%H%M%S")
    slug = slugify(description)

    sql_name = format_filename(timestamp, track, slug, SQL_SUFFIX)
    targets = [path / sql_name]
    if with_validation:
        targets.append(path / format_filename(timestamp, track, slug, validation_suffix))

    clashes = [str(target) for target in targets if target.exists()]
    if clashes:
        raise DiscoveryError(
            f"refusing to overwrite existing migration file(s): {', '.join(clashes)}"
        ).with_context(phase=Phase.DISCOVERING, directory=str(path), track=track)

    targets[0].write_text(
        _SQL_TEMPLATE.format(description=description, track=track, created=moment.isoformat()),
        encoding="utf-8",
    )
    if with_validation:
        targets[1].write_text(_VALIDATION_TEMPLATE.format(filename=sql_name), encoding="utf-8")
        targets[1].chmod(0o755)
    return targets


__all__ = ["new_migration", "slugify"]
