"""Migration discovery.

Turns a track directory into an ordered catalog of ``MigrationUnit``.
Discovery is fail-closed: one malformed name, an orphaned validation
artifact, or a second track in the same directory rejects the whole
directory instead of silently skipping the offending file.
"""

from __future__ import annotations

from pathlib import Path

from track_migrate.core.errors import (
    DirectoryNotFoundError,
    DiscoveryError,
    MalformedNameError,
    Phase,
)
from track_migrate.core.logging import get_logger
from track_migrate.core.result import partition_results
from track_migrate.migrations.filename import (
    DEFAULT_VALIDATION_SUFFIX,
    parse_filename,
    payload_kind,
    validate_timestamp,
    validate_track_name,
)
from track_migrate.migrations.models import MigrationUnit, ParsedName, PayloadKind

logger = get_logger(__name__)


def _candidates(directory: Path, validation_suffix: str) -> list[str]:
    """Immediate, non-hidden files with a recognized extension."""
    return sorted(
        entry.name
        for entry in directory.iterdir()
        if entry.is_file()
        and not entry.name.startswith(".")
        and payload_kind(entry.name, validation_suffix) is not None
    )


def _fail(directory: Path, message: str, problems: list[str] | None = None) -> DiscoveryError:
    if problems:
        message = message + ":\n  " + "\n  ".join(problems)
    return DiscoveryError(message).with_context(
        phase=Phase.DISCOVERING, directory=str(directory)
    )


def discover(
    directory: Path | str,
    *,
    track: str | None = None,
    validation_suffix: str = DEFAULT_VALIDATION_SUFFIX,
    strict_timestamps: bool = True,
) -> list[MigrationUnit]:
    """Scan one track directory and return its units in execution order.

    Parameters
    ----------
    directory
        Directory holding ``{timestamp}_{track}_{description}.sql`` files
        and optional validation artifacts. Not searched recursively.
    track
        Expected track. When given, every unit must belong to it.
    validation_suffix
        Extension of validation artifacts.
    strict_timestamps
        Reject names whose timestamp is not exactly 14 digits.

    Raises
    ------
    DirectoryNotFoundError
        ``directory`` does not exist or is not a directory.
    DiscoveryError
        Malformed names, orphaned validation artifacts, or mixed tracks.
    """
    path = Path(directory)
    if not path.is_dir():
        raise DirectoryNotFoundError(str(path)).with_context(phase=Phase.DISCOVERING)
    if track is not None:
        validate_track_name(track)

    names = _candidates(path, validation_suffix)
    parsed, errors = partition_results(
        [parse_filename(name, validation_suffix) for name in names]
    )

    problems = [str(error) for error in errors]
    for name in parsed:
        if strict_timestamps and not validate_timestamp(name.timestamp):
            problems.append(
                f"{name.filename}: timestamp {name.timestamp!r} is not 14 digits"
            )
        try:
            validate_track_name(name.track)
        except MalformedNameError as exc:
            problems.append(str(exc))
    if problems:
        raise _fail(path, f"{len(problems)} malformed migration name(s) in {path}", problems)

    tracks = sorted({name.track for name in parsed})
    if track is not None and any(t != track for t in tracks):
        raise _fail(
            path,
            f"directory {path} is expected to hold track {track!r} but contains "
            f"{', '.join(repr(t) for t in tracks)}",
        )
    if len(tracks) > 1:
        raise _fail(
            path,
            f"directory {path} mixes tracks {', '.join(repr(t) for t in tracks)}; "
            "use one directory per track",
        )

    units = _pair(path, parsed)
    units.sort(key=lambda unit: unit.sort_key)

    logger.debug(
        "migration.discovered",
        directory=str(path),
        track=tracks[0] if tracks else track,
        units=len(units),
        validations=sum(1 for unit in units if unit.has_validation),
    )
    return units


def _pair(directory: Path, parsed: list[ParsedName]) -> list[MigrationUnit]:
    """Attach each validation artifact to the SQL unit with the same stem."""
    sql = {name.stem: name for name in parsed if name.kind is PayloadKind.SQL}
    validations = {name.stem: name for name in parsed if name.kind is PayloadKind.VALIDATION}

    orphans = sorted(validations[stem].filename for stem in validations.keys() - sql.keys())
    if orphans:
        raise _fail(
            directory,
            "validation artifact(s) without a matching .sql payload",
            orphans,
        )

    units = []
    for stem, name in sql.items():
        validation = validations.get(stem)
        units.append(
            MigrationUnit(
                filename=name.filename,
                timestamp=name.timestamp,
                track=name.track,
                description=name.description,
                sql_path=directory / name.filename,
                validation_path=directory / validation.filename if validation else None,
            )
        )
    return units


def resolve_track(
    directory: Path | str,
    units: list[MigrationUnit],
    track: str | None = None,
) -> str:
    """Decide the track for a directory, once, at the directory boundary.

    The explicit ``track`` wins; otherwise the units' shared track; for an
    empty directory, the directory's own name.
    """
    if track is not None:
        return validate_track_name(track)
    if units:
        return units[0].track
    name = Path(directory).resolve().name
    try:
        return validate_track_name(name)
    except MalformedNameError as exc:
        raise _fail(
            Path(directory),
            f"cannot infer a track for empty directory {directory}; pass the track explicitly",
        ) from exc


def discover_tree(
    root: Path | str,
    *,
    validation_suffix: str = DEFAULT_VALIDATION_SUFFIX,
    strict_timestamps: bool = True,
) -> dict[str, list[MigrationUnit]]:
    """Discover every track directory directly under ``root``.

    Each immediate sub-directory is one track. Sub-directories without any
    migration files are ignored. Returns ``{track: units}``; use
    ``planner.order_tracks`` for execution order.
    """
    path = Path(root)
    if not path.is_dir():
        raise DirectoryNotFoundError(str(path)).with_context(phase=Phase.DISCOVERING)

    stray = _candidates(path, validation_suffix)
    if stray:
        raise _fail(
            path,
            f"{path} holds migration files directly; run it as a single track "
            "directory or move the files into a track sub-directory",
            stray,
        )

    catalogs: dict[str, list[MigrationUnit]] = {}
    owners: dict[str, Path] = {}
    for subdir in sorted(p for p in path.iterdir() if p.is_dir() and not p.name.startswith(".")):
        units = discover(
            subdir,
            validation_suffix=validation_suffix,
            strict_timestamps=strict_timestamps,
        )
        if not units:
            logger.debug("migration.tree.skip_empty", directory=str(subdir))
            continue
        track = resolve_track(subdir, units)
        if track in catalogs:
            raise _fail(
                path,
                f"track {track!r} is claimed by both {owners[track]} and {subdir}",
            )
        catalogs[track] = units
        owners[track] = subdir
    return catalogs


__all__ = ["discover", "discover_tree", "resolve_track"]
