"""Execution planner: catalog minus applied state, in deterministic order."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from track_migrate.migrations.models import MigrationUnit, TrackPlan

CORE_TRACK = "core"


def plan(catalog: list[MigrationUnit], applied: set[str] | frozenset[str]) -> list[MigrationUnit]:
    """Return the units of ``catalog`` whose filename is not in ``applied``.

    Discovery order is preserved. Applied state is decided by name alone;
    a unit whose file changed after it was applied is still applied.
    """
    return [unit for unit in catalog if unit.filename not in applied]


def order_tracks(tracks: Iterable[str]) -> list[str]:
    """``core`` first, every other track alphabetically."""
    unique = set(tracks)
    ordered = sorted(unique - {CORE_TRACK})
    if CORE_TRACK in unique:
        ordered.insert(0, CORE_TRACK)
    return ordered


def plan_tracks(
    catalogs: Mapping[str, list[MigrationUnit]],
    applied: Mapping[str, set[str]],
) -> list[TrackPlan]:
    """Plan several tracks at once.

    Each track's pending subset is computed independently and the groups are
    concatenated in ``order_tracks`` order; units of different tracks are
    never interleaved by timestamp.
    """
    return [
        TrackPlan(
            track=track,
            pending=plan(catalogs[track], applied.get(track, set())),
            catalog_size=len(catalogs[track]),
        )
        for track in order_tracks(catalogs)
    ]


def flatten(plans: list[TrackPlan]) -> list[MigrationUnit]:
    """The cross-track pending list, in execution order."""
    return [unit for track_plan in plans for unit in track_plan.pending]


__all__ = ["CORE_TRACK", "plan", "order_tracks", "plan_tracks", "flatten"]
