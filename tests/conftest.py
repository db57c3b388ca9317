"""
Shared pytest fixtures and configuration for track-migrate tests.

This module provides:
- Path-based ``unit`` / ``integration`` markers
- Helpers to lay out migration directories under ``tmp_path``
- A wired ``MigrationEngine`` on top of the in-memory fake psql client

Usage:
    def test_something(track_dir, write_unit, engine, fake_client):
        write_unit(track_dir, "20240101000000_core_init.sql", "SELECT 1;")
        report = engine.run(track_dir)
"""

from __future__ import annotations

import os
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from tests._support.fake_psql import FakePsqlClient
from track_migrate.core.settings import ConnectionConfig
from track_migrate.migrations.engine import MigrationEngine
from track_migrate.migrations.executor import AtomicExecutor
from track_migrate.migrations.state import AppliedStateStore
from track_migrate.migrations.validation import ValidationGate

FIXTURES_DIR = Path(__file__).parent / "fixtures"


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Migration Directory Fixtures
# =============================================================================


@pytest.fixture
def fixtures_dir() -> Path:
    """Checked-in sample migrations (``core`` and ``impl`` tracks)."""
    return FIXTURES_DIR / "migrations"


@pytest.fixture
def track_dir(tmp_path: Path) -> Path:
    """Empty ``core`` track directory."""
    d = tmp_path / "core"
    d.mkdir()
    return d


@pytest.fixture
def write_unit() -> Callable[..., Path]:
    """Write a migration file (SQL or validation script) and return its path."""

    def _write(directory: Path, filename: str, body: str = "SELECT 1;\n") -> Path:
        path = directory / filename
        path.write_text(textwrap.dedent(body), encoding="utf-8")
        return path

    return _write


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def connection() -> ConnectionConfig:
    return ConnectionConfig(host="localhost", database="test", user="tester")


@pytest.fixture
def base_env() -> dict[str, str]:
    """Minimal environment for child processes (``sh`` must be on PATH)."""
    return {"PATH": os.environ.get("PATH", "/usr/bin:/bin")}


@pytest.fixture
def fake_client() -> FakePsqlClient:
    return FakePsqlClient()


@pytest.fixture
def store(fake_client: FakePsqlClient) -> AppliedStateStore:
    return AppliedStateStore(fake_client)


@pytest.fixture
def engine(
    fake_client: FakePsqlClient,
    store: AppliedStateStore,
    connection: ConnectionConfig,
    base_env: dict[str, str],
) -> MigrationEngine:
    """MigrationEngine wired to the fake client and a real validation gate."""
    return MigrationEngine(
        fake_client,
        store,
        ValidationGate(connection, base_env=base_env),
        AtomicExecutor(fake_client, store),
    )
