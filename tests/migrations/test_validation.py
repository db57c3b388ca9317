"""Tests for the validation gate (real ``sh`` scripts under tmp_path)."""

from __future__ import annotations

import pytest

from track_migrate.core.errors import Phase, ValidationFailedError
from track_migrate.migrations.discovery import discover
from track_migrate.migrations.validation import ValidationGate


@pytest.fixture
def gate(connection, base_env) -> ValidationGate:
    return ValidationGate(connection, base_env=base_env)


class TestValidationGate:
    def test_units_without_artifact_pass(self, gate, track_dir, write_unit):
        write_unit(track_dir, "20240101000000_core_a.sql")
        assert gate.validate(discover(track_dir)) == []

    def test_passing_artifact(self, gate, track_dir, write_unit):
        write_unit(track_dir, "20240101000000_core_a.sql")
        write_unit(track_dir, "20240101000000_core_a.sh", "echo ok\nexit 0\n")
        assert gate.validate(discover(track_dir)) == ["20240101000000_core_a.sql"]

    def test_failing_artifact_vetoes(self, gate, track_dir, write_unit):
        write_unit(track_dir, "20240101000000_core_a.sql")
        write_unit(track_dir, "20240101000001_core_b.sql")
        write_unit(track_dir, "20240101000001_core_b.sh", "echo 'users table missing' >&2\nexit 1\n")
        with pytest.raises(ValidationFailedError) as exc:
            gate.validate(discover(track_dir))
        error = exc.value
        assert error.context.migration == "20240101000001_core_b.sql"
        assert error.context.track == "core"
        assert error.context.phase == Phase.VALIDATING
        assert "status 1" in error.reason
        assert "users table missing" in error.reason

    def test_stops_at_first_failure(self, gate, track_dir, write_unit, tmp_path):
        marker = tmp_path / "second-ran"
        write_unit(track_dir, "20240101000000_core_a.sql")
        write_unit(track_dir, "20240101000000_core_a.sh", "exit 1\n")
        write_unit(track_dir, "20240101000001_core_b.sql")
        write_unit(track_dir, "20240101000001_core_b.sh", f"touch {marker}\n")
        with pytest.raises(ValidationFailedError):
            gate.validate(discover(track_dir))
        assert not marker.exists()

    def test_artifact_sees_connection_and_unit(self, gate, track_dir, write_unit, tmp_path):
        out = tmp_path / "env.txt"
        write_unit(track_dir, "20240101000000_core_a.sql")
        write_unit(
            track_dir,
            "20240101000000_core_a.sh",
            f'echo "$PGHOST $PGDATABASE $PGUSER $TRACK_MIGRATE_TRACK $TRACK_MIGRATE_MIGRATION" > {out}\n',
        )
        gate.validate(discover(track_dir))
        assert out.read_text().strip() == "localhost test tester core 20240101000000_core_a.sql"

    def test_artifact_runs_in_its_directory(self, gate, track_dir, write_unit):
        write_unit(track_dir, "20240101000000_core_a.sql")
        write_unit(track_dir, "20240101000000_core_a.sh", "test -f ./20240101000000_core_a.sql\n")
        gate.validate(discover(track_dir))

    def test_missing_interpreter(self, connection, base_env, track_dir, write_unit):
        gate = ValidationGate(connection, interpreter=["no-such-shell-xyz"], base_env=base_env)
        write_unit(track_dir, "20240101000000_core_a.sql")
        write_unit(track_dir, "20240101000000_core_a.sh", "exit 0\n")
        with pytest.raises(ValidationFailedError, match="could not run"):
            gate.validate(discover(track_dir))
