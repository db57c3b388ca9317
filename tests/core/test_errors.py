"""Tests for track_migrate.core.errors module."""

import pytest

from track_migrate.core.errors import (
    AlreadyAppliedError,
    ClientError,
    ConnectionInvalidError,
    DirectoryNotFoundError,
    DiscoveryError,
    ErrorCategory,
    ErrorContext,
    ExecutionFailedError,
    MalformedNameError,
    MigrateError,
    Phase,
    ValidationFailedError,
)


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_create_empty_context(self):
        ctx = ErrorContext()
        assert ctx.phase is None
        assert ctx.track is None
        assert ctx.metadata == {}
        assert ctx.to_dict() == {}

    def test_to_dict_renders_phase_value(self):
        ctx = ErrorContext(phase=Phase.EXECUTING, track="core", migration="a.sql")
        assert ctx.to_dict() == {"phase": "executing", "track": "core", "migration": "a.sql"}

    def test_metadata_is_merged(self):
        ctx = ErrorContext(track="core", metadata={"attempt": 1})
        assert ctx.to_dict() == {"track": "core", "attempt": 1}


class TestMigrateError:
    """Test the base error."""

    def test_default_category_is_internal(self):
        assert MigrateError("boom").category == ErrorCategory.INTERNAL

    def test_with_context_is_fluent(self):
        error = MigrateError("boom").with_context(track="core", attempt=2)
        assert isinstance(error, MigrateError)
        assert error.context.track == "core"
        assert error.context.metadata == {"attempt": 2}

    def test_cause_is_chained(self):
        original = OSError("disk")
        error = MigrateError("cannot read", cause=original)
        assert error.cause is original
        assert error.__cause__ is original
        assert error.to_dict()["cause"] == "disk"

    def test_describe_includes_phase_track_and_unit(self):
        error = ExecutionFailedError("rolled back").with_context(
            phase=Phase.EXECUTING, track="core", migration="20240101000000_core_a.sql"
        )
        assert error.describe() == (
            "[EXECUTION executing track=core migration=20240101000000_core_a.sql] rolled back"
        )

    def test_describe_without_context(self):
        assert DiscoveryError("mixed tracks").describe() == "[SOURCE] mixed tracks"

    def test_repr(self):
        assert repr(DiscoveryError("x")) == "DiscoveryError('x', category=SOURCE)"


class TestErrorTaxonomy:
    """Each concrete error lands in its category."""

    @pytest.mark.parametrize(
        "error, category",
        [
            (MalformedNameError("x.sql", "bad"), ErrorCategory.PARSE),
            (DirectoryNotFoundError("/nope"), ErrorCategory.SOURCE),
            (DiscoveryError("mixed"), ErrorCategory.SOURCE),
            (ConnectionInvalidError("missing"), ErrorCategory.CONFIG),
            (ClientError("no psql"), ErrorCategory.CLIENT),
            (ValidationFailedError("a.sql", "exit 1"), ErrorCategory.VALIDATION),
            (AlreadyAppliedError("core", "dup"), ErrorCategory.INTEGRITY),
            (ExecutionFailedError("failed"), ErrorCategory.EXECUTION),
        ],
    )
    def test_categories(self, error, category):
        assert error.category == category
        assert isinstance(error, MigrateError)

    def test_malformed_name_shows_empty_placeholder(self):
        error = MalformedNameError("", "filename is empty")
        assert "'<empty>'" in error.message
        assert error.reason == "filename is empty"

    def test_directory_not_found_sets_directory(self):
        assert DirectoryNotFoundError("/nope").context.directory == "/nope"

    def test_validation_failed_names_unit_and_phase(self):
        error = ValidationFailedError("a.sql", "exit 1", stderr="oops")
        assert error.context.migration == "a.sql"
        assert error.context.phase == Phase.VALIDATING
        assert error.stderr == "oops"

    def test_already_applied_names_track(self):
        error = AlreadyAppliedError("core", "Key (migration_name)=(a.sql) already exists")
        assert error.context.track == "core"
        assert error.context.phase == Phase.EXECUTING
        assert "concurrently" in error.message

    def test_connection_invalid_lists_missing(self):
        assert ConnectionInvalidError("x", missing=["host"]).missing == ["host"]

    def test_execution_failed_to_dict_includes_process_details(self):
        data = ExecutionFailedError("failed", returncode=3, stderr="ERROR: x").to_dict()
        assert data["returncode"] == 3
        assert data["stderr"] == "ERROR: x"
        assert data["error_type"] == "ExecutionFailedError"
