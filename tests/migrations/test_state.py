"""Tests for the applied-state store."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from track_migrate.core.errors import AlreadyAppliedError, MalformedNameError
from track_migrate.migrations.models import MigrationUnit
from track_migrate.migrations.state import AppliedStateStore, quote_literal


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def mock_store(client):
    return AppliedStateStore(client)


def _unit(filename: str = "20240101000000_core_init.sql") -> MigrationUnit:
    return MigrationUnit(
        filename=filename,
        timestamp="20240101000000",
        track="core",
        description="init",
        sql_path=Path(filename),
    )


class TestNaming:
    def test_table_name(self, mock_store):
        assert mock_store.table_name("core") == "migration_track_core"

    def test_rejects_uppercase_track(self, mock_store):
        with pytest.raises(MalformedNameError):
            mock_store.table_name("Core")

    def test_custom_prefix(self, client):
        assert AppliedStateStore(client, "schema_").table_name("core") == "schema_core"

    def test_constraint_name(self, mock_store):
        assert mock_store.constraint_name("core") == "migration_track_core_migration_name_key"

    def test_rejects_invalid_track(self, mock_store):
        with pytest.raises(MalformedNameError):
            mock_store.table_name("my-track")

    def test_rejects_track_too_long_for_identifier(self, mock_store):
        with pytest.raises(MalformedNameError, match="too long"):
            mock_store.table_name("a" * 40)

    def test_quote_literal(self):
        assert quote_literal("it's") == "'it''s'"


class TestSchema:
    def test_create_table_sql(self, mock_store):
        sql = mock_store.create_table_sql("core")
        assert sql.startswith("CREATE TABLE IF NOT EXISTS migration_track_core (")
        assert "migration_name TEXT NOT NULL" in sql
        assert "CONSTRAINT migration_track_core_migration_name_key UNIQUE (migration_name)" in sql

    def test_ensure_track_table_executes_create(self, mock_store, client):
        mock_store.ensure_track_table("core")
        client.execute.assert_called_once_with(mock_store.create_table_sql("core"))


class TestReads:
    def test_applied_names_without_table(self, mock_store, client):
        client.query.return_value = [["f"]]
        assert mock_store.applied_names("core") == set()
        client.execute.assert_not_called()
        assert client.query.call_count == 1

    def test_applied_names(self, mock_store, client):
        client.query.side_effect = [[["t"]], [["a.sql"], ["b.sql"]]]
        assert mock_store.applied_names("core") == {"a.sql", "b.sql"}
        assert client.query.call_args.args[0] == "SELECT migration_name FROM migration_track_core"

    def test_history(self, mock_store, client):
        client.query.side_effect = [
            [["t"]],
            [
                ["a.sql", "ab" * 32, "2024-01-01T00:00:00.000Z", "12"],
                ["b.sql", "cd" * 32, "2024-01-01T00:00:01.000Z", ""],
            ],
        ]
        records = mock_store.history("core")
        assert [r.migration_name for r in records] == ["a.sql", "b.sql"]
        assert records[0].execution_time_ms == 12
        assert records[1].execution_time_ms is None
        assert "ORDER BY applied_at, id" in client.query.call_args.args[0]

    def test_history_without_table(self, mock_store, client):
        client.query.return_value = [["f"]]
        assert mock_store.history("core") == []


class TestBookkeeping:
    def test_record_applied_sql(self, mock_store):
        sql = mock_store.record_applied_sql("core", _unit(), "ab" * 32)
        assert sql == (
            "INSERT INTO migration_track_core (migration_name, migration_hash, execution_time_ms)\n"
            f"VALUES ('20240101000000_core_init.sql', '{'ab' * 32}', NULL);"
        )

    def test_record_applied_sql_quotes_name(self, mock_store):
        sql = mock_store.record_applied_sql("core", _unit("20240101000000_core_o'neil.sql"), "00")
        assert "'20240101000000_core_o''neil.sql'" in sql

    def test_classify_unique_violation(self, mock_store):
        stderr = (
            'psql:<stdin>:9: ERROR:  duplicate key value violates unique constraint '
            '"migration_track_core_migration_name_key"\n'
            "DETAIL:  Key (migration_name)=(20240101000000_core_init.sql) already exists.\n"
        )
        error = mock_store.classify_failure("core", stderr)
        assert isinstance(error, AlreadyAppliedError)
        assert error.context.migration == "20240101000000_core_init.sql"
        assert error.detail.startswith("Key (migration_name)=")

    def test_other_unique_violation_is_not_already_applied(self, mock_store):
        stderr = 'ERROR:  duplicate key value violates unique constraint "users_email_key"\n'
        assert mock_store.classify_failure("core", stderr) is None

    def test_other_track_constraint_is_ignored(self, mock_store):
        stderr = (
            'ERROR:  duplicate key value violates unique constraint '
            '"migration_track_impl_migration_name_key"\n'
        )
        assert mock_store.classify_failure("core", stderr) is None
