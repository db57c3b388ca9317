"""Tests for migration file generation."""

from __future__ import annotations

import os
from datetime import datetime, timezone

import pytest

from track_migrate.core.errors import DiscoveryError, MalformedNameError
from track_migrate.migrations.discovery import discover
from track_migrate.migrations.scaffold import new_migration, slugify

NOW = datetime(2024, 3, 5, 14, 30, 7, tzinfo=timezone.utc)


class TestSlugify:
    @pytest.mark.parametrize(
        "description, slug",
        [
            ("Add custom fields", "add_custom_fields"),
            ("  users -> roles!  ", "users_roles"),
            ("already_snake", "already_snake"),
        ],
    )
    def test_slugify(self, description, slug):
        assert slugify(description) == slug

    def test_nothing_usable(self):
        with pytest.raises(MalformedNameError):
            slugify("!!!")


class TestNewMigration:
    def test_creates_discoverable_file(self, track_dir):
        (path,) = new_migration(track_dir, "Create users", now=NOW)
        assert path.name == "20240305143007_core_create_users.sql"
        assert "-- Migration: Create users" in path.read_text(encoding="utf-8")
        assert [u.filename for u in discover(track_dir)] == [path.name]

    def test_track_from_existing_units(self, tmp_path, write_unit):
        d = tmp_path / "migrations"
        d.mkdir()
        write_unit(d, "20240101000000_impl_a.sql")
        (path,) = new_migration(d, "b", now=NOW)
        assert path.name.startswith("20240305143007_impl_")

    def test_creates_missing_directory(self, tmp_path):
        (path,) = new_migration(tmp_path / "acme", "branding", now=NOW)
        assert path.parent.is_dir()
        assert "_acme_branding" in path.name

    def test_with_validation_stub(self, track_dir):
        sql, check = new_migration(track_dir, "roles", now=NOW, with_validation=True)
        assert check.name == "20240305143007_core_roles.sh"
        assert os.access(check, os.X_OK)
        assert discover(track_dir)[0].validation_path == check

    def test_converts_to_utc(self, track_dir):
        local = datetime(2024, 3, 5, 16, 30, 7).astimezone()
        (path,) = new_migration(track_dir, "x", now=local)
        expected = local.astimezone(timezone.utc).strftime("%Y%m%d%H%M%S")
        assert path.name.startswith(expected)

    def test_refuses_to_overwrite(self, track_dir):
        new_migration(track_dir, "users", now=NOW)
        with pytest.raises(DiscoveryError, match="refusing to overwrite"):
            new_migration(track_dir, "users", now=NOW)

    def test_explicit_track_must_fit_directory(self, track_dir, write_unit):
        write_unit(track_dir, "20240101000000_core_a.sql")
        with pytest.raises(DiscoveryError):
            new_migration(track_dir, "x", track="impl", now=NOW)
