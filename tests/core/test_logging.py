"""Tests for track_migrate.core.logging."""

import json

import structlog

from track_migrate.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


class TestLogContext:
    def teardown_method(self):
        clear_context()

    def test_binds_and_unbinds(self):
        with LogContext(track="core", phase="executing"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["track"] == "core"
            assert bound["phase"] == "executing"
        assert "track" not in structlog.contextvars.get_contextvars()

    def test_keeps_outer_context(self):
        bind_context(run="r1")
        with LogContext(track="core"):
            pass
        assert structlog.contextvars.get_contextvars() == {"run": "r1"}


class TestConfigureLogging:
    def teardown_method(self):
        structlog.reset_defaults()
        clear_context()

    def test_json_output_goes_to_stderr(self, capsys):
        configure_logging(level="INFO", json_format=True)
        with LogContext(track="core"):
            get_logger("test").info("migration.plan.empty", directory="db/core")
        captured = capsys.readouterr()
        assert captured.out == ""
        event = json.loads(captured.err.strip().splitlines()[-1])
        assert event["event"] == "migration.plan.empty"
        assert event["track"] == "core"
        assert event["service.name"] == "track-migrate"
        assert "@timestamp" in event
        assert event["log.level"] == "info"

    def test_level_filters(self, capsys):
        configure_logging(level="WARNING", json_format=True)
        get_logger("test").info("hidden")
        assert "hidden" not in capsys.readouterr().err
