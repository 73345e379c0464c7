"""Tests for structured logging configuration."""

import json
import logging
import logging.handlers
import pathlib

import pytest
import structlog

import nexus_chat.telemetry.logger as logger_module
from nexus_chat.config import AppConfig
from nexus_chat.telemetry.logger import configure_logging, get_logger


@pytest.fixture
def log_dir(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> pathlib.Path:
    """Point the logger at a temporary directory and reset structlog."""
    directory = tmp_path / "logs"
    monkeypatch.setattr(logger_module, "_get_log_dir", lambda: directory)
    monkeypatch.setattr(logger_module, "_get_log_level", lambda: "DEBUG")
    structlog.reset_defaults()
    logging.root.handlers.clear()
    yield directory
    structlog.reset_defaults()
    logging.root.handlers.clear()


def _console_handler() -> logging.Handler:
    [handler] = [
        h
        for h in logging.getLogger().handlers
        if not isinstance(h, logging.handlers.RotatingFileHandler)
    ]
    return handler


def _last_entry(log_dir: pathlib.Path) -> dict:
    lines = (log_dir / "current.jsonl").read_text(encoding="utf-8").splitlines()
    assert lines
    return json.loads(lines[-1])


class TestLoggerConfiguration:
    """Test logger configuration and setup."""

    def test_get_logger_returns_bound_logger(self) -> None:
        """Test that get_logger returns a logger that can be used."""
        log = get_logger(__name__)
        assert hasattr(log, "info")
        assert hasattr(log, "error")
        assert hasattr(log, "warning")

    def test_get_logger_configures_on_first_call(self, log_dir: pathlib.Path) -> None:
        """Test that get_logger configures logging on first call."""
        assert not structlog.is_configured()
        get_logger("test.module1")
        assert structlog.is_configured()

    def test_logger_emits_structured_logs(self, log_dir: pathlib.Path) -> None:
        """Test that logger emits structured JSON logs to file."""
        configure_logging()

        log = get_logger("test.component")
        log.info("test_event", key1="value1", key2=42, trace_id="trace-123")

        entry = _last_entry(log_dir)
        assert entry["event"] == "test_event"
        assert entry["key1"] == "value1"
        assert entry["key2"] == 42
        assert entry["trace_id"] == "trace-123"
        assert "timestamp" in entry
        assert entry["component"] == "component"

    def test_logger_handles_nested_module_names(self, log_dir: pathlib.Path) -> None:
        """Test that logger extracts component from nested module names."""
        configure_logging()

        get_logger("nexus_chat.orchestrator.executor").info("test_event")

        assert _last_entry(log_dir)["component"] == "executor"

    def test_file_handler_skips_debug(self, log_dir: pathlib.Path) -> None:
        """Test that the JSON file only captures INFO and above."""
        configure_logging()
        log = get_logger("test.levels")

        log.info("kept_event")
        log.debug("dropped_event")

        assert _last_entry(log_dir)["event"] == "kept_event"

    def test_logger_creates_log_directory(self, log_dir: pathlib.Path) -> None:
        """Test that logger creates log directory if it doesn't exist."""
        assert not log_dir.exists()
        configure_logging()
        assert log_dir.exists()

    def test_httpx_logger_capped_at_warning(self, log_dir: pathlib.Path) -> None:
        """Test that noisy transport loggers are quieted."""
        configure_logging()
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_unwritable_log_dir_falls_back_to_console(
        self, log_dir: pathlib.Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a log directory that cannot be created leaves console logging."""

        def fail(directory: pathlib.Path) -> None:
            raise PermissionError(f"cannot create {directory}")

        monkeypatch.setattr(logger_module, "_configure_file_handler", fail)

        configure_logging()

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert not isinstance(handlers[0], logging.handlers.RotatingFileHandler)


class TestLoggerSettings:
    """Test that log settings change the handlers."""

    def test_json_console_format_from_settings(
        self, log_dir: pathlib.Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        configure_logging(AppConfig(log_format="json", log_dir=log_dir))

        get_logger("test.console").info("console_event", count=3)

        entry = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert entry["event"] == "console_event"
        assert entry["count"] == 3

    def test_pretty_console_format_keeps_json_file(
        self, log_dir: pathlib.Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        configure_logging(AppConfig(log_format="console", log_dir=log_dir))

        get_logger("test.console").info("pretty_event")

        last_line = capsys.readouterr().err.strip().splitlines()[-1]
        assert "pretty_event" in last_line
        assert not last_line.startswith("{")
        assert _last_entry(log_dir)["event"] == "pretty_event"

    def test_log_format_from_environment(
        self,
        log_dir: pathlib.Path,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("NEXUS_LOG_FORMAT", "json")
        configure_logging()

        get_logger("test.env").warning("env_event")

        entry = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert entry["event"] == "env_event"

    def test_levels_from_settings(self, log_dir: pathlib.Path) -> None:
        configure_logging(AppConfig(log_level="warning", log_dir=log_dir))
        assert _console_handler().level == logging.WARNING

        configure_logging(AppConfig(log_level="warning", debug=True, log_dir=log_dir))
        assert _console_handler().level == logging.DEBUG

    def test_log_dir_from_settings(self, tmp_path: pathlib.Path, log_dir: pathlib.Path) -> None:
        directory = tmp_path / "configured"

        configure_logging(AppConfig(log_dir=directory))

        assert (directory / "current.jsonl").exists()
        assert not log_dir.exists()
