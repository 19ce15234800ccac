"""Tests for logger.py: setup_logging() and JsonFormatter.

Covers:
- CLI mode logging (stderr handler, optional file handler)
- MCP mode logging (file handler only, never stdout)
- Debug level override and LOG_LEVEL handling
- JSON formatter output
- Third-party logger silencing

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

from outline_sync.logger import DEFAULT_MCP_LOG_FILE, JsonFormatter, setup_logging


def _close(handlers) -> None:
    for handler in handlers:
        handler.close()


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("outline_sync.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging(mode="cli")

        kwargs = mock_basic.call_args[1]
        handlers = kwargs["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr
        assert kwargs["level"] == logging.INFO

    @patch("outline_sync.logger.logging.basicConfig")
    def test_cli_mode_with_log_file(self, mock_basic, tmp_path):
        log_file = tmp_path / "cli.log"
        setup_logging(mode="cli", log_file=str(log_file))

        handlers = mock_basic.call_args[1]["handlers"]
        try:
            assert len(handlers) == 2
            assert isinstance(handlers[1], logging.FileHandler)
            assert handlers[1].baseFilename == str(log_file)
        finally:
            _close(handlers)

    @patch("outline_sync.logger.logging.basicConfig")
    def test_mcp_mode_logs_to_file_only(self, mock_basic, tmp_path, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        log_file = tmp_path / "mcp.log"
        setup_logging(mode="mcp", log_file=str(log_file))

        kwargs = mock_basic.call_args[1]
        handlers = kwargs["handlers"]
        try:
            assert len(handlers) == 1
            assert isinstance(handlers[0], logging.FileHandler)
            assert handlers[0].baseFilename == str(log_file)
            assert kwargs["level"] == logging.WARNING
        finally:
            _close(handlers)

    @patch("outline_sync.logger.logging.basicConfig")
    def test_mcp_mode_log_file_from_env(self, mock_basic, tmp_path, monkeypatch):
        log_file = tmp_path / "env.log"
        monkeypatch.setenv("LOG_FILE", str(log_file))
        setup_logging(mode="mcp")

        handlers = mock_basic.call_args[1]["handlers"]
        try:
            assert handlers[0].baseFilename == str(log_file)
        finally:
            _close(handlers)

    def test_default_mcp_log_file(self):
        assert DEFAULT_MCP_LOG_FILE == "/tmp/outline-sync.log"

    @patch("outline_sync.logger.logging.basicConfig")
    def test_debug_beats_env(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(mode="cli", debug=True)
        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("outline_sync.logger.logging.basicConfig")
    def test_env_log_level_honored(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "error")
        setup_logging(mode="cli")
        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("outline_sync.logger.logging.basicConfig")
    def test_unknown_env_level_falls_back_to_info(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")
        setup_logging(mode="cli")
        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("outline_sync.logger.logging.basicConfig")
    def test_json_format(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")
        handler = mock_basic.call_args[1]["handlers"][0]
        assert isinstance(handler.formatter, JsonFormatter)

    @patch("outline_sync.logger.logging.basicConfig")
    def test_third_party_silenced(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        for name in ("charset_normalizer", "mcp"):
            logging.getLogger(name).setLevel(logging.NOTSET)

        setup_logging(mode="cli")

        assert logging.getLogger("charset_normalizer").level == logging.WARNING
        assert logging.getLogger("mcp").level == logging.WARNING

    @patch("outline_sync.logger.logging.basicConfig")
    def test_third_party_not_silenced_in_debug(self, mock_basic):
        logging.getLogger("charset_normalizer").setLevel(logging.NOTSET)
        setup_logging(mode="cli", debug=True)
        assert logging.getLogger("charset_normalizer").level == logging.NOTSET


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def _record(self, msg: str, exc_info=None) -> logging.LogRecord:
        return logging.LogRecord(
            name="outline_sync.sync.engine",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg=msg,
            args=("p1",),
            exc_info=exc_info,
        )

    def test_single_line_json(self):
        output = JsonFormatter().format(self._record("Imported project %s"))
        assert "\n" not in output
        entry = json.loads(output)
        assert entry["level"] == "INFO"
        assert entry["logger"] == "outline_sync.sync.engine"
        assert entry["msg"] == "Imported project p1"
        assert "ts" in entry
        assert "exc" not in entry

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            exc_info = sys.exc_info()
        entry = json.loads(JsonFormatter().format(self._record("Failed %s", exc_info)))
        assert "RuntimeError: boom" in entry["exc"]
