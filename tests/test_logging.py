"""
Tests for structured logging.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from sqlkv.logging import (
    JSONFormatter,
    get_logger,
    get_session_id,
    get_tx_id,
    log_context,
    setup_logging,
)


class TestLogContext:
    """Test scoped logging context."""

    def test_context_set_and_restored(self) -> None:
        assert get_session_id() is None

        with log_context(session_id="kv_1"):
            with log_context(tx_id="tx_1"):
                assert get_session_id() == "kv_1"
                assert get_tx_id() == "tx_1"
            assert get_tx_id() is None

        assert get_session_id() is None


class TestJSONFormatter:
    """Test JSON log lines."""

    def test_format_includes_context_and_extra(self) -> None:
        record = logging.LogRecord("sqlkv.test", logging.INFO, __file__, 1, "Set key", (), None)
        record.extra = {"key": "users:1"}

        with log_context(session_id="kv_1", tx_id="tx_1"):
            line = JSONFormatter().format(record)

        data = json.loads(line)
        assert data["level"] == "INFO"
        assert data["message"] == "Set key"
        assert data["session_id"] == "kv_1"
        assert data["tx_id"] == "tx_1"
        assert data["extra"] == {"key": "users:1"}


class TestSetupLogging:
    """Test handler configuration."""

    def test_file_logging(self, temp_dir: Path) -> None:
        log_file = temp_dir / "logs" / "kv.jsonl"
        setup_logging("DEBUG", log_file, console_output=False)
        logger = get_logger("test_file")

        with log_context(session_id="kv_abc"):
            logger.info("Session opened", location=":memory:")

        for handler in logging.getLogger("sqlkv").handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["logger"] == "sqlkv.test_file"
        assert entry["extra"]["location"] == ":memory:"
        assert entry["session_id"] == "kv_abc"

        setup_logging("WARNING", console_output=False)

    def test_disabled_level_skipped(self, temp_dir: Path) -> None:
        log_file = temp_dir / "kv.jsonl"
        setup_logging("WARNING", log_file, console_output=False)

        get_logger("test_level").debug("hidden")

        assert log_file.read_text() == ""
        setup_logging("WARNING", console_output=False)

    def test_exception_includes_traceback(self, temp_dir: Path) -> None:
        log_file = temp_dir / "kv.jsonl"
        setup_logging("WARNING", log_file, console_output=False)
        logger = get_logger("test_exception")

        try:
            raise RuntimeError("rollback failed")
        except RuntimeError:
            logger.exception("Rollback failed")

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["level"] == "ERROR"
        assert "RuntimeError: rollback failed" in entry["exception"]
        setup_logging("WARNING", console_output=False)
