"""Tests for the logger module."""

import json
import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest
import structlog

from native_vault.audit import logger as audit_logger
from native_vault.audit.logger import (
    LOG_FILE_NAME,
    get_log_dir,
    get_logger,
    reset_logger,
    setup_logging,
)


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    monkeypatch.setattr(Path, "home", lambda: tmp_path)
    return tmp_path


def file_handler() -> RotatingFileHandler:
    for handler in logging.getLogger().handlers:
        if isinstance(handler, RotatingFileHandler):
            return handler
    pytest.fail(
        "No RotatingFileHandler found among handlers: "
        + ", ".join(type(h).__name__ for h in logging.getLogger().handlers)
    )


def test_get_log_dir_default(mock_home):
    """Test get_log_dir with default base_dir."""
    assert get_log_dir() == (mock_home / ".local" / "log").resolve()


def test_get_log_dir_custom_str():
    """Test get_log_dir with custom string path."""
    custom_path = "/test/custom/log"
    assert get_log_dir(custom_path) == Path(custom_path).resolve()


def test_get_log_dir_custom_path():
    """Test get_log_dir with custom Path object."""
    custom_path = Path("/test/custom/log")
    assert get_log_dir(custom_path) == custom_path.resolve()


def test_setup_without_base_dir_writes_no_file(mock_home):
    """Test that only stderr logging is configured without a log directory."""
    setup_logging(log_level="INFO")
    handlers = logging.getLogger().handlers
    assert not any(isinstance(h, RotatingFileHandler) for h in handlers)
    assert any(isinstance(h, logging.StreamHandler) for h in handlers)
    assert not (mock_home / ".local").exists()


def test_get_logger_before_setup_has_no_side_effects(mock_home):
    """Test get_logger does not configure logging on its own."""
    logger = get_logger()
    assert logger is not None
    assert audit_logger._LOGGER_INSTANCE is None
    assert logging.getLogger().handlers == [] or not any(
        isinstance(h, RotatingFileHandler) for h in logging.getLogger().handlers
    )
    assert not (mock_home / ".local").exists()


def test_setup_logging_sets_level_and_correlation_id(tmp_path):
    """Test log level and correlation id are applied."""
    logger = setup_logging(log_level="debug", correlation_id="req-42", base_dir=tmp_path)
    assert logging.getLogger().level == logging.DEBUG
    assert logger._context["correlation_id"] == "req-42"
    assert get_logger() is logger


def test_sensitive_fields_are_masked_in_file(tmp_path):
    """Test module loggers go through the sanitising processor chain."""
    setup_logging(log_level="DEBUG", base_dir=tmp_path)
    structlog.get_logger("native_vault.storage.linux").debug(
        "command_finished", stdin="hunter2", password="hunter2", account="alice"
    )
    file_handler().flush()

    lines = (tmp_path / LOG_FILE_NAME).read_text().splitlines()
    record = json.loads(lines[-1])
    assert record["event"] == "command_finished"
    assert record["stdin"] == "***"
    assert record["password"] == "***"
    assert record["account"] == "alice"
    assert record["logger"] == "native_vault.storage.linux"
    assert "timestamp" in record
    assert "thread" in record
    assert "hunter2" not in "\n".join(lines)


def test_level_filtering(tmp_path):
    """Test records below the configured level are dropped."""
    setup_logging(log_level="WARNING", base_dir=tmp_path)
    log = structlog.get_logger("native_vault.test")
    log.info("quiet")
    log.warning("loud")
    file_handler().flush()

    events = [json.loads(line)["event"] for line in (tmp_path / LOG_FILE_NAME).read_text().splitlines()]
    assert events == ["loud"]


def test_log_rotation(tmp_path):
    """Test that log rotation works correctly."""
    log_dir = tmp_path / "logs"
    max_size = 1024
    backup_count = 3

    logger = setup_logging(
        log_level="INFO",
        max_log_size=max_size,
        backup_count=backup_count,
        base_dir=log_dir,
    )
    handler = file_handler()

    large_msg = "x" * (max_size // 10)
    for i in range(50):
        logger.info(f"test_message_{i}", data=large_msg)
        handler.flush()

    log_files = list(log_dir.glob(f"{LOG_FILE_NAME}*"))
    assert len(log_files) == backup_count + 1
    main_log = log_dir / LOG_FILE_NAME
    assert main_log.exists()
    assert main_log.stat().st_size <= max_size * 1.1


@pytest.mark.skipif(sys.platform == "win32",
                  reason="POSIX permissions not supported on Windows")
def test_logging_directory_permissions(tmp_path):
    """Test log directory permissions are secure."""
    log_dir = tmp_path / "logs"
    setup_logging(base_dir=log_dir, max_log_size=1024, backup_count=2)

    dir_mode = oct(log_dir.stat().st_mode & 0o777)
    assert dir_mode.endswith("750"), f"Expected 750 permissions, got {dir_mode}"

    log_file = Path(file_handler().baseFilename)
    file_mode = oct(log_file.stat().st_mode & 0o777)
    assert file_mode.endswith("640"), f"Expected 640 permissions, got {file_mode}"


def test_reset_logger(tmp_path):
    """Test that reset_logger properly cleans up logger resources."""
    logger = setup_logging(base_dir=tmp_path / "logs")
    assert audit_logger._LOGGER_INSTANCE is logger
    assert len(logging.getLogger().handlers) == 2

    reset_logger()

    assert audit_logger._LOGGER_INSTANCE is None
    assert logging.getLogger().handlers == []


def test_reset_logger_multiple_calls(tmp_path):
    """Test that reset_logger can be called multiple times safely."""
    setup_logging(base_dir=tmp_path / "logs")
    for _ in range(3):
        reset_logger()

    assert audit_logger._LOGGER_INSTANCE is None
    assert logging.getLogger().handlers == []

    new_logger = setup_logging()
    assert get_logger() is new_logger


def test_reset_logger_thread_safety(tmp_path):
    """Test that concurrent setup and reset leave a clean state."""

    def setup_and_reset():
        setup_logging(base_dir=tmp_path / "logs")
        reset_logger()

    threads = [threading.Thread(target=setup_and_reset) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
        assert not t.is_alive(), "Thread failed to complete within timeout"

    reset_logger()
    assert audit_logger._LOGGER_INSTANCE is None
