"""Secure audit logging framework."""

import inspect
import logging
import os
import sys
import threading
import uuid
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict

LOG_FILE_NAME = "native-vault.log"

SENSITIVE_KEYS = frozenset(
    {"password", "secret", "token", "stdin", "stdout", "credential"}
)

# Global instances
_LOGGER_INSTANCE = None
_logger_lock = threading.Lock()


def get_log_dir(base_dir: str | Path | None = None) -> Path:
    """Get normalized log directory path.

    Args:
        base_dir: Base directory for logs. If None, uses ~/.local/log

    Returns:
        Resolved Path object for log directory
    """
    if base_dir is None:
        base_dir = Path.home() / ".local" / "log"
    return Path(base_dir).resolve()


def create_secure_handler(
    log_path: Path, max_bytes: int, backup_count: int
) -> RotatingFileHandler:
    """Create a RotatingFileHandler whose file is readable by owner and group only.

    Args:
        log_path: Path to the log file
        max_bytes: Maximum size of each log file
        backup_count: Number of backup files to keep

    Returns:
        Configured RotatingFileHandler instance
    """
    os.makedirs(log_path.parent, mode=0o750, exist_ok=True)

    # Create the file first so the mode applies before anything is written
    if not log_path.exists():
        log_path.touch(mode=0o640)
    os.chmod(log_path, 0o640)

    return RotatingFileHandler(
        str(log_path), maxBytes=max_bytes, backupCount=backup_count
    )


def add_timestamp(
    _: structlog.BoundLogger, __: str, event_dict: EventDict
) -> EventDict:
    """Add ISO 8601 timestamp."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def add_thread_info(
    _: structlog.BoundLogger, __: str, event_dict: EventDict
) -> EventDict:
    """Add thread information."""
    result: EventDict = dict(event_dict)
    thread = threading.current_thread()
    result["thread"] = {
        "id": thread.ident,
        "name": thread.name,
    }
    return result


def sanitize_keys(
    event_dict: dict[str, Any], sensitive_keys: set[str] | frozenset[str]
) -> dict[str, Any]:
    """Sanitize dictionary by redacting sensitive keys, \
   using case-insensitive matching and handling nested structures.

    Args:
        event_dict: Dictionary to sanitize
        sensitive_keys: Set of keys to redact

    Returns:
        Sanitized copy of the dictionary
    """

    def _sanitize_value(key: str, value: Any) -> Any:
        if any(sk.lower() == key.lower() for sk in sensitive_keys):
            return "***"
        if isinstance(value, dict):
            return sanitize_keys(value, sensitive_keys)
        if isinstance(value, list):
            return [_sanitize_value("", item) for item in value]
        return value

    return {k: _sanitize_value(k, v) for k, v in event_dict.items()}


def sanitize_event_dict(
    _: structlog.BoundLogger, __: str, event_dict: EventDict
) -> dict[str, Any]:
    """Sanitize log record keys and values, recursively masking sensitive data."""
    return sanitize_keys(dict(event_dict), SENSITIVE_KEYS)


def configure_logger(
    log_level: str = "WARNING",
    correlation_id: str | None = None,
    max_log_size: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 3,
    base_dir: str | Path | None = None,
) -> structlog.BoundLogger:
    """Configure and return a new logger instance.

    This is a low-level function that creates a new logger configuration.
    For normal usage, prefer setup_logging() which properly handles the global instance.

    Args:
        log_level: Log level (default: WARNING)
        correlation_id: Optional correlation ID for request tracing
        max_log_size: Maximum size of a log file before rotation
        backup_count: Number of backup files to keep
        base_dir: Directory for the log file. No file is written when None.

    Returns:
        A properly configured structlog.BoundLogger instance
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            add_timestamp,
            add_thread_info,
            sanitize_event_dict,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    # Records are already rendered to JSON by structlog
    formatter = logging.Formatter("%(message)s")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if base_dir is not None:
        log_file = get_log_dir(base_dir) / LOG_FILE_NAME
        file_handler = create_secure_handler(log_file, max_log_size, backup_count)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logger = structlog.get_logger("native_vault")
    result: structlog.BoundLogger = logger.bind(
        correlation_id=correlation_id or str(uuid.uuid4())
    )
    return result


def setup_logging(
    *,
    log_level: str = "WARNING",
    correlation_id: str | None = None,
    max_log_size: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 3,
    base_dir: str | Path | None = None,
) -> structlog.BoundLogger:
    """Setup structured logging.

    Replaces any handlers on the root logger and stores the returned logger
    as the instance used by :func:`audit_event`.

    Args:
        log_level: Log level (default: WARNING)
        correlation_id: Optional correlation ID for request tracing
        max_log_size: Maximum size of a log file before rotation
        backup_count: Number of backup files to keep
        base_dir: Optional directory for a rotating ``native-vault.log``

    Returns:
        The configured logger instance.
    """
    global _LOGGER_INSTANCE

    new_logger = configure_logger(
        log_level=log_level,
        correlation_id=correlation_id,
        max_log_size=max_log_size,
        backup_count=backup_count,
        base_dir=base_dir,
    )

    with _logger_lock:
        _LOGGER_INSTANCE = new_logger
    return new_logger


def get_logger() -> structlog.BoundLogger:
    """Get configured logger instance.

    Returns the logger stored by :func:`setup_logging` so context like
    correlation_id is preserved across calls. Before logging is set up this
    is a plain structlog logger using whatever configuration is active.
    """
    with _logger_lock:
        if _LOGGER_INSTANCE is not None:
            return _LOGGER_INSTANCE
    return structlog.get_logger("native_vault.audit")


def reset_logger() -> None:
    """Reset logger state.

    Closes and removes root handlers, restores structlog defaults and clears
    the global logger instance. Safe to call repeatedly.
    """
    global _LOGGER_INSTANCE
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    structlog.reset_defaults()

    with _logger_lock:
        _LOGGER_INSTANCE = None


def audit_event(
    *,
    event_type: str,
    user: str,
    success: bool,
    details: dict[str, Any] | None = None,
    error: Exception | None = None,
) -> None:
    """Log an audit event.

    Args:
        event_type: Type of event (e.g., "credential.create")
        user: Account the operation acted on
        success: Whether the operation succeeded
        details: Optional event details
        error: Optional exception if operation failed
    """
    logger = get_logger()

    event: dict[str, Any] = {
        "event_type": str(getattr(event_type, "value", event_type)),
        "user": user,
        "success": success,
    }

    frame = inspect.currentframe()
    if frame is not None and frame.f_back is not None:
        event["caller"] = {
            "file": frame.f_back.f_code.co_filename,
            "line": frame.f_back.f_lineno,
            "function": frame.f_back.f_code.co_name,
        }

    if details:
        event["details"] = sanitize_keys(details, SENSITIVE_KEYS)

    if error:
        event["error"] = {
            "type": type(error).__name__,
            "message": str(error),
        }

    logger = logger.bind(**event)

    if success:
        logger.info("audit_event")
    else:
        logger.error("audit_event")
