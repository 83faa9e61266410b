"""
Logging configuration for digquest-sync.

Every CLI run writes to the console and to three files:
    - Console: Real-time messages with tqdm-compatible formatting
    - log_full_<ts>.log: Complete log of all events (DEBUG and above)
    - log_errors_<ts>.log: Only ERROR and CRITICAL level messages
    - storage_failures_<ts>.log: Storage keys that could not be read or written

The sync layer degrades silently for the end user (a broken cache falls back
to the server view), so the log files are the only place where storage
failures and rejected entities become visible.

Usage:
    from digquest_sync.core.logger import setup_logging, get_logger

    setup_logging(config.logging.directory, config.logging.level)
    logger = get_logger(__name__)

    logger.info("Reconciling finds")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, TextIO

from tqdm import tqdm


FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Colors:
    """ANSI escape sequences used by the console formatter."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    WHITE = "\033[37m"


class ColoredConsoleFormatter(logging.Formatter):
    """Console formatter: '<LEVEL>: <message>' with the level name colored."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        return f"{color}{record.levelname}{Colors.RESET}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Console handler that prints through tqdm.write().

    The `optimize` command shows a progress bar while images are processed;
    tqdm.write() prints above an active bar instead of through it.

    Args:
        stream: Target stream. Defaults to sys.stderr as it is at emit time.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream or sys.stderr)
        except Exception:
            self.handleError(record)


class StorageFailureHandler(logging.Handler):
    """
    Writes storage failures to the storage_failures report.

    Each failure becomes one block:

        write finds_data_42
        quota exceeded: 5242880 bytes

        read map_locations
        database disk image is malformed

    Records are picked up only when they carry the extra fields set by
    log_storage_failure(): 'storage_failed_operation', 'storage_failed_key'
    and 'storage_failed_reason'. Everything else is ignored.
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Create (or truncate) the report file. Called by setup_logging()."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if self.report_file is None or not hasattr(record, "storage_failed_key"):
            return

        try:
            operation = getattr(record, "storage_failed_operation", "unknown")
            reason = getattr(record, "storage_failed_reason", "")
            self.report_file.write(f"{operation} {record.storage_failed_key}\n{reason}\n\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """Close the report file. Idempotent."""
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def _file_handler(path: Path, *filters: logging.Filter) -> logging.FileHandler:
    """DEBUG-level file handler with the detailed file format."""
    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    for log_filter in filters:
        handler.addFilter(log_filter)
    return handler


def setup_logging(log_dir: Path, level: str = "INFO") -> None:
    """
    Route all digquest-sync logging to the console and three run files.

    Call once per CLI invocation, after load_config() and before the
    store is opened, so that failures while opening it are captured.

    Args:
        log_dir: Directory receiving the run files (created if missing).
        level: Console threshold (DEBUG, INFO, WARNING, ERROR). The files
               always record from DEBUG up.

    Any handlers already attached to the root logger are discarded, so a
    second call replaces the previous run's files instead of duplicating
    output. Not thread-safe.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    run_stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    console = TqdmLoggingHandler()
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(ColoredConsoleFormatter())

    storage_report = StorageFailureHandler(log_dir / f"storage_failures_{run_stamp}.log")
    storage_report.open()

    for handler in (
        console,
        _file_handler(log_dir / f"log_full_{run_stamp}.log"),
        _file_handler(log_dir / f"log_errors_{run_stamp}.log", ErrorOnlyFilter()),
        storage_report,
    ):
        root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """
    Return the module logger for name (normally __name__).

    Modules call this at import time. Until setup_logging() runs, records
    propagate to whatever handlers the host application installed.
    """
    return logging.getLogger(name)


def log_storage_failure(
    logger: logging.Logger,
    operation: str,
    key: str,
    reason: str
) -> None:
    """
    Log a storage operation that failed.

    Logs an ERROR level message and attaches the extra fields that
    StorageFailureHandler uses to write to storage_failures.log.

    Args:
        logger: The logger to use for the message.
        operation: 'read', 'write' or 'delete'.
        key: The storage key involved.
        reason: Description of why the operation failed.
    """
    logger.error(
        f"Storage {operation} failed for key '{key}': {reason}",
        extra={
            "storage_failed_operation": operation,
            "storage_failed_key": key,
            "storage_failed_reason": reason,
        }
    )


def log_rejected_entity(logger: logging.Logger, kind: str, entity: Any) -> None:
    """
    Log an entity that was refused by a storage write.

    Used when a record has no id: it cannot be keyed, so it is dropped
    and the caller is not otherwise notified.
    """
    logger.error(f"Cannot save {kind} without an id: {entity!r}")


def shutdown_logging() -> None:
    """Detach and close every root handler. The CLI calls this in a finally block."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
