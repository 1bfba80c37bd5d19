"""
Structured logging for CaseKeeper.

Console and daily file output, keyword context rendered as JSON, and a
small set of counters for ranking, provider and snapshot activity.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from . import config

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

COUNTERS = ("rank_calls", "provider_failures", "snapshot_merges", "records_deduplicated")


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=DATE_FORMAT))
    return handler


def log_file_path(log_dir: Path) -> Path:
    """One file per day: casekeeper_YYYYMMDD.log."""
    return log_dir / f"casekeeper_{datetime.now():%Y%m%d}.log"


class StructuredLogger:
    """
    Logger for the CLI and command handlers.

    Keyword arguments passed to the level methods are appended to the
    message as JSON, with Hangul and other non-ASCII text kept readable.
    """

    def __init__(
        self,
        name: str = "casekeeper",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        numeric_level = getattr(logging, level.upper())
        self.logger = logging.getLogger(name)
        self.logger.setLevel(numeric_level)
        self.logger.handlers.clear()

        self.metrics = {counter: 0 for counter in COUNTERS}
        self.metrics["errors_by_type"] = {}

        if enable_console:
            self.logger.addHandler(_handler(logging.StreamHandler(sys.stdout), numeric_level, CONSOLE_FORMAT))

        if enable_file:
            log_dir = log_dir or Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file_path(log_dir), encoding="utf-8")
            # file gets everything the logger lets through
            self.logger.addHandler(_handler(file_handler, logging.DEBUG, FILE_FORMAT))

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, **context):
        self._log(logging.ERROR, message, context)

    def critical(self, message: str, **context):
        self._log(logging.CRITICAL, message, context)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, ensure_ascii=False, default=str)}"
        self.logger.log(level, message)

    # Counters

    def record_rank_call(self):
        self.metrics["rank_calls"] += 1

    def record_provider_failure(self, error_type: str):
        self.metrics["provider_failures"] += 1
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def record_snapshot_merge(self):
        self.metrics["snapshot_merges"] += 1

    def record_deduplicated(self, count: int):
        self.metrics["records_deduplicated"] += count

    def get_metrics(self) -> dict:
        """Copy of the counters plus provider_failure_rate (failures per rank call)."""
        snapshot = {counter: self.metrics[counter] for counter in COUNTERS}
        snapshot["errors_by_type"] = dict(self.metrics["errors_by_type"])
        calls = snapshot["rank_calls"]
        snapshot["provider_failure_rate"] = round(snapshot["provider_failures"] / calls, 3) if calls else 0.0
        return snapshot

    def log_metrics_summary(self):
        m = self.get_metrics()
        lines = [
            "=== Session Metrics ===",
            f"Rank calls: {m['rank_calls']}",
            f"Provider failures: {m['provider_failures']} ({m['provider_failure_rate'] * 100:.1f}%)",
            f"Snapshot merges: {m['snapshot_merges']}",
            f"Duplicate records collapsed: {m['records_deduplicated']}",
        ]
        if m["errors_by_type"]:
            lines.append("Error Types:")
            lines.extend(f"  {error_type}: {count}" for error_type, count in m["errors_by_type"].items())
        for line in lines:
            self.info(line)


_global_logger: Optional[StructuredLogger] = None


def get_logger(name: str = "casekeeper", level: Optional[str] = None, **kwargs) -> StructuredLogger:
    """
    Get or create the process-wide logger.

    Only the first call configures it. level, log_dir and enable_file
    default to CASEKEEPER_LOG_LEVEL, CASEKEEPER_LOG_DIR and
    CASEKEEPER_LOG_TO_FILE.
    """
    global _global_logger

    if _global_logger is None:
        kwargs.setdefault("log_dir", config.log_dir())
        kwargs.setdefault("enable_file", config.log_to_file())
        _global_logger = StructuredLogger(name=name, level=level or config.log_level(), **kwargs)

    return _global_logger


def reset_logger():
    """Drop the process-wide logger; the next get_logger() builds a new one."""
    global _global_logger
    _global_logger = None
