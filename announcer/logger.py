"""
Structured logging system for the announcer.

Provides centralized logging with console and file outputs, log levels,
and counters for monitoring sync and delivery health.
"""

import logging
import os
import sys
import threading
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for reconciliation cycles and deliveries.
    """

    def __init__(
        self,
        name: str = "announcer",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers

        # Counters are bumped from timer, sync and mark-sent threads
        self._metrics_lock = threading.Lock()
        self.metrics = {
            "api_calls": 0,
            "syncs_started": 0,
            "syncs_skipped": 0,
            "syncs_failed": 0,
            "groups_failed": 0,
            "jobs_added": 0,
            "jobs_removed": 0,
            "deliveries_attempted": 0,
            "deliveries_successful": 0,
            "deliveries_failed": 0,
            "mark_sent_failed": 0,
            "errors_by_type": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"announcer_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(threadName)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def _bump(self, key: str, count: int = 1, error_type: Optional[str] = None):
        with self._metrics_lock:
            self.metrics[key] += count
            if error_type is not None:
                errors = self.metrics["errors_by_type"]
                errors[error_type] = errors.get(error_type, 0) + 1

    def record_api_call(self):
        self._bump("api_calls")

    def record_sync_started(self):
        self._bump("syncs_started")

    def record_sync_skipped(self):
        self._bump("syncs_skipped")

    def record_sync_failure(self, error_type: str):
        self._bump("syncs_failed", error_type=error_type)

    def record_group_failure(self, error_type: str):
        self._bump("groups_failed", error_type=error_type)

    def record_jobs_added(self, count: int = 1):
        self._bump("jobs_added", count)

    def record_jobs_removed(self, count: int = 1):
        self._bump("jobs_removed", count)

    def record_delivery_attempt(self):
        self._bump("deliveries_attempted")

    def record_delivery_success(self):
        self._bump("deliveries_successful")

    def record_delivery_failure(self, error_type: str):
        self._bump("deliveries_failed", error_type=error_type)

    def record_mark_sent_failure(self, error_type: str):
        self._bump("mark_sent_failed", error_type=error_type)

    def get_metrics(self) -> dict:
        """Return current metrics, with the delivery success rate filled in."""
        with self._metrics_lock:
            metrics_copy = dict(self.metrics)
            metrics_copy["errors_by_type"] = dict(self.metrics["errors_by_type"])
        attempts = metrics_copy["deliveries_attempted"]
        if attempts > 0:
            metrics_copy["delivery_success_rate"] = round(
                metrics_copy["deliveries_successful"] / attempts, 3
            )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Announcer Session Metrics ===")
        self.info(f"API Calls: {metrics['api_calls']}")
        self.info(
            f"Syncs: {metrics['syncs_started']} started, "
            f"{metrics['syncs_skipped']} skipped, {metrics['syncs_failed']} failed"
        )
        self.info(f"Jobs: +{metrics['jobs_added']} / -{metrics['jobs_removed']}")

        attempts = metrics["deliveries_attempted"]
        rate = metrics.get("delivery_success_rate", 0) * 100
        self.info(
            f"Deliveries: {metrics['deliveries_successful']}/{attempts} ({rate:.1f}% success)"
        )

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "announcer",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    File output is only enabled by default when ANNOUNCER_LOG_DIR is set.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        log_dir = os.getenv("ANNOUNCER_LOG_DIR")
        if "enable_file" not in kwargs:
            kwargs["enable_file"] = bool(log_dir)
        if log_dir and "log_dir" not in kwargs:
            kwargs["log_dir"] = Path(log_dir)
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def configure_logger(level: str = "INFO", log_dir: Optional[Path] = None) -> StructuredLogger:
    """
    Reconfigure handlers of the global logger in place.

    Modules bind the global instance at import time, so the CLI adjusts it
    rather than replacing it.
    """
    current = get_logger()
    fresh = StructuredLogger(
        name=current.logger.name,
        level=level,
        log_dir=log_dir,
        enable_file=log_dir is not None,
    )
    fresh.metrics = current.metrics
    current.logger = fresh.logger
    return current


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
