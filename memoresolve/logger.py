"""
Structured logging system for memoresolve.

Provides centralized logging with console and file outputs, and metrics
tracking for monitoring how often references resolve automatically,
how often the human has to be asked, and how often lookups fail.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


OUTCOME_TYPES = ("resolved", "disambiguation", "not_found", "clarify_query")
CLARIFICATION_EVENTS = ("opened", "resumed", "rearmed", "expired", "superseded")


def _fresh_metrics() -> dict:
    return {
        "resolutions_attempted": 0,
        "outcomes_by_type": {t: 0 for t in OUTCOME_TYPES},
        "capability_stats": {},
        "lookup_failures_by_service": {},
        "clarifications": {e: 0 for e in CLARIFICATION_EVENTS},
    }


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks resolution metrics per capability.
    """

    def __init__(
        self,
        name: str = "memoresolve",
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
            enable_console: Output logs to stderr
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()
        self.logger.propagate = False

        self.metrics = _fresh_metrics()

        # stdout carries CLI output, so console logs go to stderr
        if enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
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

            log_file = log_dir / f"memoresolve_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
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
            message = f"{message} | Context: {json.dumps(context, default=str, ensure_ascii=False)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_resolution(self, capability: str, outcome_type: str, auto_resolved: bool = False):
        """Record one resolver call and its outcome."""
        self.metrics["resolutions_attempted"] += 1
        by_type = self.metrics["outcomes_by_type"]
        by_type[outcome_type] = by_type.get(outcome_type, 0) + 1

        stats = self.metrics["capability_stats"].setdefault(
            capability, {"attempts": 0, "auto_resolved": 0}
        )
        stats["attempts"] += 1
        if auto_resolved:
            stats["auto_resolved"] += 1

    def record_lookup_failure(self, service: str):
        """Record a failed call to an external domain service."""
        failures = self.metrics["lookup_failures_by_service"]
        failures[service] = failures.get(service, 0) + 1

    def record_clarification(self, event: str):
        """Record a pending-clarification lifecycle event."""
        clarifications = self.metrics["clarifications"]
        clarifications[event] = clarifications.get(event, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics with per-capability auto-resolve rates."""
        metrics_copy = json.loads(json.dumps(self.metrics))
        for capability, stats in metrics_copy["capability_stats"].items():
            if stats["attempts"] > 0:
                stats["auto_resolve_rate"] = round(
                    stats["auto_resolved"] / stats["attempts"], 3
                )
        return metrics_copy

    def reset_metrics(self):
        """Zero every counter."""
        self.metrics = _fresh_metrics()

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Resolution Session Metrics ===")
        self.info(f"Resolver calls: {metrics['resolutions_attempted']}")
        outcomes = ", ".join(f"{k}={v}" for k, v in metrics["outcomes_by_type"].items())
        self.info(f"Outcomes: {outcomes}")

        if metrics["capability_stats"]:
            self.info("Auto-resolve rates:")
            for capability, stats in metrics["capability_stats"].items():
                rate = stats.get("auto_resolve_rate", 0) * 100
                self.info(f"  {capability}: {stats['auto_resolved']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["lookup_failures_by_service"]:
            self.info("Lookup failures:")
            for service, count in metrics["lookup_failures_by_service"].items():
                self.info(f"  {service}: {count}")

        clarifications = ", ".join(f"{k}={v}" for k, v in metrics["clarifications"].items())
        self.info(f"Clarifications: {clarifications}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "memoresolve",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
