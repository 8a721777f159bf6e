"""
Logging configuration for the failover harness.

Provides consistent logging format across all modules with:
- JSON structured output for CI log collectors
- Human-readable output for local runs
- Run ID tracking so interleaved driver/orchestrator lines can be correlated
"""

import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variable for tracking the harness run across the driver task
current_run_id: ContextVar[str | None] = ContextVar("current_run_id", default=None)


class HarnessFormatter(logging.Formatter):
    """
    Custom formatter for harness logs.

    Includes timestamp, level, module, run_id (if set), and message.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.timestamp = datetime.now(UTC).isoformat()

        run_id = current_run_id.get()
        record.run_id = f"[{run_id}] " if run_id else ""

        return super().format(record)


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Configure logging for the harness.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON format

    Returns:
        Configured root logger
    """
    root = logging.getLogger()
    root.handlers.clear()

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    if json_output:
        fmt = (
            '{"timestamp": "%(timestamp)s", "level": "%(levelname)s", '
            '"module": "%(name)s", "run_id": "%(run_id)s", "message": "%(message)s"}'
        )
    else:
        fmt = "%(timestamp)s | %(levelname)-8s | %(name)s | %(run_id)s%(message)s"

    handler.setFormatter(HarnessFormatter(fmt))
    root.addHandler(handler)

    # Per-request lines from the HTTP clients drown out the invocation log
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def set_run_id(run_id: str) -> None:
    """Set the current run ID for log correlation."""
    current_run_id.set(run_id)


def clear_run_id() -> None:
    """Clear the current run ID."""
    current_run_id.set(None)
