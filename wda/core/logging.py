"""
Structured logging configuration using structlog.

Provides consistent, structured logging across the survey engine with:
- JSON output in production
- Pretty console output in development
- Context binding (session_id) for tracing one session's operations
- File output to the log directory (one file per run, old runs culled)
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.typing import Processor

from wda.core.config import settings


def _cull_old_logs(logs_dir: Path, keep: int) -> None:
    """Delete old log files, keeping only the N most recent.

    Args:
        logs_dir: Directory containing log files
        keep: Number of recent log files to retain
    """
    log_files = sorted(
        logs_dir.glob("wda_*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )

    for old_file in log_files[max(keep, 0):]:
        try:
            os.remove(old_file)
        except OSError:
            pass  # File held open or already gone


def configure_logging(
    log_runs_to_keep: int = 5, logs_dir: Optional[Path] = None
) -> Path:
    """Configure structlog for the application.

    Call this once at startup, before any logging. Creates a new timestamped
    log file per run and culls old ones.

    Args:
        log_runs_to_keep: Number of recent run logs to retain (default: 5)
        logs_dir: Override for settings.log_dir

    Returns:
        Path of the log file opened for this run
    """
    logs_dir = logs_dir or settings.log_dir
    logs_dir.mkdir(parents=True, exist_ok=True)

    # keep-1 to make room for the new file
    _cull_old_logs(logs_dir, keep=log_runs_to_keep - 1)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"wda_{timestamp}.log"

    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if settings.debug:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    # Clear existing handlers so reconfiguration in tests does not duplicate output
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    root_logger.setLevel(logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(file_handler)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if settings.debug else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return log_file


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a logger instance with the given name.

    Usage:
        from wda.core.logging import get_logger

        log = get_logger(__name__)
        log.info("something_happened", key="value")
    """
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """
    Bind context variables that will be included in all subsequent logs.

        bind_context(session_id=session.id)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables from the logging context."""
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Remove specific context variables bound via bind_context."""
    structlog.contextvars.unbind_contextvars(*keys)
