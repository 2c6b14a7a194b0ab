"""Logging configuration for the knowledge engine."""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any

from knowledge_engine.config import get_settings

# Correlates every log line emitted while serving one retrieval/research call
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    """Add request ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Stamp the active request ID onto the record.

        Args:
            record: Log record to filter

        Returns:
            Always True; records are annotated, never dropped
        """
        record.request_id = request_id_var.get() or "N/A"
        return True


class ColoredFormatter(logging.Formatter):
    """Colored log formatter for console output."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format a record with its level name wrapped in ANSI colors.

        Args:
            record: Log record to format

        Returns:
            Formatted log line
        """
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"

        formatted = super().format(record)

        # Reset levelname for other handlers
        record.levelname = levelname

        return formatted


def setup_logging(level: str | None = None) -> None:
    """Configure logging for the engine.

    Sets up a console handler (colored on a TTY), request ID tracking
    and quieter levels for chatty third-party libraries.

    Args:
        level: Log level override; defaults to ``Settings.log_level``
    """
    log_level = level or get_settings().log_level

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    log_format = (
        "%(asctime)s | %(levelname)-8s | %(request_id)s | "
        "%(name)s:%(funcName)s:%(lineno)d | %(message)s"
    )
    date_format = "%Y-%m-%d %H:%M:%S"

    if sys.stdout.isatty():
        formatter = ColoredFormatter(log_format, datefmt=date_format)
    else:
        formatter = logging.Formatter(log_format, datefmt=date_format)

    console_handler.setFormatter(formatter)
    console_handler.addFilter(RequestIdFilter())
    root_logger.addHandler(console_handler)

    # Third-party clients log every request at INFO
    for noisy in ("httpx", "httpcore", "openai", "chromadb"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured with level: {log_level}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Request ID to set; a random one is generated if omitted

    Returns:
        The request ID now active in this context
    """
    request_id = request_id or uuid.uuid4().hex[:12]
    request_id_var.set(request_id)
    return request_id


def clear_request_id() -> None:
    """Clear the request ID from the current context."""
    request_id_var.set(None)


def log_progress(
    logger: logging.Logger,
    operation: str,
    current: int,
    total: int,
    **kwargs: Any,
) -> None:
    """Log progress for long-running operations such as ingestion.

    Args:
        logger: Logger instance
        operation: Operation name
        current: Current progress count
        total: Total count
        **kwargs: Additional context to log
    """
    percentage = (current / total * 100) if total > 0 else 0
    context = " | ".join(f"{k}={v}" for k, v in kwargs.items())
    message = f"{operation}: {current}/{total} ({percentage:.1f}%)"
    if context:
        message += f" | {context}"
    logger.info(message)
