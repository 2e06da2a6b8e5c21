"""Structured logging utilities for cdediag."""

import logging
import sys
from typing import Any

import structlog

from cdediag.core.exceptions import QueryError

# Client libraries log every request at INFO/DEBUG through stdlib logging
LIBRARY_LOGGERS = ("botocore", "boto3", "urllib3", "kubernetes")


def setup_logging(level: str = "WARNING", format: str = "console", output: str = "stderr") -> None:
    """Configure structured logging for cdediag.

    Collection output goes to stdout, so diagnostics default to stderr.
    Library loggers stay at WARNING unless DEBUG is requested.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        output: Output destination (stdout or stderr)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    stream = sys.stdout if output == "stdout" else sys.stderr

    logging.basicConfig(format="%(message)s", stream=stream, level=log_level)

    library_level = log_level if log_level <= logging.DEBUG else max(log_level, logging.WARNING)
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if format == "json":
        processors += [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance (typically for ``__name__``)."""
    return structlog.get_logger(name)


def log_operation(logger: structlog.BoundLogger, operation: str, **kwargs: Any) -> None:
    """Log a collection milestone as ``operation_<name>``."""
    logger.info(f"operation_{operation}", **kwargs)


def log_error(
    logger: structlog.BoundLogger,
    error: Exception,
    operation: str | None = None,
    **kwargs: Any,
) -> None:
    """Log a fatal error with structured context.

    Args:
        logger: Logger instance
        error: Exception instance
        operation: CLI command or step that failed (optional)
        **kwargs: Additional context fields
    """
    context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        **kwargs,
    }

    if operation:
        context["operation"] = operation
    if isinstance(error, QueryError) and error.operation:
        context["query"] = error.operation

    logger.error("error_occurred", **context)
