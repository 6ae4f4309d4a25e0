"""
Structured logging configuration for contact extraction.
Provides consistent, JSON-structured logging with extraction ID support.
"""

import logging
import sys
from typing import Any, Dict, Optional, TextIO

import structlog
from structlog.typing import FilteringBoundLogger

from callsheet.core.config import Settings, get_settings


def configure_logging(settings: Optional[Settings] = None, stream: Optional[TextIO] = None) -> None:
    """Configure structured logging for the application."""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stdout,
        level=level,
    )

    # Set log levels for noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "console":
        # Human-readable console output for development
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        # JSON output for production
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Extraction ID context management
def bind_extraction_id(extraction_id: str) -> None:
    """Bind extraction ID to the logging context."""
    structlog.contextvars.bind_contextvars(extraction_id=extraction_id)


def clear_extraction_id() -> None:
    """Clear extraction ID from logging context."""
    structlog.contextvars.unbind_contextvars("extraction_id")


def log_error_with_context(
    logger: FilteringBoundLogger,
    error: Exception,
    context: Dict[str, Any]
) -> None:
    """Log an error with additional context."""
    logger.error(
        "Error occurred",
        error=str(error),
        error_type=type(error).__name__,
        **context,
        exc_info=True
    )
