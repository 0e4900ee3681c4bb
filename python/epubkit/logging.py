"""Structured logging configuration using structlog.

Provides JSON-formatted logs with consistent context including:
- book_id: Identity of the archive being assembled
- chapter_id: Chapter currently being ingested (when available)
- timestamp: ISO8601 formatted timestamp

Usage:
    from epubkit.logging import get_logger, configure_logging

    # Configure once at startup
    configure_logging()

    # Get a logger for a module
    logger = get_logger(__name__)
    logger.info("something_happened", extra_field="value")
"""

import logging
import sys
from contextvars import ContextVar

import structlog

# Context variables for book-scoped logging
book_id_var: ContextVar[str | None] = ContextVar("book_id", default=None)
chapter_id_var: ContextVar[str | None] = ContextVar("chapter_id", default=None)


def add_book_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Add book context to all log entries.

    Injects all non-None ContextVar values into the log event dict.
    """
    book_id = book_id_var.get()
    chapter_id = chapter_id_var.get()

    if book_id:
        event_dict["book_id"] = book_id
    if chapter_id:
        event_dict["chapter_id"] = chapter_id

    return event_dict


def configure_logging(json_format: bool = True) -> None:
    """Configure structlog for the library.

    Args:
        json_format: If True, output JSON logs. If False, output console-friendly logs.
    """
    # Shared processors for both stdlib and structlog loggers
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_book_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)

    # Silence noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger for the given name.

    Args:
        name: Logger name (typically __name__).

    Returns:
        A bound structlog logger.
    """
    return structlog.get_logger(name)


def set_book_context(book_id: str | None, chapter_id: str | None = None) -> None:
    """Set book context for the current async context.

    Args:
        book_id: Identity of the archive being assembled.
        chapter_id: Chapter being ingested (optional).
    """
    book_id_var.set(book_id)
    chapter_id_var.set(chapter_id)


def set_chapter_context(chapter_id: str | None) -> None:
    """Set or clear the chapter being ingested."""
    chapter_id_var.set(chapter_id)


def clear_book_context() -> None:
    """Clear all book-scoped context."""
    book_id_var.set(None)
    chapter_id_var.set(None)
