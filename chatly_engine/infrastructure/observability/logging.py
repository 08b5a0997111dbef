"""
Structured logging for the scoring engine.

Events are JSON lines with keyword context. Identifiers bound with
`message_context` are merged into every event logged inside the block, and
raw message text is redacted before rendering.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines (production) or key=value console output
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _drop_message_content,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _drop_message_content(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Strip raw chat text if a caller passed it as log context."""
    for field in ("text", "message_text", "plaintext"):
        if field in event_dict:
            event_dict[field] = "[redacted]"
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_side_effect_failure(operation: str, error: Exception, **context: Any) -> None:
    """Log a best-effort side path that failed without affecting delivery."""
    logger = get_logger("side_effects")
    logger.warning(
        "Best-effort operation failed",
        operation=operation,
        error=str(error),
        error_type=type(error).__name__,
        event_type="side_effect_failure",
        **context,
    )


@contextmanager
def message_context(**ids: str | None) -> Iterator[None]:
    """Bind chat/user identifiers to every log event emitted inside the block."""
    with structlog.contextvars.bound_contextvars(
        **{key: value for key, value in ids.items() if value is not None}
    ):
        yield
