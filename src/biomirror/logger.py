"""Structured logging configuration using *structlog*.

The running session id is bound through
:mod:`structlog.contextvars` so that fusion, safety and scheduler events can
be correlated without threading the id through every call.
"""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(level: str = "INFO") -> None:
    """Configure *structlog* processors and stdlib integration.

    Call once at application startup.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_session_context(session_id: str) -> None:
    """Attach the running session to every log line emitted from this context."""
    structlog.contextvars.bind_contextvars(session_id=session_id)


def clear_session_context() -> None:
    structlog.contextvars.unbind_contextvars("session_id")
