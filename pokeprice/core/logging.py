"""
Structured logging for the price service.

Adapters log one event per upstream call with ``provider`` as a key; the
request middleware binds ``method`` and ``path`` into the context so every
event emitted while serving a request carries them.
"""
import logging
import sys

import structlog

from pokeprice.core.config import settings

# Third-party loggers that would otherwise echo every provider call.
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def resolve_log_level() -> int:
    """``log_level`` when set, otherwise DEBUG in debug mode and INFO outside it."""
    if settings.log_level:
        level = logging.getLevelName(settings.log_level.upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if settings.api_debug else logging.INFO


def setup_logging():
    """
    Configure structlog and the stdlib bridge.

    Console rendering in debug mode, one JSON object per line otherwise.
    """
    log_level = resolve_log_level()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer()
            if settings.api_debug
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_request_context(method: str, path: str) -> None:
    """Start a fresh log context for one inbound request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(method=method, path=path)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
