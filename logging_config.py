"""structlog setup for the showcase API.

Every entry carries ``service``; entries logged while serving an HTTP request
also carry ``request_id``, ``path`` and, when the caller identified itself,
``user_id``.
"""

import logging
import os
import sys
from typing import Optional

import structlog

SERVICE_NAME = "campus-showcase"
REQUEST_KEYS = ("request_id", "user_id", "path")


def configure_logging(level: Optional[str] = None, json_format: Optional[bool] = None) -> None:
    """Configure structlog; ``LOG_LEVEL`` and ``LOG_FORMAT`` fill unset arguments.

    ``LOG_FORMAT=console`` switches to the coloured dev renderer.
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if json_format is None:
        json_format = os.getenv("LOG_FORMAT", "json") != "console"

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_context(request_id: str, user_id: Optional[str], path: str) -> None:
    context = {"request_id": request_id, "path": path}
    if user_id:
        context["user_id"] = user_id
    structlog.contextvars.bind_contextvars(**context)


def clear_request_context() -> None:
    """Drop per-request keys, keeping the service binding."""
    structlog.contextvars.unbind_contextvars(*REQUEST_KEYS)
