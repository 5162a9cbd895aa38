"""JSON event logging through structlog, with per-request context."""

from __future__ import annotations

import logging
from typing import Any

import structlog

from src.core.config import get_settings


_CONFIGURED = False
_CONTEXT_KEYS = ("request_id", "user_id")


def _ensure_context_keys(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    del logger, method_name
    for key in _CONTEXT_KEYS:
        event_dict.setdefault(key, None)
    return event_dict


def _level() -> int:
    return getattr(logging, get_settings().log_level.upper(), logging.INFO)


def configure_logging() -> None:
    """Set up structlog once; every event is one JSON line on stdout."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    level = _level()
    logging.basicConfig(level=level, format="%(message)s")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _ensure_context_keys,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    configure_logging()
    # PrintLoggerFactory ignores positional names, so carry the component as a key.
    if name:
        return structlog.get_logger(component=name)
    return structlog.get_logger()


def bind_request_context(request_id: str, user_id: str | None = None) -> None:
    structlog.contextvars.bind_contextvars(request_id=request_id, user_id=user_id)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
