"""Observability bootstrap helpers."""

from __future__ import annotations

from contextlib import contextmanager

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from src.core.config import get_settings
from src.core.errors import TalkboardError
from src.core.logger import get_logger


_SENTRY_INITIALIZED = False


def _drop_expected_errors(event: dict, hint: dict):
    # Denials, conflicts and validation failures are answers, not incidents.
    exc_info = hint.get("exc_info")
    if exc_info and isinstance(exc_info[1], TalkboardError) and exc_info[1].status_code < 500:
        return None
    return event


def init_sentry() -> bool:
    """Initialize Sentry once when DSN is configured."""

    global _SENTRY_INITIALIZED
    if _SENTRY_INITIALIZED:
        return True

    settings = get_settings()
    dsn = settings.sentry_dsn.strip()
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=settings.env,
        release=f"{settings.app_name}@{settings.app_version}",
        traces_sample_rate=settings.sentry_traces_sample_rate,
        send_default_pii=False,
        integrations=[FastApiIntegration()],
        before_send=_drop_expected_errors,
    )
    _SENTRY_INITIALIZED = True
    get_logger("talkboard.observability").info(
        "sentry_initialized",
        env=settings.env,
        traces_sample_rate=settings.sentry_traces_sample_rate,
    )
    return True


@contextmanager
def sentry_scope(*, user_id: str | None = None, request_id: str | None = None):
    """Create a temporary Sentry scope tagged with request/user context."""

    if not _SENTRY_INITIALIZED:
        yield
        return

    with sentry_sdk.new_scope() as scope:
        if user_id:
            scope.set_user({"id": user_id})
        if request_id:
            scope.set_tag("request_id", request_id)
        yield


def capture_exception(exc: BaseException) -> None:
    if not _SENTRY_INITIALIZED:
        return
    sentry_sdk.capture_exception(exc)


def reset_observability_for_tests() -> None:
    global _SENTRY_INITIALIZED
    _SENTRY_INITIALIZED = False
