"""FastAPI application entrypoint for Talkboard."""

from __future__ import annotations

from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import OperationalError

from src.auth.middleware import TOKEN_CLAIMS_KEY, resolve_request_claims
from src.auth.router import router as auth_router
from src.core.config import get_settings
from src.core.errors import OutcomeUnknown, TalkboardError
from src.core.logger import bind_request_context, clear_request_context, get_logger
from src.core.metrics import record_http_request, render_prometheus_metrics
from src.core.observability import capture_exception, init_sentry, sentry_scope
from src.engagement.router import router as engagement_router
from src.session_requests.router import router as session_requests_router
from src.sessions.router import router as sessions_router
from src.storage.db import load_models
from src.storage.db import test_connection as test_db_connection
from src.users.router import router as users_router


settings = get_settings()
logger = get_logger("talkboard.api")


def on_startup() -> None:
    load_models()
    sentry_enabled = init_sentry()
    logger.info(
        "application_startup",
        env=settings.env,
        version=settings.app_version,
        sentry_enabled=sentry_enabled,
        metrics_enabled=settings.metrics_enabled,
        store_timeout_seconds=settings.store_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(_: FastAPI):
    on_startup()
    yield


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)


def _route_label(request: Request) -> str:
    # Route templates keep the label set bounded; unrouted paths share one series.
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    started_at = perf_counter()
    request_id = request.headers.get("x-request-id", str(uuid4()))
    claims = resolve_request_claims(request)
    setattr(request.state, TOKEN_CLAIMS_KEY, claims)

    user_id = claims.user_id if claims is not None else None
    bind_request_context(request_id=request_id, user_id=user_id)

    response = None
    status_code = 500

    try:
        with sentry_scope(user_id=user_id, request_id=request_id):
            response = await call_next(request)
        status_code = int(response.status_code)
    finally:
        duration = perf_counter() - started_at
        if settings.metrics_enabled:
            record_http_request(
                method=request.method,
                path=_route_label(request),
                status_code=status_code,
                duration_seconds=duration,
            )
        clear_request_context()

    response.headers["x-request-id"] = request_id
    return response


@app.exception_handler(TalkboardError)
async def talkboard_error_handler(request: Request, exc: TalkboardError) -> JSONResponse:
    if exc.status_code >= 500:
        capture_exception(exc)
        logger.error("request_failed", path=request.url.path, code=exc.code, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(OperationalError)
async def store_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
    # Reads and unguarded flushes that hit a timeout or a dropped connection.
    capture_exception(exc)
    logger.error("store_unavailable", path=request.url.path, error=str(exc.orig))
    error = OutcomeUnknown("The store did not answer in time; re-read before retrying.")
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


@app.get("/health")
def health() -> JSONResponse:
    db_ok, db_error = test_db_connection()
    payload = {
        "status": "ok" if db_ok else "degraded",
        "env": settings.env,
        "services": {
            "database": {"ok": db_ok, "error": db_error},
        },
    }
    return JSONResponse(content=payload, status_code=200 if db_ok else 503)


@app.get("/version")
def version() -> dict[str, str]:
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "env": settings.env,
    }


@app.get("/metrics")
def metrics() -> PlainTextResponse:
    if not settings.metrics_enabled:
        return PlainTextResponse("metrics disabled\n", status_code=404)

    payload = render_prometheus_metrics(
        app_name=settings.app_name,
        app_version=settings.app_version,
        env=settings.env,
    )
    return PlainTextResponse(
        payload,
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(session_requests_router)
app.include_router(sessions_router)
app.include_router(engagement_router)
