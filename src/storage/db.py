"""SQLAlchemy engine/session primitives and health checks."""

from __future__ import annotations

from functools import lru_cache
from typing import Generator, Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from src.core.config import get_settings
from src.core.errors import OutcomeUnknown
from src.core.logger import get_logger


Base = declarative_base()
logger = get_logger("talkboard.storage")


def _connect_args(database_url: str, timeout_seconds: int) -> dict[str, object]:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": timeout_seconds}
    if database_url.startswith("postgresql"):
        return {
            "connect_timeout": timeout_seconds,
            "options": f"-c statement_timeout={timeout_seconds * 1000}",
        }
    return {}


@lru_cache(maxsize=1)
def get_engine():
    settings = get_settings()
    kwargs: dict[str, object] = {"pool_pre_ping": True, "future": True}
    connect_args = _connect_args(settings.database_url, settings.store_timeout_seconds)
    if connect_args:
        kwargs["connect_args"] = connect_args

    return create_engine(settings.database_url, **kwargs)


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker:
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, expire_on_commit=False)


def get_session() -> Generator[Session, None, None]:
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


def commit_or_unknown(session: Session, *, action: str) -> None:
    """Commit, reporting a lost connection or timeout as an unconfirmed outcome."""

    try:
        session.commit()
    except OperationalError as exc:
        session.rollback()
        logger.error("store_commit_unconfirmed", action=action, error=str(exc.orig))
        raise OutcomeUnknown(
            f"The store did not confirm '{action}'; re-read before retrying.",
            action=action,
        ) from exc
    except DBAPIError as exc:
        session.rollback()
        if exc.connection_invalidated:
            logger.error("store_connection_lost", action=action)
            raise OutcomeUnknown(
                f"Connection lost during '{action}'; re-read before retrying.",
                action=action,
            ) from exc
        raise


def test_connection() -> Tuple[bool, Optional[str]]:
    try:
        with get_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
        return True, None
    except Exception as exc:  # pragma: no cover
        return False, str(exc)


def load_models() -> None:
    """Import ORM models so Base metadata contains all mapped tables."""

    # Import side effect is intentional here.
    import src.storage.models  # noqa: F401
