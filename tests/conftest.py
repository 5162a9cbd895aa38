from __future__ import annotations

from typing import Callable
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import src.api.main as api_main
from src.auth.identity import Identity, identity_from_user
from src.core.metrics import reset_metrics_for_tests
from src.storage.db import Base, get_session, load_models
from src.storage.models import ROLE_BASIC, User
from src.storage.security import hash_password


def _build_sqlite_session_factory(*, foreign_keys: bool = False) -> sessionmaker:
    load_models()
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    if foreign_keys:

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def session_factory() -> sessionmaker:
    reset_metrics_for_tests()
    return _build_sqlite_session_factory()


@pytest.fixture
def db(session_factory: sessionmaker):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fk_db():
    reset_metrics_for_tests()
    session = _build_sqlite_session_factory(foreign_keys=True)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db: Session) -> Callable[..., Identity]:
    def _make_user(role: str = ROLE_BASIC, *, display_name: str | None = None) -> Identity:
        suffix = uuid.uuid4().hex[:8]
        user = User(
            email=f"{role}-{suffix}@talkboard.dev",
            display_name=display_name or f"{role.title()} {suffix}",
            role=role,
            password_hash=hash_password("not-used-here", rounds=1_000),
        )
        db.add(user)
        db.commit()
        return identity_from_user(user)

    return _make_user


@pytest.fixture
def client(session_factory: sessionmaker):
    def override_get_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    api_main.app.dependency_overrides[get_session] = override_get_session
    try:
        yield TestClient(api_main.app)
    finally:
        api_main.app.dependency_overrides.clear()