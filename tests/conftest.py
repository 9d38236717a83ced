"""Shared fixtures: isolated in-memory databases and an API client bound to them."""

from __future__ import annotations

import os

os.environ.setdefault("API_KEY", "test-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from habitsync import models  # noqa: E402,F401
from habitsync.db import Base, get_db, make_engine  # noqa: E402
from habitsync.main import app  # noqa: E402

API_KEY = os.environ["API_KEY"]


@pytest.fixture(scope="function")
def db_engine():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    session = sessionmaker(bind=db_engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user_factory(db_session):
    from habitsync import services

    def _make(name: str = "Alice"):
        return services.create_user(db_session, name)

    return _make


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headers():
    def _for(user_id: int) -> dict:
        return {"X-Api-Key": API_KEY, "X-User-Id": str(user_id)}

    return _for
