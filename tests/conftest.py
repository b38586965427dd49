"""
Shared fixtures: an in-memory SQLite database per test, a session bound to it
and a TestClient whose ``get_db`` / ``get_league_config`` dependencies are
overridden.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import app
from config import LeagueConfig, get_league_config
from database import get_db
from models import Base
import users


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def league_config():
    return LeagueConfig()


@pytest.fixture()
def client(session_factory, league_config):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_league_config] = lambda: league_config
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    """Create (or fetch) a user directly through the directory."""
    def _make(email: str, username: str | None = None):
        return users.ensure_user_by_email(db, email, username)
    return _make


@pytest.fixture()
def signup(client):
    """Register through the API and return bearer headers plus the user payload."""
    def _signup(email: str, username: str | None = None, password: str = "pw-123456") -> dict:
        resp = client.post(
            "/api/auth/register",
            json={"email": email, "password": password, "username": username},
        )
        assert resp.status_code in (200, 201), resp.text
        body = resp.json()
        return {"headers": {"Authorization": f"Bearer {body['token']}"}, "user": body["user"]}
    return _signup
