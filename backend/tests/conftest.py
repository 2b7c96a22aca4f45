# backend/tests/conftest.py
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from coachforge.core.config import Settings, get_settings
from coachforge.core.rate_limit import invite_accept_limiter, login_limiter
from coachforge.core.security import Principal, Role, create_access_token, hash_password
from coachforge.db.base import Base
from coachforge.db.session import get_db
from coachforge.main import app
import coachforge.models  # noqa: F401  (registers tables)
from coachforge.models import Athlete, Coach

TEST_PEPPER = "test-pepper-0123456789"
TEST_AUTH_URL = "https://coachforge.test"


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        invite_token_pepper=TEST_PEPPER,
        auth_url=TEST_AUTH_URL,
        invite_expire_hours=24,
    )


@pytest.fixture()
def SessionLocal():
    """
    Shared in-memory SQLite.

    StaticPool keeps the same connection for every session, which is
    required because each request opens a new session.
    """
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(SessionLocal):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    login_limiter.reset()
    invite_accept_limiter.reset()
    yield


@pytest.fixture()
def client(SessionLocal, test_settings):
    def _override_get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# --- Factories --------------------------------------------------------------

def make_coach(db, email: str = "coach@test.it", password: str = "CoachPass1!") -> Coach:
    coach = Coach(email=email, password_hash=hash_password(password), name="Coach")
    db.add(coach)
    db.commit()
    db.refresh(coach)
    return coach


def make_athlete(db, coach: Coach, athlete_id: str = "A42", **kwargs) -> Athlete:
    athlete = Athlete(
        athlete_id=athlete_id,
        coach_id=coach.coach_id,
        first_name=kwargs.pop("first_name", "Anna"),
        last_name=kwargs.pop("last_name", "Rossi"),
        **kwargs,
    )
    db.add(athlete)
    db.commit()
    db.refresh(athlete)
    return athlete


def coach_principal(coach: Coach) -> Principal:
    return Principal(id=coach.coach_id, role=Role.COACH, email=coach.email)


def bearer(principal: Principal) -> dict:
    return {"Authorization": f"Bearer {create_access_token(principal)}"}
