# backend/tests/test_invites_api.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy.exc import OperationalError

from coachforge.core.config import Settings, get_settings
from coachforge.core.security import Principal, Role
from coachforge.main import app
from coachforge.models import AthleteAuth, AthleteInvite
import coachforge.services.invites as invite_service

from conftest import TEST_AUTH_URL, bearer, coach_principal, make_athlete, make_coach


def _setup_coach_with_athlete(SessionLocal):
    db = SessionLocal()
    try:
        coach = make_coach(db)
        make_athlete(db, coach)
        return coach_principal(coach)
    finally:
        db.close()


def _issue(client, principal, athlete_id="A42"):
    return client.post(f"/api/v1/coach/athletes/{athlete_id}/invite", headers=bearer(principal))


def test_issue_invite_returns_url_and_expiry(client, SessionLocal):
    coach = _setup_coach_with_athlete(SessionLocal)

    r = _issue(client, coach)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["invite_url"].startswith(f"{TEST_AUTH_URL}/invite/")
    assert len(body["invite_url"].rsplit("/", 1)[1]) == 64
    datetime.fromisoformat(body["expires_at"].replace("Z", "+00:00"))
    assert r.headers.get("X-Request-ID")


def test_issue_invite_requires_authentication(client, SessionLocal):
    _setup_coach_with_athlete(SessionLocal)
    r = client.post("/api/v1/coach/athletes/A42/invite")
    assert r.status_code == 401


def test_issue_invite_rejects_athlete_role(client, SessionLocal):
    _setup_coach_with_athlete(SessionLocal)
    athlete = Principal(id="A42", role=Role.ATHLETE, email="a@test.it")
    r = _issue(client, athlete)
    assert r.status_code == 403
    assert r.json()["code"] == "FORBIDDEN_COACH_ONLY"


def test_issue_invite_unknown_or_foreign_athlete_is_404(client, SessionLocal):
    _setup_coach_with_athlete(SessionLocal)
    db = SessionLocal()
    try:
        stranger = coach_principal(make_coach(db, email="stranger@test.it"))
    finally:
        db.close()

    r = _issue(client, stranger)
    assert r.status_code == 404
    assert r.json()["code"] == "ATHLETE_NOT_FOUND"


def test_issue_invite_without_pepper_is_500(client, SessionLocal):
    coach = _setup_coach_with_athlete(SessionLocal)
    app.dependency_overrides[get_settings] = lambda: Settings(
        _env_file=None, invite_token_pepper=None, auth_url=TEST_AUTH_URL
    )

    r = _issue(client, coach)
    assert r.status_code == 500
    body = r.json()
    assert body["code"] == "SERVER_MISCONFIGURED"
    assert "PEPPER" not in r.text


def test_accept_flow_and_replay(client, SessionLocal):
    coach = _setup_coach_with_athlete(SessionLocal)
    raw = _issue(client, coach).json()["invite_url"].rsplit("/", 1)[1]

    r = client.post("/api/v1/invites/accept", json={"token": raw, "email": "a@test.it", "password": "Passw0rd!"})
    assert r.status_code == 200, r.text
    assert r.json() == {"ok": True}

    r = client.post("/api/v1/invites/accept", json={"token": raw, "email": "a@test.it", "password": "Passw0rd!"})
    assert r.status_code == 400
    assert r.json()["code"] == "TOKEN_ALREADY_USED"

    # Already active: no new invite
    r = _issue(client, coach)
    assert r.status_code == 409
    assert r.json()["code"] == "ATHLETE_ALREADY_ACTIVE"


def test_accept_unknown_token_is_400(client, SessionLocal):
    _setup_coach_with_athlete(SessionLocal)
    r = client.post("/api/v1/invites/accept", json={"token": "nope", "email": "a@test.it", "password": "Passw0rd!"})
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_TOKEN"


def test_accept_malformed_bodies_are_400(client):
    for body in (
        {"token": "x", "email": "a@test.it"},
        {"token": 123, "email": "a@test.it", "password": "Passw0rd!"},
        ["token"],
        {"token": "", "email": "a@test.it", "password": "Passw0rd!"},
    ):
        r = client.post("/api/v1/invites/accept", json=body)
        assert r.status_code == 400, (body, r.text)
        assert r.json()["code"] == "BAD_REQUEST"

    r = client.post(
        "/api/v1/invites/accept",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert r.status_code == 400


def test_accept_email_in_use_is_400_and_token_survives(client, SessionLocal):
    coach = _setup_coach_with_athlete(SessionLocal)
    db = SessionLocal()
    try:
        from coachforge.models import Coach
        owner = db.query(Coach).one()
        make_athlete(db, owner, athlete_id="A43", first_name="Bea")
    finally:
        db.close()

    raw_43 = _issue(client, coach, "A43").json()["invite_url"].rsplit("/", 1)[1]
    raw_42 = _issue(client, coach, "A42").json()["invite_url"].rsplit("/", 1)[1]

    ok = client.post("/api/v1/invites/accept", json={"token": raw_43, "email": "a@test.it", "password": "Passw0rd!"})
    assert ok.status_code == 200

    r = client.post("/api/v1/invites/accept", json={"token": raw_42, "email": "a@test.it", "password": "Passw0rd!"})
    assert r.status_code == 400
    assert r.json()["code"] == "EMAIL_IN_USE"

    r = client.post("/api/v1/invites/accept", json={"token": raw_42, "email": "b@test.it", "password": "Passw0rd!"})
    assert r.status_code == 200


def test_invite_status_endpoint(client, SessionLocal):
    coach = _setup_coach_with_athlete(SessionLocal)

    r = client.get("/api/v1/coach/athletes/A42/invite", headers=bearer(coach))
    assert r.status_code == 200
    assert r.json()["activated"] is False
    assert r.json()["live_invite_expires_at"] is None

    _issue(client, coach)
    _issue(client, coach)
    r = client.get("/api/v1/coach/athletes/A42/invite", headers=bearer(coach))
    assert r.json()["live_invite_expires_at"] is not None

    db = SessionLocal()
    try:
        assert db.query(AthleteInvite).count() == 2
    finally:
        db.close()


def test_accept_storage_failure_is_500_and_token_stays_unused(client, SessionLocal, monkeypatch):
    coach = _setup_coach_with_athlete(SessionLocal)
    raw = _issue(client, coach).json()["invite_url"].rsplit("/", 1)[1]

    def _db_gone(*args, **kwargs):
        raise OperationalError("UPDATE athlete_auth", {}, Exception("db gone: connection reset"))

    monkeypatch.setattr(invite_service, "upsert_athlete_auth", _db_gone)

    body = {"token": raw, "email": "a@test.it", "password": "Passw0rd!"}
    r = client.post("/api/v1/invites/accept", json=body)
    assert r.status_code == 500
    assert r.json()["code"] == "PERSISTENCE_ERROR"
    assert "db gone" not in r.text
    assert "athlete_auth" not in r.text

    db = SessionLocal()
    try:
        assert db.query(AthleteInvite).one().used_at is None
        assert db.query(AthleteAuth).count() == 0
    finally:
        db.close()

    # Storage back: the same link still works
    monkeypatch.undo()
    r = client.post("/api/v1/invites/accept", json=body)
    assert r.status_code == 200
