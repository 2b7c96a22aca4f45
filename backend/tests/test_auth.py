# backend/tests/test_auth.py
from __future__ import annotations

from coachforge.core import security
from coachforge.core.clock import utcnow
from coachforge.core.security import Principal, Role, create_access_token, decode_access_token, hash_password
from coachforge.models import Athlete, AthleteAuth
from coachforge.services.credentials import (
    AuthErr,
    AuthOk,
    authenticate,
    is_athlete_activated,
    verify_athlete_credentials,
)

from conftest import bearer, coach_principal, make_athlete, make_coach


def _login(client, email, password, role=None):
    body = {"email": email, "password": password}
    if role is not None:
        body["role"] = role
    return client.post("/api/v1/auth/login", json=body)


def test_verify_fails_closed_until_activated(db):
    coach = make_coach(db)
    make_athlete(db, coach)

    assert verify_athlete_credentials(db, "a@test.it", "Passw0rd!") is False

    auth = AthleteAuth(athlete_id="A42", login_identifier="a@test.it", password_hash=hash_password("Passw0rd!"))
    db.add(auth)
    db.commit()

    # Right password, not activated
    assert verify_athlete_credentials(db, "a@test.it", "Passw0rd!") is False
    assert is_athlete_activated(db, "a@test.it") is False

    auth.activated_at = utcnow()
    db.commit()

    assert verify_athlete_credentials(db, " A@TEST.IT ", "Passw0rd!") is True
    assert verify_athlete_credentials(db, "a@test.it", "wrong-pass") is False
    assert is_athlete_activated(db, "a@test.it") is True


def test_verify_with_missing_hash_returns_false(db):
    coach = make_coach(db)
    make_athlete(db, coach)
    db.add(AthleteAuth(athlete_id="A42", login_identifier="a@test.it", password_hash=None, activated_at=utcnow()))
    db.commit()

    assert verify_athlete_credentials(db, "a@test.it", "") is False
    assert verify_athlete_credentials(db, "a@test.it", "anything") is False


def test_authenticate_returns_tagged_results(db):
    coach = make_coach(db, email="coach@test.it", password="CoachPass1!")

    ok = authenticate(db, "Coach@Test.it", "CoachPass1!")
    assert isinstance(ok, AuthOk)
    assert ok.principal.role == Role.COACH
    assert ok.principal.id == coach.coach_id

    bad = authenticate(db, "coach@test.it", "nope")
    assert isinstance(bad, AuthErr)
    assert bad.reason == "INVALID_CREDENTIALS"

    mismatch = authenticate(db, "coach@test.it", "CoachPass1!", expected_role=Role.ATHLETE)
    assert isinstance(mismatch, AuthErr)
    assert mismatch.reason == "ROLE_MISMATCH"


def test_wrong_coach_password_falls_through_to_athlete(db):
    coach = make_coach(db, email="shared@test.it", password="CoachPass1!")
    make_athlete(db, coach)
    db.add(
        AthleteAuth(
            athlete_id="A42",
            login_identifier="shared@test.it",
            password_hash=hash_password("AthletePass1!"),
            activated_at=utcnow(),
        )
    )
    db.commit()

    result = authenticate(db, "shared@test.it", "AthletePass1!")
    assert isinstance(result, AuthOk)
    assert result.principal.role == Role.ATHLETE
    assert result.principal.id == "A42"


def test_session_token_round_trip():
    principal = Principal(id="A42", role=Role.ATHLETE, email="a@test.it")
    decoded = decode_access_token(create_access_token(principal))
    assert decoded == principal


def test_invite_to_login_scenario(client, SessionLocal):
    db = SessionLocal()
    try:
        coach = make_coach(db)
        make_athlete(db, coach, notes_public="Focus on technique", notes_private="Knee issue")
        coach_headers = bearer(coach_principal(coach))
    finally:
        db.close()

    url = client.post("/api/v1/coach/athletes/A42/invite", headers=coach_headers).json()["invite_url"]
    raw = url.rsplit("/", 1)[1]

    # Not active yet
    r = _login(client, "a@test.it", "Passw0rd!")
    assert r.status_code == 401

    r = client.post("/api/v1/invites/accept", json={"token": raw, "email": "a@test.it", "password": "Passw0rd!"})
    assert r.json() == {"ok": True}

    r = client.post("/api/v1/invites/accept", json={"token": raw, "email": "a@test.it", "password": "Passw0rd!"})
    assert r.json()["code"] == "TOKEN_ALREADY_USED"

    r = _login(client, "a@test.it", "Passw0rd!", role="ATHLETE")
    assert r.status_code == 200, r.text
    token = r.json()["access_token"]
    assert r.json()["role"] == "ATHLETE"

    wrong = _login(client, "a@test.it", "wrong-password")
    unknown = _login(client, "nobody@test.it", "Passw0rd!")
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json()["detail"]["message"] == unknown.json()["detail"]["message"]

    me = client.get("/api/v1/athlete/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    athlete = me.json()["athlete"]
    assert athlete["athlete_id"] == "A42"
    assert athlete["notes_public"] == "Focus on technique"
    assert "notes_private" not in athlete
    assert "Knee issue" not in me.text


def test_login_role_mismatch_is_403(client, SessionLocal):
    db = SessionLocal()
    try:
        make_coach(db, email="coach@test.it", password="CoachPass1!")
    finally:
        db.close()

    r = _login(client, "coach@test.it", "CoachPass1!", role="ATHLETE")
    assert r.status_code == 403
    assert r.json()["code"] == "ROLE_MISMATCH"

    r = _login(client, "coach@test.it", "CoachPass1!", role="COACH")
    assert r.status_code == 200


def test_auth_me_and_role_guards(client, SessionLocal):
    db = SessionLocal()
    try:
        coach = make_coach(db)
        principal = coach_principal(coach)
    finally:
        db.close()

    r = client.get("/api/v1/auth/me", headers=bearer(principal))
    assert r.status_code == 200
    assert r.json()["role"] == "COACH"

    r = client.get("/api/v1/athlete/me", headers=bearer(principal))
    assert r.status_code == 403

    r = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401


def test_athlete_me_for_deleted_athlete_is_404(client, SessionLocal):
    db = SessionLocal()
    try:
        coach = make_coach(db)
        make_athlete(db, coach)
        db.query(Athlete).filter(Athlete.athlete_id == "A42").delete()
        db.commit()
    finally:
        db.close()

    principal = Principal(id="A42", role=Role.ATHLETE, email="a@test.it")
    r = client.get("/api/v1/athlete/me", headers=bearer(principal))
    assert r.status_code == 404


def test_login_is_rate_limited(client):
    from coachforge.core.rate_limit import login_limiter

    codes = [_login(client, "nobody@test.it", "whatever").status_code for _ in range(login_limiter.limit + 1)]
    assert codes[:-1] == [401] * login_limiter.limit
    assert codes[-1] == 429


def test_failed_logins_cost_two_verifications_whoever_the_email_belongs_to(db, monkeypatch):
    coach = make_coach(db, email="coach@test.it")
    make_athlete(db, coach)
    db.add(
        AthleteAuth(
            athlete_id="A42",
            login_identifier="a@test.it",
            password_hash=hash_password("Passw0rd!"),
            activated_at=utcnow(),
        )
    )
    db.commit()

    calls = []
    real_verify = security.pwd_context.verify

    def _counting_verify(secret, hashed, **kwargs):
        calls.append(hashed)
        return real_verify(secret, hashed, **kwargs)

    monkeypatch.setattr(security.pwd_context, "verify", _counting_verify)

    costs = {}
    for email in ("coach@test.it", "a@test.it", "nobody@test.it"):
        calls.clear()
        assert isinstance(authenticate(db, email, "wrong-password"), AuthErr)
        costs[email] = len(calls)

    assert costs == {"coach@test.it": 2, "a@test.it": 2, "nobody@test.it": 2}


def test_login_reports_not_active_only_for_a_known_identifier(client, SessionLocal):
    db = SessionLocal()
    try:
        coach = make_coach(db)
        make_athlete(db, coach)
        db.add(AthleteAuth(athlete_id="A42", login_identifier="a@test.it", password_hash=hash_password("Passw0rd!")))
        db.commit()

        assert authenticate(db, "a@test.it", "Passw0rd!") == AuthErr("NOT_ACTIVATED")
        assert authenticate(db, "nobody@test.it", "Passw0rd!") == AuthErr("INVALID_CREDENTIALS")
    finally:
        db.close()

    r = _login(client, "A@test.it", "Passw0rd!")
    assert r.status_code == 401
    assert r.json()["code"] == "ATHLETE_NOT_ACTIVE"

    r = _login(client, "nobody@test.it", "Passw0rd!")
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_CREDENTIALS"
