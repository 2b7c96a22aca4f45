# backend/coachforge/services/credentials.py
"""
Credential store and verification.

AthleteAuth rows are written only by the invite acceptance flow
(upsert_athlete_auth). Everything else here is read-only and used by the
session login route.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, Union

from sqlalchemy.orm import Session

from coachforge.core.security import (
    Principal,
    Role,
    burn_password_check,
    verify_password,
)
from coachforge.models import AthleteAuth, Coach
from coachforge.services.tokens import normalize_email

logger = logging.getLogger("coachforge.auth")

AuthFailure = Literal["INVALID_CREDENTIALS", "NOT_ACTIVATED", "ROLE_MISMATCH"]


@dataclass(frozen=True)
class AuthOk:
    principal: Principal
    ok: Literal[True] = True


@dataclass(frozen=True)
class AuthErr:
    reason: AuthFailure
    ok: Literal[False] = False


AuthResult = Union[AuthOk, AuthErr]


# === Store ===

def get_athlete_auth(db: Session, athlete_id: str) -> Optional[AthleteAuth]:
    return db.query(AthleteAuth).filter(AthleteAuth.athlete_id == athlete_id).first()


def find_auth_by_identifier(db: Session, identifier: str) -> Optional[AthleteAuth]:
    ident = normalize_email(identifier)
    if not ident:
        return None
    return db.query(AthleteAuth).filter(AthleteAuth.login_identifier == ident).first()


def upsert_athlete_auth(
    db: Session,
    *,
    athlete_id: str,
    login_identifier: str,
    password_hash: str,
    now: datetime,
) -> AthleteAuth:
    """
    Create-or-update the credential row for `athlete_id` and mark it active.

    Flushes but does not commit: a duplicate login_identifier raises
    IntegrityError inside the caller's transaction.
    """
    auth = get_athlete_auth(db, athlete_id)
    if auth is None:
        auth = AthleteAuth(athlete_id=athlete_id)

    auth.login_identifier = normalize_email(login_identifier)
    auth.password_hash = password_hash
    auth.activated_at = now

    db.add(auth)
    db.flush()
    return auth


# === Verification ===

def verify_athlete_credentials(db: Session, identifier: str, password: str) -> bool:
    """
    True only for an activated athlete whose password matches.

    Fails closed: every failure returns False, and every path performs
    exactly one password verification.
    """
    auth = find_auth_by_identifier(db, identifier)
    if auth is None or not auth.password_hash:
        burn_password_check(password or "")
        return False

    password_ok = verify_password(password or "", auth.password_hash)
    return password_ok and auth.activated_at is not None


def is_athlete_activated(db: Session, identifier: str) -> bool:
    """
    Explicit activation check behind the login "not active yet" message.
    Call only after a successful identifier lookup; never use it to
    branch the password comparison.
    """
    auth = find_auth_by_identifier(db, identifier)
    return bool(auth is not None and auth.activated_at is not None)


def authenticate(
    db: Session,
    email: str,
    password: str,
    expected_role: Optional[Role] = None,
) -> AuthResult:
    """
    Resolve a login attempt to a Principal.

    Coach credentials are tried first. A wrong coach password falls
    through to the athlete path, because the same email may also be an
    athlete login identifier. Every failed attempt costs two password
    verifications, so timing does not tell coach emails apart.

    NOT_ACTIVATED is decided after the password path has already failed
    closed, from the identifier lookup alone.
    """
    email_norm = normalize_email(email)
    if not email_norm or not password:
        return AuthErr("INVALID_CREDENTIALS")

    principal: Optional[Principal] = None

    coach = db.query(Coach).filter(Coach.email == email_norm).first()
    if coach is not None and coach.password_hash:
        if verify_password(password, coach.password_hash):
            principal = Principal(id=coach.coach_id, role=Role.COACH, email=coach.email)
    else:
        burn_password_check(password)

    if principal is None and verify_athlete_credentials(db, email_norm, password):
        auth = find_auth_by_identifier(db, email_norm)
        if auth is not None:
            principal = Principal(id=auth.athlete_id, role=Role.ATHLETE, email=auth.login_identifier)

    if principal is None:
        if find_auth_by_identifier(db, email_norm) is not None and not is_athlete_activated(db, email_norm):
            return AuthErr("NOT_ACTIVATED")
        return AuthErr("INVALID_CREDENTIALS")

    if expected_role is not None and principal.role != expected_role:
        logger.info("login_role_mismatch principal_id=%s role=%s", principal.id, principal.role.value)
        return AuthErr("ROLE_MISMATCH")

    return AuthOk(principal)
