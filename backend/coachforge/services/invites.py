# backend/coachforge/services/invites.py
"""
Athlete invite workflow.

Issuance (coach side):
    authorize -> refuse if already active -> expire outstanding invites
    -> mint token -> store fingerprint -> return {AUTH_URL}/invite/{raw}

Acceptance (public side):
    fingerprint lookup -> unused? -> unexpired? -> hash password
    -> ONE transaction: conditional mark-used + credential upsert

Only the fingerprint is persisted. The raw token exists in memory during
issuance and in the URL given to the coach, nowhere else.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from coachforge.core.clock import as_aware_utc, utcnow
from coachforge.core.config import Settings
from coachforge.core.errors import (
    ConflictError,
    EmailInUseError,
    ForbiddenError,
    InvalidRequestError,
    InvalidTokenError,
    NotFoundError,
    PersistenceError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    WeakPasswordError,
    log_exception_with_context,
)
from coachforge.core.security import Principal, Role, hash_password
from coachforge.models import Athlete, AthleteInvite
from coachforge.services.credentials import get_athlete_auth, upsert_athlete_auth
from coachforge.services.tokens import (
    build_invite_url,
    fingerprint_token,
    mint_invite_token,
    normalize_email,
    require_auth_url,
    require_invite_pepper,
)

logger = logging.getLogger("coachforge.invites")

OwnerCheck = Callable[[Session, str, str], bool]


@dataclass(frozen=True)
class IssuedInvite:
    invite_url: str
    expires_at: datetime


@dataclass(frozen=True)
class AcceptedInvite:
    athlete_id: str


@dataclass(frozen=True)
class InviteStatus:
    activated: bool
    activated_at: Optional[datetime]
    live_invite_expires_at: Optional[datetime]


# ----------------------------
# Store
# ----------------------------

def invalidate_outstanding_invites(db: Session, athlete_id: str, now: datetime) -> int:
    """
    Pull expires_at to `now` on every unused invite of the athlete,
    whatever its current expiry. Returns the number of rows touched.
    """
    return (
        db.query(AthleteInvite)
        .filter(AthleteInvite.athlete_id == athlete_id, AthleteInvite.used_at.is_(None))
        .update({AthleteInvite.expires_at: now}, synchronize_session=False)
    )


def create_invite(db: Session, *, athlete_id: str, token_hash: str, expires_at: datetime) -> AthleteInvite:
    inv = AthleteInvite(
        athlete_id=athlete_id,
        token_hash=token_hash,
        expires_at=expires_at,
        used_at=None,
    )
    db.add(inv)
    db.flush()
    return inv


def find_invite_by_hash(db: Session, token_hash: str) -> Optional[AthleteInvite]:
    return db.query(AthleteInvite).filter(AthleteInvite.token_hash == token_hash).first()


def mark_invite_used(db: Session, invite_id: str, now: datetime) -> bool:
    """
    Conditional update: succeeds only if used_at is still NULL in the
    database. Two racing acceptances cannot both get True.
    """
    updated = (
        db.query(AthleteInvite)
        .filter(AthleteInvite.invite_id == invite_id, AthleteInvite.used_at.is_(None))
        .update({AthleteInvite.used_at: now}, synchronize_session=False)
    )
    return updated == 1


def live_invites_query(db: Session, athlete_id: str, now: datetime):
    return db.query(AthleteInvite).filter(
        AthleteInvite.athlete_id == athlete_id,
        AthleteInvite.used_at.is_(None),
        AthleteInvite.expires_at > now,
    )


def count_live_invites(db: Session, athlete_id: str, now: Optional[datetime] = None) -> int:
    return live_invites_query(db, athlete_id, now or utcnow()).count()


# ----------------------------
# Ownership (external collaborator)
# ----------------------------

def coach_owns_athlete(db: Session, coach_id: str, athlete_id: str) -> bool:
    return (
        db.query(Athlete.athlete_id)
        .filter(Athlete.athlete_id == athlete_id, Athlete.coach_id == coach_id)
        .first()
        is not None
    )


def _authorize_coach(db: Session, caller: Principal, athlete_id: str, owner_check: OwnerCheck) -> None:
    if caller.role != Role.COACH:
        raise ForbiddenError("Only coaches can manage athlete invites.")

    # Missing and foreign athletes look the same to the caller
    if not owner_check(db, caller.id, athlete_id):
        raise NotFoundError()


# ----------------------------
# Issuance
# ----------------------------

def issue_invite(
    db: Session,
    *,
    caller: Principal,
    athlete_id: str,
    settings: Settings,
    now: Optional[datetime] = None,
    owner_check: OwnerCheck = coach_owns_athlete,
) -> IssuedInvite:
    pepper = require_invite_pepper(settings)
    auth_url = require_auth_url(settings)

    _authorize_coach(db, caller, athlete_id, owner_check)

    auth = get_athlete_auth(db, athlete_id)
    if auth is not None and auth.activated_at is not None:
        raise ConflictError()

    now = now or utcnow()

    superseded = invalidate_outstanding_invites(db, athlete_id, now)

    raw_token = mint_invite_token()
    expires_at = now + timedelta(hours=settings.invite_expire_hours)
    inv = create_invite(
        db,
        athlete_id=athlete_id,
        token_hash=fingerprint_token(raw_token, pepper),
        expires_at=expires_at,
    )
    db.commit()

    logger.info(
        "invite_issued athlete_id=%s invite_id=%s superseded=%s expires_at=%s",
        athlete_id,
        inv.invite_id,
        superseded,
        expires_at.isoformat(),
    )

    return IssuedInvite(invite_url=build_invite_url(auth_url, raw_token), expires_at=expires_at)


def get_invite_status(
    db: Session,
    *,
    caller: Principal,
    athlete_id: str,
    now: Optional[datetime] = None,
    owner_check: OwnerCheck = coach_owns_athlete,
) -> InviteStatus:
    _authorize_coach(db, caller, athlete_id, owner_check)

    now = now or utcnow()
    auth = get_athlete_auth(db, athlete_id)
    activated_at = as_aware_utc(auth.activated_at) if auth is not None else None

    live = live_invites_query(db, athlete_id, now).order_by(AthleteInvite.expires_at.desc()).first()

    return InviteStatus(
        activated=activated_at is not None,
        activated_at=activated_at,
        live_invite_expires_at=as_aware_utc(live.expires_at) if live is not None else None,
    )


# ----------------------------
# Acceptance
# ----------------------------

def _reject(err: Exception, *, invite_id: Optional[str] = None) -> Exception:
    logger.info("invite_rejected code=%s invite_id=%s", getattr(err, "code", "-"), invite_id or "-")
    return err


def accept_invite(
    db: Session,
    *,
    raw_token: str,
    email: str,
    password: str,
    settings: Settings,
    now: Optional[datetime] = None,
) -> AcceptedInvite:
    raw_token = (raw_token or "").strip()
    email_norm = normalize_email(email)
    password = password or ""

    if not raw_token or not email_norm or not password:
        raise _reject(InvalidRequestError())

    pepper = require_invite_pepper(settings)

    inv = find_invite_by_hash(db, fingerprint_token(raw_token, pepper))
    if inv is None:
        raise _reject(InvalidTokenError())

    invite_id = inv.invite_id
    athlete_id = inv.athlete_id

    if inv.used_at is not None:
        raise _reject(TokenAlreadyUsedError(), invite_id=invite_id)

    now = now or utcnow()
    expires_at = as_aware_utc(inv.expires_at)
    if expires_at is None or expires_at <= now:
        raise _reject(TokenExpiredError(), invite_id=invite_id)

    if len(password) < settings.min_password_length:
        raise _reject(
            WeakPasswordError(f"Password must be at least {settings.min_password_length} characters."),
            invite_id=invite_id,
        )

    password_hash = hash_password(password)

    try:
        if not mark_invite_used(db, invite_id, now):
            # Another request consumed the token after our read
            db.rollback()
            raise _reject(TokenAlreadyUsedError(), invite_id=invite_id)

        upsert_athlete_auth(
            db,
            athlete_id=athlete_id,
            login_identifier=email_norm,
            password_hash=password_hash,
            now=now,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise _reject(EmailInUseError(), invite_id=invite_id)
    except SQLAlchemyError:
        db.rollback()
        log_exception_with_context(
            "invite_accept_failed",
            extra={"invite_id": invite_id, "athlete_id": athlete_id},
        )
        raise PersistenceError()

    logger.info("invite_accepted athlete_id=%s invite_id=%s", athlete_id, invite_id)
    return AcceptedInvite(athlete_id=athlete_id)
