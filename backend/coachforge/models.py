# backend/coachforge/models.py
import uuid

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import text

from coachforge.db.base import Base

# Cross-DB timestamp default (SQLite + Postgres)
DB_NOW = text("CURRENT_TIMESTAMP")


def _new_id() -> str:
    return uuid.uuid4().hex


class Coach(Base):
    __tablename__ = "coach"

    coach_id = Column(String(64), primary_key=True, default=_new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=DB_NOW, nullable=False)

    athletes = relationship("Athlete", back_populates="coach", cascade="all, delete-orphan")


class Athlete(Base):
    """
    Athlete profile, owned by exactly one coach.

    Created and edited by the coach-facing CRUD routes. The invite flow
    only reads it for ownership and writes AthleteAuth / AthleteInvite.
    """
    __tablename__ = "athlete"

    athlete_id = Column(String(64), primary_key=True, default=_new_id)
    coach_id = Column(String(64), ForeignKey("coach.coach_id", ondelete="CASCADE"), nullable=False, index=True)
    first_name = Column(String(120), nullable=False)
    last_name = Column(String(120), nullable=False)

    # notes_private is coach-only; never serialize it on athlete-facing routes
    notes_public = Column(Text, nullable=True)
    notes_private = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=DB_NOW, nullable=False)

    coach = relationship("Coach", back_populates="athletes")
    auth = relationship("AthleteAuth", back_populates="athlete", uselist=False, cascade="all, delete-orphan")
    invites = relationship("AthleteInvite", back_populates="athlete", cascade="all, delete-orphan")


class AthleteAuth(Base):
    """
    Login credentials of an athlete (1:1 with Athlete).

    activated_at is the only login gate: NULL means the athlete has not
    accepted an invite yet and cannot sign in.
    """
    __tablename__ = "athlete_auth"

    athlete_id = Column(String(64), ForeignKey("athlete.athlete_id", ondelete="CASCADE"), primary_key=True)
    login_identifier = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=True)
    activated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=DB_NOW, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=DB_NOW, onupdate=DB_NOW, nullable=False)

    athlete = relationship("Athlete", back_populates="auth")

    __table_args__ = (
        Index("ux_athlete_auth_login_identifier", "login_identifier", unique=True),
    )


class AthleteInvite(Base):
    """
    Single-use, time-limited activation link for one athlete.

    Only the sha256(raw token + pepper) fingerprint is stored. Rows are never
    deleted: superseded invites get expires_at pulled to "now", consumed ones
    get used_at.
    """
    __tablename__ = "athlete_invite"

    invite_id = Column(String(64), primary_key=True, default=_new_id)
    athlete_id = Column(String(64), ForeignKey("athlete.athlete_id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=DB_NOW, nullable=False)

    athlete = relationship("Athlete", back_populates="invites")

    __table_args__ = (
        Index("ux_athlete_invite_token_hash", "token_hash", unique=True),
        Index("ix_athlete_invite_athlete_used", "athlete_id", "used_at"),
    )
