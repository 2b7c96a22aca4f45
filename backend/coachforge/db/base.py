# backend/coachforge/db/base.py

"""
Single source of truth for the SQLAlchemy Declarative Base.

This file must NOT import coachforge.models: alembic/env.py and the
test fixtures import Base first and then the models to register tables.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass
