# backend/coachforge/db/session.py
import logging
import time

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from coachforge.core.config import settings
from coachforge.core.request_context import get_request_id, record_db_query

logger = logging.getLogger("coachforge.db")

DATABASE_URL = settings.database_url or "sqlite:///./coachforge.db"


def build_engine(url: str) -> Engine:
    """
    One engine (and pool) per process. Services never create their own;
    they receive a Session from get_db().
    """
    return create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
        pool_pre_ping=not url.startswith("sqlite"),
    )


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _sql_head(statement: str) -> str:
    # Collapse whitespace + trim. No params logged.
    return " ".join((statement or "").split())[:240]


@event.listens_for(Engine, "before_cursor_execute")
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    context._coachforge_query_start = time.perf_counter()


@event.listens_for(Engine, "after_cursor_execute")
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    start = getattr(context, "_coachforge_query_start", None)
    if start is None:
        return

    duration_ms = (time.perf_counter() - start) * 1000.0
    record_db_query(duration_ms)

    if duration_ms >= settings.slow_db_query_ms:
        if settings.log_db_sql:
            logger.warning(
                "slow_db_query request_id=%s duration_ms=%.2f sql=%s",
                get_request_id(),
                duration_ms,
                _sql_head(statement),
            )
        else:
            logger.warning(
                "slow_db_query request_id=%s duration_ms=%.2f",
                get_request_id(),
                duration_ms,
            )


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
