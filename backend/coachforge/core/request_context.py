# backend/coachforge/core/request_context.py
from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("coachforge_request_id", default=None)


def set_request_id(rid: str | None) -> None:
    request_id_var.set(rid)


def get_request_id() -> str:
    return request_id_var.get() or "-"


@dataclass
class DbMetrics:
    """Per-request rollup of SQL statements executed through the engine."""

    query_count: int = 0
    total_ms: float = 0.0
    slowest_ms: float = 0.0

    def record(self, duration_ms: float) -> None:
        self.query_count += 1
        self.total_ms += float(duration_ms)
        if duration_ms > self.slowest_ms:
            self.slowest_ms = float(duration_ms)


db_metrics_var: ContextVar[Optional[DbMetrics]] = ContextVar("coachforge_db_metrics", default=None)


def reset_db_metrics() -> None:
    """Call once per request (in the observability middleware)."""
    db_metrics_var.set(DbMetrics())


def get_db_metrics() -> DbMetrics:
    m = db_metrics_var.get()
    if m is None:
        m = DbMetrics()
        db_metrics_var.set(m)
    return m


def clear_db_metrics() -> None:
    db_metrics_var.set(None)


def record_db_query(duration_ms: float) -> None:
    get_db_metrics().record(duration_ms)
