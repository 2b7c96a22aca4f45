# backend/coachforge/core/rate_limit.py
"""
In-memory sliding-window limits for the unauthenticated endpoints
(login and invite acceptance), keyed by client address.

Single-process only: each worker keeps its own counters.
"""
import logging
import math
import time
from collections import deque
from typing import Deque, Dict, Optional

from fastapi import Depends, HTTPException, Request, status

from coachforge.core.config import Settings, get_settings, settings

logger = logging.getLogger("coachforge.rate_limit")


def client_address(request: Request, *, trust_forwarded_for: bool = False) -> str:
    """
    The peer address by default. The first X-Forwarded-For hop is used only
    when the deployment says a proxy rewrites that header.
    """
    if trust_forwarded_for:
        xff = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
        if xff:
            return xff

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class SlidingWindowLimiter:
    """
    At most `limit` hits per client within `window_seconds`.

    Buckets are dropped as soon as their window is empty, so the store
    holds only clients seen during the last window.
    """

    def __init__(self, name: str, limit: int, window_seconds: int):
        self.name = name
        self.limit = int(limit)
        self.window_seconds = int(window_seconds)
        self._buckets: Dict[str, Deque[float]] = {}
        self._last_sweep = 0.0

    def __len__(self) -> int:
        return len(self._buckets)

    def reset(self) -> None:
        self._buckets.clear()
        self._last_sweep = 0.0

    def _sweep(self, now: float) -> None:
        cutoff = now - self.window_seconds
        for key in [k for k, hits in self._buckets.items() if not hits or hits[-1] < cutoff]:
            del self._buckets[key]
        self._last_sweep = now

    def check(self, client: str, now: Optional[float] = None) -> Optional[int]:
        """
        Record a hit for `client`. Returns None when allowed, otherwise the
        number of seconds until the oldest hit leaves the window.
        """
        now = time.monotonic() if now is None else now
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(now)

        cutoff = now - self.window_seconds
        hits = self._buckets.get(client)
        if hits is not None:
            while hits and hits[0] < cutoff:
                hits.popleft()

        if hits and len(hits) >= self.limit:
            return max(1, math.ceil(hits[0] + self.window_seconds - now))

        if hits is None:
            hits = self._buckets[client] = deque()
        hits.append(now)
        return None

    def enforce(self, request: Request, settings: Settings) -> None:
        client = client_address(request, trust_forwarded_for=settings.trust_forwarded_for)
        retry_after = self.check(client)
        if retry_after is None:
            return

        logger.warning("rate_limited limiter=%s retry_after=%s", self.name, retry_after)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"code": "RATE_LIMITED", "message": "Too many requests, please slow down."},
            headers={"Retry-After": str(retry_after)},
        )


login_limiter = SlidingWindowLimiter("login", settings.login_rate_limit, settings.login_rate_window)
invite_accept_limiter = SlidingWindowLimiter(
    "invite_accept",
    settings.invite_accept_rate_limit,
    settings.invite_accept_rate_window,
)


async def login_rate_limit(request: Request, settings: Settings = Depends(get_settings)) -> None:
    login_limiter.enforce(request, settings)


async def invite_accept_rate_limit(request: Request, settings: Settings = Depends(get_settings)) -> None:
    invite_accept_limiter.enforce(request, settings)
