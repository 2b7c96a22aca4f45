# backend/coachforge/main.py

import logging
import time
import uuid
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from coachforge.core.config import settings
from coachforge.core.errors import install_request_id_logging
from coachforge.core.request_context import (
    clear_db_metrics,
    get_db_metrics,
    get_request_id,
    reset_db_metrics,
    set_request_id,
)

# --- Logging setup ---
# A LogRecordFactory runs for EVERY record, so %(request_id)s never raises
# KeyError even for third-party loggers that bypass our filter.
_old_factory = logging.getLogRecordFactory()


def _record_factory(*args, **kwargs):
    record = _old_factory(*args, **kwargs)
    if not hasattr(record, "request_id"):
        record.request_id = "-"
    return record


logging.setLogRecordFactory(_record_factory)

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s %(name)s request_id=%(request_id)s %(message)s",
)
install_request_id_logging()

logger = logging.getLogger("coachforge")

# Fail fast in prod; dev/staging surface a missing pepper as 500 per request
if settings.is_prod and not settings.invites_configured:
    raise RuntimeError(
        "INVITE_TOKEN_PEPPER and AUTH_URL must be set in production. "
        "Invites cannot be issued or accepted without them."
    )
if not settings.invites_configured:
    logger.warning("Startup: INVITE_TOKEN_PEPPER or AUTH_URL missing; invite endpoints will return 500")

enable_docs = settings.enable_docs
logger.info("Startup: enable_docs=%s", enable_docs)

# Log DB backend type (sqlite, postgresql, etc.) without leaking credentials
logger.info("DB backend detected: %s", (settings.database_url or "").split(":", 1)[0] or "unknown")

# --- App setup ---
app = FastAPI(
    title="CoachForge API",
    openapi_url="/api/v1/openapi.json" if enable_docs else None,
    docs_url="/api/v1/docs" if enable_docs else None,
    redoc_url="/api/v1/redoc" if enable_docs else None,
)


def _get_request_id(request: Request) -> str:
    """
    Use an incoming request id if present (common in proxies),
    otherwise generate one.
    """
    incoming = request.headers.get("x-request-id") or request.headers.get("x-correlation-id")
    if incoming and incoming.strip():
        return incoming.strip()[:128]
    return uuid.uuid4().hex


def _rid_from_request(request: Request) -> str:
    # Prefer request.state (set by middleware), fall back to request_context, then generate.
    rid = getattr(request.state, "request_id", None)
    if isinstance(rid, str) and rid.strip():
        return rid
    rid2 = get_request_id()
    if rid2 and rid2 != "-":
        return rid2
    return uuid.uuid4().hex


def _error_payload(code: str, message: str, request_id: str, extra: Optional[dict] = None) -> dict:
    """
    Standardized error contract:
    - code/message/request_id at top level
    - detail mirrors {code, message} (plus any structured fields)
    """
    payload: dict[str, Any] = {
        "code": code,
        "message": message,
        "request_id": request_id,
        "detail": {"code": code, "message": message},
    }
    if extra:
        payload.update(extra)
    return payload


def _http_exception_payload(exc: HTTPException, *, request_id: str) -> dict:
    """
    If exc.detail is a dict with its own "code" (service errors do this),
    that code wins at the top level; the HTTP_<status> code stays available
    as detail["http_code"].
    """
    http_code = f"HTTP_{exc.status_code}"

    if isinstance(exc.detail, dict):
        msg = exc.detail.get("message")
        if not isinstance(msg, str) or not msg.strip():
            msg = "Request failed."
        code = exc.detail.get("code") if isinstance(exc.detail.get("code"), str) else http_code

        merged_detail: dict[str, Any] = {"code": code, "message": msg, "http_code": http_code}
        merged_detail.update(exc.detail)

        return _error_payload(code=code, message=msg, request_id=request_id, extra={"detail": merged_detail})

    msg = exc.detail if isinstance(exc.detail, str) else "Request failed."
    return _error_payload(code=http_code, message=msg, request_id=request_id)


# --- Exception handlers (standardized error contract) ---
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    request_id = _rid_from_request(request)
    resp = JSONResponse(
        status_code=exc.status_code,
        content=_http_exception_payload(exc, request_id=request_id),
        headers=getattr(exc, "headers", None),
    )
    resp.headers["X-Request-ID"] = request_id
    return resp


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = _rid_from_request(request)
    resp = JSONResponse(
        status_code=422,
        content=_error_payload(
            code="VALIDATION_ERROR",
            message="Validation error. Check request body/query parameters.",
            request_id=request_id,
            extra={"errors": [{"loc": e.get("loc"), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]},
        ),
    )
    resp.headers["X-Request-ID"] = request_id
    return resp


# --- Observability middleware: request id + timing + structured logs ---
@app.middleware("http")
async def request_observability(request: Request, call_next):
    request_id = _get_request_id(request)
    request.state.request_id = request_id
    set_request_id(request_id)
    reset_db_metrics()

    start = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-ID"] = request_id
        return response

    except Exception as e:
        if isinstance(e, (HTTPException, RequestValidationError)):
            raise

        # Full traceback goes to the server log only; the client gets a bare 500.
        logger.exception(
            "Unhandled error method=%s path=%s error_type=%s",
            request.method,
            request.url.path,
            type(e).__name__,
        )
        resp = JSONResponse(
            status_code=500,
            content=_error_payload(code="INTERNAL_ERROR", message="Internal Server Error", request_id=request_id),
        )
        resp.headers["X-Request-ID"] = request_id
        status_code = 500
        return resp

    finally:
        duration_ms = (time.perf_counter() - start) * 1000.0
        m = get_db_metrics()

        # key=value so it's grep-friendly
        log_fn = logger.warning if duration_ms >= settings.slow_http_ms else logger.info
        log_fn(
            "req method=%s path=%s status=%s duration_ms=%.2f db_total_ms=%.2f db_q=%s db_slowest_ms=%.2f",
            request.method,
            request.url.path,
            status_code,
            duration_ms,
            m.total_ms,
            m.query_count,
            m.slowest_ms,
        )

        if m.total_ms >= settings.slow_db_total_ms:
            logger.warning(
                "slow_db_total method=%s path=%s db_total_ms=%.2f db_q=%s",
                request.method,
                request.url.path,
                m.total_ms,
                m.query_count,
            )

        clear_db_metrics()
        set_request_id(None)


# --- CORS setup ---
allowed = settings.origins_list()
logger.info("CORS allow_origins=%s", allowed)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Include routers (after app creation) ---
from coachforge.api.v1 import athlete, auth, health, invites  # noqa: E402

app.include_router(auth.router, prefix="/api/v1")
app.include_router(invites.coach_router, prefix="/api/v1")
app.include_router(invites.router, prefix="/api/v1")
app.include_router(athlete.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
def root():
    if enable_docs:
        return RedirectResponse(url="/api/v1/docs")
    return {"status": "CoachForge API is running. See /api/v1/health."}
