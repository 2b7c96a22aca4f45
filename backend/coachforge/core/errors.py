# backend/coachforge/core/errors.py

from __future__ import annotations

from enum import Enum
import logging
from typing import Any, Optional

from fastapi import HTTPException

from coachforge.core.request_context import get_request_id

logger = logging.getLogger("coachforge")


class InviteErrorCode(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    SERVER_MISCONFIGURED = "SERVER_MISCONFIGURED"
    FORBIDDEN = "FORBIDDEN"
    ATHLETE_NOT_FOUND = "ATHLETE_NOT_FOUND"
    ATHLETE_ALREADY_ACTIVE = "ATHLETE_ALREADY_ACTIVE"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_ALREADY_USED = "TOKEN_ALREADY_USED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    EMAIL_IN_USE = "EMAIL_IN_USE"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"


class ServiceError(Exception):
    """
    Expected, typed failure raised by the service layer.

    Routes translate it into an HTTPException with a stable
    {"code", "message"} detail so the UI can branch on `code`.
    """

    status_code: int = 400
    code: InviteErrorCode = InviteErrorCode.BAD_REQUEST
    message: str = "Bad request."

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_http(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={"code": self.code.value, "message": self.message},
        )


class ConfigurationError(ServiceError):
    # Operator must fix the deployment; the message stays generic on the wire.
    status_code = 500
    code = InviteErrorCode.SERVER_MISCONFIGURED
    message = "Server is not configured for invites."


class ForbiddenError(ServiceError):
    status_code = 403
    code = InviteErrorCode.FORBIDDEN
    message = "Not allowed."


class NotFoundError(ServiceError):
    status_code = 404
    code = InviteErrorCode.ATHLETE_NOT_FOUND
    message = "Athlete not found."


class ConflictError(ServiceError):
    status_code = 409
    code = InviteErrorCode.ATHLETE_ALREADY_ACTIVE
    message = "Athlete is already active: no invite needed."


class InvalidRequestError(ServiceError):
    message = "token, email and password are required."


class WeakPasswordError(ServiceError):
    code = InviteErrorCode.WEAK_PASSWORD
    message = "Password is too short."


class InvalidTokenError(ServiceError):
    code = InviteErrorCode.INVALID_TOKEN
    message = "Invalid token."


class TokenAlreadyUsedError(ServiceError):
    code = InviteErrorCode.TOKEN_ALREADY_USED
    message = "Token already used."


class TokenExpiredError(ServiceError):
    code = InviteErrorCode.TOKEN_EXPIRED
    message = "Token expired."


class EmailInUseError(ServiceError):
    code = InviteErrorCode.EMAIL_IN_USE
    message = "Email already in use."


class PersistenceError(ServiceError):
    status_code = 500
    code = InviteErrorCode.PERSISTENCE_ERROR
    message = "Server error."


class RequestIdFilter(logging.Filter):
    """
    Injects request_id into every LogRecord as `record.request_id`.
    Safe in non-request contexts (falls back to "-").
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


def install_request_id_logging(
    logger_name: str = "coachforge",
    *,
    include_root: bool = True,
) -> None:
    """
    Attach RequestIdFilter so logs can include %(request_id)s in the formatter.
    Call once during startup, right after logging.basicConfig().
    """
    filt = RequestIdFilter()

    if include_root:
        for handler in logging.getLogger().handlers:
            handler.addFilter(filt)

    logging.getLogger(logger_name).addFilter(filt)


def log_exception_with_context(
    message: str,
    *,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """
    Log the exception currently being handled, with stack trace and request id.

    Only ids and codes belong in `extra`; never tokens, hashes or passwords.
    The request id itself is attached by RequestIdFilter.
    """
    details = " ".join(f"{k}={v}" for k, v in (extra or {}).items())
    logger.exception("%s %s", message, details)
