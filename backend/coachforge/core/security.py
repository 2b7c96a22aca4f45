from __future__ import annotations

from datetime import timedelta
from enum import Enum
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from coachforge.core.clock import utcnow
from coachforge.core.config import settings

# Hard guard: never allow the default secret in production-like envs
if settings.is_prod and settings.jwt_secret in {"supersecret", "changeme", "secret", ""}:
    raise RuntimeError(
        "Insecure JWT_SECRET configured in production environment. "
        "Set a strong random secret via the JWT_SECRET env var."
    )

# argon2 (argon2-cffi backend): slow, salted, memory-hard
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


class Role(str, Enum):
    COACH = "COACH"
    ATHLETE = "ATHLETE"


class Principal(BaseModel):
    """Authenticated caller, as carried in the session token."""

    id: str
    role: Role
    email: str


def _http_401(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# === Passwords ===

def hash_password(raw: str) -> str:
    return pwd_context.hash(str(raw))


def verify_password(raw: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return pwd_context.verify(str(raw), hashed)
    except (ValueError, TypeError):
        # Unparseable stored hash: treat as a mismatch
        return False


@lru_cache()
def _dummy_hash() -> str:
    return pwd_context.hash("coachforge-timing-equalizer")


def burn_password_check(raw: str) -> None:
    """
    Spend the same work as a real verification when there is nothing to
    compare against, so "unknown identifier" costs as much as "wrong password".
    """
    pwd_context.verify(str(raw), _dummy_hash())


# === Session tokens ===

def create_access_token(principal: Principal) -> str:
    expire = utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode = {
        "sub": principal.id,
        "role": principal.role.value,
        "email": principal.email,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Principal:
    """
    Decode a session token into a Principal.
    Raises 401 on any error.
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise _http_401("Invalid or expired token")

    if payload.get("type", "access") != "access":
        raise _http_401("Invalid token type")

    sub = payload.get("sub")
    role = payload.get("role")
    if not sub or role not in {r.value for r in Role}:
        raise _http_401("Invalid token payload")

    return Principal(id=str(sub), role=Role(role), email=str(payload.get("email") or ""))


def get_current_principal(token: Optional[str] = Depends(oauth2_scheme)) -> Principal:
    if not token:
        raise _http_401("Not authenticated")
    return decode_access_token(token)


def require_coach(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.role != Role.COACH:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN_COACH_ONLY", "message": "Coach access required."},
        )
    return principal


def require_athlete(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.role != Role.ATHLETE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN_ATHLETE_ONLY", "message": "Athlete access required."},
        )
    return principal
