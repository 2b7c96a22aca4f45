# backend/coachforge/services/tokens.py
import hashlib
import secrets
from typing import Optional

from coachforge.core.config import Settings
from coachforge.core.errors import ConfigurationError

INVITE_TOKEN_BYTES = 32  # 256 bits -> 64 hex chars


def mint_invite_token() -> str:
    # Raw token: only ever lives in the invite URL handed to the coach
    return secrets.token_hex(INVITE_TOKEN_BYTES)


def fingerprint_token(raw_token: str, pepper: Optional[str]) -> str:
    """
    sha256(raw_token + pepper) as a 64-char hex digest.

    This is what gets stored and looked up; the raw token is not
    recoverable from it.
    """
    if not pepper:
        raise ConfigurationError()
    return hashlib.sha256((raw_token + pepper).encode("utf-8")).hexdigest()


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def require_invite_pepper(settings: Settings) -> str:
    pepper = (settings.invite_token_pepper or "").strip()
    if not pepper:
        raise ConfigurationError()
    return pepper


def require_auth_url(settings: Settings) -> str:
    auth_url = (settings.auth_url or "").strip()
    if not auth_url:
        raise ConfigurationError()
    return auth_url.rstrip("/")


def build_invite_url(auth_url: str, raw_token: str) -> str:
    return f"{auth_url.rstrip('/')}/invite/{raw_token}"
