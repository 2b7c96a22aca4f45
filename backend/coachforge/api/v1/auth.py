# backend/coachforge/api/v1/auth.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from coachforge.core.rate_limit import login_rate_limit
from coachforge.core.security import (
    Principal,
    Role,
    create_access_token,
    get_current_principal,
)
from coachforge.db.session import get_db
from coachforge.services.credentials import AuthErr, authenticate

logger = logging.getLogger("coachforge.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


# === Schemas ===

class LoginRequest(BaseModel):
    email: str
    password: str
    # Set by the coach / athlete login pages; None accepts either role
    role: Optional[Role] = None


class Token(BaseModel):
    access_token: str
    token_type: str
    role: Role


class MeOut(BaseModel):
    id: str
    role: Role
    email: str


# === Routes ===

@router.post(
    "/login",
    response_model=Token,
    dependencies=[Depends(login_rate_limit)],
)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> Token:
    result = authenticate(db, payload.email, payload.password, expected_role=payload.role)

    if isinstance(result, AuthErr):
        if result.reason == "ROLE_MISMATCH":
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "ROLE_MISMATCH", "message": "This account cannot sign in here."},
            )
        if result.reason == "NOT_ACTIVATED":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={
                    "code": "ATHLETE_NOT_ACTIVE",
                    "message": "Account not active yet. Open the invite link from your coach.",
                },
            )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": "INVALID_CREDENTIALS",
                "message": "Invalid credentials or athlete not active.",
            },
        )

    principal = result.principal
    logger.info("login_ok principal_id=%s role=%s", principal.id, principal.role.value)
    return Token(
        access_token=create_access_token(principal),
        token_type="bearer",
        role=principal.role,
    )


@router.get("/me", response_model=MeOut)
def read_me(principal: Principal = Depends(get_current_principal)) -> MeOut:
    return MeOut(id=principal.id, role=principal.role, email=principal.email)
