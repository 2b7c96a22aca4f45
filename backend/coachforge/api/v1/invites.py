# backend/coachforge/api/v1/invites.py

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from coachforge.core.config import Settings, get_settings
from coachforge.core.errors import InviteErrorCode, ServiceError
from coachforge.core.rate_limit import invite_accept_rate_limit
from coachforge.core.security import Principal, require_coach
from coachforge.db.session import get_db
from coachforge.services.invites import accept_invite, get_invite_status, issue_invite

coach_router = APIRouter(prefix="/coach/athletes", tags=["invites"])
router = APIRouter(prefix="/invites", tags=["invites"])


# ---------- Schemas ----------

class InviteIssueResponse(BaseModel):
    invite_url: str
    expires_at: datetime


class InviteStatusResponse(BaseModel):
    athlete_id: str
    activated: bool
    activated_at: Optional[datetime] = None
    live_invite_expires_at: Optional[datetime] = None


class InviteAcceptRequest(BaseModel):
    token: str = Field(..., max_length=512)
    email: str = Field(..., max_length=255)
    password: str = Field(..., max_length=256)


class InviteAcceptResponse(BaseModel):
    ok: bool = True


def _bad_request() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": InviteErrorCode.BAD_REQUEST.value, "message": "Bad request."},
    )


# ---------- Coach routes ----------

@coach_router.post(
    "/{athlete_id}/invite",
    response_model=InviteIssueResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_athlete_invite(
    athlete_id: str,
    coach: Principal = Depends(require_coach),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> InviteIssueResponse:
    """
    Issue a fresh activation link for an athlete of the calling coach.
    Any previous unused link of that athlete stops working immediately.
    """
    try:
        issued = issue_invite(db, caller=coach, athlete_id=athlete_id, settings=settings)
    except ServiceError as err:
        raise err.to_http()

    return InviteIssueResponse(invite_url=issued.invite_url, expires_at=issued.expires_at)


@coach_router.get("/{athlete_id}/invite", response_model=InviteStatusResponse)
def read_athlete_invite_status(
    athlete_id: str,
    coach: Principal = Depends(require_coach),
    db: Session = Depends(get_db),
) -> InviteStatusResponse:
    try:
        st = get_invite_status(db, caller=coach, athlete_id=athlete_id)
    except ServiceError as err:
        raise err.to_http()

    return InviteStatusResponse(
        athlete_id=athlete_id,
        activated=st.activated,
        activated_at=st.activated_at,
        live_invite_expires_at=st.live_invite_expires_at,
    )


# ---------- Public routes ----------

@router.post(
    "/accept",
    response_model=InviteAcceptResponse,
    dependencies=[Depends(invite_accept_rate_limit)],
)
async def accept_athlete_invite(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> InviteAcceptResponse:
    """
    Activate an athlete login from an invite link.

    The body is parsed by hand so that malformed JSON and wrong field
    types are a plain 400 like every other token failure.
    """
    try:
        body: Any = await request.json()
    except ValueError:
        raise _bad_request()

    try:
        payload = InviteAcceptRequest.model_validate(body)
    except ValidationError:
        raise _bad_request()

    try:
        # argon2 hashing is CPU-bound; keep it off the event loop
        await run_in_threadpool(
            accept_invite,
            db,
            raw_token=payload.token,
            email=payload.email,
            password=payload.password,
            settings=settings,
        )
    except ServiceError as err:
        raise err.to_http()

    return InviteAcceptResponse(ok=True)
