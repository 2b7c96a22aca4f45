# backend/coachforge/api/v1/athlete.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from coachforge.core.security import Principal, require_athlete
from coachforge.db.session import get_db
from coachforge.models import Athlete

router = APIRouter(prefix="/athlete", tags=["athlete"])


class AthleteProfileOut(BaseModel):
    # notes_private is intentionally absent from this schema
    athlete_id: str
    first_name: str
    last_name: str
    notes_public: Optional[str] = None


class AthleteMeResponse(BaseModel):
    athlete: AthleteProfileOut


@router.get("/me", response_model=AthleteMeResponse)
def read_athlete_me(
    principal: Principal = Depends(require_athlete),
    db: Session = Depends(get_db),
) -> AthleteMeResponse:
    athlete = (
        db.query(
            Athlete.athlete_id,
            Athlete.first_name,
            Athlete.last_name,
            Athlete.notes_public,
        )
        .filter(Athlete.athlete_id == principal.id)
        .first()
    )
    if athlete is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "ATHLETE_NOT_FOUND", "message": "Athlete not found."},
        )

    return AthleteMeResponse(
        athlete=AthleteProfileOut(
            athlete_id=athlete.athlete_id,
            first_name=athlete.first_name,
            last_name=athlete.last_name,
            notes_public=athlete.notes_public,
        )
    )
