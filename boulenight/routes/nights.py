"""
Night and attendance API routes.
"""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session, select

from boulenight.database import get_session
from boulenight.models.night import DrawMode, Night
from boulenight.routes.errors import service_errors
from boulenight.services import attendance as attendance_service

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class NightCreateRequest(BaseModel):
    name: str
    date: date
    location: Optional[str] = None
    description: Optional[str] = None
    max_players: Optional[int] = Field(default=None, ge=1)
    draw_mode: DrawMode = DrawMode.INDIVIDUAL


class NightResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    date: date
    location: Optional[str] = None
    description: Optional[str] = None
    max_players: Optional[int] = None
    draw_mode: DrawMode
    created_at: datetime
    updated_at: datetime


class AttendanceUpdateRequest(BaseModel):
    player_ids: List[int]
    # updated_at the client last saw; omit to overwrite unconditionally
    last_known_updated_at: Optional[datetime] = None


class SignUpRequest(BaseModel):
    player_id: int


class AttendanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    night_id: int
    updated_at: datetime
    max_players: Optional[int] = None
    player_ids: List[int]


# ============================================================================
# Night Endpoints
# ============================================================================


@router.post("/nights", response_model=NightResponse, status_code=201)
def create_night(payload: NightCreateRequest, session: Session = Depends(get_session)):
    night = Night(**payload.model_dump())
    session.add(night)
    session.commit()
    session.refresh(night)
    return night


@router.get("/nights", response_model=List[NightResponse])
def list_nights(session: Session = Depends(get_session)):
    """Nights, most recent first."""
    return session.exec(select(Night).order_by(Night.date.desc(), Night.id.desc())).all()


@router.get("/nights/{night_id}", response_model=NightResponse)
def get_night(night_id: int, session: Session = Depends(get_session)):
    night = session.get(Night, night_id)
    if not night:
        raise HTTPException(status_code=404, detail="Night not found")
    return night


# ============================================================================
# Attendance Endpoints
# ============================================================================


@router.get("/nights/{night_id}/attendance", response_model=AttendanceResponse)
def get_attendance(night_id: int, session: Session = Depends(get_session)):
    with service_errors():
        return attendance_service.get_attendance(session, night_id)


@router.put("/nights/{night_id}/attendance", response_model=AttendanceResponse)
def set_attendance(
    night_id: int,
    payload: AttendanceUpdateRequest,
    session: Session = Depends(get_session),
):
    """
    Replace the attendance list of a night.

    Returns 409 if the night changed since last_known_updated_at or has
    already been drawn, 400 if the list exceeds the night's player cap.
    """
    with service_errors():
        return attendance_service.set_attendance(
            session, night_id, payload.player_ids, payload.last_known_updated_at
        )


@router.post("/nights/{night_id}/signup", response_model=AttendanceResponse)
def sign_up(night_id: int, payload: SignUpRequest, session: Session = Depends(get_session)):
    with service_errors():
        return attendance_service.sign_up(session, night_id, payload.player_id)


@router.delete("/nights/{night_id}/signup/{player_id}", response_model=AttendanceResponse)
def withdraw(night_id: int, player_id: int, session: Session = Depends(get_session)):
    with service_errors():
        return attendance_service.withdraw(session, night_id, player_id)
