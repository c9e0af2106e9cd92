from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from boulenight.models.round import Round


class DrawMode(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    TEAM = "TEAM"


class Night(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    date: date
    location: Optional[str] = None
    description: Optional[str] = None
    max_players: Optional[int] = Field(default=None)  # null = no cap
    draw_mode: DrawMode = Field(default=DrawMode.INDIVIDUAL, sa_column=Column(String, nullable=False))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    # Bumped on every attendance change (optimistic locking for attendance edits)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    attendance: List["NightAttendance"] = Relationship(back_populates="night")
    rounds: List["Round"] = Relationship(back_populates="night")


class NightAttendance(SQLModel, table=True):
    __tablename__ = "night_attendance"

    __table_args__ = (SAUniqueConstraint("night_id", "player_id", name="uq_night_attendance_player"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    night_id: int = Field(foreign_key="night.id", index=True)
    player_id: int = Field(foreign_key="player.id", index=True)
    present: bool = Field(default=False)

    night: "Night" = Relationship(back_populates="attendance")
