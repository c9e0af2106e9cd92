"""
Round and RoundBye models.

(night_id, number) is unique at the database level: the insert of a Round row
is the point where two concurrent draws of the same round are told apart.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from boulenight.models.match import Match
    from boulenight.models.night import Night


class Round(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("night_id", "number", name="uq_night_round_number"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    night_id: int = Field(foreign_key="night.id", index=True)
    number: int  # 1-based, dense per night
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    night: "Night" = Relationship(back_populates="rounds")
    matches: List["Match"] = Relationship(back_populates="round")
    byes: List["RoundBye"] = Relationship(back_populates="round")


class RoundBye(SQLModel, table=True):
    __tablename__ = "round_bye"

    __table_args__ = (SAUniqueConstraint("round_id", "player_id", name="uq_round_bye_player"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    round_id: int = Field(foreign_key="round.id", index=True)
    player_id: int = Field(foreign_key="player.id")

    round: "Round" = Relationship(back_populates="byes")
