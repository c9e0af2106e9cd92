"""
Per-participant score reports for a match.

One row per (match, player). These rows are the input ledger; the resolved
output lives on Match and MatchPlayer.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

from boulenight.models.match import TeamSide

if TYPE_CHECKING:
    from boulenight.models.match import Match


class ConfirmationStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DISPUTED = "DISPUTED"


class MatchResultConfirmation(SQLModel, table=True):
    __tablename__ = "match_result_confirmation"

    __table_args__ = (SAUniqueConstraint("match_id", "player_id", name="uq_match_confirmation_player"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    player_id: int = Field(foreign_key="player.id", index=True)
    reported_home_score: Optional[int] = Field(default=None)
    reported_away_score: Optional[int] = Field(default=None)
    reported_walkover_side: Optional[TeamSide] = Field(default=None, sa_column=Column(String, nullable=True))
    status: ConfirmationStatus = Field(
        default=ConfirmationStatus.PENDING, sa_column=Column(String, nullable=False)
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    match: "Match" = Relationship(back_populates="confirmations")
