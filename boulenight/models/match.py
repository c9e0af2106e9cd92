from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from boulenight.models.confirmation import MatchResultConfirmation
    from boulenight.models.round import Round


class MatchStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"
    WALKOVER = "WALKOVER"


# Statuses that carry an authoritative score
FINISHED_STATUSES = (MatchStatus.COMPLETED, MatchStatus.WALKOVER)


class TeamSide(str, Enum):
    HOME = "HOME"
    AWAY = "AWAY"


class Match(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("round_id", "lane", name="uq_round_lane"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    night_id: int = Field(foreign_key="night.id", index=True)
    round_id: int = Field(foreign_key="round.id", index=True)
    lane: int  # 1-based, contiguous within the round
    status: MatchStatus = Field(default=MatchStatus.SCHEDULED, sa_column=Column(String, nullable=False))
    home_score: Optional[int] = Field(default=None)
    away_score: Optional[int] = Field(default=None)
    walkover_winner: Optional[TeamSide] = Field(default=None, sa_column=Column(String, nullable=True))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    round: "Round" = Relationship(back_populates="matches")
    teams: List["MatchTeam"] = Relationship(back_populates="match")
    confirmations: List["MatchResultConfirmation"] = Relationship(back_populates="match")


class MatchTeam(SQLModel, table=True):
    __tablename__ = "match_team"

    __table_args__ = (SAUniqueConstraint("match_id", "side", name="uq_match_team_side"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    side: TeamSide = Field(sa_column=Column(String, nullable=False))
    team_id: Optional[int] = Field(default=None, foreign_key="team.id")  # team draw mode only

    match: "Match" = Relationship(back_populates="teams")
    players: List["MatchPlayer"] = Relationship(back_populates="match_team")


class MatchPlayer(SQLModel, table=True):
    __tablename__ = "match_player"

    __table_args__ = (SAUniqueConstraint("match_team_id", "player_id", name="uq_match_team_player"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    match_team_id: int = Field(foreign_key="match_team.id", index=True)
    player_id: int = Field(foreign_key="player.id", index=True)

    # Derived on resolution; never an input
    points_for: Optional[int] = Field(default=None)
    points_against: Optional[int] = Field(default=None)
    won: Optional[bool] = Field(default=None)

    match_team: "MatchTeam" = Relationship(back_populates="players")
