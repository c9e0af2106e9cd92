from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel

DEFAULT_ELO_RATING = 1500


class Ranking(SQLModel, table=True):
    """
    Aggregate ranking for a single player or a single persistent team.

    Exactly one of player_id / team_id is set. elo_rating is stored with its
    default but nothing computes it.
    """

    __table_args__ = (
        CheckConstraint(
            "(player_id IS NULL) <> (team_id IS NULL)",
            name="ck_ranking_single_owner",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: Optional[int] = Field(default=None, foreign_key="player.id", unique=True)
    team_id: Optional[int] = Field(default=None, foreign_key="team.id", unique=True)
    simple_points: int = Field(default=0)
    matches_played: int = Field(default=0)
    matches_won: int = Field(default=0)
    elo_rating: float = Field(default=DEFAULT_ELO_RATING)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
