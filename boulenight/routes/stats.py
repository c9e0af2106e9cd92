"""
Standings, leaderboard, player statistics and ranking routes (read-only).
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from boulenight.database import get_session
from boulenight.routes.errors import service_errors
from boulenight.services.ranking_service import RankingRow, get_individual_rankings, get_team_rankings
from boulenight.services.standings import (
    PlayerStanding,
    RivalRecord,
    favorite_opponent,
    get_leaderboard,
    get_night_standings,
    get_player_chemistry,
    get_player_rivals,
    get_player_stats,
    toughest_rival,
)

router = APIRouter()


# ============================================================================
# Response Models
# ============================================================================


class StandingResponse(BaseModel):
    player_id: int
    player_name: Optional[str] = None
    matches: int
    wins: int
    losses: int
    points_for: int
    points_against: int
    points_diff: int
    win_rate: float


class StandingsResponse(BaseModel):
    night_id: int
    standings: List[StandingResponse]


class ChemistryResponse(BaseModel):
    player_id: int
    player_name: Optional[str] = None
    matches_together: int
    wins_together: int
    win_rate: int


class RivalResponse(BaseModel):
    player_id: int
    player_name: Optional[str] = None
    matches_played: int
    wins: int
    losses: int
    points_for: int
    points_against: int
    win_rate: int
    avg_point_diff: float


class RivalsResponse(BaseModel):
    player_id: int
    rivals: List[RivalResponse]
    toughest_rival: Optional[RivalResponse] = None
    favorite_opponent: Optional[RivalResponse] = None


class RankingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rank_position: int
    owner_id: int
    name: str
    simple_points: int
    matches_played: int
    matches_won: int
    elo_rating: float


def _standing_response(s: PlayerStanding) -> StandingResponse:
    return StandingResponse(
        player_id=s.player_id,
        player_name=s.player_name,
        matches=s.matches,
        wins=s.wins,
        losses=s.losses,
        points_for=s.points_for,
        points_against=s.points_against,
        points_diff=s.points_diff,
        win_rate=round(s.win_rate, 1),
    )


def _rival_response(r: Optional[RivalRecord]) -> Optional[RivalResponse]:
    if r is None:
        return None
    return RivalResponse(
        player_id=r.player_id,
        player_name=r.player_name,
        matches_played=r.matches_played,
        wins=r.wins,
        losses=r.losses,
        points_for=r.points_for,
        points_against=r.points_against,
        win_rate=r.win_rate,
        avg_point_diff=r.avg_point_diff,
    )


def _ranking_response(rows: List[RankingRow]) -> List[RankingResponse]:
    return [RankingResponse.model_validate(row) for row in rows]


# ============================================================================
# Standings Endpoints
# ============================================================================


@router.get("/nights/{night_id}/standings", response_model=StandingsResponse)
def night_standings(night_id: int, session: Session = Depends(get_session)):
    """Night standings: wins desc, point differential desc, player id."""
    with service_errors():
        standings = get_night_standings(session, night_id)
    return StandingsResponse(night_id=night_id, standings=[_standing_response(s) for s in standings])


@router.get("/leaderboard", response_model=List[StandingResponse])
def leaderboard(session: Session = Depends(get_session)):
    return [_standing_response(s) for s in get_leaderboard(session)]


@router.get("/players/{player_id}/stats", response_model=StandingResponse)
def player_stats(player_id: int, session: Session = Depends(get_session)):
    with service_errors():
        return _standing_response(get_player_stats(session, player_id))


@router.get("/players/{player_id}/chemistry", response_model=List[ChemistryResponse])
def player_chemistry(
    player_id: int,
    min_matches: int = Query(2, ge=1),
    session: Session = Depends(get_session),
):
    """Partners the player shared a team with at least min_matches times."""
    with service_errors():
        partners = get_player_chemistry(session, player_id, min_matches=min_matches)
    return [
        ChemistryResponse(
            player_id=p.player_id,
            player_name=p.player_name,
            matches_together=p.matches_together,
            wins_together=p.wins_together,
            win_rate=p.win_rate,
        )
        for p in partners
    ]


@router.get("/players/{player_id}/rivals", response_model=RivalsResponse)
def player_rivals(
    player_id: int,
    limit: int = Query(5, ge=1),
    session: Session = Depends(get_session),
):
    """
    Opponents the player met most, with the head-to-head record.

    toughest_rival and favorite_opponent only consider opponents met at least
    3 times, across all of them rather than the first limit.
    """
    with service_errors():
        rivals = get_player_rivals(session, player_id)
    return RivalsResponse(
        player_id=player_id,
        rivals=[_rival_response(r) for r in rivals[:limit]],
        toughest_rival=_rival_response(toughest_rival(rivals)),
        favorite_opponent=_rival_response(favorite_opponent(rivals)),
    )


# ============================================================================
# Ranking Endpoints
# ============================================================================


@router.get("/rankings/individual", response_model=List[RankingResponse])
def individual_rankings(session: Session = Depends(get_session)):
    return _ranking_response(get_individual_rankings(session))


@router.get("/rankings/team", response_model=List[RankingResponse])
def team_rankings(session: Session = Depends(get_session)):
    return _ranking_response(get_team_rankings(session))
