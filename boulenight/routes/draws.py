"""
Round draw API routes.

Drawing a round that already exists returns 409, also when two requests race
for the same round: exactly one of them creates it.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session, select

from boulenight.database import get_session
from boulenight.models.match import Match, MatchPlayer, MatchStatus, MatchTeam, TeamSide
from boulenight.models.night import Night
from boulenight.models.round import RoundBye
from boulenight.routes.errors import service_errors
from boulenight.services.draw_strategies import DrawStrategy
from boulenight.services.round_draw import draw_ranked_round, draw_round_one, draw_team_round
from boulenight.services.round_materializer import MaterializedRound, get_round, reset_round

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class DrawnMatch(BaseModel):
    match_id: int
    lane: int


class DrawResponse(BaseModel):
    round_id: int
    round_number: int
    matches: List[DrawnMatch]
    byes: List[int] = []


class TeamRoundDrawRequest(BaseModel):
    team_ids: List[int]


class ResetResponse(BaseModel):
    round_number: int
    matches_deleted: int


class MatchSideResponse(BaseModel):
    side: TeamSide
    team_id: Optional[int] = None
    player_ids: List[int]


class RoundMatchResponse(BaseModel):
    match_id: int
    lane: int
    status: MatchStatus
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    walkover_winner: Optional[TeamSide] = None
    home: MatchSideResponse
    away: MatchSideResponse


class RoundMatchesResponse(BaseModel):
    round_id: int
    round_number: int
    matches: List[RoundMatchResponse]
    byes: List[int]


def _draw_response(drawn: MaterializedRound) -> DrawResponse:
    return DrawResponse(
        round_id=drawn.round_id,
        round_number=drawn.round_number,
        matches=[DrawnMatch(match_id=m.match_id, lane=m.lane) for m in drawn.matches],
        byes=drawn.byes,
    )


# ============================================================================
# Draw Endpoints
# ============================================================================


@router.post("/nights/{night_id}/rounds/1/draw", response_model=DrawResponse, status_code=201)
def draw_round_1(
    night_id: int,
    mode: DrawStrategy = Query(DrawStrategy.BALANCED),
    session: Session = Depends(get_session),
):
    """
    Draw round 1 from present attendees.

    mode: balanced (skill-mixed), diverse (fewest repeated teammates) or random.
    Needs a present player count that is a positive multiple of 4.
    """
    with service_errors():
        drawn = draw_round_one(session, night_id, mode)
    return _draw_response(drawn)


@router.post("/nights/{night_id}/rounds/2/draw", response_model=DrawResponse, status_code=201)
def draw_round_2(night_id: int, session: Session = Depends(get_session)):
    with service_errors():
        drawn = draw_ranked_round(session, night_id, 2)
    return _draw_response(drawn)


@router.post("/nights/{night_id}/rounds/3/draw", response_model=DrawResponse, status_code=201)
def draw_round_3(night_id: int, session: Session = Depends(get_session)):
    """Round 3 gives byes to the lowest ranked players that do not fill a group of 4."""
    with service_errors():
        drawn = draw_ranked_round(session, night_id, 3)
    return _draw_response(drawn)


@router.post("/nights/{night_id}/team-rounds/draw", response_model=DrawResponse, status_code=201)
def draw_team_round_endpoint(
    night_id: int,
    payload: TeamRoundDrawRequest,
    session: Session = Depends(get_session),
):
    with service_errors():
        drawn = draw_team_round(session, night_id, payload.team_ids)
    return _draw_response(drawn)


@router.post("/nights/{night_id}/rounds/{round_number}/reset", response_model=ResetResponse)
def reset_round_endpoint(night_id: int, round_number: int, session: Session = Depends(get_session)):
    """Delete the latest round of a night with all its matches and results."""
    with service_errors():
        result = reset_round(session, night_id, round_number)
    return ResetResponse(round_number=result.round_number, matches_deleted=result.matches_deleted)


# ============================================================================
# Round Read Endpoints
# ============================================================================


@router.get("/nights/{night_id}/rounds/{round_number}/matches", response_model=RoundMatchesResponse)
def get_round_matches(night_id: int, round_number: int, session: Session = Depends(get_session)):
    if not session.get(Night, night_id):
        raise HTTPException(status_code=404, detail="Night not found")
    round_ = get_round(session, night_id, round_number)
    if not round_:
        raise HTTPException(status_code=404, detail="Round not found")

    matches = session.exec(select(Match).where(Match.round_id == round_.id).order_by(Match.lane)).all()
    match_ids = [m.id for m in matches]

    sides = {}
    if match_ids:
        teams = session.exec(select(MatchTeam).where(MatchTeam.match_id.in_(match_ids))).all()
        rosters = {t.id: [] for t in teams}
        players = session.exec(
            select(MatchPlayer).where(MatchPlayer.match_team_id.in_(list(rosters))).order_by(MatchPlayer.id)
        ).all()
        for mp in players:
            rosters[mp.match_team_id].append(mp.player_id)
        for t in teams:
            sides[(t.match_id, TeamSide(t.side))] = MatchSideResponse(
                side=t.side, team_id=t.team_id, player_ids=rosters[t.id]
            )

    byes = session.exec(select(RoundBye.player_id).where(RoundBye.round_id == round_.id).order_by(RoundBye.id)).all()

    return RoundMatchesResponse(
        round_id=round_.id,
        round_number=round_.number,
        matches=[
            RoundMatchResponse(
                match_id=m.id,
                lane=m.lane,
                status=m.status,
                home_score=m.home_score,
                away_score=m.away_score,
                walkover_winner=m.walkover_winner,
                home=sides[(m.id, TeamSide.HOME)],
                away=sides[(m.id, TeamSide.AWAY)],
            )
            for m in matches
        ],
        byes=list(byes),
    )
