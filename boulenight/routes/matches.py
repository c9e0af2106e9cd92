"""
Match result and prediction API routes.

Participants report through PATCH /matches/{id}/result with their player_id.
A disputed match is a normal 200 response with state DISPUTED; only an admin
override (admin_override: true) settles it or changes a resolved result.
After an override the confirmation view reports RESOLVED_BY_ADMIN unless the
imposed score is the one every participant confirmed.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from boulenight.database import get_session
from boulenight.models.confirmation import ConfirmationStatus
from boulenight.models.match import MatchStatus, TeamSide
from boulenight.routes.errors import service_errors
from boulenight.services.match_prediction import (
    Advantage,
    PredictedWinner,
    predict_match,
    predict_round,
)
from boulenight.services.result_confirmation import (
    ConsensusState,
    ReportOutcome,
    admin_override_result,
    get_match_consensus,
    report_match_result,
)

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class MatchResultRequest(BaseModel):
    player_id: Optional[int] = None
    admin_override: bool = False
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    walkover_side: Optional[TeamSide] = None


class MatchStateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    round_id: int
    lane: int
    status: MatchStatus
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    walkover_winner: Optional[TeamSide] = None
    updated_at: datetime


class ConfirmationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    player_id: int
    reported_home_score: Optional[int] = None
    reported_away_score: Optional[int] = None
    reported_walkover_side: Optional[TeamSide] = None
    status: ConfirmationStatus
    updated_at: datetime


class MatchResultResponse(BaseModel):
    match: MatchStateResponse
    state: ConsensusState
    participant_count: int
    confirmations: List[ConfirmationResponse]


class PredictionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    match_id: int
    lane: int
    home_player_ids: List[int]
    away_player_ids: List[int]
    home_win_probability: int
    away_win_probability: int
    confidence: int
    skill_difference: int
    chemistry_advantage: Advantage
    form_advantage: Advantage
    predicted_winner: PredictedWinner
    expected_home_score: int
    expected_away_score: int


def _outcome_response(outcome: ReportOutcome) -> MatchResultResponse:
    return MatchResultResponse(
        match=MatchStateResponse.model_validate(outcome.match),
        state=outcome.state,
        participant_count=outcome.participant_count,
        confirmations=[ConfirmationResponse.model_validate(c) for c in outcome.confirmations],
    )


# ============================================================================
# Result Endpoints
# ============================================================================


@router.patch("/matches/{match_id}/result", response_model=MatchResultResponse)
def update_match_result(
    match_id: int,
    payload: MatchResultRequest,
    session: Session = Depends(get_session),
):
    """
    Report or override a match result.

    Participant report: {player_id, home_score, away_score} or
    {player_id, walkover_side}. The match resolves once every participant
    reported the same result.

    Admin override: {admin_override: true, home_score, away_score,
    walkover_side?}. Resolves immediately, also on disputed or resolved matches.
    """
    with service_errors():
        if payload.admin_override:
            admin_override_result(
                session, match_id, payload.home_score, payload.away_score, payload.walkover_side
            )
            return _outcome_response(get_match_consensus(session, match_id))

        if payload.player_id is None:
            raise HTTPException(status_code=400, detail="player_id is required for a participant report")
        outcome = report_match_result(
            session,
            match_id,
            payload.player_id,
            payload.home_score,
            payload.away_score,
            payload.walkover_side,
        )
    return _outcome_response(outcome)


@router.get("/matches/{match_id}/confirmations", response_model=MatchResultResponse)
def get_match_confirmations(match_id: int, session: Session = Depends(get_session)):
    with service_errors():
        outcome = get_match_consensus(session, match_id)
    return _outcome_response(outcome)


# ============================================================================
# Prediction Endpoints
# ============================================================================


@router.get("/matches/{match_id}/prediction", response_model=PredictionResponse)
def get_match_prediction(match_id: int, session: Session = Depends(get_session)):
    """Win probabilities and expected score from the players' finished matches."""
    with service_errors():
        prediction = predict_match(session, match_id)
    return PredictionResponse.model_validate(prediction)


@router.get("/nights/{night_id}/rounds/{round_number}/predictions", response_model=List[PredictionResponse])
def get_round_predictions(night_id: int, round_number: int, session: Session = Depends(get_session)):
    with service_errors():
        predictions = predict_round(session, night_id, round_number)
    return [PredictionResponse.model_validate(p) for p in predictions]
