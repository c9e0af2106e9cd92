"""
Match result confirmation.

Every participant of a match reports the score. A match resolves only when
all of them agree; any disagreement marks the reports DISPUTED and leaves the
match untouched until an admin overrides it.

Both ways of settling a match (participant consensus and admin override) go
through resolve_match, the only code that writes scores, MatchPlayer outcome
fields and ranking deltas.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from boulenight.models.confirmation import ConfirmationStatus, MatchResultConfirmation
from boulenight.models.match import FINISHED_STATUSES, Match, MatchPlayer, MatchStatus, MatchTeam, TeamSide
from boulenight.services.errors import NotFoundError, ResultConflictError, ResultValidationError
from boulenight.services.ranking_service import apply_resolved_match

logger = logging.getLogger(__name__)

# A walkover is always recorded as 13-0 for the side that showed up
WALKOVER_WINNING_SCORE = 13


class ConsensusState(str, Enum):
    UNREPORTED = "UNREPORTED"
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DISPUTED = "DISPUTED"
    # Finished with a result the reports did not agree on
    RESOLVED_BY_ADMIN = "RESOLVED_BY_ADMIN"


@dataclass(frozen=True)
class ConfirmedResult:
    """Score every participant agreed on."""

    home_score: Optional[int]
    away_score: Optional[int]
    walkover_side: Optional[TeamSide] = None


@dataclass(frozen=True)
class AdminOverride:
    """Score imposed by an admin, regardless of the reports."""

    home_score: Optional[int]
    away_score: Optional[int]
    walkover_side: Optional[TeamSide] = None


ResolutionInput = Union[ConfirmedResult, AdminOverride]

Score = Tuple[int, int, Optional[TeamSide]]


@dataclass
class ReportOutcome:
    match: Match
    state: ConsensusState
    participant_count: int
    confirmations: List[MatchResultConfirmation] = field(default_factory=list)


def _whole_score(value, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ResultValidationError(f"{label} must be a number")
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise ResultValidationError(f"{label} must be a whole number")
        value = int(value)
    if value < 0:
        raise ResultValidationError(f"{label} must not be negative")
    return value


def _parse_side(walkover_side) -> Optional[TeamSide]:
    if walkover_side is None:
        return None
    try:
        return TeamSide(walkover_side)
    except ValueError:
        raise ResultValidationError(f"Invalid walkover side: {walkover_side!r}")


def normalize_score(home_score=None, away_score=None, walkover_side=None) -> Score:
    """
    Validate a reported score and return (home, away, walkover_side).

    Without a walkover both scores are required. With one, the score is
    13-0 for the declared side: omitted scores are filled in, anything else
    is rejected.
    """
    side = _parse_side(walkover_side)

    if side is None:
        if home_score is None or away_score is None:
            raise ResultValidationError("Both home_score and away_score are required")
        return _whole_score(home_score, "home_score"), _whole_score(away_score, "away_score"), None

    if side == TeamSide.HOME:
        expected = (WALKOVER_WINNING_SCORE, 0)
    else:
        expected = (0, WALKOVER_WINNING_SCORE)

    home = expected[0] if home_score is None else _whole_score(home_score, "home_score")
    away = expected[1] if away_score is None else _whole_score(away_score, "away_score")
    if (home, away) != expected:
        raise ResultValidationError(
            f"A walkover for {side.value} must be {expected[0]}-{expected[1]}, got {home}-{away}"
        )
    return home, away, side


def _reported_score(confirmation: MatchResultConfirmation) -> Score:
    side = confirmation.reported_walkover_side
    return (
        confirmation.reported_home_score,
        confirmation.reported_away_score,
        TeamSide(side) if side is not None else None,
    )


def consensus_state(confirmations: Sequence[MatchResultConfirmation], participant_count: int) -> ConsensusState:
    """State of the report ledger, derived from the reported values alone."""
    if not confirmations:
        return ConsensusState.UNREPORTED
    if len(confirmations) < participant_count:
        return ConsensusState.PENDING

    first = _reported_score(confirmations[0])
    if all(_reported_score(c) == first for c in confirmations[1:]):
        return ConsensusState.CONFIRMED
    return ConsensusState.DISPUTED


def _settled_state(
    match: Match, confirmations: Sequence[MatchResultConfirmation], participant_count: int
) -> ConsensusState:
    state = consensus_state(confirmations, participant_count)
    if match.status not in FINISHED_STATUSES:
        return state
    walkover = TeamSide(match.walkover_winner) if match.walkover_winner is not None else None
    if state == ConsensusState.CONFIRMED and _reported_score(confirmations[0]) == (
        match.home_score,
        match.away_score,
        walkover,
    ):
        return state
    return ConsensusState.RESOLVED_BY_ADMIN


def get_participant_ids(session: Session, match_id: int) -> List[int]:
    """Distinct players on either side of the match."""
    return list(
        session.exec(
            select(MatchPlayer.player_id)
            .distinct()
            .join(MatchTeam, MatchTeam.id == MatchPlayer.match_team_id)
            .where(MatchTeam.match_id == match_id)
        ).all()
    )


def _load_confirmations(
    session: Session, match_id: int, participant_ids: Sequence[int]
) -> List[MatchResultConfirmation]:
    return list(
        session.exec(
            select(MatchResultConfirmation)
            .where(
                MatchResultConfirmation.match_id == match_id,
                MatchResultConfirmation.player_id.in_(list(participant_ids)),
            )
            .order_by(MatchResultConfirmation.player_id)
        ).all()
    )


def resolve_match(session: Session, match: Match, resolution: ResolutionInput) -> Match:
    """
    Write the authoritative result of a match.

    Sets score and status, derives points_for / points_against / won for every
    MatchPlayer and updates rankings. A match that was already resolved has
    its previous ranking effect taken back first. Does not commit.
    """
    home, away, side = normalize_score(resolution.home_score, resolution.away_score, resolution.walkover_side)

    if match.status in FINISHED_STATUSES:
        apply_resolved_match(session, match, direction=-1)

    match.home_score = home
    match.away_score = away
    match.walkover_winner = side
    match.status = MatchStatus.WALKOVER if side is not None else MatchStatus.COMPLETED
    match.updated_at = datetime.now(timezone.utc)
    session.add(match)

    teams = session.exec(select(MatchTeam).where(MatchTeam.match_id == match.id)).all()
    for team in teams:
        is_home = TeamSide(team.side) == TeamSide.HOME
        points_for, points_against = (home, away) if is_home else (away, home)
        players = session.exec(select(MatchPlayer).where(MatchPlayer.match_team_id == team.id)).all()
        for match_player in players:
            match_player.points_for = points_for
            match_player.points_against = points_against
            match_player.won = points_for > points_against
            session.add(match_player)

    session.flush()
    apply_resolved_match(session, match, direction=1)

    source = "admin override" if isinstance(resolution, AdminOverride) else "participant consensus"
    logger.info(
        "Match %s resolved %d-%d (%s) by %s", match.id, home, away, MatchStatus(match.status).value, source
    )
    return match


def report_match_result(
    session: Session,
    match_id: int,
    player_id: int,
    home_score=None,
    away_score=None,
    walkover_side=None,
) -> ReportOutcome:
    """
    Record one participant's report and resolve the match on consensus.

    Raises:
        NotFoundError: match does not exist
        ResultConflictError: match already resolved or canceled
        ResultValidationError: bad score or reporter is not a participant
    """
    try:
        match = session.exec(select(Match).where(Match.id == match_id).with_for_update()).first()
        if not match:
            raise NotFoundError(f"Match {match_id} not found")
        if match.status in FINISHED_STATUSES or match.status == MatchStatus.CANCELED:
            raise ResultConflictError(
                f"Match {match_id} is {MatchStatus(match.status).value}; only an admin override can change it"
            )

        participant_ids = get_participant_ids(session, match_id)
        if player_id not in participant_ids:
            raise ResultValidationError(f"Player {player_id} did not play in match {match_id}")

        home, away, side = normalize_score(home_score, away_score, walkover_side)

        confirmation = session.exec(
            select(MatchResultConfirmation).where(
                MatchResultConfirmation.match_id == match_id,
                MatchResultConfirmation.player_id == player_id,
            )
        ).first()
        if confirmation is None:
            confirmation = MatchResultConfirmation(match_id=match_id, player_id=player_id)
        confirmation.reported_home_score = home
        confirmation.reported_away_score = away
        confirmation.reported_walkover_side = side
        confirmation.status = ConfirmationStatus.PENDING
        confirmation.updated_at = datetime.now(timezone.utc)
        session.add(confirmation)
        try:
            session.flush()
        except IntegrityError as exc:
            raise ResultConflictError(f"Concurrent report for match {match_id}; retry") from exc

        confirmations = _load_confirmations(session, match_id, participant_ids)
        state = consensus_state(confirmations, len(participant_ids))

        if state == ConsensusState.CONFIRMED:
            for c in confirmations:
                c.status = ConfirmationStatus.CONFIRMED
                session.add(c)
            resolve_match(session, match, ConfirmedResult(home, away, side))
        elif state == ConsensusState.DISPUTED:
            for c in confirmations:
                c.status = ConfirmationStatus.DISPUTED
                session.add(c)
            logger.warning("Match %s disputed: %d reports disagree", match_id, len(confirmations))

        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(match)
    for c in confirmations:
        session.refresh(c)
    return ReportOutcome(
        match=match,
        state=state,
        participant_count=len(participant_ids),
        confirmations=confirmations,
    )


def admin_override_result(
    session: Session,
    match_id: int,
    home_score=None,
    away_score=None,
    walkover_side=None,
) -> Match:
    """Impose a result, bypassing the report ledger. Works on resolved matches too."""
    try:
        match = session.exec(select(Match).where(Match.id == match_id).with_for_update()).first()
        if not match:
            raise NotFoundError(f"Match {match_id} not found")

        home, away, side = normalize_score(home_score, away_score, walkover_side)
        resolve_match(session, match, AdminOverride(home, away, side))
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(match)
    return match


def get_match_consensus(session: Session, match_id: int) -> ReportOutcome:
    """
    Report ledger of a match.

    A finished match whose score is not the one every participant confirmed
    was settled by an admin override and reports RESOLVED_BY_ADMIN.
    """
    match = session.get(Match, match_id)
    if not match:
        raise NotFoundError(f"Match {match_id} not found")

    participant_ids = get_participant_ids(session, match_id)
    confirmations = _load_confirmations(session, match_id, participant_ids)
    return ReportOutcome(
        match=match,
        state=_settled_state(match, confirmations, len(participant_ids)),
        participant_count=len(participant_ids),
        confirmations=confirmations,
    )
