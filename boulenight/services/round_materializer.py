"""
Round/Match materializer.

Turns an ordered list of pairings into Round, Match, MatchTeam, MatchPlayer
and RoundBye rows in one transaction, and deletes them again on reset.

The unique (night_id, number) index on Round settles concurrent draws: the
Round insert is flushed first and an IntegrityError there means another
request created the round, reported as RoundConflictError. Any later failure
rolls the round back too.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from boulenight.models.confirmation import MatchResultConfirmation
from boulenight.models.match import FINISHED_STATUSES, Match, MatchPlayer, MatchTeam, TeamSide
from boulenight.models.night import Night
from boulenight.models.round import Round, RoundBye
from boulenight.services.draw_helpers import Pairing
from boulenight.services.errors import NotFoundError, RoundConflictError
from boulenight.services.ranking_service import apply_resolved_match

logger = logging.getLogger(__name__)


@dataclass
class MatchPairing:
    """One match to create: player rosters per side, team links in team mode."""

    home_player_ids: List[int]
    away_player_ids: List[int]
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None

    @classmethod
    def from_doubles(cls, pairing: Pairing) -> "MatchPairing":
        a, b, c, d = pairing
        return cls(home_player_ids=[a, b], away_player_ids=[c, d])


@dataclass
class MaterializedMatch:
    match_id: int
    lane: int


@dataclass
class MaterializedRound:
    round_id: int
    round_number: int
    matches: List[MaterializedMatch] = field(default_factory=list)
    byes: List[int] = field(default_factory=list)


@dataclass
class ResetResult:
    round_number: int
    matches_deleted: int


def get_round(session: Session, night_id: int, round_number: int) -> Optional[Round]:
    return session.exec(select(Round).where(Round.night_id == night_id, Round.number == round_number)).first()


def latest_round_number(session: Session, night_id: int) -> int:
    """Highest round number of the night, 0 when nothing has been drawn."""
    latest = session.exec(select(func.max(Round.number)).where(Round.night_id == night_id)).one()
    return latest or 0


def materialize_round(
    session: Session,
    night_id: int,
    round_number: int,
    pairings: Sequence[MatchPairing],
    byes: Sequence[int] = (),
) -> MaterializedRound:
    """
    Persist a drawn round. Lanes are assigned 1..len(pairings) in order.

    Raises:
        RoundConflictError: the round already exists (including a concurrent insert)
    """
    round_ = Round(night_id=night_id, number=round_number)
    session.add(round_)
    try:
        session.flush()
    except IntegrityError as exc:
        session.rollback()
        logger.warning("Round %d of night %d already exists; draw rejected", round_number, night_id)
        raise RoundConflictError(f"Round {round_number} already drawn") from exc

    try:
        created: List[MaterializedMatch] = []
        for lane, pairing in enumerate(pairings, start=1):
            match = Match(night_id=night_id, round_id=round_.id, lane=lane)
            session.add(match)
            session.flush()

            sides = (
                (TeamSide.HOME, pairing.home_player_ids, pairing.home_team_id),
                (TeamSide.AWAY, pairing.away_player_ids, pairing.away_team_id),
            )
            for side, player_ids, team_id in sides:
                match_team = MatchTeam(match_id=match.id, side=side, team_id=team_id)
                session.add(match_team)
                session.flush()
                for player_id in player_ids:
                    session.add(MatchPlayer(match_team_id=match_team.id, player_id=player_id))

            created.append(MaterializedMatch(match_id=match.id, lane=lane))

        for player_id in byes:
            session.add(RoundBye(round_id=round_.id, player_id=player_id))

        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        "Drew round %d for night %d: %d matches, %d byes",
        round_number,
        night_id,
        len(created),
        len(byes),
    )
    return MaterializedRound(
        round_id=round_.id,
        round_number=round_number,
        matches=created,
        byes=list(byes),
    )


def reset_round(session: Session, night_id: int, round_number: int) -> ResetResult:
    """
    Delete a round and everything under it, child tables first.

    Only the latest round of the night can be reset so round numbers stay
    dense. Ranking points awarded for its resolved matches are taken back.
    """
    if not session.get(Night, night_id):
        raise NotFoundError(f"Night {night_id} not found")

    round_ = get_round(session, night_id, round_number)
    if not round_:
        raise NotFoundError(f"Round {round_number} does not exist")

    latest = latest_round_number(session, night_id)
    if round_number != latest:
        raise RoundConflictError(f"Only the latest round ({latest}) can be reset")

    round_id = round_.id
    try:
        matches = session.exec(select(Match).where(Match.round_id == round_id)).all()
        for match in matches:
            if match.status in FINISHED_STATUSES:
                apply_resolved_match(session, match, direction=-1)

        match_ids = select(Match.id).where(Match.round_id == round_id)
        match_team_ids = select(MatchTeam.id).where(MatchTeam.match_id.in_(match_ids))
        statements = (
            delete(MatchResultConfirmation).where(MatchResultConfirmation.match_id.in_(match_ids)),
            delete(MatchPlayer).where(MatchPlayer.match_team_id.in_(match_team_ids)),
            delete(MatchTeam).where(MatchTeam.match_id.in_(match_ids)),
            delete(Match).where(Match.round_id == round_id),
            delete(RoundBye).where(RoundBye.round_id == round_id),
            delete(Round).where(Round.id == round_id),
        )
        for statement in statements:
            session.execute(statement.execution_options(synchronize_session=False))
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.expire_all()
    logger.info("Reset round %d of night %d (%d matches deleted)", round_number, night_id, len(matches))
    return ResetResult(round_number=round_number, matches_deleted=len(matches))
