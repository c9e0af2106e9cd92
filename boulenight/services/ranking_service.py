"""
Simple points ranking.

Each resolved match gives every winning player (and the winning persistent
team, in team mode) POINTS_WIN and every loser POINTS_LOSS, plus one played
match. Ranking rows are created on first use.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlmodel import Session, select

from boulenight.models.match import Match, MatchPlayer, MatchTeam, TeamSide
from boulenight.models.player import Player
from boulenight.models.ranking import DEFAULT_ELO_RATING, Ranking
from boulenight.models.team import Team

logger = logging.getLogger(__name__)

POINTS_WIN = 3
POINTS_LOSS = 0


@dataclass
class RankingRow:
    rank_position: int
    owner_id: int
    name: str
    simple_points: int
    matches_played: int
    matches_won: int
    elo_rating: float


def _get_or_create(session: Session, player_id: Optional[int] = None, team_id: Optional[int] = None) -> Ranking:
    if player_id is not None:
        ranking = session.exec(select(Ranking).where(Ranking.player_id == player_id)).first()
    else:
        ranking = session.exec(select(Ranking).where(Ranking.team_id == team_id)).first()
    if ranking is None:
        ranking = Ranking(player_id=player_id, team_id=team_id, elo_rating=DEFAULT_ELO_RATING)
        session.add(ranking)
    return ranking


def _apply(ranking: Ranking, won: bool, direction: int) -> None:
    ranking.simple_points += direction * (POINTS_WIN if won else POINTS_LOSS)
    ranking.matches_played += direction
    ranking.matches_won += direction * (1 if won else 0)
    ranking.updated_at = datetime.now(timezone.utc)


def apply_match_outcome(
    session: Session,
    winner_player_ids: Iterable[int],
    loser_player_ids: Iterable[int],
    winning_team_id: Optional[int] = None,
    losing_team_id: Optional[int] = None,
    direction: int = 1,
) -> None:
    """
    Add (direction=1) or take back (direction=-1) one match outcome.

    Does not commit; the caller owns the transaction. For a level score pass
    every participant as a loser.
    """
    if direction not in (1, -1):
        raise ValueError("direction must be 1 or -1")

    for player_id in winner_player_ids:
        _apply(_get_or_create(session, player_id=player_id), True, direction)
    for player_id in loser_player_ids:
        _apply(_get_or_create(session, player_id=player_id), False, direction)
    if winning_team_id is not None:
        _apply(_get_or_create(session, team_id=winning_team_id), True, direction)
    if losing_team_id is not None:
        _apply(_get_or_create(session, team_id=losing_team_id), False, direction)

    # Rows created above must be visible to the next lookup in this transaction
    session.flush()


def apply_resolved_match(session: Session, match: Match, direction: int = 1) -> None:
    """Apply (or take back) the ranking effect of a match's current score."""
    if match.home_score is None or match.away_score is None:
        return

    teams = session.exec(select(MatchTeam).where(MatchTeam.match_id == match.id)).all()
    by_side = {TeamSide(t.side): t for t in teams}
    home, away = by_side.get(TeamSide.HOME), by_side.get(TeamSide.AWAY)
    if home is None or away is None:
        logger.warning("Match %s is missing a side; ranking not updated", match.id)
        return

    def roster(team: MatchTeam) -> List[int]:
        return list(session.exec(select(MatchPlayer.player_id).where(MatchPlayer.match_team_id == team.id)).all())

    if match.home_score == match.away_score:
        apply_match_outcome(
            session, [], roster(home) + roster(away), losing_team_id=home.team_id, direction=direction
        )
        if away.team_id is not None:
            apply_match_outcome(session, [], [], losing_team_id=away.team_id, direction=direction)
        return

    winner, loser = (home, away) if match.home_score > match.away_score else (away, home)
    apply_match_outcome(
        session,
        roster(winner),
        roster(loser),
        winning_team_id=winner.team_id,
        losing_team_id=loser.team_id,
        direction=direction,
    )
    logger.debug("Ranking %s for match %s", "applied" if direction > 0 else "reverted", match.id)


def get_individual_rankings(session: Session) -> List[RankingRow]:
    rows = session.exec(
        select(Ranking, Player)
        .join(Player, Player.id == Ranking.player_id)
        .where(Ranking.team_id.is_(None))
        .order_by(Ranking.simple_points.desc(), Ranking.matches_played.desc(), Ranking.player_id)
    ).all()
    return [
        RankingRow(
            rank_position=index + 1,
            owner_id=player.id,
            name=player.name,
            simple_points=ranking.simple_points,
            matches_played=ranking.matches_played,
            matches_won=ranking.matches_won,
            elo_rating=ranking.elo_rating,
        )
        for index, (ranking, player) in enumerate(rows)
    ]


def get_team_rankings(session: Session) -> List[RankingRow]:
    rows = session.exec(
        select(Ranking, Team)
        .join(Team, Team.id == Ranking.team_id)
        .where(Ranking.player_id.is_(None))
        .order_by(Ranking.simple_points.desc(), Ranking.matches_played.desc(), Ranking.team_id)
    ).all()
    return [
        RankingRow(
            rank_position=index + 1,
            owner_id=team.id,
            name=team.name,
            simple_points=ranking.simple_points,
            matches_played=ranking.matches_played,
            matches_won=ranking.matches_won,
            elo_rating=ranking.elo_rating,
        )
        for index, (ranking, team) in enumerate(rows)
    ]
