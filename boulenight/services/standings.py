"""
Standings aggregation from finished matches.

A participation is one player's view of one finished match (COMPLETED or
WALKOVER). Standings, the leaderboard, per-player stats, partner chemistry,
head-to-head rival records and the round 2/3 draw ranking are all folded
from participations.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from sqlmodel import Session, select

from boulenight.models.match import FINISHED_STATUSES, Match, MatchPlayer, MatchTeam, TeamSide
from boulenight.models.night import Night
from boulenight.models.player import Player
from boulenight.models.round import Round
from boulenight.services.errors import NotFoundError


@dataclass(frozen=True)
class Participation:
    player_id: int
    match_id: int
    match_team_id: int
    round_number: int
    side: TeamSide
    points_for: int
    points_against: int

    @property
    def won(self) -> bool:
        # Same rule as MatchPlayer.won: a level score is nobody's win
        return self.points_for > self.points_against


@dataclass
class PlayerStanding:
    player_id: int
    player_name: Optional[str] = None
    wins: int = 0
    losses: int = 0
    points_for: int = 0
    points_against: int = 0

    @property
    def matches(self) -> int:
        return self.wins + self.losses

    @property
    def points_diff(self) -> int:
        return self.points_for - self.points_against

    @property
    def win_rate(self) -> float:
        """Win percentage; 0 when the player has no finished matches."""
        if self.matches == 0:
            return 0.0
        return self.wins / self.matches * 100


@dataclass
class PartnerChemistry:
    player_id: int
    player_name: Optional[str]
    matches_together: int
    wins_together: int

    @property
    def win_rate(self) -> int:
        return round(self.wins_together / self.matches_together * 100)


def ranking_sort_key(standing: PlayerStanding):
    """wins desc, point differential desc, then player id for a stable order."""
    return (-standing.wins, -standing.points_diff, standing.player_id)


def leaderboard_sort_key(standing: PlayerStanding):
    return (-standing.wins, -standing.win_rate, -standing.points_diff, standing.player_id)


def load_participations(
    session: Session,
    night_id: Optional[int] = None,
    player_ids: Optional[Sequence[int]] = None,
    round_numbers: Optional[Sequence[int]] = None,
) -> List[Participation]:
    """Load participations in finished matches, optionally narrowed by night, players and rounds."""
    query = (
        select(
            MatchPlayer.player_id,
            MatchPlayer.match_team_id,
            MatchTeam.side,
            Match.id,
            Match.home_score,
            Match.away_score,
            Round.number,
        )
        .join(MatchTeam, MatchTeam.id == MatchPlayer.match_team_id)
        .join(Match, Match.id == MatchTeam.match_id)
        .join(Round, Round.id == Match.round_id)
        .where(Match.status.in_([s.value for s in FINISHED_STATUSES]))
    )
    if night_id is not None:
        query = query.where(Match.night_id == night_id)
    if player_ids is not None:
        query = query.where(MatchPlayer.player_id.in_(list(player_ids)))
    if round_numbers is not None:
        query = query.where(Round.number.in_(list(round_numbers)))
    query = query.order_by(Match.id, MatchPlayer.id)

    participations: List[Participation] = []
    for player_id, match_team_id, side, match_id, home, away, round_number in session.exec(query).all():
        if home is None or away is None:
            continue
        is_home = side == TeamSide.HOME
        participations.append(
            Participation(
                player_id=player_id,
                match_id=match_id,
                match_team_id=match_team_id,
                round_number=round_number,
                side=TeamSide(side),
                points_for=home if is_home else away,
                points_against=away if is_home else home,
            )
        )
    return participations


def compute_standings(participations: Iterable[Participation]) -> Dict[int, PlayerStanding]:
    """Fold participations into per-player standings."""
    standings: Dict[int, PlayerStanding] = {}
    for p in participations:
        row = standings.setdefault(p.player_id, PlayerStanding(player_id=p.player_id))
        row.points_for += p.points_for
        row.points_against += p.points_against
        if p.won:
            row.wins += 1
        else:
            row.losses += 1
    return standings


def _attach_names(session: Session, standings: Iterable[PlayerStanding]) -> None:
    rows = list(standings)
    ids = [s.player_id for s in rows]
    if not ids:
        return
    names = {p.id: p.name for p in session.exec(select(Player).where(Player.id.in_(ids))).all()}
    for s in rows:
        s.player_name = names.get(s.player_id)


def get_night_standings(
    session: Session,
    night_id: int,
    round_numbers: Optional[Sequence[int]] = None,
) -> List[PlayerStanding]:
    """Standings for one night, in draw-ranking order."""
    if not session.get(Night, night_id):
        raise NotFoundError(f"Night {night_id} not found")

    standings = compute_standings(load_participations(session, night_id=night_id, round_numbers=round_numbers))
    ranked = sorted(standings.values(), key=ranking_sort_key)
    _attach_names(session, ranked)
    return ranked


def get_leaderboard(session: Session) -> List[PlayerStanding]:
    """All-time standings for every player with at least one finished match."""
    standings = compute_standings(load_participations(session))
    ranked = sorted((s for s in standings.values() if s.matches > 0), key=leaderboard_sort_key)
    _attach_names(session, ranked)
    return ranked


def get_player_stats(session: Session, player_id: int) -> PlayerStanding:
    player = session.get(Player, player_id)
    if not player:
        raise NotFoundError(f"Player {player_id} not found")

    standings = compute_standings(load_participations(session, player_ids=[player_id]))
    stats = standings.get(player_id, PlayerStanding(player_id=player_id))
    stats.player_name = player.name
    return stats


def get_player_chemistry(session: Session, player_id: int, min_matches: int = 2) -> List[PartnerChemistry]:
    """
    Per-partner record for a player: matches and wins on the same team.

    Partners with fewer than min_matches finished matches together are left
    out. Sorted by win rate desc, then wins together desc, then partner id.
    """
    player = session.get(Player, player_id)
    if not player:
        raise NotFoundError(f"Player {player_id} not found")

    own = load_participations(session, player_ids=[player_id])
    if not own:
        return []

    won_by_team = {p.match_team_id: p.won for p in own}
    teammates = session.exec(
        select(MatchPlayer.match_team_id, MatchPlayer.player_id).where(
            MatchPlayer.match_team_id.in_(list(won_by_team)),
            MatchPlayer.player_id != player_id,
        )
    ).all()

    together: Dict[int, List[int]] = defaultdict(lambda: [0, 0])
    for match_team_id, partner_id in teammates:
        together[partner_id][0] += 1
        if won_by_team[match_team_id]:
            together[partner_id][1] += 1

    partner_ids = [pid for pid, (played, _) in together.items() if played >= min_matches]
    if not partner_ids:
        return []
    names = {p.id: p.name for p in session.exec(select(Player).where(Player.id.in_(partner_ids))).all()}

    partners = [
        PartnerChemistry(
            player_id=pid,
            player_name=names.get(pid),
            matches_together=together[pid][0],
            wins_together=together[pid][1],
        )
        for pid in partner_ids
    ]
    partners.sort(key=lambda p: (-p.win_rate, -p.wins_together, p.player_id))
    return partners


# Opponents need this many finished meetings to count as toughest/favorite
MIN_RIVAL_MATCHES = 3


@dataclass
class RivalRecord:
    """Head-to-head record of a player against one opponent."""

    player_id: int
    player_name: Optional[str] = None
    matches_played: int = 0
    wins: int = 0
    losses: int = 0
    points_for: int = 0
    points_against: int = 0

    @property
    def win_rate(self) -> int:
        return round(self.wins / self.matches_played * 100)

    @property
    def avg_point_diff(self) -> float:
        return round((self.points_for - self.points_against) / self.matches_played, 1)


def get_player_rivals(session: Session, player_id: int) -> List[RivalRecord]:
    """
    Record against every opponent the player met in a finished match.

    Every player on the opposing side counts as a meeting. Sorted by matches
    played desc, then opponent id.
    """
    player = session.get(Player, player_id)
    if not player:
        raise NotFoundError(f"Player {player_id} not found")

    own = {p.match_id: p for p in load_participations(session, player_ids=[player_id])}
    if not own:
        return []

    rows = session.exec(
        select(MatchTeam.match_id, MatchPlayer.match_team_id, MatchPlayer.player_id)
        .join(MatchTeam, MatchTeam.id == MatchPlayer.match_team_id)
        .where(MatchTeam.match_id.in_(list(own)))
        .order_by(MatchPlayer.id)
    ).all()

    rivals: Dict[int, RivalRecord] = {}
    for match_id, match_team_id, opponent_id in rows:
        mine = own[match_id]
        if match_team_id == mine.match_team_id or opponent_id == player_id:
            continue
        record = rivals.setdefault(opponent_id, RivalRecord(player_id=opponent_id))
        record.matches_played += 1
        record.points_for += mine.points_for
        record.points_against += mine.points_against
        if mine.won:
            record.wins += 1
        else:
            record.losses += 1

    ranked = sorted(rivals.values(), key=lambda r: (-r.matches_played, r.player_id))
    if ranked:
        names = {p.id: p.name for p in session.exec(select(Player).where(Player.id.in_(list(rivals)))).all()}
        for record in ranked:
            record.player_name = names.get(record.player_id)
    return ranked


def toughest_rival(rivals: Sequence[RivalRecord]) -> Optional[RivalRecord]:
    """Lowest win rate among opponents met at least MIN_RIVAL_MATCHES times."""
    eligible = [r for r in rivals if r.matches_played >= MIN_RIVAL_MATCHES]
    return min(eligible, key=lambda r: (r.win_rate, -r.matches_played, r.player_id), default=None)


def favorite_opponent(rivals: Sequence[RivalRecord]) -> Optional[RivalRecord]:
    """Highest win rate among opponents met at least MIN_RIVAL_MATCHES times."""
    eligible = [r for r in rivals if r.matches_played >= MIN_RIVAL_MATCHES]
    return min(eligible, key=lambda r: (-r.win_rate, -r.matches_played, r.player_id), default=None)
