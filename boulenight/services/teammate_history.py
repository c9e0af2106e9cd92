"""
Teammate history for a single night.

Built once per draw request from the night's persisted matches, mutated while
the draw runs, then discarded.
"""

from __future__ import annotations

from itertools import combinations
from typing import FrozenSet, Iterable, Optional, Sequence, Set

from sqlmodel import Session, select

from boulenight.models.match import Match, MatchPlayer, MatchTeam
from boulenight.models.round import Round


def teammate_key(a: int, b: int) -> FrozenSet[int]:
    return frozenset((a, b))


class TeammateHistory:
    """Unordered player pairs that have already shared a team."""

    def __init__(self, pairs: Optional[Iterable[Sequence[int]]] = None):
        self._pairs: Set[FrozenSet[int]] = set()
        for a, b in pairs or ():
            self.add(a, b)

    def __len__(self) -> int:
        return len(self._pairs)

    def __contains__(self, pair: Sequence[int]) -> bool:
        a, b = pair
        return self.has(a, b)

    def has(self, a: int, b: int) -> bool:
        return teammate_key(a, b) in self._pairs

    def add(self, a: int, b: int) -> None:
        if a == b:
            return
        self._pairs.add(teammate_key(a, b))

    def add_roster(self, player_ids: Sequence[int]) -> None:
        """Record every pair within one team's roster."""
        for a, b in combinations(player_ids, 2):
            self.add(a, b)

    def overlap(self, player_ids: Sequence[int]) -> int:
        """Number of pairs among player_ids that already played together."""
        return sum(1 for a, b in combinations(player_ids, 2) if self.has(a, b))

    @classmethod
    def from_rosters(cls, rosters: Iterable[Sequence[int]]) -> "TeammateHistory":
        history = cls()
        for roster in rosters:
            history.add_roster(roster)
        return history


def load_night_teammate_history(
    session: Session,
    night_id: int,
    round_numbers: Optional[Sequence[int]] = None,
) -> TeammateHistory:
    """
    Build the teammate history from every persisted match of a night.

    Matches of any status count: a pairing that was drawn is a pairing that
    was used. round_numbers narrows the scan to specific rounds.
    """
    query = (
        select(MatchTeam.id, MatchPlayer.player_id)
        .join(MatchPlayer, MatchPlayer.match_team_id == MatchTeam.id)
        .join(Match, Match.id == MatchTeam.match_id)
        .where(Match.night_id == night_id)
    )
    if round_numbers is not None:
        query = query.join(Round, Round.id == Match.round_id).where(Round.number.in_(list(round_numbers)))

    rosters: dict = {}
    for match_team_id, player_id in session.exec(query).all():
        rosters.setdefault(match_team_id, []).append(player_id)

    return TeammateHistory.from_rosters(rosters.values())
