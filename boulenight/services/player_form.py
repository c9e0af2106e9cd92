"""
Historical form of players, used to balance round 1 draws.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence

from sqlmodel import Session

from boulenight.services.standings import compute_standings, load_participations

# Win rate assumed for a player with no finished matches
DEFAULT_WIN_RATE = 50.0


@dataclass(frozen=True)
class PlayerForm:
    player_id: int
    wins: int = 0
    losses: int = 0

    @property
    def total_matches(self) -> int:
        return self.wins + self.losses

    @property
    def win_rate(self) -> float:
        if self.total_matches == 0:
            return DEFAULT_WIN_RATE
        return self.wins / self.total_matches * 100


def load_player_forms(session: Session, player_ids: Sequence[int]) -> Dict[int, PlayerForm]:
    """Form for each requested player over their whole history (every night)."""
    standings = compute_standings(load_participations(session, player_ids=player_ids))
    forms: Dict[int, PlayerForm] = {}
    for player_id in player_ids:
        row = standings.get(player_id)
        if row is None:
            forms[player_id] = PlayerForm(player_id=player_id)
        else:
            forms[player_id] = PlayerForm(player_id=player_id, wins=row.wins, losses=row.losses)
    return forms
