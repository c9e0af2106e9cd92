"""
Match outcome prediction.

Each side gets a strength from its players' history: career win rate (50%),
win rate over their last few finished matches (30%) and how often the side's
partners won together (20%). Players without history count as 50. The
strength difference goes through a logistic curve to give the home side's
win probability.
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from itertools import combinations
from typing import Dict, List, Sequence

from sqlmodel import Session, select

from boulenight.models.match import Match, MatchPlayer, MatchTeam, TeamSide
from boulenight.models.night import Night
from boulenight.services.errors import NotFoundError
from boulenight.services.player_form import DEFAULT_WIN_RATE, load_player_forms
from boulenight.services.result_confirmation import WALKOVER_WINNING_SCORE
from boulenight.services.round_materializer import get_round
from boulenight.services.standings import Participation, load_participations

logger = logging.getLogger(__name__)

RECENT_FORM_MATCHES = 5

SKILL_WEIGHT = 0.5
FORM_WEIGHT = 0.3
CHEMISTRY_WEIGHT = 0.2

# Strength points per e-fold of the logistic curve
PROBABILITY_SCALE = 10.0
# Differences below this many points are no advantage for either side
ADVANTAGE_MARGIN = 5.0
# Home probability within this distance of 50 is a toss-up
TOSS_UP_MARGIN = 10.0
MIN_CONFIDENCE = 55.0
MAX_CONFIDENCE = 95.0
# Expected losing score runs from this up to LOSER_BASE_SCORE + LOSER_SCORE_RANGE
LOSER_BASE_SCORE = 7
LOSER_SCORE_RANGE = 4


class Advantage(str, Enum):
    HOME = "HOME"
    AWAY = "AWAY"
    NEUTRAL = "NEUTRAL"


class PredictedWinner(str, Enum):
    HOME = "HOME"
    AWAY = "AWAY"
    TOSS_UP = "TOSS_UP"


@dataclass
class SideStrength:
    skill: float
    form: float
    chemistry: float

    @property
    def strength(self) -> float:
        return self.skill * SKILL_WEIGHT + self.form * FORM_WEIGHT + self.chemistry * CHEMISTRY_WEIGHT


@dataclass
class MatchPrediction:
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


def _rate(participations: Sequence[Participation]) -> float:
    if not participations:
        return DEFAULT_WIN_RATE
    return sum(1 for p in participations if p.won) / len(participations) * 100


def _mean(values: Sequence[float]) -> float:
    if not values:
        return DEFAULT_WIN_RATE
    return sum(values) / len(values)


def _advantage(home: float, away: float) -> Advantage:
    if abs(home - away) < ADVANTAGE_MARGIN:
        return Advantage.NEUTRAL
    return Advantage.HOME if home > away else Advantage.AWAY


def _expected_score(win_probability: float) -> int:
    if win_probability > 50:
        return WALKOVER_WINNING_SCORE
    return round(LOSER_BASE_SCORE + win_probability / 50 * LOSER_SCORE_RANGE)


def _load_rosters(session: Session, match_ids: Sequence[int]) -> Dict[int, Dict[TeamSide, List[int]]]:
    rosters: Dict[int, Dict[TeamSide, List[int]]] = {
        match_id: {TeamSide.HOME: [], TeamSide.AWAY: []} for match_id in match_ids
    }
    if not rosters:
        return rosters
    rows = session.exec(
        select(MatchTeam.match_id, MatchTeam.side, MatchPlayer.player_id)
        .join(MatchPlayer, MatchPlayer.match_team_id == MatchTeam.id)
        .where(MatchTeam.match_id.in_(list(match_ids)))
        .order_by(MatchPlayer.id)
    ).all()
    for match_id, side, player_id in rows:
        rosters[match_id][TeamSide(side)].append(player_id)
    return rosters


class _History:
    """Finished-match history of the players being predicted, loaded once."""

    def __init__(self, session: Session, player_ids: Sequence[int]):
        player_ids = sorted(set(player_ids))
        self.forms = load_player_forms(session, player_ids)

        self.by_player: Dict[int, List[Participation]] = defaultdict(list)
        for p in load_participations(session, player_ids=player_ids):
            self.by_player[p.player_id].append(p)

        # match_team_id -> predicted players on it, for partner lookups
        self.team_members: Dict[int, set] = defaultdict(set)
        for participations in self.by_player.values():
            for p in participations:
                self.team_members[p.match_team_id].add(p.player_id)

    def skill(self, player_id: int) -> float:
        return self.forms[player_id].win_rate

    def form(self, player_id: int) -> float:
        # Participations come ordered by match id, oldest first
        return _rate(self.by_player[player_id][-RECENT_FORM_MATCHES:])

    def chemistry(self, first: int, second: int) -> float:
        together = [p for p in self.by_player[first] if second in self.team_members[p.match_team_id]]
        return _rate(together)

    def side(self, player_ids: Sequence[int]) -> SideStrength:
        pairs = list(combinations(sorted(set(player_ids)), 2))
        return SideStrength(
            skill=_mean([self.skill(pid) for pid in player_ids]),
            form=_mean([self.form(pid) for pid in player_ids]),
            chemistry=_mean([self.chemistry(a, b) for a, b in pairs]),
        )


def _predict(match: Match, rosters: Dict[TeamSide, List[int]], history: _History) -> MatchPrediction:
    home = history.side(rosters[TeamSide.HOME])
    away = history.side(rosters[TeamSide.AWAY])

    diff = home.strength - away.strength
    home_probability = 100 / (1 + math.exp(-diff / PROBABILITY_SCALE))
    away_probability = 100 - home_probability
    confidence = min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, 50 + abs(diff) * 2))

    if abs(home_probability - 50) < TOSS_UP_MARGIN:
        winner = PredictedWinner.TOSS_UP
    elif home_probability > 50:
        winner = PredictedWinner.HOME
    else:
        winner = PredictedWinner.AWAY

    return MatchPrediction(
        match_id=match.id,
        lane=match.lane,
        home_player_ids=rosters[TeamSide.HOME],
        away_player_ids=rosters[TeamSide.AWAY],
        home_win_probability=round(home_probability),
        away_win_probability=round(away_probability),
        confidence=round(confidence),
        skill_difference=round(abs(home.skill - away.skill)),
        chemistry_advantage=_advantage(home.chemistry, away.chemistry),
        form_advantage=_advantage(home.form, away.form),
        predicted_winner=winner,
        expected_home_score=_expected_score(home_probability),
        expected_away_score=_expected_score(away_probability),
    )


def _predict_matches(session: Session, matches: Sequence[Match]) -> List[MatchPrediction]:
    rosters = _load_rosters(session, [m.id for m in matches])
    player_ids = [pid for sides in rosters.values() for side in sides.values() for pid in side]
    history = _History(session, player_ids)
    return [_predict(m, rosters[m.id], history) for m in matches]


def predict_match(session: Session, match_id: int) -> MatchPrediction:
    """Predict one match from its players' finished matches."""
    match = session.get(Match, match_id)
    if not match:
        raise NotFoundError(f"Match {match_id} not found")
    prediction = _predict_matches(session, [match])[0]
    logger.debug(
        "Match %s predicted %d-%d for HOME",
        match_id,
        prediction.home_win_probability,
        prediction.away_win_probability,
    )
    return prediction


def predict_round(session: Session, night_id: int, round_number: int) -> List[MatchPrediction]:
    """Predictions for every match of a round, by lane."""
    if not session.get(Night, night_id):
        raise NotFoundError(f"Night {night_id} not found")
    round_ = get_round(session, night_id, round_number)
    if not round_:
        raise NotFoundError(f"Round {round_number} of night {night_id} not found")

    matches = session.exec(select(Match).where(Match.round_id == round_.id).order_by(Match.lane)).all()
    return _predict_matches(session, matches)
