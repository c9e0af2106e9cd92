"""
Round draw operations.

Loads what a draw needs (attendance, forms, standings, teammate history),
runs the strategy and hands the pairings to the materializer. The
existence checks here give friendly errors; the unique round index in the
materializer is what actually keeps a night from getting two round 1s.
"""

import logging
import random
from typing import List, Optional, Sequence

from sqlmodel import Session, select

from boulenight.models.night import DrawMode, Night, NightAttendance
from boulenight.models.player import Player
from boulenight.models.team import Team, TeamMember
from boulenight.services.draw_helpers import GROUP_SIZE
from boulenight.services.draw_strategies import (
    DrawStrategy,
    draw_balanced,
    draw_diverse,
    draw_random,
    draw_ranked,
    draw_with_fallback,
    validate_draw_pool,
)
from boulenight.services.errors import DrawValidationError, NotFoundError, RoundConflictError
from boulenight.services.player_form import load_player_forms
from boulenight.services.round_materializer import (
    MatchPairing,
    MaterializedRound,
    get_round,
    latest_round_number,
    materialize_round,
)
from boulenight.services.standings import get_night_standings
from boulenight.services.teammate_history import load_night_teammate_history

logger = logging.getLogger(__name__)

RANKED_ROUNDS = (2, 3)


def _get_night(session: Session, night_id: int, draw_mode: DrawMode) -> Night:
    night = session.get(Night, night_id)
    if not night:
        raise NotFoundError(f"Night {night_id} not found")
    if night.draw_mode != draw_mode:
        raise DrawValidationError(
            f"Night {night_id} uses {DrawMode(night.draw_mode).value} draws, not {draw_mode.value}"
        )
    return night


def present_player_ids(session: Session, night_id: int) -> List[int]:
    """Present attendees, ordered by name then id."""
    rows = session.exec(
        select(NightAttendance.player_id)
        .join(Player, Player.id == NightAttendance.player_id)
        .where(NightAttendance.night_id == night_id, NightAttendance.present == True)  # noqa: E712
        .order_by(Player.name, Player.id)
    ).all()
    return list(rows)


def draw_round_one(
    session: Session,
    night_id: int,
    strategy: DrawStrategy = DrawStrategy.BALANCED,
    rng: Optional[random.Random] = None,
) -> MaterializedRound:
    """
    Draw round 1 from the night's present attendees.

    Balanced and diverse draws fall back to a random draw if they fail;
    once attendance is valid the draw always produces a round.
    """
    _get_night(session, night_id, DrawMode.INDIVIDUAL)
    if get_round(session, night_id, 1):
        raise RoundConflictError("Round 1 already drawn")

    try:
        strategy = DrawStrategy(strategy)
    except ValueError:
        raise DrawValidationError(f"Unknown draw mode: {strategy!r}")

    player_ids = present_player_ids(session, night_id)
    validate_draw_pool(player_ids)

    if strategy == DrawStrategy.RANDOM:
        pairings = draw_random(player_ids, rng)
    else:

        def run_strategy():
            forms = load_player_forms(session, player_ids)
            history = load_night_teammate_history(session, night_id)
            if strategy == DrawStrategy.BALANCED:
                return draw_balanced(player_ids, forms, history)
            return draw_diverse(player_ids, forms, history, rng=rng)

        pairings, fell_back = draw_with_fallback(player_ids, run_strategy, rng)
        if fell_back:
            # Only reads happened; a failed read may have left the transaction unusable
            session.rollback()

    return materialize_round(session, night_id, 1, [MatchPairing.from_doubles(p) for p in pairings])


def draw_ranked_round(session: Session, night_id: int, round_number: int) -> MaterializedRound:
    """
    Draw round 2 or 3 from the night's standings so far.

    Players are ranked by wins, then point differential, then id. Round 2
    needs a ranked count divisible by four; round 3 sends the remainder to
    byes.
    """
    if round_number not in RANKED_ROUNDS:
        raise DrawValidationError(f"Ranked draws cover rounds {RANKED_ROUNDS}, not {round_number}")

    _get_night(session, night_id, DrawMode.INDIVIDUAL)
    if get_round(session, night_id, round_number):
        raise RoundConflictError(f"Round {round_number} already drawn")
    if not get_round(session, night_id, round_number - 1):
        raise DrawValidationError(f"Round {round_number - 1} has not been drawn")

    standings = get_night_standings(session, night_id, round_numbers=range(1, round_number))
    if not standings:
        raise DrawValidationError("No completed matches in previous rounds")

    ranked_ids = [s.player_id for s in standings]
    if len(ranked_ids) < GROUP_SIZE:
        raise DrawValidationError(f"Need at least {GROUP_SIZE} ranked players, got {len(ranked_ids)}")
    if round_number == 2 and len(ranked_ids) % GROUP_SIZE != 0:
        raise DrawValidationError(
            f"Round 2 needs a multiple of {GROUP_SIZE} ranked players, got {len(ranked_ids)}"
        )

    history = load_night_teammate_history(session, night_id)
    draw = draw_ranked(ranked_ids, history)
    if draw.byes:
        logger.info("Round %d of night %d: byes for players %s", round_number, night_id, draw.byes)

    return materialize_round(
        session,
        night_id,
        round_number,
        [MatchPairing.from_doubles(p) for p in draw.pairings],
        byes=draw.byes,
    )


def draw_team_round(
    session: Session,
    night_id: int,
    team_ids: Sequence[int],
    rng: Optional[random.Random] = None,
) -> MaterializedRound:
    """Shuffle the selected teams and pair them off; rosters are copied as-is."""
    _get_night(session, night_id, DrawMode.TEAM)

    team_ids = list(team_ids)
    if len(team_ids) < 2:
        raise DrawValidationError("Select at least 2 teams")
    if len(team_ids) % 2 != 0:
        raise DrawValidationError(f"Team count must be even, got {len(team_ids)}")
    if len(set(team_ids)) != len(team_ids):
        raise DrawValidationError("Team list contains duplicates")

    found = {t.id for t in session.exec(select(Team).where(Team.id.in_(team_ids))).all()}
    missing = [tid for tid in team_ids if tid not in found]
    if missing:
        raise NotFoundError(f"Teams not found: {missing}")

    rosters = {tid: [] for tid in team_ids}
    members = session.exec(
        select(TeamMember).where(TeamMember.team_id.in_(team_ids)).order_by(TeamMember.id)
    ).all()
    for member in members:
        rosters[member.team_id].append(member.player_id)
    empty = [tid for tid in team_ids if not rosters[tid]]
    if empty:
        raise DrawValidationError(f"Teams without members: {empty}")

    seen = {}
    for tid in team_ids:
        for player_id in rosters[tid]:
            if seen.setdefault(player_id, tid) != tid:
                raise DrawValidationError(
                    f"Player {player_id} is on both team {seen[player_id]} and team {tid}"
                )

    rng = rng or random.Random()
    shuffled = list(team_ids)
    rng.shuffle(shuffled)

    pairings = [
        MatchPairing(
            home_player_ids=rosters[home],
            away_player_ids=rosters[away],
            home_team_id=home,
            away_team_id=away,
        )
        for home, away in zip(shuffled[::2], shuffled[1::2])
    ]
    round_number = latest_round_number(session, night_id) + 1
    return materialize_round(session, night_id, round_number, pairings)
