"""
Draw strategies: how attendees become doubles matches.

Round 1 can be drawn three ways:
  random   - uniform shuffle, players 1+2 vs 3+4 in each chunk of four
  balanced - strongest+weakest vs the two players around the 1/3 and 2/3
             marks of the remaining pool, by historical win rate
  diverse  - bounded random search for the four players with the fewest
             repeated teammate pairs, then strongest+weakest vs the middle two

Rounds 2 and 3 use the ranked strategy: players ranked on the night so far are
cut into groups of four (remainder -> byes) and each group gets the split that
repeats the fewest teammate pairs.

Every strategy returns an ordered list of (a, b, c, d) tuples meaning
"a+b (HOME) vs c+d (AWAY)". Strategies only see player ids, forms and a
TeammateHistory; loading from the database happens in round_draw.
"""

from __future__ import annotations

import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from boulenight.services.draw_helpers import (
    GROUP_SIZE,
    Pairing,
    pick_least_repeated_split,
    split_into_groups_with_byes,
)
from boulenight.services.errors import DrawValidationError
from boulenight.services.player_form import DEFAULT_WIN_RATE, PlayerForm
from boulenight.services.teammate_history import TeammateHistory

logger = logging.getLogger(__name__)

# Random quadruples tried per group by the diverse strategy
DIVERSE_DRAW_ATTEMPTS = 50


class DrawStrategy(str, Enum):
    BALANCED = "balanced"
    DIVERSE = "diverse"
    RANDOM = "random"


@dataclass
class RankedDraw:
    pairings: List[Pairing] = field(default_factory=list)
    byes: List[int] = field(default_factory=list)


def validate_draw_pool(player_ids: Sequence[int]) -> None:
    if len(player_ids) < GROUP_SIZE:
        raise DrawValidationError(f"Need at least {GROUP_SIZE} players to draw, got {len(player_ids)}")
    if len(player_ids) % GROUP_SIZE != 0:
        raise DrawValidationError(
            f"Player count must be a multiple of {GROUP_SIZE} (e.g. 4, 8, 12), got {len(player_ids)}"
        )
    if len(set(player_ids)) != len(player_ids):
        raise DrawValidationError("Player list contains duplicates")


def _strength_order(player_ids: Sequence[int], forms: Dict[int, PlayerForm]) -> List[int]:
    """Strongest first by win rate; player id breaks ties."""

    def win_rate(pid: int) -> float:
        form = forms.get(pid)
        return form.win_rate if form else DEFAULT_WIN_RATE

    return sorted(player_ids, key=lambda pid: (-win_rate(pid), pid))


def draw_random(player_ids: Sequence[int], rng: Optional[random.Random] = None) -> List[Pairing]:
    validate_draw_pool(player_ids)
    rng = rng or random.Random()

    shuffled = list(player_ids)
    rng.shuffle(shuffled)
    return [tuple(shuffled[i: i + GROUP_SIZE]) for i in range(0, len(shuffled), GROUP_SIZE)]


def draw_balanced(
    player_ids: Sequence[int],
    forms: Dict[int, PlayerForm],
    history: TeammateHistory,
) -> List[Pairing]:
    """
    Strong+weak vs mid+mid, one group at a time.

    From the remaining pool (strongest first) take S = first, W = last,
    M1 = index n//3 and M2 = index 2n//3. The group [S, W, M1, M2] goes through
    the pairing selector, so S+W vs M1+M2 is kept unless one of those pairs
    already played together tonight and another split repeats less.
    """
    validate_draw_pool(player_ids)

    remaining = _strength_order(player_ids, forms)
    pairings: List[Pairing] = []
    while remaining:
        n = len(remaining)
        strong = remaining[0]
        weak = remaining[-1]
        mid_high = remaining[n // 3]
        mid_low = remaining[(2 * n) // 3]

        group = [strong, weak, mid_high, mid_low]
        pairings.append(pick_least_repeated_split(group, history))

        taken = set(group)
        remaining = [pid for pid in remaining if pid not in taken]
    return pairings


def find_least_overlapping_group(
    pool: Sequence[int],
    history: TeammateHistory,
    rng: random.Random,
    attempts: int = DIVERSE_DRAW_ATTEMPTS,
) -> Tuple[List[int], int]:
    """
    Sample up to `attempts` random groups of four from pool.

    Returns the first group with the lowest overlap seen, stopping early on a
    group with no repeated pairs.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    if len(pool) < GROUP_SIZE:
        raise ValueError(f"Pool of {len(pool)} players cannot form a group of {GROUP_SIZE}")

    best: List[int] = []
    best_overlap = -1
    for _ in range(attempts):
        candidate = rng.sample(list(pool), GROUP_SIZE)
        overlap = history.overlap(candidate)
        if best_overlap < 0 or overlap < best_overlap:
            best, best_overlap = candidate, overlap
            if overlap == 0:
                break
    return best, best_overlap


def draw_diverse(
    player_ids: Sequence[int],
    forms: Dict[int, PlayerForm],
    history: TeammateHistory,
    rng: Optional[random.Random] = None,
    attempts: int = DIVERSE_DRAW_ATTEMPTS,
) -> List[Pairing]:
    validate_draw_pool(player_ids)
    rng = rng or random.Random()

    available = list(player_ids)
    pairings: List[Pairing] = []
    while available:
        group, overlap = find_least_overlapping_group(available, history, rng, attempts)
        if overlap:
            logger.debug("Diverse draw settled for a group with %d repeated pairs", overlap)

        p1, p2, p3, p4 = _strength_order(group, forms)
        history.add(p1, p4)
        history.add(p2, p3)
        pairings.append((p1, p4, p2, p3))

        taken = set(group)
        available = [pid for pid in available if pid not in taken]
    return pairings


def draw_ranked(ranked_player_ids: Sequence[int], history: TeammateHistory) -> RankedDraw:
    """Groups of four in rank order, remainder to byes, least-repeated split per group."""
    split = split_into_groups_with_byes(ranked_player_ids, GROUP_SIZE)
    pairings = [pick_least_repeated_split(group, history) for group in split.groups]
    return RankedDraw(pairings=pairings, byes=list(split.byes))


def check_covers_players(pairings: Sequence[Pairing], player_ids: Sequence[int]) -> None:
    """Every player appears in exactly one pairing slot."""
    drawn = Counter(pid for pairing in pairings for pid in pairing)
    if drawn != Counter(player_ids) or any(len(p) != GROUP_SIZE for p in pairings):
        raise ValueError("Draw does not place every player exactly once")


def draw_with_fallback(
    player_ids: Sequence[int],
    run_strategy: Callable[[], List[Pairing]],
    rng: Optional[random.Random] = None,
) -> Tuple[List[Pairing], bool]:
    """
    Run a skill/history aware strategy, falling back to a random draw.

    The pool is validated first; after that nothing raised by the strategy
    (or a result that misplaces players) escapes. Returns (pairings,
    fell_back).
    """
    validate_draw_pool(player_ids)
    try:
        pairings = run_strategy()
        check_covers_players(pairings, player_ids)
        return pairings, False
    except Exception:
        logger.warning("Draw strategy failed; falling back to random draw", exc_info=True)
        return draw_random(player_ids, rng), True
