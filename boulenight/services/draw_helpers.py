"""
Grouping and pairing helpers shared by the draw strategies.

split_into_groups_with_byes() cuts a ranked list into groups of four plus a
trailing remainder of byes. pick_least_repeated_split() chooses which 2-vs-2
split of a group repeats the fewest teammate pairs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, List, Sequence, Tuple, TypeVar

from boulenight.services.teammate_history import TeammateHistory

GROUP_SIZE = 4

T = TypeVar("T")

# The three ways to split a group of four into two pairs, by index.
# Order matters: it is the tie-break when two splits score the same.
PAIR_SPLITS: Tuple[Tuple[Tuple[int, int], Tuple[int, int]], ...] = (
    ((0, 1), (2, 3)),  # AB | CD
    ((0, 2), (1, 3)),  # AC | BD
    ((0, 3), (1, 2)),  # AD | BC
)

# (home_a, home_b, away_a, away_b)
Pairing = Tuple[int, int, int, int]


@dataclass
class GroupSplit(Generic[T]):
    groups: List[List[T]] = field(default_factory=list)
    byes: List[T] = field(default_factory=list)


def split_into_groups_with_byes(players: Sequence[T], group_size: int = GROUP_SIZE) -> GroupSplit[T]:
    """
    Split players (in rank order) into consecutive full groups.

    The trailing len(players) % group_size players become byes.
    """
    if group_size <= 0:
        raise ValueError("group_size must be positive")

    ordered = list(players)
    remainder = len(ordered) % group_size
    byes = ordered[len(ordered) - remainder:] if remainder else []
    kept = ordered[: len(ordered) - remainder]

    groups = [kept[i: i + group_size] for i in range(0, len(kept), group_size)]
    return GroupSplit(groups=groups, byes=byes)


def score_split(group: Sequence[int], split, history: TeammateHistory) -> int:
    return sum(1 for a, b in split if history.has(group[a], group[b]))


def pick_least_repeated_split(group: Sequence[int], history: TeammateHistory) -> Pairing:
    """
    Pick the 2-vs-2 split of four players with the fewest repeated pairs.

    Ties go to the earlier split in PAIR_SPLITS. The chosen pairs are written
    into history so that later groups of the same draw see them.
    """
    if len(group) != GROUP_SIZE:
        raise ValueError(f"Expected a group of {GROUP_SIZE} players, got {len(group)}")

    best = min(PAIR_SPLITS, key=lambda split: score_split(group, split, history))
    (a, b), (c, d) = best
    history.add(group[a], group[b])
    history.add(group[c], group[d])
    return (group[a], group[b], group[c], group[d])
