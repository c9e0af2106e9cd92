"""
Tests for the round 1 and ranked draw strategies (pure, no database).
"""

import random
from collections import Counter

import pytest

from boulenight.services.draw_strategies import (
    draw_balanced,
    draw_diverse,
    draw_random,
    draw_ranked,
    draw_with_fallback,
    find_least_overlapping_group,
    validate_draw_pool,
)
from boulenight.services.errors import DrawValidationError
from boulenight.services.player_form import DEFAULT_WIN_RATE, PlayerForm
from boulenight.services.teammate_history import TeammateHistory


def _forms(player_ids):
    """Lower id = stronger player."""
    return {pid: PlayerForm(player_id=pid, wins=20 - pid, losses=pid) for pid in player_ids}


def _assert_everyone_once(pairings, player_ids):
    assert len(pairings) == len(player_ids) // 4
    assert all(len(p) == 4 for p in pairings)
    assert Counter(pid for p in pairings for pid in p) == Counter(player_ids)


STRATEGIES = {
    "random": lambda ids, rng: draw_random(ids, rng),
    "balanced": lambda ids, rng: draw_balanced(ids, _forms(ids), TeammateHistory()),
    "diverse": lambda ids, rng: draw_diverse(ids, _forms(ids), TeammateHistory(), rng=rng),
}


class TestEveryStrategyPlacesEveryone:
    @pytest.mark.parametrize("name", sorted(STRATEGIES))
    @pytest.mark.parametrize("count", [4, 8, 12, 16])
    def test_k_matches_each_player_once(self, name, count):
        ids = list(range(1, count + 1))
        pairings = STRATEGIES[name](ids, random.Random(count))
        _assert_everyone_once(pairings, ids)

    @pytest.mark.parametrize("name", sorted(STRATEGIES))
    @pytest.mark.parametrize("count", [0, 3, 6, 10])
    def test_invalid_counts_rejected(self, name, count):
        with pytest.raises(DrawValidationError):
            STRATEGIES[name](list(range(1, count + 1)), random.Random(0))

    def test_duplicates_rejected(self):
        with pytest.raises(DrawValidationError):
            validate_draw_pool([1, 2, 3, 3])


class TestRandomDraw:
    def test_chunks_of_shuffled_list(self):
        ids = list(range(1, 9))
        shuffled = list(ids)
        random.Random(7).shuffle(shuffled)
        assert draw_random(ids, random.Random(7)) == [tuple(shuffled[:4]), tuple(shuffled[4:])]


class TestBalancedDraw:
    def test_strong_and_weak_against_the_middle(self):
        ids = list(range(1, 9))
        # Pool 1..8: S=1, W=8, mids at n//3=2 -> 3 and 2n//3=5 -> 6
        # Pool 2,4,5,7: S=2, W=7, mids at 1 -> 4 and 2 -> 5
        pairings = draw_balanced(ids, _forms(ids), TeammateHistory())
        assert pairings == [(1, 8, 3, 6), (2, 7, 4, 5)]

    def test_repeat_pair_broken_up(self):
        ids = list(range(1, 9))
        history = TeammateHistory([(1, 8)])
        pairings = draw_balanced(ids, _forms(ids), history)
        assert pairings[0] == (1, 3, 8, 6)

    def test_players_without_history_sit_at_default_rate(self):
        ids = [1, 2, 3, 4]
        forms = {1: PlayerForm(player_id=1, wins=9, losses=1), 2: PlayerForm(player_id=2, wins=1, losses=9)}
        assert PlayerForm(player_id=3).win_rate == DEFAULT_WIN_RATE
        # Order: 1 (90%), 3 (50%), 4 (50%), 2 (10%)
        assert draw_balanced(ids, forms, TeammateHistory()) == [(1, 2, 3, 4)]


class TestDiverseDraw:
    def test_strongest_and_weakest_against_middle_two(self):
        ids = [1, 2, 3, 4]
        assert draw_diverse(ids, _forms(ids), TeammateHistory(), rng=random.Random(3)) == [(1, 4, 2, 3)]

    def test_finds_group_without_repeats(self):
        history = TeammateHistory([(1, 2)])
        group, overlap = find_least_overlapping_group(list(range(1, 9)), history, random.Random(11))
        assert overlap == 0
        assert not {1, 2} <= set(group)

    def test_single_attempt_takes_first_sample(self):
        pool = list(range(1, 9))
        expected = random.Random(5).sample(pool, 4)
        group, _ = find_least_overlapping_group(pool, TeammateHistory(), random.Random(5), attempts=1)
        assert group == expected

    def test_records_chosen_pairs(self):
        ids = [1, 2, 3, 4]
        history = TeammateHistory()
        draw_diverse(ids, _forms(ids), history, rng=random.Random(1))
        assert history.has(1, 4)
        assert history.has(2, 3)


class TestRankedDraw:
    def test_groups_in_rank_order_with_byes(self):
        ranked = [5, 6, 9, 10, 1, 2, 3, 4, 7, 8]
        history = TeammateHistory([(5, 6), (9, 10), (1, 2), (3, 4)])
        draw = draw_ranked(ranked, history)
        assert draw.pairings == [(5, 9, 6, 10), (1, 3, 2, 4)]
        assert draw.byes == [7, 8]


class TestDrawWithFallback:
    def test_strategy_result_used_when_valid(self):
        ids = [1, 2, 3, 4]
        pairings, fell_back = draw_with_fallback(ids, lambda: [(1, 4, 2, 3)])
        assert pairings == [(1, 4, 2, 3)]
        assert fell_back is False

    def test_falls_back_to_random_on_error(self):
        ids = list(range(1, 9))

        def broken():
            raise RuntimeError("form lookup failed")

        pairings, fell_back = draw_with_fallback(ids, broken, random.Random(2))
        assert fell_back is True
        _assert_everyone_once(pairings, ids)

    def test_falls_back_when_players_are_misplaced(self):
        ids = list(range(1, 9))
        pairings, fell_back = draw_with_fallback(ids, lambda: [(1, 2, 3, 4), (1, 2, 3, 4)], random.Random(2))
        assert fell_back is True
        _assert_everyone_once(pairings, ids)

    def test_invalid_pool_is_not_hidden_by_fallback(self):
        with pytest.raises(DrawValidationError):
            draw_with_fallback([1, 2, 3], lambda: [])
