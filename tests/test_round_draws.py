"""
Tests for round draws: round 1, ranked rounds 2 and 3, team rounds and reset.
"""

from collections import Counter

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from boulenight.models.match import Match, MatchPlayer, MatchTeam, TeamSide
from boulenight.models.night import DrawMode
from boulenight.models.ranking import Ranking
from boulenight.models.round import Round, RoundBye
from boulenight.services.errors import DrawValidationError
from boulenight.services.result_confirmation import admin_override_result
from boulenight.services.round_draw import draw_ranked_round
from tests.factories import (
    make_night,
    make_players,
    make_round,
    make_team,
    mark_present,
    match_rosters,
    round_matches,
)


def _night_with_players(session: Session, count: int, draw_mode: DrawMode = DrawMode.INDIVIDUAL):
    night = make_night(session, draw_mode=draw_mode)
    players = make_players(session, count)
    mark_present(session, night, players)
    return night, players


def _rounds(session: Session, night_id: int):
    session.expire_all()
    return session.exec(select(Round).where(Round.night_id == night_id)).all()


# ============================================================================
# Round 1
# ============================================================================


@pytest.mark.parametrize("mode", ["balanced", "diverse", "random"])
def test_draw_round_one_places_every_player_once(client: TestClient, session: Session, mode):
    night, players = _night_with_players(session, 12)

    response = client.post(f"/api/nights/{night.id}/rounds/1/draw?mode={mode}")
    assert response.status_code == 201
    body = response.json()
    assert body["round_number"] == 1
    assert [m["lane"] for m in body["matches"]] == [1, 2, 3]
    assert body["byes"] == []

    drawn = session.exec(
        select(MatchPlayer.player_id)
        .join(MatchTeam, MatchTeam.id == MatchPlayer.match_team_id)
        .join(Match, Match.id == MatchTeam.match_id)
        .where(Match.round_id == body["round_id"])
    ).all()
    assert Counter(drawn) == Counter(p.id for p in players)

    for m in body["matches"]:
        rosters = match_rosters(session, m["match_id"])
        assert len(rosters[TeamSide.HOME]) == 2
        assert len(rosters[TeamSide.AWAY]) == 2


def test_second_round_one_draw_conflicts(client: TestClient, session: Session):
    night, _ = _night_with_players(session, 8)

    assert client.post(f"/api/nights/{night.id}/rounds/1/draw?mode=random").status_code == 201
    response = client.post(f"/api/nights/{night.id}/rounds/1/draw?mode=random")
    assert response.status_code == 409

    rounds = _rounds(session, night.id)
    assert [r.number for r in rounds] == [1]


@pytest.mark.parametrize("count", [0, 3, 6, 10])
def test_round_one_needs_multiple_of_four(client: TestClient, session: Session, count):
    night, _ = _night_with_players(session, count)

    response = client.post(f"/api/nights/{night.id}/rounds/1/draw")
    assert response.status_code == 400
    assert _rounds(session, night.id) == []


def test_absent_players_are_not_drawn(client: TestClient, session: Session):
    night, _ = _night_with_players(session, 4)
    extra = make_players(session, 1, prefix="Withdrawn")
    mark_present(session, night, extra)
    assert client.delete(f"/api/nights/{night.id}/signup/{extra[0].id}").status_code == 200

    response = client.post(f"/api/nights/{night.id}/rounds/1/draw?mode=random")
    assert response.status_code == 201
    rosters = match_rosters(session, response.json()["matches"][0]["match_id"])
    assert extra[0].id not in rosters[TeamSide.HOME] + rosters[TeamSide.AWAY]


def test_round_one_unknown_night(client: TestClient, session: Session):
    assert client.post("/api/nights/999/rounds/1/draw").status_code == 404


def test_round_one_rejects_team_night(client: TestClient, session: Session):
    night, _ = _night_with_players(session, 8, draw_mode=DrawMode.TEAM)
    assert client.post(f"/api/nights/{night.id}/rounds/1/draw").status_code == 400


def test_round_one_unknown_mode(client: TestClient, session: Session):
    night, _ = _night_with_players(session, 8)
    assert client.post(f"/api/nights/{night.id}/rounds/1/draw?mode=seeded").status_code == 422


# ============================================================================
# Ranked rounds
# ============================================================================


def test_round_two_needs_round_one(client: TestClient, session: Session):
    night, _ = _night_with_players(session, 8)
    assert client.post(f"/api/nights/{night.id}/rounds/2/draw").status_code == 400


def test_round_two_needs_completed_matches(client: TestClient, session: Session):
    night, _ = _night_with_players(session, 8)
    client.post(f"/api/nights/{night.id}/rounds/1/draw?mode=random")

    response = client.post(f"/api/nights/{night.id}/rounds/2/draw")
    assert response.status_code == 400
    assert "completed" in response.json()["detail"]


def test_round_three_needs_round_two(client: TestClient, session: Session):
    night, p = _night_with_players(session, 8)
    ids = [x.id for x in p]
    drawn = make_round(session, night, 1, [ids[0:4], ids[4:8]])
    for m in drawn.matches:
        admin_override_result(session, m.match_id, 13, 4)

    assert client.post(f"/api/nights/{night.id}/rounds/3/draw").status_code == 400


def test_round_two_ranks_and_avoids_repeat_teammates(client: TestClient, session: Session):
    night, p = _night_with_players(session, 8)
    ids = [x.id for x in p]
    drawn = make_round(session, night, 1, [ids[0:4], ids[4:8]])
    lane_1, lane_2 = drawn.matches
    admin_override_result(session, lane_1.match_id, 13, 5)
    admin_override_result(session, lane_2.match_id, 13, 9)

    response = client.post(f"/api/nights/{night.id}/rounds/2/draw")
    assert response.status_code == 201
    body = response.json()
    assert body["round_number"] == 2
    assert [m["lane"] for m in body["matches"]] == [1, 2]

    session.expire_all()
    first = match_rosters(session, body["matches"][0]["match_id"])
    second = match_rosters(session, body["matches"][1]["match_id"])
    # Lane 1 holds the four round 1 winners, lane 2 the four losers
    assert set(first[TeamSide.HOME] + first[TeamSide.AWAY]) == {ids[0], ids[1], ids[4], ids[5]}
    assert set(second[TeamSide.HOME] + second[TeamSide.AWAY]) == {ids[2], ids[3], ids[6], ids[7]}

    round_one_pairs = {frozenset(ids[0:2]), frozenset(ids[2:4]), frozenset(ids[4:6]), frozenset(ids[6:8])}
    for rosters in (first, second):
        for side in (TeamSide.HOME, TeamSide.AWAY):
            assert frozenset(rosters[side]) not in round_one_pairs


def test_round_two_rejects_ranked_count_not_multiple_of_four(session: Session):
    night, p = _night_with_players(session, 6)
    ids = [x.id for x in p]
    # Players 1 and 2 appear in both matches, leaving six ranked players
    drawn = make_round(session, night, 1, [ids[0:4], [ids[0], ids[1], ids[4], ids[5]]])
    for m in drawn.matches:
        admin_override_result(session, m.match_id, 13, 6)

    with pytest.raises(DrawValidationError, match="multiple of 4"):
        draw_ranked_round(session, night.id, 2)


def test_round_three_gives_byes_to_lowest_ranked(client: TestClient, session: Session):
    night, p = _night_with_players(session, 12)
    ids = [x.id for x in p]
    round_one = make_round(session, night, 1, [ids[0:4], ids[4:8], ids[8:12]])
    admin_override_result(session, round_one.matches[0].match_id, 13, 0)
    admin_override_result(session, round_one.matches[1].match_id, 13, 0)
    # Players 9 and 10 beat players 1 and 2 in round 2
    round_two = make_round(session, night, 2, [[ids[8], ids[9], ids[0], ids[1]]])
    admin_override_result(session, round_two.matches[0].match_id, 13, 0)

    response = client.post(f"/api/nights/{night.id}/rounds/3/draw")
    assert response.status_code == 201
    body = response.json()

    # Ranking: 5,6 (1 win, +13), 9,10 (1 win, +13), 1,2 (1 win, 0), 3,4 (-13), 7,8 (-13)
    assert body["byes"] == [ids[6], ids[7]]
    assert len(body["matches"]) == 2

    session.expire_all()
    first = match_rosters(session, body["matches"][0]["match_id"])
    second = match_rosters(session, body["matches"][1]["match_id"])
    assert first[TeamSide.HOME] == [ids[4], ids[8]]
    assert first[TeamSide.AWAY] == [ids[5], ids[9]]
    assert second[TeamSide.HOME] == [ids[0], ids[2]]
    assert second[TeamSide.AWAY] == [ids[1], ids[3]]

    byes = session.exec(select(RoundBye.player_id).where(RoundBye.round_id == body["round_id"])).all()
    assert sorted(byes) == sorted([ids[6], ids[7]])


def test_round_three_needs_completed_matches(session: Session):
    night, p = _night_with_players(session, 4)
    ids = [x.id for x in p]
    make_round(session, night, 1, [ids])
    make_round(session, night, 2, [ids])

    with pytest.raises(DrawValidationError):
        draw_ranked_round(session, night.id, 3)


def test_round_matches_view(client: TestClient, session: Session):
    night, p = _night_with_players(session, 4)
    ids = [x.id for x in p]
    make_round(session, night, 1, [ids])

    response = client.get(f"/api/nights/{night.id}/rounds/1/matches")
    assert response.status_code == 200
    match = response.json()["matches"][0]
    assert match["lane"] == 1
    assert match["status"] == "SCHEDULED"
    assert match["home"]["player_ids"] == ids[0:2]
    assert match["away"]["player_ids"] == ids[2:4]

    assert client.get(f"/api/nights/{night.id}/rounds/2/matches").status_code == 404


# ============================================================================
# Team rounds
# ============================================================================


def _team_night(session: Session, team_count: int):
    night = make_night(session, draw_mode=DrawMode.TEAM)
    players = make_players(session, team_count * 2)
    teams = [make_team(session, f"Team {i + 1}", players[2 * i: 2 * i + 2]) for i in range(team_count)]
    return night, teams


def test_team_round_pairs_teams_and_copies_rosters(client: TestClient, session: Session):
    night, teams = _team_night(session, 4)
    team_ids = [t.id for t in teams]

    response = client.post(f"/api/nights/{night.id}/team-rounds/draw", json={"team_ids": team_ids})
    assert response.status_code == 201
    body = response.json()
    assert body["round_number"] == 1
    assert [m["lane"] for m in body["matches"]] == [1, 2]

    session.expire_all()
    linked = session.exec(
        select(MatchTeam).where(MatchTeam.match_id.in_([m["match_id"] for m in body["matches"]]))
    ).all()
    assert sorted(mt.team_id for mt in linked) == sorted(team_ids)
    for mt in linked:
        roster = session.exec(select(MatchPlayer.player_id).where(MatchPlayer.match_team_id == mt.id)).all()
        team_index = team_ids.index(mt.team_id)
        assert len(roster) == 2
        assert sorted(roster) == sorted([2 * team_index + 1, 2 * team_index + 2])

    second = client.post(f"/api/nights/{night.id}/team-rounds/draw", json={"team_ids": team_ids})
    assert second.status_code == 201
    assert second.json()["round_number"] == 2


def test_team_round_validation(client: TestClient, session: Session):
    night, teams = _team_night(session, 3)
    empty = make_team(session, "Empty", [])
    url = f"/api/nights/{night.id}/team-rounds/draw"

    assert client.post(url, json={"team_ids": [teams[0].id]}).status_code == 400
    assert client.post(url, json={"team_ids": [t.id for t in teams]}).status_code == 400
    assert client.post(url, json={"team_ids": [teams[0].id, teams[0].id]}).status_code == 400
    assert client.post(url, json={"team_ids": [teams[0].id, empty.id]}).status_code == 400
    assert client.post(url, json={"team_ids": [teams[0].id, 999]}).status_code == 404

    # Rosters must not share a player
    shared = make_players(session, 1, prefix="Shared")[0]
    left = make_team(session, "Left", [shared, make_players(session, 1, prefix="Left")[0]])
    right = make_team(session, "Right", [shared, make_players(session, 1, prefix="Right")[0]])
    response = client.post(url, json={"team_ids": [left.id, right.id]})
    assert response.status_code == 400
    assert "both team" in response.json()["detail"]
    assert _rounds(session, night.id) == []


def test_team_round_rejects_individual_night(client: TestClient, session: Session):
    night = make_night(session)
    players = make_players(session, 4)
    a = make_team(session, "A", players[:2])
    b = make_team(session, "B", players[2:])

    response = client.post(f"/api/nights/{night.id}/team-rounds/draw", json={"team_ids": [a.id, b.id]})
    assert response.status_code == 400


# ============================================================================
# Reset
# ============================================================================


def test_reset_deletes_round_and_allows_redraw(client: TestClient, session: Session):
    night, _ = _night_with_players(session, 8)
    client.post(f"/api/nights/{night.id}/rounds/1/draw?mode=random")

    response = client.post(f"/api/nights/{night.id}/rounds/1/reset")
    assert response.status_code == 200
    assert response.json() == {"round_number": 1, "matches_deleted": 2}

    assert _rounds(session, night.id) == []
    assert session.exec(select(Match).where(Match.night_id == night.id)).all() == []
    assert session.exec(select(MatchTeam)).all() == []
    assert session.exec(select(MatchPlayer)).all() == []

    assert client.post(f"/api/nights/{night.id}/rounds/1/draw?mode=random").status_code == 201


def test_reset_only_latest_round(client: TestClient, session: Session):
    night, p = _night_with_players(session, 4)
    ids = [x.id for x in p]
    make_round(session, night, 1, [ids])
    make_round(session, night, 2, [ids])

    assert client.post(f"/api/nights/{night.id}/rounds/1/reset").status_code == 409
    assert client.post(f"/api/nights/{night.id}/rounds/3/reset").status_code == 404
    assert client.post(f"/api/nights/{night.id}/rounds/2/reset").status_code == 200
    assert [r.number for r in _rounds(session, night.id)] == [1]


def test_reset_reverts_rankings(client: TestClient, session: Session):
    night, p = _night_with_players(session, 4)
    drawn = make_round(session, night, 1, [[x.id for x in p]])
    admin_override_result(session, drawn.matches[0].match_id, 13, 8)

    assert client.post(f"/api/nights/{night.id}/rounds/1/reset").status_code == 200

    session.expire_all()
    rankings = session.exec(select(Ranking)).all()
    assert len(rankings) == 4
    assert all(r.simple_points == 0 and r.matches_played == 0 and r.matches_won == 0 for r in rankings)
    assert round_matches(session, drawn.round_id) == []
