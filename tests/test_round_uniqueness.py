"""
At most one Round per (night, number), also when two sessions race past the
"already drawn" pre-check.
"""

import pytest
from sqlmodel import Session, select

from boulenight.models.match import Match
from boulenight.models.round import Round
from boulenight.services.errors import RoundConflictError
from boulenight.services.round_materializer import MatchPairing, materialize_round
from tests.factories import make_night, make_players


def test_losing_session_gets_conflict_and_writes_nothing(engine, session: Session):
    night = make_night(session)
    ids = [p.id for p in make_players(session, 8)]
    night_id = night.id

    with Session(engine) as first, Session(engine) as second:
        # Both requests passed the friendly check before either inserted
        assert first.exec(select(Round).where(Round.night_id == night_id)).all() == []
        assert second.exec(select(Round).where(Round.night_id == night_id)).all() == []

        winner = materialize_round(first, night_id, 1, [MatchPairing.from_doubles(tuple(ids[:4]))])
        with pytest.raises(RoundConflictError):
            materialize_round(second, night_id, 1, [MatchPairing.from_doubles(tuple(ids[4:]))])

    session.expire_all()
    rounds = session.exec(select(Round).where(Round.night_id == night_id)).all()
    assert [r.id for r in rounds] == [winner.round_id]
    matches = session.exec(select(Match).where(Match.night_id == night_id)).all()
    assert len(matches) == 1


def test_different_round_numbers_do_not_conflict(session: Session):
    night = make_night(session)
    ids = [p.id for p in make_players(session, 4)]
    pairing = [MatchPairing.from_doubles(tuple(ids))]

    materialize_round(session, night.id, 1, pairing)
    materialize_round(session, night.id, 2, pairing)

    numbers = session.exec(select(Round.number).where(Round.night_id == night.id).order_by(Round.number)).all()
    assert list(numbers) == [1, 2]


def test_same_number_on_other_night_is_allowed(session: Session):
    ids = [p.id for p in make_players(session, 4)]
    pairing = [MatchPairing.from_doubles(tuple(ids))]

    for name in ("Monday", "Thursday"):
        night = make_night(session, name=name)
        assert materialize_round(session, night.id, 1, pairing).round_number == 1
