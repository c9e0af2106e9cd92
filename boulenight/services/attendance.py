"""
Night attendance.

Attendance decides who is drawn into round 1, so it is frozen once any round
exists. Edits of the whole list carry the night's updated_at as a version:
an edit based on an older version is rejected instead of overwriting a
concurrent change.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlmodel import Session, select

from boulenight.models.night import Night, NightAttendance
from boulenight.models.player import Player
from boulenight.services.errors import AttendanceConflictError, AttendanceError, NotFoundError
from boulenight.services.round_materializer import latest_round_number

logger = logging.getLogger(__name__)


@dataclass
class AttendanceView:
    night_id: int
    updated_at: datetime
    max_players: Optional[int] = None
    player_ids: List[int] = field(default_factory=list)


def _naive_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; compare everything as naive UTC
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _get_night(session: Session, night_id: int) -> Night:
    night = session.get(Night, night_id)
    if not night:
        raise NotFoundError(f"Night {night_id} not found")
    return night


def _check_editable(session: Session, night: Night) -> None:
    if latest_round_number(session, night.id) > 0:
        raise AttendanceConflictError(f"Night {night.id} has already been drawn; attendance is locked")


def _check_cap(night: Night, present_count: int) -> None:
    if night.max_players is not None and present_count > night.max_players:
        raise AttendanceError(f"Night {night.id} is limited to {night.max_players} players, got {present_count}")


def _rows(session: Session, night_id: int) -> List[NightAttendance]:
    return list(session.exec(select(NightAttendance).where(NightAttendance.night_id == night_id)).all())


def _touch(session: Session, night: Night) -> None:
    night.updated_at = datetime.now(timezone.utc)
    session.add(night)


def get_attendance(session: Session, night_id: int) -> AttendanceView:
    night = _get_night(session, night_id)
    present = session.exec(
        select(NightAttendance.player_id)
        .where(NightAttendance.night_id == night_id, NightAttendance.present == True)  # noqa: E712
        .order_by(NightAttendance.player_id)
    ).all()
    return AttendanceView(
        night_id=night.id,
        updated_at=night.updated_at,
        max_players=night.max_players,
        player_ids=list(present),
    )


def set_attendance(
    session: Session,
    night_id: int,
    player_ids: Sequence[int],
    last_known_updated_at: Optional[datetime] = None,
) -> AttendanceView:
    """
    Replace the night's attendance: listed players present, everyone else absent.

    Raises:
        AttendanceConflictError: stale last_known_updated_at or night already drawn
        AttendanceError: unknown players or the cap is exceeded
    """
    night = _get_night(session, night_id)
    if last_known_updated_at is not None and _naive_utc(night.updated_at) > _naive_utc(last_known_updated_at):
        raise AttendanceConflictError("Attendance was changed by someone else; reload and retry")
    _check_editable(session, night)

    wanted = list(dict.fromkeys(player_ids))
    known = set(session.exec(select(Player.id).where(Player.id.in_(wanted))).all()) if wanted else set()
    unknown = [pid for pid in wanted if pid not in known]
    if unknown:
        raise AttendanceError(f"Unknown players: {unknown}")
    _check_cap(night, len(wanted))

    try:
        rows = {row.player_id: row for row in _rows(session, night_id)}
        for player_id, row in rows.items():
            row.present = player_id in known
            session.add(row)
        for player_id in wanted:
            if player_id not in rows:
                session.add(NightAttendance(night_id=night_id, player_id=player_id, present=True))
        _touch(session, night)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info("Attendance for night %d set to %d players", night_id, len(wanted))
    return get_attendance(session, night_id)


def sign_up(session: Session, night_id: int, player_id: int) -> AttendanceView:
    night = _get_night(session, night_id)
    _check_editable(session, night)
    if not session.get(Player, player_id):
        raise NotFoundError(f"Player {player_id} not found")

    rows = _rows(session, night_id)
    row = next((r for r in rows if r.player_id == player_id), None)
    if row is not None and row.present:
        return get_attendance(session, night_id)

    _check_cap(night, sum(1 for r in rows if r.present) + 1)

    try:
        if row is None:
            row = NightAttendance(night_id=night_id, player_id=player_id)
        row.present = True
        session.add(row)
        _touch(session, night)
        session.commit()
    except Exception:
        session.rollback()
        raise

    return get_attendance(session, night_id)


def withdraw(session: Session, night_id: int, player_id: int) -> AttendanceView:
    night = _get_night(session, night_id)
    _check_editable(session, night)

    row = session.exec(
        select(NightAttendance).where(
            NightAttendance.night_id == night_id,
            NightAttendance.player_id == player_id,
        )
    ).first()
    if row is None or not row.present:
        return get_attendance(session, night_id)

    try:
        row.present = False
        session.add(row)
        _touch(session, night)
        session.commit()
    except Exception:
        session.rollback()
        raise

    return get_attendance(session, night_id)
