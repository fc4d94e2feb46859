"""
Score cell store.

One row per (judge, participant, criterion). Writes are single-statement
upserts so sqlite alone decides ordering for a key (last write wins).
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Optional, Tuple

from tabulator import roster
from tabulator.db import utcnow
from tabulator.exceptions import LockedError, NotLiveError, ValidationError
from tabulator.models import ScoreCell

logger = logging.getLogger(__name__)

MIN_VALUE = 0
MAX_VALUE = 100


def _cell(row: sqlite3.Row) -> ScoreCell:
    return ScoreCell(
        judge_id=row["judge_id"],
        participant_id=row["participant_id"],
        criterion_id=row["criterion_id"],
        track_id=row["track_id"],
        value=int(row["value"]),
        locked=bool(row["locked"]),
        unlock_requested=bool(row["unlock_requested"]),
        updated_at=row["updated_at"],
    )


def check_value(value) -> int:
    """Return value as int or raise ValidationError. Never clamps."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Score must be an integer between {MIN_VALUE} and {MAX_VALUE}, got {value!r}.")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"Score must be a whole number, got {value}.")
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError(f"Score must be an integer between {MIN_VALUE} and {MAX_VALUE}, got {value!r}.")
    if value < MIN_VALUE or value > MAX_VALUE:
        raise ValidationError(f"Score out of range: {value} (allowed {MIN_VALUE}-{MAX_VALUE}).")
    return value


def get_cell(conn: sqlite3.Connection, judge_id: int, participant_id: int, criterion_id: int) -> Optional[ScoreCell]:
    row = conn.execute(
        "SELECT * FROM scores WHERE judge_id=? AND participant_id=? AND criterion_id=?",
        (judge_id, participant_id, criterion_id),
    ).fetchone()
    return _cell(row) if row else None


def upsert(
    conn: sqlite3.Connection,
    judge_id: int,
    participant_id: int,
    criterion_id: int,
    value,
    *,
    override: bool = False,
    lock: bool = False,
) -> ScoreCell:
    """
    Write or replace the value for one cell.

    override is the organizer path: it may write through a lock, but never
    while the track is not live.
    """
    judge, _participant, _criterion = roster.resolve_triple(conn, judge_id, participant_id, criterion_id)
    value = check_value(value)

    track = roster.get_track(conn, judge.track_id)
    if not track.is_live:
        raise NotLiveError(track.track_id, track.status.value)

    existing = get_cell(conn, judge_id, participant_id, criterion_id)
    if existing is not None and existing.locked and not override:
        raise LockedError(judge_id, participant_id)

    conn.execute(
        """
        INSERT INTO scores(judge_id, participant_id, criterion_id, track_id, value, locked, unlock_requested, updated_at)
        VALUES(?,?,?,?,?,?,0,?)
        ON CONFLICT(judge_id, participant_id, criterion_id)
        DO UPDATE SET value=excluded.value,
                      locked=MAX(scores.locked, excluded.locked),
                      updated_at=excluded.updated_at
        """,
        (judge_id, participant_id, criterion_id, track.track_id, value, 1 if lock else 0, utcnow()),
    )
    return get_cell(conn, judge_id, participant_id, criterion_id)


def get_by_participant(conn: sqlite3.Connection, participant_id: int) -> Tuple[ScoreCell, ...]:
    rows = conn.execute(
        "SELECT * FROM scores WHERE participant_id=? ORDER BY judge_id, criterion_id", (participant_id,)
    ).fetchall()
    return tuple(_cell(r) for r in rows)


def get_by_judge(conn: sqlite3.Connection, judge_id: int) -> Tuple[ScoreCell, ...]:
    rows = conn.execute(
        "SELECT * FROM scores WHERE judge_id=? ORDER BY participant_id, criterion_id", (judge_id,)
    ).fetchall()
    return tuple(_cell(r) for r in rows)


def get_by_track(conn: sqlite3.Connection, track_id: int) -> Tuple[ScoreCell, ...]:
    rows = conn.execute(
        "SELECT * FROM scores WHERE track_id=? ORDER BY participant_id, judge_id, criterion_id", (track_id,)
    ).fetchall()
    return tuple(_cell(r) for r in rows)


def get_pair(conn: sqlite3.Connection, judge_id: int, participant_id: int) -> Tuple[ScoreCell, ...]:
    rows = conn.execute(
        "SELECT * FROM scores WHERE judge_id=? AND participant_id=? ORDER BY criterion_id",
        (judge_id, participant_id),
    ).fetchall()
    return tuple(_cell(r) for r in rows)


def delete_by_key(conn: sqlite3.Connection, judge_id: int, participant_id: int) -> int:
    cur = conn.execute("DELETE FROM scores WHERE judge_id=? AND participant_id=?", (judge_id, participant_id))
    return cur.rowcount


def set_flags(
    conn: sqlite3.Connection,
    judge_id: int,
    participant_id: int,
    *,
    locked: Optional[bool] = None,
    unlock_requested: Optional[bool] = None,
) -> int:
    """Update lock flags on every criterion cell of a (judge, participant) pair."""
    sets, params = [], []
    if locked is not None:
        sets.append("locked=?")
        params.append(1 if locked else 0)
    if unlock_requested is not None:
        sets.append("unlock_requested=?")
        params.append(1 if unlock_requested else 0)
    if not sets:
        return 0
    cur = conn.execute(
        f"UPDATE scores SET {', '.join(sets)} WHERE judge_id=? AND participant_id=?",
        (*params, judge_id, participant_id),
    )
    return cur.rowcount
