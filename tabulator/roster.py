"""
Tracks, participants, judges and criteria.

Only the reads the engine needs plus the minimal writes an organizer uses to
stand a track up. Richer roster management lives outside this package.
"""
from __future__ import annotations

import logging
import secrets
import sqlite3
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from tabulator.db import utcnow
from tabulator.exceptions import NotFoundError, ValidationError
from tabulator.models import Criterion, InputMode, Judge, Participant, Track, TrackStatus

logger = logging.getLogger(__name__)

FULL_WEIGHT = 100.0


# -----------------------
# Row mapping
# -----------------------
def _track(row: sqlite3.Row) -> Track:
    return Track(
        track_id=row["track_id"],
        title=row["title"],
        status=TrackStatus(row["status"]),
        names_revealed=bool(row["names_revealed"]),
    )


def _participant(row: sqlite3.Row) -> Participant:
    return Participant(
        participant_id=row["participant_id"],
        track_id=row["track_id"],
        real_name=row["real_name"],
        booth_code=row["booth_code"],
        alias=row["alias"] or None,
    )


def _judge(row: sqlite3.Row) -> Judge:
    return Judge(judge_id=row["judge_id"], track_id=row["track_id"], name=row["name"], pin=row["pin"])


def _criterion(row: sqlite3.Row) -> Criterion:
    return Criterion(
        criterion_id=row["criterion_id"],
        track_id=row["track_id"],
        name=row["name"],
        weight=float(row["weight"]),
        description=row["description"] or "",
        input_mode=InputMode(row["input_mode"]),
    )


# -----------------------
# Tracks
# -----------------------
def create_track(conn: sqlite3.Connection, title: str) -> Track:
    title = title.strip()
    if not title:
        raise ValidationError("Track title is required.")
    cur = conn.execute(
        "INSERT INTO tracks(title, status, names_revealed, created_at) VALUES(?,?,?,?)",
        (title, TrackStatus.SETUP.value, 0, utcnow()),
    )
    logger.info("Created track %s (%s)", cur.lastrowid, title)
    return get_track(conn, cur.lastrowid)


def get_track(conn: sqlite3.Connection, track_id: int) -> Track:
    row = conn.execute("SELECT * FROM tracks WHERE track_id=?", (track_id,)).fetchone()
    if not row:
        raise NotFoundError("Track", track_id)
    return _track(row)


def list_tracks(conn: sqlite3.Connection, statuses: Optional[Iterable[TrackStatus]] = None) -> List[Track]:
    rows = conn.execute("SELECT * FROM tracks ORDER BY track_id DESC").fetchall()
    tracks = [_track(r) for r in rows]
    if statuses is not None:
        wanted = set(statuses)
        tracks = [t for t in tracks if t.status in wanted]
    return tracks


def set_status(conn: sqlite3.Connection, track_id: int, status: TrackStatus) -> Track:
    """Move a track between setup/live/ended. Stored lock flags are left as they are."""
    track = get_track(conn, track_id)
    status = TrackStatus(status)
    conn.execute("UPDATE tracks SET status=? WHERE track_id=?", (status.value, track_id))
    logger.info("Track %s status %s -> %s", track_id, track.status.value, status.value)
    return get_track(conn, track_id)


def set_names_revealed(conn: sqlite3.Connection, track_id: int, revealed: bool) -> Track:
    get_track(conn, track_id)
    conn.execute("UPDATE tracks SET names_revealed=? WHERE track_id=?", (1 if revealed else 0, track_id))
    logger.info("Track %s names_revealed=%s", track_id, bool(revealed))
    return get_track(conn, track_id)


def delete_track(conn: sqlite3.Connection, track_id: int) -> None:
    get_track(conn, track_id)
    conn.execute("DELETE FROM tracks WHERE track_id=?", (track_id,))
    logger.info("Deleted track %s with its roster and scores", track_id)


# -----------------------
# Participants
# -----------------------
def add_participant(
    conn: sqlite3.Connection,
    track_id: int,
    real_name: str,
    booth_code: str,
    alias: Optional[str] = None,
) -> Participant:
    get_track(conn, track_id)
    real_name = real_name.strip()
    booth_code = booth_code.strip().upper()
    if not real_name or not booth_code:
        raise ValidationError("Participant name and booth code are required.")
    alias = (alias or "").strip() or None
    try:
        cur = conn.execute(
            "INSERT INTO participants(track_id, real_name, alias, booth_code) VALUES(?,?,?,?)",
            (track_id, real_name, alias, booth_code),
        )
    except sqlite3.IntegrityError as e:
        raise ValidationError(f"Booth code {booth_code} is already used in track {track_id}.") from e
    return get_participant(conn, cur.lastrowid)


def get_participant(conn: sqlite3.Connection, participant_id: int) -> Participant:
    row = conn.execute("SELECT * FROM participants WHERE participant_id=?", (participant_id,)).fetchone()
    if not row:
        raise NotFoundError("Participant", participant_id)
    return _participant(row)


def list_participants(conn: sqlite3.Connection, track_id: int) -> List[Participant]:
    rows = conn.execute(
        "SELECT * FROM participants WHERE track_id=? ORDER BY participant_id", (track_id,)
    ).fetchall()
    return [_participant(r) for r in rows]


def find_participant_by_booth_code(conn: sqlite3.Connection, track_id: int, booth_code: str) -> Participant:
    code = booth_code.strip().upper()
    row = conn.execute(
        "SELECT * FROM participants WHERE track_id=? AND booth_code=?", (track_id, code)
    ).fetchone()
    if not row:
        raise NotFoundError("Booth code", code)
    return _participant(row)


def delete_participant(conn: sqlite3.Connection, participant_id: int) -> None:
    get_participant(conn, participant_id)
    conn.execute("DELETE FROM participants WHERE participant_id=?", (participant_id,))


# -----------------------
# Judges
# -----------------------
def generate_pin(length: int = 6) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


def add_judge(conn: sqlite3.Connection, track_id: int, name: str, pin: Optional[str] = None) -> Judge:
    get_track(conn, track_id)
    name = name.strip()
    if not name:
        raise ValidationError("Judge name is required.")
    pin = (pin or generate_pin()).strip()
    try:
        cur = conn.execute("INSERT INTO judges(track_id, name, pin) VALUES(?,?,?)", (track_id, name, pin))
    except sqlite3.IntegrityError as e:
        raise ValidationError("PIN is already assigned to another judge.") from e
    return get_judge(conn, cur.lastrowid)


def get_judge(conn: sqlite3.Connection, judge_id: int) -> Judge:
    row = conn.execute("SELECT * FROM judges WHERE judge_id=?", (judge_id,)).fetchone()
    if not row:
        raise NotFoundError("Judge", judge_id)
    return _judge(row)


def list_judges(conn: sqlite3.Connection, track_id: int) -> List[Judge]:
    rows = conn.execute("SELECT * FROM judges WHERE track_id=? ORDER BY name, judge_id", (track_id,)).fetchall()
    return [_judge(r) for r in rows]


def find_judge_by_pin(conn: sqlite3.Connection, pin: str) -> Judge:
    row = conn.execute("SELECT * FROM judges WHERE pin=?", (pin.strip(),)).fetchone()
    if not row:
        raise NotFoundError("Judge PIN", "****")
    return _judge(row)


def delete_judge(conn: sqlite3.Connection, judge_id: int) -> None:
    get_judge(conn, judge_id)
    conn.execute("DELETE FROM judges WHERE judge_id=?", (judge_id,))


# -----------------------
# Criteria
# -----------------------
def add_criterion(
    conn: sqlite3.Connection,
    track_id: int,
    name: str,
    weight: float,
    description: str = "",
    input_mode: InputMode = InputMode.SLIDER,
) -> Criterion:
    get_track(conn, track_id)
    name = name.strip()
    if not name:
        raise ValidationError("Criterion name is required.")
    if weight is None or float(weight) < 0:
        raise ValidationError(f"Criterion weight must be a non-negative percentage, got {weight}.")
    cur = conn.execute(
        "INSERT INTO criteria(track_id, name, description, weight, input_mode) VALUES(?,?,?,?,?)",
        (track_id, name, description or "", float(weight), InputMode(input_mode).value),
    )
    criterion = get_criterion(conn, cur.lastrowid)
    warning = weight_warning(list_criteria(conn, track_id))
    if warning:
        logger.warning("Track %s: %s", track_id, warning)
    return criterion


def get_criterion(conn: sqlite3.Connection, criterion_id: int) -> Criterion:
    row = conn.execute("SELECT * FROM criteria WHERE criterion_id=?", (criterion_id,)).fetchone()
    if not row:
        raise NotFoundError("Criterion", criterion_id)
    return _criterion(row)


def list_criteria(conn: sqlite3.Connection, track_id: int) -> List[Criterion]:
    rows = conn.execute(
        "SELECT * FROM criteria WHERE track_id=? ORDER BY criterion_id", (track_id,)
    ).fetchall()
    return [_criterion(r) for r in rows]


def delete_criterion(conn: sqlite3.Connection, criterion_id: int) -> None:
    get_criterion(conn, criterion_id)
    conn.execute("DELETE FROM criteria WHERE criterion_id=?", (criterion_id,))


def weight_total(criteria: Sequence[Criterion]) -> float:
    return float(np.sum([c.weight for c in criteria])) if criteria else 0.0


def weight_warning(criteria: Sequence[Criterion]) -> Optional[str]:
    """
    Soft check that criteria weights add up to 100%.

    Aggregation still runs on a malformed set; its output is then scaled by
    total/100 instead of topping out at 100.
    """
    total = weight_total(criteria)
    if np.isclose(total, FULL_WEIGHT):
        return None
    return f"Criteria weights total {total:g}% (expected 100%); scores are scaled by {total / FULL_WEIGHT:g}."


def resolve_triple(
    conn: sqlite3.Connection, judge_id: int, participant_id: int, criterion_id: int
) -> Tuple[Judge, Participant, Criterion]:
    judge = get_judge(conn, judge_id)
    participant = get_participant(conn, participant_id)
    criterion = get_criterion(conn, criterion_id)
    if not (judge.track_id == participant.track_id == criterion.track_id):
        raise ValidationError(
            f"Judge {judge_id}, participant {participant_id} and criterion {criterion_id} "
            "do not belong to the same track."
        )
    return judge, participant, criterion
