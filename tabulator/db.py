from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

SCHEMA = """
CREATE TABLE IF NOT EXISTS tracks (
    track_id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'setup' CHECK (status IN ('setup', 'live', 'ended')),
    names_revealed INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS participants (
    participant_id INTEGER PRIMARY KEY AUTOINCREMENT,
    track_id INTEGER NOT NULL REFERENCES tracks(track_id) ON DELETE CASCADE,
    real_name TEXT NOT NULL,
    alias TEXT,
    booth_code TEXT NOT NULL,
    UNIQUE(track_id, booth_code)
);

CREATE TABLE IF NOT EXISTS judges (
    judge_id INTEGER PRIMARY KEY AUTOINCREMENT,
    track_id INTEGER NOT NULL REFERENCES tracks(track_id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    pin TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS criteria (
    criterion_id INTEGER PRIMARY KEY AUTOINCREMENT,
    track_id INTEGER NOT NULL REFERENCES tracks(track_id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    weight REAL NOT NULL,
    input_mode TEXT NOT NULL DEFAULT 'slider'
);

-- one row per (judge, participant, criterion); track_id is denormalized for snapshot reads
CREATE TABLE IF NOT EXISTS scores (
    judge_id INTEGER NOT NULL REFERENCES judges(judge_id) ON DELETE CASCADE,
    participant_id INTEGER NOT NULL REFERENCES participants(participant_id) ON DELETE CASCADE,
    criterion_id INTEGER NOT NULL REFERENCES criteria(criterion_id) ON DELETE CASCADE,
    track_id INTEGER NOT NULL REFERENCES tracks(track_id) ON DELETE CASCADE,
    value INTEGER NOT NULL,
    locked INTEGER NOT NULL DEFAULT 0,
    unlock_requested INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT,
    PRIMARY KEY (judge_id, participant_id, criterion_id)
);

CREATE INDEX IF NOT EXISTS scores_by_track ON scores(track_id);
"""


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def session(db_path: str) -> Iterator[sqlite3.Connection]:
    """Connection that commits on success, rolls back on error, and always closes."""
    conn = connect(db_path)
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def init_db(db_path: str) -> None:
    with session(db_path) as conn:
        conn.executescript(SCHEMA)
