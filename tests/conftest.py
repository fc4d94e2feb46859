# tests/conftest.py

"""
Shared fixtures.

SEEDED TRACK ("Robotics", live):
- Criteria: Design 60%, Function 40%
- Judges:   Ada (PIN 1111), Grace (PIN 2222)
- Teams:    Team Alpha / alias Falcon / A1
            Team Beta  / no alias     / B2
            Team Gamma / alias Otter  / C3
"""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from tabulator import roster
from tabulator.config import get_settings
from tabulator.db import connect, init_db
from tabulator.models import Criterion, InputMode, ScoreCell, TrackStatus

ORGANIZER_KEY = "test-organizer-key"


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "judging.sqlite")
    init_db(path)
    return path


@pytest.fixture
def conn(db_path):
    """Autocommit connection so snapshot reads on other connections see every write."""
    connection = connect(db_path)
    connection.isolation_level = None
    yield connection
    connection.close()


@pytest.fixture
def seeded(conn):
    track = roster.create_track(conn, "Robotics")
    design = roster.add_criterion(conn, track.track_id, "Design", 60)
    function = roster.add_criterion(conn, track.track_id, "Function", 40)
    ada = roster.add_judge(conn, track.track_id, "Ada", pin="1111")
    grace = roster.add_judge(conn, track.track_id, "Grace", pin="2222")
    alpha = roster.add_participant(conn, track.track_id, "Team Alpha", "a1", alias="Falcon")
    beta = roster.add_participant(conn, track.track_id, "Team Beta", "B2")
    gamma = roster.add_participant(conn, track.track_id, "Team Gamma", "C3", alias="Otter")
    track = roster.set_status(conn, track.track_id, TrackStatus.LIVE)
    return SimpleNamespace(
        track=track,
        design=design,
        function=function,
        ada=ada,
        grace=grace,
        alpha=alpha,
        beta=beta,
        gamma=gamma,
    )


@pytest.fixture
def client(db_path, monkeypatch):
    """TestClient against the same temporary database the `conn` fixture uses."""
    monkeypatch.setenv("DB_PATH", db_path)
    monkeypatch.setenv("ORGANIZER_KEY", ORGANIZER_KEY)
    get_settings.cache_clear()
    from tabulator.main import app

    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()


@pytest.fixture
def organizer_headers():
    return {"X-Organizer-Key": ORGANIZER_KEY}


def make_criterion(criterion_id, weight, name=None, track_id=1, input_mode=InputMode.SLIDER):
    return Criterion(
        criterion_id=criterion_id,
        track_id=track_id,
        name=name or f"C{criterion_id}",
        weight=weight,
        input_mode=input_mode,
    )


def make_cell(judge_id, participant_id, criterion_id, value, locked=False, unlock_requested=False, track_id=1):
    return ScoreCell(
        judge_id=judge_id,
        participant_id=participant_id,
        criterion_id=criterion_id,
        track_id=track_id,
        value=value,
        locked=locked,
        unlock_requested=unlock_requested,
    )
