from __future__ import annotations

import asyncio
import logging
import secrets
import sqlite3
from typing import Dict, Iterator, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from tabulator import ballot, roster, store
from tabulator.aggregation import round_score
from tabulator.config import Settings, configure_logging, get_settings
from tabulator.db import init_db, session
from tabulator.exceptions import LockedError, NotFoundError, NotLiveError, TabulatorError, ValidationError
from tabulator.export import export_views, to_csv
from tabulator.models import Criterion, Judge, Participant, ScoreCell, Track, TrackStatus
from tabulator.schemas import (
    BallotRequest,
    CorrectionRequest,
    CriterionCreate,
    JudgeCreate,
    JudgeRequest,
    LoginRequest,
    ParticipantCreate,
    RevealUpdate,
    StatusUpdate,
    TrackCreate,
)
from tabulator.tabulation import (
    Tabulation,
    cell_breakdown,
    find_by_booth_code,
    judge_dashboard,
    load_snapshot,
    public_leaderboard,
    recompute,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Expo Tabulator", version="1.0.0")

ERROR_STATUS = {
    NotFoundError: 404,
    NotLiveError: 409,
    LockedError: 423,
    ValidationError: 422,
}


@app.on_event("startup")
def _startup():
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    init_db(settings.DB_PATH)
    logger.info("%s ready (db=%s)", settings.APP_NAME, settings.DB_PATH)


async def tabulator_error_handler(request: Request, exc: TabulatorError) -> JSONResponse:
    status_code = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 400)
    return JSONResponse(status_code=status_code, content={"error": type(exc).__name__, "detail": str(exc)})


app.add_exception_handler(TabulatorError, tabulator_error_handler)


# -----------------------
# Dependencies
# -----------------------
def get_conn(settings: Settings = Depends(get_settings)) -> Iterator[sqlite3.Connection]:
    with session(settings.DB_PATH) as conn:
        yield conn


def require_organizer(
    x_organizer_key: Optional[str] = Header(None), settings: Settings = Depends(get_settings)
) -> None:
    expected = settings.ORGANIZER_KEY.get_secret_value()
    if not x_organizer_key or not secrets.compare_digest(x_organizer_key.encode(), expected.encode()):
        raise HTTPException(status_code=403, detail="Invalid organizer key.")


def require_judge(conn: sqlite3.Connection, judge_id: int, pin: str) -> Judge:
    judge = roster.get_judge(conn, judge_id)
    if not secrets.compare_digest(judge.pin.encode(), pin.strip().encode()):
        raise HTTPException(403, "Invalid judge PIN.")
    return judge


def _check_judge(db_path: str, judge_id: int, pin: str) -> Judge:
    with session(db_path) as conn:
        return require_judge(conn, judge_id, pin)


def require_pair(conn: sqlite3.Connection, track_id: int, judge_id: int, participant_id: int) -> None:
    judge = roster.get_judge(conn, judge_id)
    participant = roster.get_participant(conn, participant_id)
    if judge.track_id != track_id or participant.track_id != track_id:
        raise NotFoundError("Ballot", f"{judge_id}/{participant_id} in track {track_id}")


# -----------------------
# Serialization
# -----------------------
def track_out(t: Track) -> Dict:
    return {"track_id": t.track_id, "title": t.title, "status": t.status.value, "names_revealed": t.names_revealed}


def participant_out(p: Participant) -> Dict:
    return {
        "participant_id": p.participant_id,
        "track_id": p.track_id,
        "real_name": p.real_name,
        "alias": p.alias,
        "booth_code": p.booth_code,
    }


def judge_out(j: Judge, with_pin: bool = False) -> Dict:
    out = {"judge_id": j.judge_id, "track_id": j.track_id, "name": j.name}
    if with_pin:
        out["pin"] = j.pin
    return out


def criterion_out(c: Criterion) -> Dict:
    return {
        "criterion_id": c.criterion_id,
        "name": c.name,
        "description": c.description,
        "weight": c.weight,
        "input_mode": c.input_mode.value,
    }


def cell_out(c: ScoreCell) -> Dict:
    return {
        "criterion_id": c.criterion_id,
        "value": c.value,
        "locked": c.locked,
        "unlock_requested": c.unlock_requested,
        "updated_at": c.updated_at,
    }


def tabulation_out(tab: Tabulation) -> Dict:
    rows = []
    for row in tab.rows:
        judges = {}
        for judge in tab.judges:
            score = row.judge_scores.get(judge.judge_id)
            judges[str(judge.judge_id)] = {
                "subtotal": None if score is None else round_score(score),
                "unlock_requested": row.judge_requests.get(judge.judge_id, False),
                "state": row.judge_states[judge.judge_id].value if judge.judge_id in row.judge_states else None,
            }
        rows.append(
            {
                "rank": row.position,
                "participant": participant_out(row.participant),
                "judges": judges,
                "final": round_score(row.final),
            }
        )
    return {
        "track_id": tab.track_id,
        "judges": [judge_out(j) for j in tab.judges],
        "rows": rows,
        "weight_warning": tab.weight_warning,
    }


# -----------------------
# Routes: Home
# -----------------------
@app.get("/")
def home():
    return {"service": "Expo Tabulator", "status": "running"}


# -----------------------
# Routes: Judge
# -----------------------
@app.post("/judge/login")
def judge_login(body: LoginRequest, conn: sqlite3.Connection = Depends(get_conn)):
    judge = roster.find_judge_by_pin(conn, body.pin)
    track = roster.get_track(conn, judge.track_id)
    return {**judge_out(judge), "track": track_out(track)}


@app.get("/judges/{judge_id}/dashboard")
async def judge_dashboard_view(judge_id: int, pin: str, settings: Settings = Depends(get_settings)):
    judge = await asyncio.to_thread(_check_judge, settings.DB_PATH, judge_id, pin)
    snapshot = await load_snapshot(settings.DB_PATH, judge.track_id)
    entries = judge_dashboard(snapshot, judge_id)
    return {
        "judge": judge_out(judge),
        "track": track_out(snapshot.track),
        "voting_open": snapshot.track.is_live,
        "criteria": [criterion_out(c) for c in snapshot.criteria],
        "participants": [
            {
                "participant_id": e.participant.participant_id,
                "booth_code": e.participant.booth_code,
                "alias": e.participant.alias,
                "progress": e.progress.value,
                "subtotal": e.subtotal,
                "unlock_requested": e.unlock_requested,
            }
            for e in entries
        ],
    }


@app.get("/judges/{judge_id}/booths/{booth_code}")
async def judge_find_booth(judge_id: int, booth_code: str, pin: str, settings: Settings = Depends(get_settings)):
    judge = await asyncio.to_thread(_check_judge, settings.DB_PATH, judge_id, pin)
    snapshot = await load_snapshot(settings.DB_PATH, judge.track_id)
    participant = find_by_booth_code(snapshot, booth_code)
    return {"participant_id": participant.participant_id, "booth_code": participant.booth_code, "alias": participant.alias}


@app.get("/judges/{judge_id}/ballots/{participant_id}")
def judge_ballot(judge_id: int, participant_id: int, pin: str, conn: sqlite3.Connection = Depends(get_conn)):
    require_judge(conn, judge_id, pin)
    cells = store.get_pair(conn, judge_id, participant_id)
    return {
        "state": ballot.ballot_state(cells).value,
        "unlock_requested": ballot.has_pending_request(cells),
        "cells": [cell_out(c) for c in cells],
    }


@app.post("/judges/{judge_id}/ballots/{participant_id}")
def judge_submit(judge_id: int, participant_id: int, body: BallotRequest, conn: sqlite3.Connection = Depends(get_conn)):
    judge = require_judge(conn, judge_id, body.pin)
    criteria = roster.list_criteria(conn, judge.track_id)
    values = ballot.ratings_from_inputs(criteria, [(s.criterion_id, s.value, s.level) for s in body.scores])
    cells = ballot.submit_ballot(conn, judge_id, participant_id, values, final=body.final)
    return {"state": ballot.ballot_state(cells).value, "cells": [cell_out(c) for c in cells]}


@app.post("/judges/{judge_id}/ballots/{participant_id}/unlock-request")
def judge_request_unlock(
    judge_id: int, participant_id: int, body: JudgeRequest, conn: sqlite3.Connection = Depends(get_conn)
):
    require_judge(conn, judge_id, body.pin)
    return {"flagged": ballot.request_unlock(conn, judge_id, participant_id)}


# -----------------------
# Routes: Organizer roster
# -----------------------
organizer = [Depends(require_organizer)]


@app.get("/organizer/tracks", dependencies=organizer)
def organizer_tracks(conn: sqlite3.Connection = Depends(get_conn)):
    return [track_out(t) for t in roster.list_tracks(conn)]


@app.post("/organizer/tracks", dependencies=organizer, status_code=201)
def organizer_create_track(body: TrackCreate, conn: sqlite3.Connection = Depends(get_conn)):
    return track_out(roster.create_track(conn, body.title))


@app.delete("/organizer/tracks/{track_id}", dependencies=organizer, status_code=204)
def organizer_delete_track(track_id: int, conn: sqlite3.Connection = Depends(get_conn)):
    roster.delete_track(conn, track_id)
    return Response(status_code=204)


@app.patch("/organizer/tracks/{track_id}/status", dependencies=organizer)
def organizer_set_status(track_id: int, body: StatusUpdate, conn: sqlite3.Connection = Depends(get_conn)):
    return track_out(roster.set_status(conn, track_id, body.status))


@app.patch("/organizer/tracks/{track_id}/reveal", dependencies=organizer)
def organizer_set_reveal(track_id: int, body: RevealUpdate, conn: sqlite3.Connection = Depends(get_conn)):
    return track_out(roster.set_names_revealed(conn, track_id, body.names_revealed))


@app.post("/organizer/tracks/{track_id}/participants", dependencies=organizer, status_code=201)
def organizer_add_participant(track_id: int, body: ParticipantCreate, conn: sqlite3.Connection = Depends(get_conn)):
    return participant_out(roster.add_participant(conn, track_id, body.real_name, body.booth_code, body.alias))


@app.delete("/organizer/participants/{participant_id}", dependencies=organizer, status_code=204)
def organizer_delete_participant(participant_id: int, conn: sqlite3.Connection = Depends(get_conn)):
    roster.delete_participant(conn, participant_id)
    return Response(status_code=204)


@app.post("/organizer/tracks/{track_id}/judges", dependencies=organizer, status_code=201)
def organizer_add_judge(track_id: int, body: JudgeCreate, conn: sqlite3.Connection = Depends(get_conn)):
    return judge_out(roster.add_judge(conn, track_id, body.name, body.pin), with_pin=True)


@app.delete("/organizer/judges/{judge_id}", dependencies=organizer, status_code=204)
def organizer_delete_judge(judge_id: int, conn: sqlite3.Connection = Depends(get_conn)):
    roster.delete_judge(conn, judge_id)
    return Response(status_code=204)


@app.post("/organizer/tracks/{track_id}/criteria", dependencies=organizer, status_code=201)
def organizer_add_criterion(track_id: int, body: CriterionCreate, conn: sqlite3.Connection = Depends(get_conn)):
    criterion = roster.add_criterion(conn, track_id, body.name, body.weight, body.description, body.input_mode)
    return {
        **criterion_out(criterion),
        "weight_warning": roster.weight_warning(roster.list_criteria(conn, track_id)),
    }


# -----------------------
# Routes: Organizer tabulation
# -----------------------
@app.get("/organizer/tracks/{track_id}/tabulation", dependencies=organizer)
async def organizer_tabulation(track_id: int, settings: Settings = Depends(get_settings)):
    snapshot = await load_snapshot(settings.DB_PATH, track_id)
    return {"track": track_out(snapshot.track), **tabulation_out(recompute(snapshot))}


@app.get("/organizer/tracks/{track_id}/cells/{judge_id}/{participant_id}", dependencies=organizer)
async def organizer_cell(track_id: int, judge_id: int, participant_id: int, settings: Settings = Depends(get_settings)):
    snapshot = await load_snapshot(settings.DB_PATH, track_id)
    b = cell_breakdown(snapshot, judge_id, participant_id)
    return {
        "judge": judge_out(b.judge),
        "participant": participant_out(b.participant),
        "breakdown": [{"criterion": name, "value": value} for name, value in b.values],
        "subtotal": b.subtotal,
        "has_request": b.has_request,
        "is_locked": b.is_locked,
    }


@app.put("/organizer/tracks/{track_id}/cells/{judge_id}/{participant_id}", dependencies=organizer)
def organizer_correct(
    track_id: int,
    judge_id: int,
    participant_id: int,
    body: CorrectionRequest,
    conn: sqlite3.Connection = Depends(get_conn),
):
    require_pair(conn, track_id, judge_id, participant_id)
    values = ballot.ratings_from_inputs(
        roster.list_criteria(conn, track_id), [(s.criterion_id, s.value, s.level) for s in body.scores]
    )
    cells = ballot.correct_ballot(conn, judge_id, participant_id, values)
    return {"cells": [cell_out(c) for c in cells]}


@app.post("/organizer/tracks/{track_id}/cells/{judge_id}/{participant_id}/grant-unlock", dependencies=organizer)
def organizer_grant_unlock(track_id: int, judge_id: int, participant_id: int, conn: sqlite3.Connection = Depends(get_conn)):
    require_pair(conn, track_id, judge_id, participant_id)
    return {"unlocked": ballot.grant_unlock(conn, judge_id, participant_id)}


@app.post("/organizer/tracks/{track_id}/cells/{judge_id}/{participant_id}/force-unlock", dependencies=organizer)
def organizer_force_unlock(track_id: int, judge_id: int, participant_id: int, conn: sqlite3.Connection = Depends(get_conn)):
    require_pair(conn, track_id, judge_id, participant_id)
    return {"unlocked": ballot.force_unlock(conn, judge_id, participant_id)}


@app.delete("/organizer/tracks/{track_id}/cells/{judge_id}/{participant_id}", dependencies=organizer)
def organizer_delete_cells(track_id: int, judge_id: int, participant_id: int, conn: sqlite3.Connection = Depends(get_conn)):
    require_pair(conn, track_id, judge_id, participant_id)
    return {"deleted": ballot.delete_entry(conn, judge_id, participant_id)}


@app.get("/organizer/tracks/{track_id}/export/{view}", dependencies=organizer)
async def organizer_export(track_id: int, view: str, settings: Settings = Depends(get_settings)):
    snapshot = await load_snapshot(settings.DB_PATH, track_id)
    views = export_views(snapshot, settings.PODIUM_SIZE)
    if view not in views:
        raise NotFoundError("Export view", view)
    return Response(
        content=to_csv(views[view]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="track_{track_id}_{view}.csv"'},
    )


# -----------------------
# Routes: Public scoreboard
# -----------------------
PUBLIC_STATUSES = (TrackStatus.LIVE, TrackStatus.ENDED)


@app.get("/scoreboard/tracks")
def scoreboard_tracks(conn: sqlite3.Connection = Depends(get_conn)) -> List[Dict]:
    return [{"track_id": t.track_id, "title": t.title} for t in roster.list_tracks(conn, PUBLIC_STATUSES)]


@app.get("/scoreboard/tracks/{track_id}")
async def scoreboard(track_id: int, settings: Settings = Depends(get_settings)):
    snapshot = await load_snapshot(settings.DB_PATH, track_id)
    if snapshot.track.status not in PUBLIC_STATUSES:
        raise NotFoundError("Track", track_id)
    return {
        "track_id": snapshot.track.track_id,
        "title": snapshot.track.title,
        "poll_seconds": settings.SCOREBOARD_POLL_SECONDS,
        "entries": [
            {"rank": e.rank, "display_name": e.display_name, "sub_label": e.sub_label, "score": e.score}
            for e in public_leaderboard(snapshot)
        ],
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tabulator.main:app", host="0.0.0.0", port=8000)
