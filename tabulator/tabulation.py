"""
Recompute entry points.

`recompute(snapshot)` is the single pure pass every consumer calls, on
whatever cadence it likes (refresh button, change notification, polling).
It reads nothing but the snapshot and never mutates it, so organizer and
public views may share one snapshot.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from tabulator import roster, store
from tabulator.aggregation import Aggregates, aggregate, judge_subtotal, round_score
from tabulator.ballot import BallotProgress, BallotState, ballot_progress, ballot_state, has_pending_request
from tabulator.db import session
from tabulator.exceptions import NotFoundError, ValidationError
from tabulator.models import Judge, Participant, ScoreCell, Snapshot
from tabulator.ranking import LeaderboardEntry, RankedEntry, project, rank

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatrixRow:
    participant: Participant
    position: int
    final: float
    judge_scores: Dict[int, float]  # only judges who rated
    judge_requests: Dict[int, bool]
    judge_states: Dict[int, BallotState]


@dataclass(frozen=True)
class Tabulation:
    track_id: int
    judges: Tuple[Judge, ...]
    aggregates: Aggregates
    ranked: Tuple[RankedEntry, ...]
    rows: Tuple[MatrixRow, ...]
    weight_warning: Optional[str]


@dataclass(frozen=True)
class CellBreakdown:
    judge: Judge
    participant: Participant
    values: Tuple[Tuple[str, int], ...]  # (criterion name, raw value; 0 when unrated)
    subtotal: float
    has_request: bool
    is_locked: bool


@dataclass(frozen=True)
class DashboardEntry:
    participant: Participant
    progress: BallotProgress
    subtotal: float
    unlock_requested: bool


# -----------------------
# Snapshot loading
# -----------------------
def _read(db_path: str, reader, track_id: int):
    with session(db_path) as conn:
        return tuple(reader(conn, track_id))


def read_snapshot(conn, track_id: int) -> Snapshot:
    """Sequential snapshot read on an open connection."""
    track = roster.get_track(conn, track_id)
    return Snapshot(
        track=track,
        participants=tuple(roster.list_participants(conn, track_id)),
        judges=tuple(roster.list_judges(conn, track_id)),
        criteria=tuple(roster.list_criteria(conn, track_id)),
        cells=store.get_by_track(conn, track_id),
    )


async def load_snapshot(db_path: str, track_id: int) -> Snapshot:
    """Issue the roster, criteria and score reads concurrently and join them."""
    with session(db_path) as conn:
        track = roster.get_track(conn, track_id)

    participants, judges, criteria, cells = await asyncio.gather(
        asyncio.to_thread(_read, db_path, roster.list_participants, track_id),
        asyncio.to_thread(_read, db_path, roster.list_judges, track_id),
        asyncio.to_thread(_read, db_path, roster.list_criteria, track_id),
        asyncio.to_thread(_read, db_path, store.get_by_track, track_id),
    )
    return Snapshot(track=track, participants=participants, judges=judges, criteria=criteria, cells=cells)


# -----------------------
# Recompute
# -----------------------
def _pairs(cells: Tuple[ScoreCell, ...]) -> Dict[Tuple[int, int], List[ScoreCell]]:
    pairs: Dict[Tuple[int, int], List[ScoreCell]] = {}
    for c in cells:
        pairs.setdefault((c.participant_id, c.judge_id), []).append(c)
    return pairs


def recompute(snapshot: Snapshot) -> Tabulation:
    started = time.perf_counter()
    participant_ids = [p.participant_id for p in snapshot.participants]
    aggregates = aggregate(snapshot.cells, snapshot.criteria, participant_ids)
    ranked = tuple(rank(aggregates.finals))

    pairs = _pairs(snapshot.cells)
    by_id = {p.participant_id: p for p in snapshot.participants}
    rows = []
    for entry in ranked:
        pid = entry.participant_id
        requests, states = {}, {}
        for judge in snapshot.judges:
            cells = pairs.get((pid, judge.judge_id))
            if cells:
                requests[judge.judge_id] = has_pending_request(cells)
                states[judge.judge_id] = ballot_state(cells)
        rows.append(
            MatrixRow(
                participant=by_id[pid],
                position=entry.position,
                final=entry.final,
                judge_scores=dict(aggregates.subtotals.get(pid, {})),
                judge_requests=requests,
                judge_states=states,
            )
        )

    warning = roster.weight_warning(snapshot.criteria)
    logger.debug(
        "Recomputed track %s: %d participants, %d cells in %.1f ms",
        snapshot.track.track_id,
        len(participant_ids),
        len(snapshot.cells),
        (time.perf_counter() - started) * 1000,
    )
    return Tabulation(
        track_id=snapshot.track.track_id,
        judges=snapshot.judges,
        aggregates=aggregates,
        ranked=ranked,
        rows=tuple(rows),
        weight_warning=warning,
    )


def public_leaderboard(snapshot: Snapshot) -> List[LeaderboardEntry]:
    participant_ids = [p.participant_id for p in snapshot.participants]
    finals = aggregate(snapshot.cells, snapshot.criteria, participant_ids).finals
    return project(rank(finals), snapshot.participants, snapshot.track.names_revealed)


# -----------------------
# Organizer / judge drill-downs
# -----------------------
def _find(items, attr: str, value, label: str):
    for item in items:
        if getattr(item, attr) == value:
            return item
    raise NotFoundError(label, value)


def cell_breakdown(snapshot: Snapshot, judge_id: int, participant_id: int) -> CellBreakdown:
    judge = _find(snapshot.judges, "judge_id", judge_id, "Judge")
    participant = _find(snapshot.participants, "participant_id", participant_id, "Participant")
    cells = [c for c in snapshot.cells if c.judge_id == judge_id and c.participant_id == participant_id]
    by_criterion = {c.criterion_id: c.value for c in cells}
    return CellBreakdown(
        judge=judge,
        participant=participant,
        values=tuple((c.name, by_criterion.get(c.criterion_id, 0)) for c in snapshot.criteria),
        subtotal=round_score(judge_subtotal(cells, snapshot.criteria)),
        has_request=has_pending_request(cells),
        is_locked=ballot_state(cells) == BallotState.COMPLETED,
    )


def judge_dashboard(snapshot: Snapshot, judge_id: int) -> List[DashboardEntry]:
    _find(snapshot.judges, "judge_id", judge_id, "Judge")
    mine = [c for c in snapshot.cells if c.judge_id == judge_id]
    entries = []
    for participant in sorted(snapshot.participants, key=lambda p: p.booth_code):
        cells = [c for c in mine if c.participant_id == participant.participant_id]
        entries.append(
            DashboardEntry(
                participant=participant,
                progress=ballot_progress(cells),
                subtotal=round_score(judge_subtotal(cells, snapshot.criteria)),
                unlock_requested=has_pending_request(cells),
            )
        )
    return entries


def find_by_booth_code(snapshot: Snapshot, booth_code: str) -> Participant:
    code = booth_code.strip().upper()
    if not code:
        raise ValidationError("Booth code is required.")
    return _find(snapshot.participants, "booth_code", code, "Booth code")
