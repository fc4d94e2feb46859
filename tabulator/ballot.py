"""
Ballot lifecycle for one (judge, participant) pair.

State is derived from the pair's criterion cells, never stored separately:

    open       no cells, or cells and none locked
    completed  at least one cell locked (a final submission locks them all)

A judge may flag a completed ballot with an unlock request; only an
organizer returns it to open. Track status gates score writes in the
store and leaves these flags untouched.
"""
from __future__ import annotations

import logging
import sqlite3
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple

from tabulator import roster, store
from tabulator.exceptions import LockedError, NotFoundError, NotLiveError, ValidationError
from tabulator.models import Criterion, InputMode, ScoreCell

logger = logging.getLogger(__name__)

LIKERT_LEVELS = 5
LIKERT_STEP = 20


class BallotState(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"


class BallotProgress(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# -----------------------
# Rating input modes
# -----------------------
def likert_to_value(level: int) -> int:
    if isinstance(level, bool) or not isinstance(level, int) or not 1 <= level <= LIKERT_LEVELS:
        raise ValidationError(f"Likert level must be 1-{LIKERT_LEVELS}, got {level!r}.")
    return level * LIKERT_STEP


def clamp_slider(value: int) -> int:
    """Input-collection clamp for slider entry; the store still rejects out-of-range values."""
    return min(store.MAX_VALUE, max(store.MIN_VALUE, int(value)))


def resolve_rating(criterion: Criterion, value: Optional[int] = None, level: Optional[int] = None) -> int:
    """Likert criteria take only a level, slider criteria only a value."""
    if value is not None and level is not None:
        raise ValidationError(f"Send either a value or a level for criterion '{criterion.name}', not both.")
    if criterion.input_mode == InputMode.LIKERT:
        if level is None:
            raise ValidationError(f"Criterion '{criterion.name}' takes a level 1-{LIKERT_LEVELS}.")
        return likert_to_value(level)
    if level is not None:
        raise ValidationError(f"Criterion '{criterion.name}' takes a 0-100 value, not a level.")
    if value is None:
        raise ValidationError(f"Missing score for criterion '{criterion.name}'.")
    return value


def ratings_from_inputs(
    criteria: Iterable[Criterion], inputs: Iterable[Tuple[int, Optional[int], Optional[int]]]
) -> Dict[int, int]:
    """(criterion_id, value, level) triples -> criterion_id -> stored value."""
    by_id = {c.criterion_id: c for c in criteria}
    ratings: Dict[int, int] = {}
    for criterion_id, value, level in inputs:
        criterion = by_id.get(criterion_id)
        if criterion is None:
            raise NotFoundError("Criterion", criterion_id)
        if criterion_id in ratings:
            raise ValidationError(f"Criterion '{criterion.name}' is scored more than once.")
        ratings[criterion_id] = resolve_rating(criterion, value, level)
    return ratings


# -----------------------
# Derived state
# -----------------------
def ballot_state(cells: Iterable[ScoreCell]) -> BallotState:
    return BallotState.COMPLETED if any(c.locked for c in cells) else BallotState.OPEN


def ballot_progress(cells: Iterable[ScoreCell]) -> BallotProgress:
    cells = tuple(cells)
    if not cells:
        return BallotProgress.PENDING
    if ballot_state(cells) == BallotState.COMPLETED:
        return BallotProgress.COMPLETED
    return BallotProgress.IN_PROGRESS


def has_pending_request(cells: Iterable[ScoreCell]) -> bool:
    return any(c.unlock_requested for c in cells)


# -----------------------
# Transitions
# -----------------------
def submit_ballot(
    conn: sqlite3.Connection,
    judge_id: int,
    participant_id: int,
    values: Mapping[int, int],
    *,
    final: bool = True,
) -> Tuple[ScoreCell, ...]:
    """
    Save a judge's ratings for one participant.

    Every value is checked before anything is written. final=True locks the
    whole ballot (open -> completed); final=False keeps it open as a draft.
    """
    judge = roster.get_judge(conn, judge_id)
    participant = roster.get_participant(conn, participant_id)
    if judge.track_id != participant.track_id:
        raise ValidationError(f"Participant {participant_id} is not in judge {judge_id}'s track.")

    track = roster.get_track(conn, judge.track_id)
    if not track.is_live:
        raise NotLiveError(track.track_id, track.status.value)

    if ballot_state(store.get_pair(conn, judge_id, participant_id)) == BallotState.COMPLETED:
        raise LockedError(judge_id, participant_id)

    if not values:
        raise ValidationError("Ballot has no scores.")

    known = {c.criterion_id for c in roster.list_criteria(conn, track.track_id)}
    checked: Dict[int, int] = {}
    for criterion_id, value in values.items():
        if criterion_id not in known:
            raise NotFoundError("Criterion", criterion_id)
        checked[criterion_id] = store.check_value(value)

    for criterion_id, value in checked.items():
        store.upsert(conn, judge_id, participant_id, criterion_id, value, lock=final)

    if final:
        # earlier draft cells for criteria not on this submission are locked too
        store.set_flags(conn, judge_id, participant_id, locked=True)
        logger.info("Judge %s completed ballot for participant %s", judge_id, participant_id)

    return store.get_pair(conn, judge_id, participant_id)


def request_unlock(conn: sqlite3.Connection, judge_id: int, participant_id: int) -> int:
    """Flag a completed ballot for organizer attention. Returns the number of cells flagged."""
    cells = store.get_pair(conn, judge_id, participant_id)
    if ballot_state(cells) != BallotState.COMPLETED:
        return 0
    count = store.set_flags(conn, judge_id, participant_id, unlock_requested=True)
    logger.info("Judge %s requested unlock for participant %s", judge_id, participant_id)
    return count


def grant_unlock(conn: sqlite3.Connection, judge_id: int, participant_id: int) -> int:
    cells = store.get_pair(conn, judge_id, participant_id)
    if not has_pending_request(cells):
        raise ValidationError(
            f"No pending unlock request from judge {judge_id} for participant {participant_id}."
        )
    count = store.set_flags(conn, judge_id, participant_id, locked=False, unlock_requested=False)
    logger.info("Organizer granted unlock: judge %s, participant %s", judge_id, participant_id)
    return count


def force_unlock(conn: sqlite3.Connection, judge_id: int, participant_id: int) -> int:
    count = store.set_flags(conn, judge_id, participant_id, locked=False, unlock_requested=False)
    logger.info("Organizer force-unlocked judge %s, participant %s (%d cells)", judge_id, participant_id, count)
    return count


def correct_ballot(
    conn: sqlite3.Connection, judge_id: int, participant_id: int, values: Mapping[int, int]
) -> Tuple[ScoreCell, ...]:
    """Organizer edit that writes through a lock. Lock flags are left as they were."""
    checked = {criterion_id: store.check_value(v) for criterion_id, v in values.items()}
    for criterion_id, value in checked.items():
        store.upsert(conn, judge_id, participant_id, criterion_id, value, override=True)
    logger.info(
        "Organizer corrected %d cells: judge %s, participant %s", len(checked), judge_id, participant_id
    )
    return store.get_pair(conn, judge_id, participant_id)


def delete_entry(conn: sqlite3.Connection, judge_id: int, participant_id: int) -> int:
    count = store.delete_by_key(conn, judge_id, participant_id)
    logger.info("Organizer deleted %d cells: judge %s, participant %s", count, judge_id, participant_id)
    return count
