"""
Ranking and the public visibility projection.

`project` is the only path from private results to anything public. When a
track's names are hidden, the real identity is never read into the output
records, not even temporarily.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence

from tabulator.aggregation import round_score
from tabulator.models import Participant


@dataclass(frozen=True)
class RankedEntry:
    participant_id: int
    final: float
    position: int


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    display_name: str
    sub_label: str
    score: float


def rank(finals: Mapping[int, float]) -> List[RankedEntry]:
    """
    Highest final first, compared at full precision. Exact ties go to the
    lower participant id.
    """
    ordered = sorted(finals.items(), key=lambda kv: (-kv[1], kv[0]))
    return [
        RankedEntry(participant_id=pid, final=final, position=idx)
        for idx, (pid, final) in enumerate(ordered, start=1)
    ]


def anonymous_label(participant: Participant) -> str:
    return participant.alias or f"Entry #{participant.participant_id}"


def project(
    ranked: Sequence[RankedEntry],
    participants: Sequence[Participant],
    names_revealed: bool,
) -> List[LeaderboardEntry]:
    by_id: Dict[int, Participant] = {p.participant_id: p for p in participants}
    board: List[LeaderboardEntry] = []
    for entry in ranked:
        participant = by_id[entry.participant_id]
        if names_revealed:
            display_name, sub_label = participant.real_name, participant.alias or ""
        else:
            display_name, sub_label = anonymous_label(participant), ""
        board.append(
            LeaderboardEntry(
                rank=entry.position,
                display_name=display_name,
                sub_label=sub_label,
                score=round_score(entry.final),
            )
        )
    return board
