from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class TrackStatus(str, Enum):
    SETUP = "setup"
    LIVE = "live"
    ENDED = "ended"


class InputMode(str, Enum):
    SLIDER = "slider"  # continuous 0-100
    LIKERT = "likert"  # 5-point scale, stored as level * 20


@dataclass(frozen=True)
class Track:
    track_id: int
    title: str
    status: TrackStatus = TrackStatus.SETUP
    names_revealed: bool = False

    @property
    def is_live(self) -> bool:
        return self.status == TrackStatus.LIVE


@dataclass(frozen=True)
class Participant:
    participant_id: int
    track_id: int
    real_name: str
    booth_code: str
    alias: Optional[str] = None


@dataclass(frozen=True)
class Judge:
    judge_id: int
    track_id: int
    name: str
    pin: str = field(repr=False)


@dataclass(frozen=True)
class Criterion:
    criterion_id: int
    track_id: int
    name: str
    weight: float
    description: str = ""
    input_mode: InputMode = InputMode.SLIDER


@dataclass(frozen=True)
class ScoreCell:
    judge_id: int
    participant_id: int
    criterion_id: int
    track_id: int
    value: int
    locked: bool = False
    unlock_requested: bool = False
    updated_at: Optional[str] = None

    @property
    def key(self) -> Tuple[int, int, int]:
        return (self.judge_id, self.participant_id, self.criterion_id)


@dataclass(frozen=True)
class Snapshot:
    """Everything one recompute pass reads for a track. Never mutated."""

    track: Track
    participants: Tuple[Participant, ...]
    judges: Tuple[Judge, ...]
    criteria: Tuple[Criterion, ...]
    cells: Tuple[ScoreCell, ...]
