"""
Request bodies for the HTTP surface.

Range checks on score values are left to the store so that the API and
direct callers are rejected by the same rule.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from tabulator.models import InputMode, TrackStatus


class LoginRequest(BaseModel):
    pin: str = Field(..., min_length=1)


class JudgeRequest(BaseModel):
    pin: str = Field(..., min_length=1)


class ScoreInput(BaseModel):
    criterion_id: int
    value: Optional[int] = Field(None, description="0-100 for slider criteria")
    level: Optional[int] = Field(None, description="1-5 for likert criteria, stored as level x 20")


class BallotRequest(BaseModel):
    pin: str = Field(..., min_length=1)
    scores: List[ScoreInput]
    final: bool = True


class CorrectionRequest(BaseModel):
    scores: List[ScoreInput]


class TrackCreate(BaseModel):
    title: str = Field(..., min_length=1)


class StatusUpdate(BaseModel):
    status: TrackStatus


class RevealUpdate(BaseModel):
    names_revealed: bool


class ParticipantCreate(BaseModel):
    real_name: str = Field(..., min_length=1)
    booth_code: str = Field(..., min_length=1)
    alias: Optional[str] = None


class JudgeCreate(BaseModel):
    name: str = Field(..., min_length=1)
    pin: Optional[str] = None


class CriterionCreate(BaseModel):
    name: str = Field(..., min_length=1)
    weight: float = Field(..., ge=0, description="Percentage; a track's weights should total 100")
    description: str = ""
    input_mode: InputMode = InputMode.SLIDER
