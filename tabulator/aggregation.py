"""
Weighted-sum aggregation.

For each participant and each judge who rated at least one criterion:

    subtotal = sum(value * weight / 100) over the criteria that judge rated
    final    = mean(subtotal) over those judges, or 0 with no judges

Unrated criteria are absent, not zero, so subtotals of partial ballots are
not comparable to complete ones. There is no normalization. Everything is
recomputed from the cell snapshot on every call; values stay at full
precision until `round_score` at presentation time.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence

import pandas as pd

from tabulator.models import Criterion, ScoreCell

CELL_COLUMNS = ["participant_id", "judge_id", "criterion_id", "value"]


@dataclass(frozen=True)
class Aggregates:
    subtotals: Dict[int, Dict[int, float]]  # participant -> judge -> subtotal
    finals: Dict[int, float]  # participant -> mean subtotal

    def judge_count(self, participant_id: int) -> int:
        return len(self.subtotals.get(participant_id, {}))


def round_score(value: float) -> float:
    return round(float(value), 2)


def cells_frame(cells: Iterable[ScoreCell], criteria: Sequence[Criterion]) -> pd.DataFrame:
    """
    cells as rows=cell, with the criterion weight and weighted contribution
    joined on. Cells for criteria outside `criteria` are dropped.
    """
    weights = {c.criterion_id: float(c.weight) for c in criteria}
    records = [
        (c.participant_id, c.judge_id, c.criterion_id, c.value)
        for c in cells
        if c.criterion_id in weights
    ]
    frame = pd.DataFrame.from_records(records, columns=CELL_COLUMNS)
    frame["value"] = pd.to_numeric(frame["value"]).astype("float64")
    frame["weight"] = frame["criterion_id"].map(weights).astype("float64")
    frame["contribution"] = frame["value"] * frame["weight"] / 100.0
    return frame


def aggregate(
    cells: Iterable[ScoreCell],
    criteria: Sequence[Criterion],
    participant_ids: Optional[Sequence[int]] = None,
) -> Aggregates:
    """
    Pure function of the cell snapshot and the criteria weights.

    participant_ids, when given, fixes the participant set and order:
    unrated participants get final 0 and cells for anyone else are ignored.
    Otherwise the participants are those present in `cells`.
    """
    frame = cells_frame(cells, criteria)

    subtotals: Dict[int, Dict[int, float]] = {}
    if not frame.empty:
        per_judge = frame.groupby(["participant_id", "judge_id"], sort=False)["contribution"].sum()
        for (participant_id, judge_id), subtotal in per_judge.items():
            subtotals.setdefault(int(participant_id), {})[int(judge_id)] = float(subtotal)

    if participant_ids is None:
        order = list(subtotals)
    else:
        order = [int(p) for p in participant_ids]
        subtotals = {p: subtotals[p] for p in order if p in subtotals}

    finals: Dict[int, float] = {}
    for participant_id in order:
        judge_totals = subtotals.get(participant_id)
        if judge_totals:
            finals[participant_id] = float(pd.Series(list(judge_totals.values()), dtype="float64").mean())
        else:
            finals[participant_id] = 0.0

    return Aggregates(subtotals=subtotals, finals=finals)


def judge_subtotal(cells: Iterable[ScoreCell], criteria: Sequence[Criterion]) -> float:
    """Weighted sum of one judge's ballot for one participant (running total while scoring)."""
    frame = cells_frame(cells, criteria)
    return float(frame["contribution"].sum()) if not frame.empty else 0.0
