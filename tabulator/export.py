"""
Flat export views for the report generator.

summary  rank-only table
matrix   participant x judge subtotals
audit    one row per stored cell with its weighted contribution

These carry real names and are for organizers only.
"""
from __future__ import annotations

from io import StringIO
from typing import Dict

import pandas as pd

from tabulator.aggregation import round_score
from tabulator.models import Snapshot
from tabulator.tabulation import Tabulation, recompute

MISSING = "-"


def summary_frame(tab: Tabulation, podium_size: int = 3) -> pd.DataFrame:
    rows = [
        {
            "Rank": row.position,
            "Team Name": row.participant.real_name,
            "Booth Code": row.participant.booth_code,
            "Final Score": round_score(row.final),
            "Status": "WINNER" if row.position <= podium_size else "Finalist",
        }
        for row in tab.rows
    ]
    return pd.DataFrame(rows, columns=["Rank", "Team Name", "Booth Code", "Final Score", "Status"])


def matrix_frame(tab: Tabulation) -> pd.DataFrame:
    judge_columns = {j.judge_id: f"Judge: {j.name}" for j in tab.judges}
    columns = ["Team Name", *judge_columns.values(), "Average"]
    rows = []
    for row in tab.rows:
        record = {"Team Name": row.participant.real_name}
        for judge_id, column in judge_columns.items():
            score = row.judge_scores.get(judge_id)
            record[column] = MISSING if score is None else round_score(score)
        record["Average"] = round_score(row.final)
        rows.append(record)
    return pd.DataFrame(rows, columns=columns)


def audit_frame(snapshot: Snapshot) -> pd.DataFrame:
    judges = {j.judge_id: j for j in snapshot.judges}
    participants = {p.participant_id: p for p in snapshot.participants}
    criteria = {c.criterion_id: c for c in snapshot.criteria}

    rows = []
    for cell in snapshot.cells:
        judge = judges.get(cell.judge_id)
        participant = participants.get(cell.participant_id)
        criterion = criteria.get(cell.criterion_id)
        if not (judge and participant and criterion):
            continue
        rows.append(
            {
                "Timestamp": cell.updated_at or "",
                "Judge Name": judge.name,
                "Team Name": participant.real_name,
                "Criteria": criterion.name,
                "Weight %": criterion.weight,
                "Score Given": cell.value,
                "Weighted Calc": round_score(cell.value * criterion.weight / 100),
                "Locked": cell.locked,
                "Unlock Requested": cell.unlock_requested,
            }
        )
    columns = [
        "Timestamp", "Judge Name", "Team Name", "Criteria", "Weight %",
        "Score Given", "Weighted Calc", "Locked", "Unlock Requested",
    ]
    return pd.DataFrame(rows, columns=columns)


def to_csv(frame: pd.DataFrame) -> str:
    buf = StringIO()
    frame.to_csv(buf, index=False)
    return buf.getvalue()


def export_views(snapshot: Snapshot, podium_size: int = 3) -> Dict[str, pd.DataFrame]:
    """All three views computed from one recompute pass."""
    tab = recompute(snapshot)
    return {
        "summary": summary_frame(tab, podium_size),
        "matrix": matrix_frame(tab),
        "audit": audit_frame(snapshot),
    }
