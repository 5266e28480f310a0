"""
Consolidation: evaluations -> one result per (contestant, category) -> ranking.

The aggregate score of a result is the SUM of its evaluations' total scores,
while each total score is itself a MEAN of criteria. Contestants with more
evaluations therefore rank higher; always show average_score next to the
aggregate.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from event_scoring.categories import category_label
from event_scoring.models import Evaluation, round_score

LEADERBOARD_COLUMNS = ["Rank", "Contestant", "Category", "AggregateScore", "AverageScore", "Evaluations", "Judges"]


@dataclass(frozen=True)
class ConsolidatedResult:
    contestant_id: str
    contestant: str
    category: str
    aggregate_score: float
    evaluation_count: int
    judges: Tuple[str, ...]
    last_evaluated_at: datetime

    @property
    def average_score(self) -> float:
        return self.aggregate_score / self.evaluation_count


def evaluations_frame(evaluations: Sequence[Evaluation]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "contestant_id": e.contestant_id,
                "contestant": e.contestant_name,
                "category": e.category,
                "judge_name": e.judge_name,
                "total_score": e.total_score,
                "timestamp": e.timestamp,
            }
            for e in evaluations
        ],
        columns=["contestant_id", "contestant", "category", "judge_name", "total_score", "timestamp"],
    )


def consolidate(evaluations: Sequence[Evaluation], category: Optional[str] = None) -> List[ConsolidatedResult]:
    """
    Group evaluations by (contestant_id, category) and rank the groups.

    Sort: higher aggregate_score wins; tie-breaker: contestant name (case-insensitive),
    then category. Anything still tied keeps first-seen grouping order (stable sort).
    """
    if category:
        evaluations = [e for e in evaluations if e.category == category]
    if not evaluations:
        return []

    frame = evaluations_frame(evaluations)
    grouped = frame.groupby(["contestant_id", "category"], sort=False).agg(
        contestant=("contestant", "first"),
        aggregate_score=("total_score", "sum"),
        evaluation_count=("total_score", "size"),
        last_evaluated_at=("timestamp", "max"),
    ).reset_index()

    judges: dict = {}
    for e in evaluations:
        # dedupe preserve order
        judges.setdefault((e.contestant_id, e.category), {})[e.judge_name] = None

    # sums of 2-decimal totals, so rounding only removes float drift
    grouped["aggregate_score"] = grouped["aggregate_score"].map(round_score)

    grouped["contestant_key"] = grouped["contestant"].str.casefold()
    grouped = grouped.sort_values(
        by=["aggregate_score", "contestant_key", "category"],
        ascending=[False, True, True],
        kind="mergesort",
    )

    return [
        ConsolidatedResult(
            contestant_id=row.contestant_id,
            contestant=row.contestant,
            category=row.category,
            aggregate_score=float(row.aggregate_score),
            evaluation_count=int(row.evaluation_count),
            judges=tuple(judges[(row.contestant_id, row.category)]),
            last_evaluated_at=pd.Timestamp(row.last_evaluated_at).to_pydatetime(),
        )
        for row in grouped.itertuples(index=False)
    ]


def alphabetical(results: Sequence[ConsolidatedResult]) -> List[ConsolidatedResult]:
    """Detail view order: by contestant name, no ranking implied."""
    return sorted(results, key=lambda r: (r.contestant.casefold(), r.category))


def leaderboard_frame(results: Sequence[ConsolidatedResult]) -> pd.DataFrame:
    """
    Tabular leaderboard in the given (ranked) order:
      Rank, Contestant, Category, AggregateScore, AverageScore, Evaluations, Judges
    """
    rows = [
        {
            "Rank": rank,
            "Contestant": r.contestant,
            "Category": category_label(r.category),
            "AggregateScore": round_score(r.aggregate_score),
            "AverageScore": round_score(r.average_score),
            "Evaluations": r.evaluation_count,
            "Judges": ", ".join(r.judges),
        }
        for rank, r in enumerate(results, start=1)
    ]
    return pd.DataFrame(rows, columns=LEADERBOARD_COLUMNS)
