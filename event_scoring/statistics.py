"""Dashboard statistics derived from consolidated results."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from event_scoring.categories import criteria_for
from event_scoring.consolidation import ConsolidatedResult
from event_scoring.models import Evaluation


@dataclass(frozen=True)
class ScoreSummary:
    overall_average: float
    top_score: float
    total_consolidated_entries: int
    distinct_category_count: int

    def display(self) -> Dict[str, str]:
        if not self.total_consolidated_entries:
            return {"overall_average": "0.0", "top_score": "0.0", "total_consolidated_entries": "0",
                    "distinct_category_count": "0"}
        return {
            "overall_average": f"{self.overall_average:.2f}",
            "top_score": f"{self.top_score:.2f}",
            "total_consolidated_entries": str(self.total_consolidated_entries),
            "distinct_category_count": str(self.distinct_category_count),
        }


@dataclass(frozen=True)
class StoreSummary:
    contestants: int
    judges: int
    evaluations: int
    average_total: float


def project(results: Sequence[ConsolidatedResult]) -> ScoreSummary:
    """
    overall_average is the mean of per-entry averages (aggregate / count),
    not the mean of every raw evaluation.
    """
    if not results:
        return ScoreSummary(0.0, 0.0, 0, 0)
    averages = np.array([r.average_score for r in results], dtype=float)
    return ScoreSummary(
        overall_average=float(averages.mean()),
        top_score=float(averages.max()),
        total_consolidated_entries=len(results),
        distinct_category_count=len({r.category for r in results}),
    )


def matching_evaluations(evaluations: Sequence[Evaluation], contestant_name: str, category: str) -> List[Evaluation]:
    # Matched by name: two same-named contestants in one category are merged.
    return [e for e in evaluations if e.contestant_name == contestant_name and e.category == category]


def criteria_averages(
    evaluations: Sequence[Evaluation],
    contestant_name: str,
    category: str,
    criteria: Optional[Sequence[str]] = None,
) -> Dict[str, float]:
    """Mean score per criterion; a criterion missing from an evaluation counts as 0."""
    matching = matching_evaluations(evaluations, contestant_name, category)
    if not matching:
        return {}
    criteria = list(criteria or criteria_for(category))
    frame = pd.DataFrame(
        [{c: e.criteria_scores.get(c, 0.0) for c in criteria} for e in matching],
        columns=criteria,
    )
    return {c: float(frame[c].mean()) for c in criteria}


def evaluation_history(evaluations: Sequence[Evaluation], contestant_name: str, category: str) -> List[Evaluation]:
    return sorted(matching_evaluations(evaluations, contestant_name, category), key=lambda e: e.timestamp)


def store_summary(store) -> StoreSummary:
    totals = [e.total_score for e in store.evaluations]
    return StoreSummary(
        contestants=len(store.contestants),
        judges=len(store.judges),
        evaluations=len(store.evaluations),
        average_total=float(np.mean(totals)) if totals else 0.0,
    )
