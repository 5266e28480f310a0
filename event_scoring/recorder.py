"""Evaluation recorder: admits one judge's scores for one contestant."""
from __future__ import annotations

import logging
import numbers
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from event_scoring.categories import MAX_SCORE, MIN_SCORE, category_label, criteria_for
from event_scoring.errors import DuplicateEvaluation, IncompleteCriteria, InvalidScore, ScoringError
from event_scoring.models import Evaluation, mean_score, utcnow
from event_scoring.notifications import Severity
from event_scoring.store import EntityStore

logger = logging.getLogger(__name__)


def _is_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and value == value


class EvaluationRecorder:
    def __init__(self, store: EntityStore, notifier, clock: Callable = utcnow):
        self.store = store
        self.notifier = notifier
        self.clock = clock

    def admit(self, judge_id: str, contestant_id: str, criteria_scores: Mapping[str, float]) -> Evaluation:
        """
        Validate and append an evaluation. Checks run in order and the first
        failure is raised: unknown judge/contestant, duplicate
        (judge, contestant, category), missing criterion, score out of range.
        The checks and the append run under the store lock.
        """
        with self.store.lock:
            return self._admit(judge_id, contestant_id, criteria_scores)

    def _admit(self, judge_id: str, contestant_id: str, criteria_scores: Mapping[str, float]) -> Evaluation:
        judge = self.store.require_judge(judge_id)
        contestant = self.store.require_contestant(contestant_id)

        if self.store.find_evaluation_for(judge.id, contestant.id, contestant.category) is not None:
            raise DuplicateEvaluation(judge.name, contestant.name, category_label(contestant.category))

        criteria = criteria_for(contestant.category)
        missing = [c for c in criteria if not _is_number(criteria_scores.get(c))]
        if missing:
            raise IncompleteCriteria(
                f"Every criterion must be scored before saving (missing: {', '.join(missing)})"
            )

        scores: Dict[str, float] = {c: float(criteria_scores[c]) for c in criteria}
        if any(v <= MIN_SCORE for v in scores.values()):
            raise InvalidScore("Every criterion must have a score greater than 0")
        if any(v > MAX_SCORE for v in scores.values()):
            raise InvalidScore(f"Scores cannot be higher than {MAX_SCORE:g}")

        evaluation = Evaluation(
            judge_id=judge.id,
            judge_name=judge.name,
            contestant_id=contestant.id,
            contestant_name=contestant.name,
            category=contestant.category,
            criteria_scores=scores,
            total_score=mean_score(scores.values()),
            timestamp=self.clock(),
        )
        return self.store.append_evaluation(evaluation)

    def submit(self, judge_id: str, contestant_id: str, criteria_scores: Mapping[str, float]) -> Optional[Evaluation]:
        try:
            evaluation = self.admit(judge_id, contestant_id, criteria_scores)
        except ScoringError as e:
            logger.info(f"Evaluation rejected ({type(e).__name__}): {e.message}")
            self.notifier.notify(e.message, Severity.ERROR)
            return None
        logger.info(
            f"Evaluation {evaluation.id} admitted: judge={evaluation.judge_id} "
            f"contestant={evaluation.contestant_id} total={evaluation.total_score:.2f}"
        )
        self.notifier.notify("Evaluation saved", Severity.SUCCESS)
        return evaluation

    def already_evaluated(self, judge_id: str, contestant_id: str) -> bool:
        contestant = self.store.find_contestant(contestant_id)
        if contestant is None:
            return False
        return self.store.find_evaluation_for(judge_id, contestant_id, contestant.category) is not None


def restrictions_by_judge(evaluations: List[Evaluation]) -> Dict[str, List[Tuple[str, str]]]:
    """Evaluations already made, as {judge name: [(contestant name, category)]}."""
    grouped: Dict[str, List[Tuple[str, str]]] = {}
    for evaluation in evaluations:
        grouped.setdefault(evaluation.judge_name, []).append((evaluation.contestant_name, evaluation.category))
    return grouped
