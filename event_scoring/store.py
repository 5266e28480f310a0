"""Entity store: contestants, judges and evaluations.

Every mutation is followed by persist(snapshot). A failed persist is a soft
warning; the in-memory collections stay authoritative. Mutations hold
`lock`, and callers that check then write hold it across both steps.
"""
from __future__ import annotations

import logging
import threading
from typing import List, Optional

from event_scoring.categories import category_label
from event_scoring.errors import DuplicateEntity, PersistenceFailure, ScoringError, UnknownReference
from event_scoring.models import Contestant, Evaluation, Judge, State
from event_scoring.notifications import Severity
from event_scoring.validators import check_contestant_fields, check_judge_fields

logger = logging.getLogger(__name__)


class EntityStore:
    def __init__(self, persistence, notifier):
        self.persistence = persistence
        self.notifier = notifier
        self.contestants: List[Contestant] = []
        self.judges: List[Judge] = []
        self.evaluations: List[Evaluation] = []
        self.lock = threading.RLock()

    # -----------------------
    # State
    # -----------------------
    def snapshot(self) -> State:
        with self.lock:
            return State(
                contestants=list(self.contestants),
                judges=list(self.judges),
                evaluations=list(self.evaluations),
            )

    def restore(self, state: State) -> None:
        with self.lock:
            self.contestants = list(state.contestants)
            self.judges = list(state.judges)
            self.evaluations = list(state.evaluations)

    def load(self) -> None:
        try:
            state = self.persistence.load()
        except PersistenceFailure as e:
            logger.warning(f"Starting with empty data: {e}")
            self.notifier.notify("Error loading data", Severity.WARNING)
            return
        self.restore(state)
        logger.info(
            f"Loaded {len(self.contestants)} contestants, {len(self.judges)} judges, "
            f"{len(self.evaluations)} evaluations"
        )

    def _persist(self) -> None:
        try:
            self.persistence.persist(self.snapshot())
        except PersistenceFailure as e:
            logger.warning(f"Persist failed, keeping in-memory state: {e}")
            self.notifier.notify("Changes kept in memory but could not be saved", Severity.WARNING)

    # -----------------------
    # Lookups
    # -----------------------
    def find_contestant(self, contestant_id: str) -> Optional[Contestant]:
        return next((c for c in self.contestants if c.id == contestant_id), None)

    def find_judge(self, judge_id: str) -> Optional[Judge]:
        return next((j for j in self.judges if j.id == judge_id), None)

    def find_evaluation(self, evaluation_id: str) -> Optional[Evaluation]:
        return next((e for e in self.evaluations if e.id == evaluation_id), None)

    def find_evaluation_for(self, judge_id: str, contestant_id: str, category: str) -> Optional[Evaluation]:
        return next(
            (
                e for e in self.evaluations
                if e.judge_id == judge_id and e.contestant_id == contestant_id and e.category == category
            ),
            None,
        )

    # -----------------------
    # Mutations
    # -----------------------
    def add_contestant(self, contestant: Contestant) -> Contestant:
        with self.lock:
            if any(c.email == contestant.email for c in self.contestants):
                raise DuplicateEntity("A contestant with this email is already registered")
            self.contestants.append(contestant)
            self._persist()
        return contestant

    def add_judge(self, judge: Judge) -> Judge:
        with self.lock:
            if any(j.email == judge.email for j in self.judges):
                raise DuplicateEntity("A judge with this email is already registered")
            self.judges.append(judge)
            self._persist()
        return judge

    def append_evaluation(self, evaluation: Evaluation) -> Evaluation:
        with self.lock:
            self.evaluations.append(evaluation)
            self._persist()
        return evaluation

    def register_contestant(self, name: str, category: str, email: str, phone: str) -> Optional[Contestant]:
        try:
            check_contestant_fields(name, category, email, phone)
            contestant = self.add_contestant(
                Contestant(name=name.strip(), category=category, email=email.strip(), phone=phone.strip())
            )
        except ScoringError as e:
            self.notifier.notify(e.message, Severity.ERROR)
            return None
        logger.info(f"Registered contestant {contestant.id} in {contestant.category}")
        self.notifier.notify(
            f"Contestant {contestant.name} registered in {category_label(contestant.category)}",
            Severity.SUCCESS,
        )
        return contestant

    def register_judge(self, name: str, email: str, years_experience, specialty: str = "") -> Optional[Judge]:
        try:
            years = check_judge_fields(name, email, years_experience)
            judge = self.add_judge(
                Judge(name=name.strip(), email=email.strip(), years_experience=years, specialty=(specialty or "").strip())
            )
        except ScoringError as e:
            self.notifier.notify(e.message, Severity.ERROR)
            return None
        logger.info(f"Registered judge {judge.id}")
        self.notifier.notify(f"Judge {judge.name} registered", Severity.SUCCESS)
        return judge

    def delete_contestant(self, contestant_id: str) -> int:
        """Remove a contestant and every evaluation of them; returns evaluations removed."""
        with self.lock:
            contestant = self.find_contestant(contestant_id)
            if contestant is None:
                self.notifier.notify("Contestant not found", Severity.ERROR)
                return 0
            before = len(self.evaluations)
            self.contestants = [c for c in self.contestants if c.id != contestant_id]
            self.evaluations = [e for e in self.evaluations if e.contestant_id != contestant_id]
            removed = before - len(self.evaluations)
            self._persist()
        self.notifier.notify(f"Contestant {contestant.name} deleted", Severity.SUCCESS)
        return removed

    def delete_judge(self, judge_id: str) -> int:
        with self.lock:
            judge = self.find_judge(judge_id)
            if judge is None:
                self.notifier.notify("Judge not found", Severity.ERROR)
                return 0
            before = len(self.evaluations)
            self.judges = [j for j in self.judges if j.id != judge_id]
            self.evaluations = [e for e in self.evaluations if e.judge_id != judge_id]
            removed = before - len(self.evaluations)
            self._persist()
        self.notifier.notify(f"Judge {judge.name} deleted", Severity.SUCCESS)
        return removed

    def delete_evaluation(self, evaluation_id: str) -> bool:
        with self.lock:
            if self.find_evaluation(evaluation_id) is None:
                self.notifier.notify("Evaluation not found", Severity.ERROR)
                return False
            self.evaluations = [e for e in self.evaluations if e.id != evaluation_id]
            self._persist()
        self.notifier.notify("Evaluation deleted", Severity.SUCCESS)
        return True

    def reset(self) -> None:
        with self.lock:
            self.restore(State())
            self._persist()
        self.notifier.notify("All data has been reset", Severity.WARNING)

    def require_contestant(self, contestant_id: str) -> Contestant:
        contestant = self.find_contestant(contestant_id)
        if contestant is None:
            raise UnknownReference("Select an existing contestant")
        return contestant

    def require_judge(self, judge_id: str) -> Judge:
        judge = self.find_judge(judge_id)
        if judge is None:
            raise UnknownReference("Select an existing judge")
        return judge
