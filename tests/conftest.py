from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict

import pytest

from event_scoring.notifications import MessageBoard
from event_scoring.persistence import MemoryPersistence
from event_scoring.recorder import EvaluationRecorder
from event_scoring.store import EntityStore

SCORES_760 = {"technique": 8, "creativity": 7, "composition": 9, "color": 6, "difficulty": 8}
SCORES_820 = {"technique": 9, "creativity": 8, "composition": 8, "color": 8, "difficulty": 8}


class StepClock:
    """Returns a later timestamp on every call."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(minutes=1)
        return self.current


def scores(value: float) -> Dict[str, float]:
    return {c: value for c in SCORES_760}


@pytest.fixture
def notifier() -> MessageBoard:
    return MessageBoard()


@pytest.fixture
def persistence() -> MemoryPersistence:
    return MemoryPersistence()


@pytest.fixture
def store(persistence, notifier) -> EntityStore:
    return EntityStore(persistence, notifier)


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def recorder(store, notifier, clock) -> EvaluationRecorder:
    return EvaluationRecorder(store, notifier, clock=clock)


@pytest.fixture
def contestant(store):
    return store.register_contestant("Ana Ruiz", "color", "ana@example.com", "+34 600 111 222")


@pytest.fixture
def other_contestant(store):
    return store.register_contestant("Bruno Diaz", "blackwork", "bruno@example.com", "600333444")


@pytest.fixture
def judge(store):
    return store.register_judge("Judge One", "one@example.com", 5, "Realism")


@pytest.fixture
def second_judge(store):
    return store.register_judge("Judge Two", "two@example.com", "3", "Color")
