"""Rejection reasons raised by the scoring core.

Every error carries a message meant for the person using the app; the
operation that raised it turns it into a notification.
"""
from __future__ import annotations


class ScoringError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnknownReference(ScoringError):
    pass


class DuplicateEvaluation(ScoringError):
    def __init__(self, judge_name: str, contestant_name: str, category: str):
        super().__init__(
            f"Judge {judge_name} already evaluated {contestant_name} in the "
            f"{category} category. A judge may evaluate a contestant only once per category."
        )
        self.judge_name = judge_name
        self.contestant_name = contestant_name
        self.category = category


class IncompleteCriteria(ScoringError):
    pass


class InvalidScore(ScoringError):
    pass


class ValidationError(ScoringError):
    pass


class DuplicateEntity(ScoringError):
    pass


class PersistenceFailure(ScoringError):
    pass
