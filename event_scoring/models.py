"""Pydantic models for the three record collections."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List

from pydantic import BaseModel, Field


def generate_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def round_score(value: float) -> float:
    """Round half-up to 2 decimals (7.605 -> 7.61, not banker's rounding)."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def mean_score(values: Iterable[float]) -> float:
    values = list(values)
    if not values:
        return 0.0
    return round_score(sum(values) / len(values))


class Contestant(BaseModel):
    id: str = Field(default_factory=generate_id)
    name: str
    category: str
    email: str
    phone: str
    registered_at: datetime = Field(default_factory=utcnow)


class Judge(BaseModel):
    id: str = Field(default_factory=generate_id)
    name: str
    email: str
    years_experience: int = Field(..., ge=1)
    specialty: str = ""
    registered_at: datetime = Field(default_factory=utcnow)


class Evaluation(BaseModel):
    id: str = Field(default_factory=generate_id)
    judge_id: str
    judge_name: str
    contestant_id: str
    contestant_name: str
    # snapshot of the contestant's category when the evaluation was admitted
    category: str
    criteria_scores: Dict[str, float]
    total_score: float
    timestamp: datetime = Field(default_factory=utcnow)


class State(BaseModel):
    """Everything the persistence collaborator stores and loads."""

    contestants: List[Contestant] = Field(default_factory=list)
    judges: List[Judge] = Field(default_factory=list)
    evaluations: List[Evaluation] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.contestants or self.judges or self.evaluations)
