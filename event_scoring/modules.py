"""The application's sections, as a closed set."""
from __future__ import annotations

from enum import Enum


class Module(Enum):
    REGISTRATION = "registration"
    EVALUATION = "evaluation"
    RESULTS = "results"
    ADMINISTRATION = "admin"

    @property
    def path(self) -> str:
        return f"/{self.value}"

    @property
    def title(self) -> str:
        return MODULE_TITLES[self]


MODULE_TITLES = {
    Module.REGISTRATION: "Registration",
    Module.EVALUATION: "Evaluation",
    Module.RESULTS: "Results",
    Module.ADMINISTRATION: "Administration",
}
