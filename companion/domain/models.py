from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Literal

RiskLevel = Literal["variable", "increased", "severe", "extreme"]

# Lowest to highest
RISK_LEVELS: tuple[RiskLevel, ...] = ("variable", "increased", "severe", "extreme")


@dataclass(slots=True)
class IncidentRecord:
    id: str
    date: date | datetime
    severity: int  # 1..5, not enforced
    description: str

    def copy(self) -> IncidentRecord:
        return replace(self)


@dataclass(slots=True, frozen=True)
class AssessmentQuestion:
    id: str
    text: str
    weight: int
    help_text: str | None = None


@dataclass(slots=True, frozen=True)
class RiskTier:
    level: RiskLevel
    lower_bound: int  # inclusive
    interpretation: str
    recommendations: tuple[str, ...]
    color: str


@dataclass(slots=True)
class AssessmentResult:
    score: int
    risk_level: RiskLevel
    interpretation: str
    recommendations: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AssessmentRecord:
    id: str
    date: datetime
    score: int
    risk_level: RiskLevel
    incidents: list[IncidentRecord] = field(default_factory=list)
    model_version: str | None = None

    def copy(self) -> AssessmentRecord:
        return replace(self, incidents=[incident.copy() for incident in self.incidents])


@dataclass(slots=True)
class AssessmentState:
    """Everything a DangerAssessmentService holds, as plain data."""

    answers: dict[str, bool] = field(default_factory=dict)
    incidents: list[IncidentRecord] = field(default_factory=list)
    history: list[AssessmentRecord] = field(default_factory=list)
    model_version: str | None = None
