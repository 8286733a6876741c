from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import date, datetime, time, timezone
from time import time_ns
from typing import Any

from ..infrastructure.logging import get_logger
from .models import (
    AssessmentRecord,
    AssessmentResult,
    AssessmentState,
    IncidentRecord,
    RiskLevel,
)
from .questions import DEFAULT_SCORING_MODEL, ScoringModel

INCIDENT_FIELDS = frozenset({"date", "severity", "description"})


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_datetime(value: Any, *, end_of_day: bool = False) -> datetime | None:
    """
    Normalise a date-like value to a naive UTC datetime.

    Plain dates become the first (or, with `end_of_day`, the last) instant of
    the day. ISO strings are parsed. Anything else yields None.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min)
    if isinstance(value, str):
        try:
            parsed = date.fromisoformat(value)
        except ValueError:
            try:
                return as_datetime(datetime.fromisoformat(value))
            except ValueError:
                return None
        return as_datetime(parsed, end_of_day=end_of_day)
    return None


def _date_sort_key(value: Any) -> tuple[int, datetime]:
    normalised = as_datetime(value)
    if normalised is None:
        return (0, datetime.min)
    return (1, normalised)


class TimestampIdFactory:
    """Monotonic, microsecond-timestamp-derived string ids."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            now = time_ns() // 1_000
            if now <= self._last:
                now = self._last + 1
            self._last = now
            return str(now)


def calculate_score(
    answers: Mapping[str, Any], model: ScoringModel = DEFAULT_SCORING_MODEL
) -> int:
    """Sum the weights of every question answered yes. Unknown ids contribute nothing."""
    return sum(q.weight for q in model.questions if answers.get(q.id))


def classify_score(score: int, model: ScoringModel = DEFAULT_SCORING_MODEL) -> RiskLevel:
    return model.tier_for(score).level


def build_result(score: int, model: ScoringModel = DEFAULT_SCORING_MODEL) -> AssessmentResult:
    tier = model.tier_for(score)
    return AssessmentResult(
        score=score,
        risk_level=tier.level,
        interpretation=tier.interpretation,
        recommendations=list(tier.recommendations),
    )


class DangerAssessmentService:
    """
    Working state for one user's danger assessment.

    Holds the current answers and incident log, plus the history of every
    completed assessment. One instance per profile; all operations share a
    single re-entrant lock so they are atomic with respect to each other.

    Malformed input is tolerated rather than rejected: unknown question ids,
    out-of-range severities and missing incident ids never raise.
    """

    def __init__(
        self,
        model: ScoringModel = DEFAULT_SCORING_MODEL,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.model = model
        self._clock = clock or utcnow
        self._new_id = id_factory or TimestampIdFactory()
        self.logger = logger or get_logger(__name__)
        self._lock = threading.RLock()
        self._answers: dict[str, bool] = {}
        self._incidents: list[IncidentRecord] = []
        self._history: list[AssessmentRecord] = []

    # ---------- Answers ----------

    def set_answer(self, question_id: str, answer: bool) -> None:
        with self._lock:
            self._answers[question_id] = bool(answer)
        self.logger.debug("Answer set for question %s", question_id)

    def get_answers(self) -> dict[str, bool]:
        with self._lock:
            return dict(self._answers)

    # ---------- Incidents ----------

    def _fresh_id(self, taken: set[str]) -> str:
        new_id = self._new_id()
        while new_id in taken:
            new_id = self._new_id()
        return new_id

    def add_incident(
        self, date: date | datetime, severity: int, description: str
    ) -> IncidentRecord:
        with self._lock:
            incident = IncidentRecord(
                id=self._fresh_id({i.id for i in self._incidents}),
                date=date,
                severity=severity,
                description=description,
            )
            self._incidents.append(incident)
        self.logger.debug("Incident %s added (severity %s)", incident.id, severity)
        return incident.copy()

    def update_incident(
        self,
        incident_id: str,
        updates: Mapping[str, Any] | None = None,
        **fields: Any,
    ) -> IncidentRecord | None:
        """
        Merge `date`, `severity` and/or `description` into an incident.

        The id never changes and other keys are ignored. Returns the updated
        record, or None when no incident has that id.
        """
        changes = {**(updates or {}), **fields}
        applicable = {k: v for k, v in changes.items() if k in INCIDENT_FIELDS}
        with self._lock:
            for incident in self._incidents:
                if incident.id == incident_id:
                    for key, value in applicable.items():
                        setattr(incident, key, value)
                    updated = incident.copy()
                    break
            else:
                self.logger.debug("Update ignored; no incident %s", incident_id)
                return None
        self.logger.debug("Incident %s updated: %s", incident_id, sorted(applicable))
        return updated

    def delete_incident(self, incident_id: str) -> bool:
        with self._lock:
            before = len(self._incidents)
            self._incidents = [i for i in self._incidents if i.id != incident_id]
            removed = len(self._incidents) != before
        if removed:
            self.logger.debug("Incident %s deleted", incident_id)
        return removed

    def get_incidents(self) -> list[IncidentRecord]:
        """Copies of all incidents, most recent first."""
        with self._lock:
            snapshot = [i.copy() for i in self._incidents]
        return sorted(snapshot, key=lambda i: _date_sort_key(i.date), reverse=True)

    # ---------- Assessment ----------

    def compute_result(self) -> AssessmentResult:
        """Score the current answers without touching the history."""
        with self._lock:
            score = calculate_score(self._answers, self.model)
        return build_result(score, self.model)

    def save_assessment(self, result: AssessmentResult) -> AssessmentRecord:
        """Append a history record for `result` with a snapshot of the current incidents."""
        with self._lock:
            record = AssessmentRecord(
                id=self._fresh_id({r.id for r in self._history}),
                date=self._clock(),
                score=result.score,
                risk_level=result.risk_level,
                incidents=[i.copy() for i in self._incidents],
                model_version=self.model.version,
            )
            self._history.append(record)
        self.logger.info(
            "Assessment %s saved: score=%d level=%s incidents=%d",
            record.id,
            record.score,
            record.risk_level,
            len(record.incidents),
        )
        return record.copy()

    def get_assessment_result(self) -> AssessmentResult:
        """Compute the current result and record it in the history."""
        with self._lock:
            result = self.compute_result()
            self.save_assessment(result)
        return result

    def get_assessment_history(self) -> list[AssessmentRecord]:
        """Copies of all history records, most recent first."""
        with self._lock:
            snapshot = [r.copy() for r in self._history]
        return sorted(snapshot, key=lambda r: _date_sort_key(r.date), reverse=True)

    def get_assessments_by_date_range(
        self, start: date | datetime, end: date | datetime
    ) -> list[AssessmentRecord]:
        """History records saved within [start, end], oldest first."""
        lower = as_datetime(start)
        upper = as_datetime(end, end_of_day=True)
        if lower is None or upper is None:
            return []
        with self._lock:
            matched = []
            for record in self._history:
                saved_at = as_datetime(record.date)
                if saved_at is not None and lower <= saved_at <= upper:
                    matched.append(record.copy())
            return matched

    def clear_assessment(self) -> None:
        """Forget the working answers and incidents. History is kept."""
        with self._lock:
            self._incidents = []
            self._answers = {}
        self.logger.debug("Working assessment cleared")

    # ---------- Persistence seam ----------

    def export_state(self) -> AssessmentState:
        with self._lock:
            return AssessmentState(
                answers=dict(self._answers),
                incidents=[i.copy() for i in self._incidents],
                history=[r.copy() for r in self._history],
                model_version=self.model.version,
            )

    @classmethod
    def from_state(
        cls,
        state: AssessmentState,
        model: ScoringModel = DEFAULT_SCORING_MODEL,
        **kwargs: Any,
    ) -> DangerAssessmentService:
        service = cls(model=model, **kwargs)
        service._answers = dict(state.answers)
        service._incidents = [i.copy() for i in state.incidents]
        service._history = [r.copy() for r in state.history]
        return service
