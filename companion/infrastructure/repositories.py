"""
Repository classes for the assessment persistence layer.

Re-exports the split per-table repositories so callers can write
`from companion.infrastructure.repositories import ProfileRepo, ...`.
"""

from __future__ import annotations

from .repositories_answer import AnswerRepo
from .repositories_incident import IncidentRepo
from .repositories_profile import ProfileRepo
from .repositories_record import AssessmentRecordRepo

__all__ = [
    "AnswerRepo",
    "AssessmentRecordRepo",
    "IncidentRepo",
    "ProfileRepo",
]
