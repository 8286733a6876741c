# companion/infrastructure/repositories_record.py
from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.orm import selectinload

from ..domain.models import AssessmentRecord, IncidentRecord
from ..domain.services import as_datetime
from .logging import log_database_operation as log_op
from .models import AssessmentRecordIncidentORM, AssessmentRecordORM
from .repositories_base import BaseRepository
from .repositories_incident import join_date, split_date


def _to_domain(row: AssessmentRecordORM) -> AssessmentRecord:
    return AssessmentRecord(
        id=row.record_key,
        date=row.completed_at,
        score=row.score,
        risk_level=row.risk_level,  # type: ignore[arg-type]
        incidents=[
            IncidentRecord(
                id=snap.incident_key,
                date=join_date(snap.occurred_on, snap.occurred_at),
                severity=snap.severity,
                description=snap.description,
            )
            for snap in row.incidents
        ],
        model_version=row.model_version,
    )


class AssessmentRecordRepo(BaseRepository[AssessmentRecordORM]):
    """History is append-only: records are added, never changed."""

    model = AssessmentRecordORM

    @log_op("record.list_for_profile")
    def list_for_profile(self, profile_id: int) -> list[AssessmentRecord]:
        """History for a profile in the order it was saved."""
        rows = (
            self.s.query(AssessmentRecordORM)
            .options(selectinload(AssessmentRecordORM.incidents))
            .filter(AssessmentRecordORM.profile_id == profile_id)
            .order_by(AssessmentRecordORM.completed_at, AssessmentRecordORM.id)
            .all()
        )
        return [_to_domain(row) for row in rows]

    @log_op("record.stored_keys")
    def stored_keys(self, profile_id: int) -> set[str]:
        rows = (
            self.s.query(AssessmentRecordORM.record_key)
            .filter(AssessmentRecordORM.profile_id == profile_id)
            .all()
        )
        return {key for (key,) in rows}

    @log_op("record.append_missing")
    def append_missing(self, profile_id: int, records: Sequence[AssessmentRecord]) -> int:
        """Store every record not already stored for the profile. Returns how many were added."""
        stored = self.stored_keys(profile_id)
        added = 0
        for record in records:
            if record.id in stored:
                continue
            row = AssessmentRecordORM(
                profile_id=profile_id,
                record_key=record.id,
                completed_at=as_datetime(record.date),
                score=record.score,
                risk_level=record.risk_level,
                model_version=record.model_version,
            )
            for position, incident in enumerate(record.incidents):
                occurred_on, occurred_at = split_date(incident.date)
                row.incidents.append(
                    AssessmentRecordIncidentORM(
                        incident_key=incident.id,
                        occurred_on=occurred_on,
                        occurred_at=occurred_at,
                        severity=incident.severity,
                        description=incident.description,
                        position=position,
                    )
                )
            self.s.add(row)
            stored.add(record.id)
            added += 1
        self.s.flush()
        return added
