# companion/infrastructure/repositories_incident.py
from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from typing import Any

from ..domain.models import IncidentRecord
from ..domain.services import as_datetime
from .logging import log_database_operation as log_op
from .models import IncidentORM
from .repositories_base import BaseRepository


def split_date(value: Any) -> tuple[date | None, datetime | None]:
    """Store plain dates and datetimes in separate columns so each round-trips as itself."""
    if isinstance(value, datetime):
        return None, as_datetime(value)
    if isinstance(value, date):
        return value, None
    return None, as_datetime(value)


def join_date(occurred_on: date | None, occurred_at: datetime | None) -> date | datetime | None:
    return occurred_at if occurred_at is not None else occurred_on


class IncidentRepo(BaseRepository[IncidentORM]):
    model = IncidentORM

    @log_op("incident.list_for_profile")
    def list_for_profile(self, profile_id: int) -> list[IncidentRecord]:
        """Incidents in the order they were logged."""
        rows = self.list(
            IncidentORM.profile_id == profile_id,
            order_by=[IncidentORM.position, IncidentORM.id],
        )
        return [
            IncidentRecord(
                id=row.incident_key,
                date=join_date(row.occurred_on, row.occurred_at),
                severity=row.severity,
                description=row.description,
            )
            for row in rows
        ]

    @log_op("incident.replace_all")
    def replace_all(self, profile_id: int, incidents: Sequence[IncidentRecord]) -> None:
        """Make the stored incident log for a profile exactly `incidents`."""
        existing = {
            row.incident_key: row for row in self.list(IncidentORM.profile_id == profile_id)
        }
        wanted = {incident.id for incident in incidents}
        for key, row in existing.items():
            if key not in wanted:
                self.s.delete(row)
        for position, incident in enumerate(incidents):
            occurred_on, occurred_at = split_date(incident.date)
            values = dict(
                occurred_on=occurred_on,
                occurred_at=occurred_at,
                severity=incident.severity,
                description=incident.description,
                position=position,
            )
            row = existing.get(incident.id)
            if row is None:
                self.s.add(IncidentORM(profile_id=profile_id, incident_key=incident.id, **values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
        self.s.flush()
