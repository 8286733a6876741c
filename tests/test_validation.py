from datetime import date, datetime

import pytest

from companion.domain.questions import SEVERITY_COLORS, risk_level_color, severity_color
from companion.domain.schemas import (
    IncidentInput,
    IncidentUpdateInput,
    ProfileCreationInput,
    validate_input,
)


@pytest.mark.parametrize("severity", [1, 2, 3, 4, 5])
def test_severity_color_in_range(severity):
    assert severity_color(severity) == SEVERITY_COLORS[severity - 1]


@pytest.mark.parametrize("severity", [0, 6, -3, 99, None, "3", 2.5, True])
def test_severity_color_falls_back_to_mildest(severity):
    assert severity_color(severity) == SEVERITY_COLORS[0]


def test_risk_level_color():
    assert risk_level_color("extreme") == "#D32F2F"
    assert risk_level_color("unknown") == risk_level_color("variable")


def test_incident_input_accepts_any_severity():
    result = validate_input(IncidentInput, {"date": "2024-02-01", "severity": 12})
    assert result.success is True
    assert result.data["severity"] == 12
    assert result.data["description"] == ""


def test_incident_input_parses_dates_and_datetimes():
    assert IncidentInput(date="2024-02-01", severity=1).date == date(2024, 2, 1)
    assert IncidentInput(date="2024-02-01T10:30:00", severity=1).date == datetime(2024, 2, 1, 10, 30)


def test_incident_input_rejects_missing_fields():
    result = validate_input(IncidentInput, {"description": "no date"})
    assert result.success is False
    fields = {e.field for e in result.errors}
    assert "date" in fields
    assert "severity" in fields


def test_incident_description_is_kept_verbatim():
    text = "  He said if I scored <5 he'd leave, >5 he'd hit me. Tom &amp; Jerry  "
    incident = IncidentInput(date=date(2024, 1, 1), severity=3, description=text)
    assert incident.description == text

    update = IncidentUpdateInput(description="<b>louder</b> this time")
    assert update.changes() == {"description": "<b>louder</b> this time"}


def test_profile_fields_are_sanitized():
    profile = ProfileCreationInput(name="  <b>Primary</b>\x00 ", notes="Tom &amp; Jerry")
    assert profile.name == "Primary"
    assert profile.notes == "Tom & Jerry"


def test_incident_update_changes_only_supplied_fields():
    update = IncidentUpdateInput(severity=4)
    assert update.changes() == {"severity": 4}
    assert IncidentUpdateInput().changes() == {}


def test_profile_name_required():
    result = validate_input(ProfileCreationInput, {"name": "   "})
    assert result.success is False
    assert any("name" in e.field for e in result.errors)


def test_profile_blank_notes_become_none():
    profile = ProfileCreationInput(name=" Primary ", notes="   ")
    assert profile.name == "Primary"
    assert profile.notes is None

