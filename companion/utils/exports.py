from __future__ import annotations

import io
import json
from collections.abc import Sequence

import pandas as pd

from companion.domain.models import AssessmentRecord
from companion.infrastructure.exceptions import ExportError
from companion.infrastructure.logging import get_logger

logger = get_logger(__name__)

ASSESSMENT_COLUMNS = ["RecordID", "CompletedAt", "Score", "RiskLevel", "ModelVersion", "Incidents"]
INCIDENT_COLUMNS = ["RecordID", "IncidentID", "Date", "Severity", "Description"]

EXPORT_MEDIA_TYPES = {
    "json": "application/json",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def _to_iso(val):
    if hasattr(val, "isoformat"):
        try:
            return val.isoformat()
        except Exception:
            return str(val)
    return val


def history_to_frame(records: Sequence[AssessmentRecord]) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Flatten assessment history into an assessments frame and an incident snapshot frame."""

    assessments = pd.DataFrame(
        [
            {
                "RecordID": r.id,
                "CompletedAt": r.date,
                "Score": r.score,
                "RiskLevel": r.risk_level,
                "ModelVersion": r.model_version,
                "Incidents": len(r.incidents),
            }
            for r in records
        ],
        columns=ASSESSMENT_COLUMNS,
    )
    incidents = pd.DataFrame(
        [
            {
                "RecordID": r.id,
                "IncidentID": i.id,
                "Date": i.date,
                "Severity": i.severity,
                "Description": i.description,
            }
            for r in records
            for i in r.incidents
        ],
        columns=INCIDENT_COLUMNS,
    )
    return assessments, incidents


def make_history_json_export(profile_id: int, records: Sequence[AssessmentRecord]) -> str:
    payload = {
        "profile_id": profile_id,
        "assessments": [
            {
                "id": r.id,
                "date": _to_iso(r.date),
                "score": r.score,
                "risk_level": r.risk_level,
                "model_version": r.model_version,
                "incidents": [
                    {
                        "id": i.id,
                        "date": _to_iso(i.date),
                        "severity": i.severity,
                        "description": i.description,
                    }
                    for i in r.incidents
                ],
            }
            for r in records
        ],
    }
    return json.dumps(payload, indent=2)


def make_history_xlsx_export(records: Sequence[AssessmentRecord]) -> bytes:
    """Create a two-sheet Excel workbook: one row per assessment, one per snapshotted incident."""

    assessments, incidents = history_to_frame(records)
    # incident dates may mix date, datetime and free text
    incidents["Date"] = incidents["Date"].map(_to_iso)

    bio = io.BytesIO()
    try:
        # free text such as "=HYPERLINK(...)" must land as a plain string cell
        options = {"strings_to_formulas": False, "strings_to_urls": False}
        with pd.ExcelWriter(
            bio, engine="xlsxwriter", engine_kwargs={"options": options}
        ) as writer:
            assessments.to_excel(writer, index=False, sheet_name="Assessments")
            incidents.to_excel(writer, index=False, sheet_name="Incidents")
    except Exception as e:
        logger.error(f"Excel export failed: {e}")
        raise ExportError(f"Failed to build Excel export: {e}", export_format="xlsx") from e
    return bio.getvalue()


def export_history(
    profile_id: int, records: Sequence[AssessmentRecord], export_format: str
) -> tuple[bytes, str]:
    """
    Render assessment history in the requested format.

    Returns:
        The encoded payload and its media type

    Raises:
        ExportError: If the format is not supported or rendering fails
    """
    fmt = (export_format or "").lower()
    if fmt == "json":
        content = make_history_json_export(profile_id, records).encode("utf-8")
    elif fmt == "xlsx":
        content = make_history_xlsx_export(records)
    else:
        raise ExportError(f"Unsupported export format: {export_format}", export_format=export_format)
    logger.info("Exported %d assessment records as %s", len(records), fmt)
    return content, EXPORT_MEDIA_TYPES[fmt]
