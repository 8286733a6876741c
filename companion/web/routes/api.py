from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from companion.application import api as app_api
from companion.application.api import ProfileSessions
from companion.domain.models import AssessmentRecord, IncidentRecord
from companion.domain.questions import (
    SAFETY_RESOURCES,
    SEVERITY_COLORS,
    ScoringModel,
    get_scoring_model,
    risk_level_color,
    severity_color,
)
from companion.domain.schemas import IncidentInput, IncidentUpdateInput
from companion.domain.services import DangerAssessmentService
from companion.infrastructure.config import get_settings
from companion.infrastructure.exceptions import (
    CompanionError,
    ExportError,
    ProfileNotFoundError,
)
from companion.utils.exports import export_history
from companion.web.dependencies import (
    get_db_session,
    get_profile_service,
    get_profile_sessions,
)
from companion.web.schemas import (
    AnswerRequest,
    AssessmentRecordResponse,
    AssessmentResultResponse,
    Contact,
    Incident,
    IncidentCreateRequest,
    IncidentUpdateRequest,
    OperationResponse,
    ProfileCreateRequest,
    ProfileDetail,
    ProfileSummary,
    Question,
    ResourceGroup,
    ScoringModelResponse,
    SeverityColor,
    Tier,
)

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)

UNSAVED_CHANGE_MESSAGE = (
    "Your change was kept for this session but has not been saved yet. "
    "It will be saved with your next change, or use Save to retry."
)


def _active_model() -> ScoringModel:
    return get_scoring_model(get_settings().assessment.scoring_model_version)


def _auto_persist(
    registry: ProfileSessions, profile_id: int, service: DangerAssessmentService
) -> int:
    if not get_settings().assessment.auto_persist:
        return 0
    try:
        return registry.persist(profile_id, service)
    except CompanionError as exc:
        # the change stays in the live service and goes out with the next save
        logger.error("Auto-persist failed for profile %s", profile_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{exc.user_message} {UNSAVED_CHANGE_MESSAGE}",
        ) from exc


def _incident_out(incident: IncidentRecord) -> Incident:
    when = incident.date if isinstance(incident.date, (dt.date, dt.datetime)) else None
    return Incident(
        id=incident.id,
        date=when,
        severity=incident.severity,
        description=incident.description,
        color=severity_color(incident.severity),
    )


def _record_out(record: AssessmentRecord) -> AssessmentRecordResponse:
    return AssessmentRecordResponse(
        id=record.id,
        date=record.date,
        score=record.score,
        risk_level=record.risk_level,
        model_version=record.model_version,
        incidents=[_incident_out(i) for i in record.incidents],
    )


def _profile_summary(profile) -> ProfileSummary:
    return ProfileSummary(
        id=profile.id,
        name=profile.name,
        notes=profile.notes,
        scoring_model_version=profile.scoring_model_version,
        created_at=profile.created_at,
    )


# ---------- Reference data ----------


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/questions", response_model=list[Question])
def list_questions() -> list[Question]:
    return [
        Question(id=q.id, text=q.text, weight=q.weight, help_text=q.help_text)
        for q in _active_model().questions
    ]


@router.get("/tiers", response_model=ScoringModelResponse)
def describe_scoring_model() -> ScoringModelResponse:
    model = _active_model()
    return ScoringModelResponse(
        version=model.version,
        max_score=model.max_score,
        thresholds=list(model.thresholds),
        tiers=[
            Tier(
                level=t.level,
                lower_bound=t.lower_bound,
                interpretation=t.interpretation,
                recommendations=list(t.recommendations),
                color=t.color,
            )
            for t in model.tiers
        ],
    )


@router.get("/resources", response_model=list[ResourceGroup])
def list_resources() -> list[ResourceGroup]:
    return [
        ResourceGroup(
            key=key,
            title=group["title"],
            contacts=[Contact(**c) for c in group["contacts"]],
        )
        for key, group in SAFETY_RESOURCES.items()
    ]


@router.get("/severity-colors", response_model=list[SeverityColor])
def list_severity_colors() -> list[SeverityColor]:
    return [
        SeverityColor(severity=level, color=color)
        for level, color in enumerate(SEVERITY_COLORS, start=1)
    ]


# ---------- Profiles ----------


@router.post("/profiles", response_model=ProfileSummary, status_code=status.HTTP_201_CREATED)
def create_profile(
    payload: ProfileCreateRequest,
    db: Session = Depends(get_db_session),
) -> ProfileSummary:
    try:
        profile = app_api.create_profile(
            db, name=payload.name, notes=payload.notes, model=_active_model()
        )
        db.commit()
    except CompanionError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.user_message) from exc
    return _profile_summary(profile)


@router.get("/profiles", response_model=list[ProfileSummary])
def list_profiles(db: Session = Depends(get_db_session)) -> list[ProfileSummary]:
    try:
        profiles = app_api.list_profiles(db)
    except CompanionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.user_message) from exc
    return [_profile_summary(p) for p in profiles]


@router.get("/profiles/{profile_id}", response_model=ProfileDetail)
def get_profile(
    profile_id: int,
    db: Session = Depends(get_db_session),
    service: DangerAssessmentService = Depends(get_profile_service),
) -> ProfileDetail:
    try:
        profile = app_api.get_profile(db, profile_id)
    except ProfileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.user_message) from exc
    return ProfileDetail(
        **_profile_summary(profile).model_dump(),
        answered=len(service.get_answers()),
        incident_count=len(service.get_incidents()),
        assessment_count=len(service.get_assessment_history()),
    )


@router.delete("/profiles/{profile_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_profile(
    profile_id: int,
    db: Session = Depends(get_db_session),
    registry: ProfileSessions = Depends(get_profile_sessions),
) -> Response:
    try:
        app_api.delete_profile(db, profile_id)
        db.commit()
    except ProfileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.user_message) from exc
    registry.discard(profile_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Answers ----------


@router.put("/profiles/{profile_id}/answers/{question_id}", response_model=dict[str, bool])
def set_answer(
    profile_id: int,
    question_id: str,
    payload: AnswerRequest,
    registry: ProfileSessions = Depends(get_profile_sessions),
    service: DangerAssessmentService = Depends(get_profile_service),
) -> dict[str, bool]:
    service.set_answer(question_id, payload.answer)
    _auto_persist(registry, profile_id, service)
    return service.get_answers()


@router.get("/profiles/{profile_id}/answers", response_model=dict[str, bool])
def get_answers(
    service: DangerAssessmentService = Depends(get_profile_service),
) -> dict[str, bool]:
    return service.get_answers()


# ---------- Incidents ----------


@router.post(
    "/profiles/{profile_id}/incidents",
    response_model=Incident,
    status_code=status.HTTP_201_CREATED,
)
def add_incident(
    profile_id: int,
    payload: IncidentCreateRequest,
    registry: ProfileSessions = Depends(get_profile_sessions),
    service: DangerAssessmentService = Depends(get_profile_service),
) -> Incident:
    incident_in = IncidentInput(**payload.model_dump())
    incident = service.add_incident(
        incident_in.date, incident_in.severity, incident_in.description
    )
    _auto_persist(registry, profile_id, service)
    return _incident_out(incident)


@router.get("/profiles/{profile_id}/incidents", response_model=list[Incident])
def list_incidents(
    service: DangerAssessmentService = Depends(get_profile_service),
) -> list[Incident]:
    return [_incident_out(i) for i in service.get_incidents()]


@router.patch("/profiles/{profile_id}/incidents/{incident_id}", response_model=OperationResponse)
def update_incident(
    profile_id: int,
    incident_id: str,
    payload: IncidentUpdateRequest,
    registry: ProfileSessions = Depends(get_profile_sessions),
    service: DangerAssessmentService = Depends(get_profile_service),
) -> OperationResponse:
    changes = IncidentUpdateInput(**payload.model_dump(exclude_unset=True)).changes()
    updated = service.update_incident(incident_id, changes)
    if updated is None:
        return OperationResponse(status="noop", message="No incident with that id.")
    persisted = _auto_persist(registry, profile_id, service)
    return OperationResponse(status="ok", message="Incident updated.", persisted=persisted)


@router.delete("/profiles/{profile_id}/incidents/{incident_id}", response_model=OperationResponse)
def delete_incident(
    profile_id: int,
    incident_id: str,
    registry: ProfileSessions = Depends(get_profile_sessions),
    service: DangerAssessmentService = Depends(get_profile_service),
) -> OperationResponse:
    if not service.delete_incident(incident_id):
        return OperationResponse(status="noop", message="No incident with that id.")
    persisted = _auto_persist(registry, profile_id, service)
    return OperationResponse(status="ok", message="Incident deleted.", persisted=persisted)


# ---------- Assessment ----------


def _result_out(service: DangerAssessmentService, result) -> AssessmentResultResponse:
    return AssessmentResultResponse(
        score=result.score,
        max_score=service.model.max_score,
        risk_level=result.risk_level,
        interpretation=result.interpretation,
        recommendations=result.recommendations,
        color=risk_level_color(result.risk_level),
    )


@router.get("/profiles/{profile_id}/result", response_model=AssessmentResultResponse)
def preview_result(
    service: DangerAssessmentService = Depends(get_profile_service),
) -> AssessmentResultResponse:
    return _result_out(service, service.compute_result())


@router.post(
    "/profiles/{profile_id}/assessments",
    response_model=AssessmentResultResponse,
    status_code=status.HTTP_201_CREATED,
)
def complete_assessment(
    profile_id: int,
    registry: ProfileSessions = Depends(get_profile_sessions),
    service: DangerAssessmentService = Depends(get_profile_service),
) -> AssessmentResultResponse:
    result = service.get_assessment_result()
    _auto_persist(registry, profile_id, service)
    return _result_out(service, result)


@router.get(
    "/profiles/{profile_id}/assessments", response_model=list[AssessmentRecordResponse]
)
def list_assessments(
    start: Optional[str] = Query(default=None, description="ISO date or datetime, inclusive"),
    end: Optional[str] = Query(default=None, description="ISO date or datetime, inclusive"),
    service: DangerAssessmentService = Depends(get_profile_service),
) -> list[AssessmentRecordResponse]:
    if start is None and end is None:
        records = service.get_assessment_history()
    else:
        records = service.get_assessments_by_date_range(
            start if start is not None else dt.date.min,
            end if end is not None else dt.date.max,
        )
    return [_record_out(r) for r in records]


@router.get("/profiles/{profile_id}/assessments/export")
def export_assessments(
    profile_id: int,
    format: str = Query(default="json"),
    service: DangerAssessmentService = Depends(get_profile_service),
) -> Response:
    if not get_settings().app.enable_data_export:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Export is disabled.")
    history = service.get_assessment_history()
    try:
        content, media_type = export_history(profile_id, history, format)
    except ExportError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.user_message) from exc
    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="assessments_{profile_id}.{format.lower()}"'
        },
    )


@router.post("/profiles/{profile_id}/clear", response_model=OperationResponse)
def clear_assessment(
    profile_id: int,
    registry: ProfileSessions = Depends(get_profile_sessions),
    service: DangerAssessmentService = Depends(get_profile_service),
) -> OperationResponse:
    service.clear_assessment()
    persisted = _auto_persist(registry, profile_id, service)
    return OperationResponse(
        status="ok", message="Answers and incidents cleared.", persisted=persisted
    )


@router.post("/profiles/{profile_id}/save", response_model=OperationResponse)
def save_profile(
    profile_id: int,
    registry: ProfileSessions = Depends(get_profile_sessions),
    service: DangerAssessmentService = Depends(get_profile_service),
) -> OperationResponse:
    try:
        persisted = registry.persist(profile_id, service)
    except CompanionError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.user_message
        ) from exc
    return OperationResponse(status="ok", message="Profile saved.", persisted=persisted)
