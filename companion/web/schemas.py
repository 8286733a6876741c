from __future__ import annotations

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, Field

RiskLevelName = Literal["variable", "increased", "severe", "extreme"]


class Question(BaseModel):
    id: str
    text: str
    weight: int
    help_text: Optional[str] = None


class Tier(BaseModel):
    level: RiskLevelName
    lower_bound: int
    interpretation: str
    recommendations: list[str]
    color: str


class ScoringModelResponse(BaseModel):
    version: str
    max_score: int
    thresholds: list[int]
    tiers: list[Tier]


class Contact(BaseModel):
    name: str
    number: str


class ResourceGroup(BaseModel):
    key: str
    title: str
    contacts: list[Contact]


class SeverityColor(BaseModel):
    severity: int
    color: str


class ProfileCreateRequest(BaseModel):
    name: str
    notes: Optional[str] = None


class ProfileSummary(BaseModel):
    id: int
    name: str
    notes: Optional[str] = None
    scoring_model_version: str
    created_at: dt.datetime


class ProfileDetail(ProfileSummary):
    answered: int
    incident_count: int
    assessment_count: int


class AnswerRequest(BaseModel):
    answer: bool


class Incident(BaseModel):
    id: str
    date: Optional[dt.date | dt.datetime] = None
    severity: int
    description: str
    color: str


class IncidentCreateRequest(BaseModel):
    date: dt.date | dt.datetime
    severity: int
    description: str = ""


class IncidentUpdateRequest(BaseModel):
    date: Optional[dt.date | dt.datetime] = None
    severity: Optional[int] = None
    description: Optional[str] = None


class AssessmentResultResponse(BaseModel):
    score: int
    max_score: int
    risk_level: RiskLevelName
    interpretation: str
    recommendations: list[str]
    color: str


class AssessmentRecordResponse(BaseModel):
    id: str
    date: dt.datetime
    score: int
    risk_level: RiskLevelName
    model_version: Optional[str] = None
    incidents: list[Incident] = Field(default_factory=list)


class OperationResponse(BaseModel):
    status: Literal["ok", "noop"]
    message: str
    persisted: int = 0
