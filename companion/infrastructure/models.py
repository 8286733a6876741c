from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ..domain.services import utcnow


class Base(DeclarativeBase):
    pass


class ProfileORM(Base):
    __tablename__ = "profiles"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    scoring_model_version: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )

    answers: Mapped[list[AnswerORM]] = relationship(
        back_populates="profile", cascade="all, delete-orphan"
    )
    incidents: Mapped[list[IncidentORM]] = relationship(
        back_populates="profile", cascade="all, delete-orphan"
    )
    records: Mapped[list[AssessmentRecordORM]] = relationship(
        back_populates="profile", cascade="all, delete-orphan"
    )


class AnswerORM(Base):
    __tablename__ = "answers"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    profile_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Not a foreign key: unknown question ids are stored as given
    question_id: Mapped[str] = mapped_column(String(64), nullable=False)
    value: Mapped[bool] = mapped_column(Boolean, nullable=False)

    __table_args__ = (UniqueConstraint("profile_id", "question_id", name="uq_profile_question"),)

    profile: Mapped[ProfileORM] = relationship(back_populates="answers")


class IncidentORM(Base):
    __tablename__ = "incidents"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    profile_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    incident_key: Mapped[str] = mapped_column(String(64), nullable=False)
    occurred_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    occurred_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    # Severity is stored unchecked; see SEVERITY_COLORS for display fallback
    severity: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("profile_id", "incident_key", name="uq_profile_incident"),)

    profile: Mapped[ProfileORM] = relationship(back_populates="incidents")


class AssessmentRecordORM(Base):
    __tablename__ = "assessment_records"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    profile_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    record_key: Mapped[str] = mapped_column(String(64), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    risk_level: Mapped[str] = mapped_column(String(16), nullable=False)
    model_version: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (UniqueConstraint("profile_id", "record_key", name="uq_profile_record"),)

    profile: Mapped[ProfileORM] = relationship(back_populates="records")
    incidents: Mapped[list[AssessmentRecordIncidentORM]] = relationship(
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="AssessmentRecordIncidentORM.position",
    )


class AssessmentRecordIncidentORM(Base):
    """Incident as it stood when the owning assessment was saved."""

    __tablename__ = "assessment_record_incidents"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    record_id: Mapped[int] = mapped_column(
        ForeignKey("assessment_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    incident_key: Mapped[str] = mapped_column(String(64), nullable=False)
    occurred_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    occurred_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    severity: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    record: Mapped[AssessmentRecordORM] = relationship(back_populates="incidents")
