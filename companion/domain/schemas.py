"""
Pydantic schemas for input validation across the application.

Profile fields are cleaned (whitespace, HTML, control characters). Incident
descriptions are the user's own account and are kept exactly as typed;
they only ever leave the backend as JSON or as xlsx text cells. Values are
otherwise accepted as given: incident severity in particular is an
unconstrained integer here, just as it is in the assessment engine.
"""

from __future__ import annotations

import datetime as dt
import re
from html import unescape
from typing import Any

from pydantic import BaseModel, Field, field_validator


class BaseValidationSchema(BaseModel):
    """Base schema with common validation utilities."""

    model_config = {"validate_assignment": True}


class SanitizedInputSchema(BaseValidationSchema):
    """Schema whose string fields are trimmed and stripped of markup."""

    model_config = {"str_strip_whitespace": True}

    @field_validator("*", mode="before")
    def sanitize_strings(cls, v):
        """Sanitize string inputs to prevent XSS and injection attacks."""
        if isinstance(v, str):
            cleaned = unescape(v.strip())
            cleaned = re.sub(
                r"<\s*script[^>]*>.*?<\s*/\s*script\s*>",
                "",
                cleaned,
                flags=re.IGNORECASE | re.DOTALL,
            )
            cleaned = re.sub(r"<[^>]+>", "", cleaned)
            cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]", "", cleaned)
            return cleaned
        return v


class ProfileCreationInput(SanitizedInputSchema):
    """Validation schema for creating assessment profiles."""

    name: str = Field(..., min_length=1, max_length=255, description="Profile name")
    notes: str | None = Field(None, max_length=10000)

    @field_validator("name")
    def validate_profile_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Profile name cannot be empty")
        return v.strip()

    @field_validator("notes")
    def validate_optional_fields(cls, v):
        if v is not None and len(v.strip()) == 0:
            return None
        return v


class IncidentInput(BaseValidationSchema):
    """An incident as entered by the user. Backdated dates are fine."""

    date: dt.date | dt.datetime
    severity: int = Field(..., description="Nominally 1 (least) to 5 (most severe)")
    description: str = Field("", description="Stored verbatim")


class IncidentUpdateInput(BaseValidationSchema):
    """Partial incident update; only supplied fields are applied."""

    date: dt.date | dt.datetime | None = None
    severity: int | None = None
    description: str | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class ValidationErrorDetail(BaseModel):
    """Schema for validation error details."""

    field: str
    message: str
    value: Any = None


class ValidationResponse(BaseModel):
    """Schema for validation responses."""

    success: bool
    errors: list[ValidationErrorDetail] = []
    data: dict[str, Any] | None = None


def validate_input(schema_class: type[BaseModel], data: dict[str, Any]) -> ValidationResponse:
    """
    Centralized validation function that returns structured validation results.

    Example:
        >>> result = validate_input(ProfileCreationInput, {"name": "Primary"})
        >>> result.success
        True
    """
    try:
        validated = schema_class(**data)
        return ValidationResponse(success=True, data=validated.model_dump())
    except Exception as e:
        errors = []
        if hasattr(e, "errors"):  # Pydantic validation errors
            for error in e.errors():
                errors.append(
                    ValidationErrorDetail(
                        field=".".join(str(x) for x in error["loc"]),
                        message=error["msg"],
                        value=error.get("input"),
                    )
                )
        else:
            errors.append(ValidationErrorDetail(field="general", message=str(e)))

        return ValidationResponse(success=False, errors=errors)
