"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from src.domain.licensing import LicenseCheck


class RegisterRequest(BaseModel):
    """Request model for starting a registration."""

    email: EmailStr
    password: str = Field(..., min_length=8, description="User password (min 8 characters)")
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    phone: str | None = Field(None, max_length=32)
    date_of_birth: date | None = None
    document_type: str | None = Field(None, description="cedula_identidad or cedula_extranjera")
    document_number: str | None = Field(None, max_length=20)


class RegisterResponse(BaseModel):
    """Response model for a created registration draft."""

    message: str
    verification_token: str
    email: str
    expires_at: datetime


class VerifyEmailRequest(BaseModel):
    verification_token: str = Field(..., min_length=1)
    code: str = Field(
        ...,
        min_length=6,
        max_length=6,
        pattern=r"^\d{6}$",
        description="6-digit email verification code",
    )


class TokenRequest(BaseModel):
    """Request model carrying only a draft verification token."""

    verification_token: str = Field(..., min_length=1)


class DraftStatusResponse(BaseModel):
    message: str
    status: str


class LicenseLookupRequest(BaseModel):
    """Registry lookup. Accepts camelCase or snake_case field names."""

    model_config = ConfigDict(populate_by_name=True)

    document_type: str = Field(..., alias="documentType")
    document_number: str = Field(..., alias="documentNumber", min_length=1, max_length=20)
    verification_token: str | None = None


class LicenseRecordModel(BaseModel):
    name: str
    profession: str
    specialty: str | None
    license_number: str
    registration_date: str


class ClassificationModel(BaseModel):
    valid_professional: bool
    profession: str
    specialty: str | None
    legal_status: str
    primary_dashboard: str
    allowed_dashboards: list[str]
    requires_approval: bool


class NameMatchModel(BaseModel):
    matches: bool
    confidence: float


class LicenseLookupResponse(BaseModel):
    found: bool
    cached: bool
    source: str
    document_number: str
    fetched_at: datetime
    processing_time_ms: int
    error: str | None
    record: LicenseRecordModel | None
    classification: ClassificationModel
    name_match: NameMatchModel | None = None

    @classmethod
    def from_check(cls, check: LicenseCheck) -> "LicenseLookupResponse":
        result = check.result
        record = result.record
        return cls(
            found=result.found,
            cached=result.cached,
            source=result.source,
            document_number=result.document_number,
            fetched_at=result.fetched_at,
            processing_time_ms=result.processing_time_ms,
            error=result.error,
            record=(
                LicenseRecordModel(
                    name=record.name,
                    profession=record.profession,
                    specialty=record.specialty,
                    license_number=record.license_number,
                    registration_date=record.registration_date,
                )
                if record is not None
                else None
            ),
            classification=ClassificationModel(**check.classification.to_dict()),
            name_match=(
                NameMatchModel(matches=check.name_match.matches, confidence=check.name_match.confidence)
                if check.name_match is not None
                else None
            ),
        )


class CreateSessionRequest(BaseModel):
    verification_token: str = Field(..., min_length=1)
    callback_url: str | None = Field(None, description="Defaults to this service's callback route")


class SessionResponse(BaseModel):
    session_id: str
    url: str | None
    status: str


class ApproveRequest(BaseModel):
    comment: str | None = Field(None, max_length=500)


class ApproveResponse(BaseModel):
    session_id: str
    status: str
    checks_passed: bool


class WebhookAck(BaseModel):
    session_id: str
    applied: bool
    status: str


class ReadinessResponse(BaseModel):
    ready: bool
    missing: list[str]
    data: dict[str, Any]


class CompleteResponse(BaseModel):
    user: dict[str, Any]
    profile: dict[str, Any]
    professional_record: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
