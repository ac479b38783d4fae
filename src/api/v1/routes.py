"""
API v1 registration routes.

Draft lifecycle (create, verify email, resend, cancel) and the
completion gate (readiness, finalize). Domain errors are translated to
HTTP responses by the handlers in src.api.errors.
"""

from fastapi import APIRouter, Depends, Query, status

from src.api.dependencies import get_completion_gate, get_registration_service
from src.api.models import (
    CompleteResponse,
    DraftStatusResponse,
    ErrorResponse,
    ReadinessResponse,
    RegisterRequest,
    RegisterResponse,
    TokenRequest,
    VerifyEmailRequest,
)
from src.domain.completion import CompletionGate
from src.domain.exceptions import NotFoundError, VerificationFailed
from src.domain.registration import RegistrationService
from src.domain.states import VerifyResult

router = APIRouter(prefix="/registrations", tags=["registrations"])


@router.post(
    "",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse, "description": "Email already claimed"},
        422: {"description": "Validation error"},
        429: {"model": ErrorResponse, "description": "Too many code requests"},
    },
    summary="Start a registration",
    description="Create a registration draft. A 6-digit code is sent to the email address.",
)
def start_registration(
    request_data: RegisterRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegisterResponse:
    draft = service.start_registration(
        request_data.email,
        request_data.password,
        first_name=request_data.first_name,
        last_name=request_data.last_name,
        phone=request_data.phone,
        date_of_birth=request_data.date_of_birth,
        document_type=request_data.document_type,
        document_number=request_data.document_number,
    )
    return RegisterResponse(
        message="Verification code sent",
        verification_token=draft.verification_token,
        email=draft.email,
        expires_at=draft.expires_at,
    )


@router.post(
    "/verify-email",
    response_model=DraftStatusResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid or locked code"},
        404: {"model": ErrorResponse, "description": "Unknown or expired registration"},
    },
    summary="Verify the email code",
)
def verify_email(
    request_data: VerifyEmailRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> DraftStatusResponse:
    result = service.verify_email(request_data.verification_token, request_data.code)

    if result == VerifyResult.SUCCESS:
        return DraftStatusResponse(message="Email verified", status="email_verified")
    if result == VerifyResult.INVALID_CODE:
        raise VerificationFailed("Invalid verification code")
    if result == VerifyResult.LOCKED:
        raise VerificationFailed("Too many failed attempts; registration cancelled")
    raise NotFoundError("registration not found or expired")


@router.post(
    "/resend-code",
    response_model=DraftStatusResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown or expired registration"},
        409: {"model": ErrorResponse, "description": "Email already verified"},
        429: {"model": ErrorResponse, "description": "Too many code requests"},
    },
    summary="Send a new email code",
)
def resend_code(
    request_data: TokenRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> DraftStatusResponse:
    draft = service.resend_email_code(request_data.verification_token)
    return DraftStatusResponse(message="Verification code sent", status=draft.status.value)


@router.post(
    "/cancel",
    response_model=DraftStatusResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown or expired registration"},
        409: {"model": ErrorResponse, "description": "Registration already terminal"},
    },
    summary="Cancel a registration",
)
def cancel_registration(
    request_data: TokenRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> DraftStatusResponse:
    service.cancel(request_data.verification_token)
    return DraftStatusResponse(message="Registration cancelled", status="cancelled")


@router.get(
    "/readiness",
    response_model=ReadinessResponse,
    responses={404: {"model": ErrorResponse, "description": "Unknown registration"}},
    summary="Check completion readiness",
    description="Read-only report of which verification steps have passed.",
)
def readiness(
    token: str = Query(..., min_length=1),
    gate: CompletionGate = Depends(get_completion_gate),
) -> ReadinessResponse:
    result = gate.check_readiness(token)
    return ReadinessResponse(ready=result.ready, missing=result.missing, data=result.data)


@router.post(
    "/complete",
    response_model=CompleteResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown registration"},
        409: {"model": ErrorResponse, "description": "Not ready, already completed, or terminal"},
    },
    summary="Finalize a verified registration",
    description="Create the permanent account once email, license and identity checks have passed.",
)
def complete_registration(
    request_data: TokenRequest,
    gate: CompletionGate = Depends(get_completion_gate),
) -> CompleteResponse:
    completed = gate.finalize(request_data.verification_token)
    return CompleteResponse(
        user=completed.user,
        profile=completed.profile,
        professional_record=completed.professional_record,
    )
