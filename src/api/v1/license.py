"""API v1 license lookup route."""

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import (
    get_license_attachment_service,
    get_lookup_rate_limiter,
    get_lookup_service,
)
from src.api.models import ErrorResponse, LicenseLookupRequest, LicenseLookupResponse
from src.domain.licensing import LicenseAttachmentService, LicenseLookupService
from src.domain.rate_limit import FixedWindowRateLimiter

router = APIRouter(prefix="/license", tags=["license"])


@router.post(
    "/lookup",
    response_model=LicenseLookupResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown or expired registration"},
        409: {"model": ErrorResponse, "description": "Email not verified"},
        422: {"model": ErrorResponse, "description": "Malformed document"},
        429: {"model": ErrorResponse, "description": "Rate limited or registry capacity exhausted"},
    },
    summary="Look up a professional license",
    description="Query the health professional registry by identity document and classify "
    "the result. With a verification_token the result is pinned to that registration.",
)
async def lookup_license(
    request_data: LicenseLookupRequest,
    request: Request,
    limiter: FixedWindowRateLimiter = Depends(get_lookup_rate_limiter),
    lookup_service: LicenseLookupService = Depends(get_lookup_service),
    attachment_service: LicenseAttachmentService = Depends(get_license_attachment_service),
) -> LicenseLookupResponse:
    client_ip = request.client.host if request.client else "unknown"
    limiter.check(client_ip)

    if request_data.verification_token:
        check = await attachment_service.attach_license(
            request_data.verification_token,
            request_data.document_type,
            request_data.document_number,
        )
    else:
        check = await lookup_service.check(request_data.document_type, request_data.document_number)
    return LicenseLookupResponse.from_check(check)
