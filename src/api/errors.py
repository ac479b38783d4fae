"""
Exception handlers - map domain errors onto HTTP responses.

Each domain error type maps to exactly one status code. Response bodies
carry a human-readable detail and the error type; stack traces never
leave the process.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.domain.exceptions import (
    ConfigurationError,
    EmailAlreadyClaimed,
    InternalError,
    NotFoundError,
    RateLimitedError,
    RegistrationError,
    RegistrationNotReady,
    StateConflictError,
    UpstreamError,
    ValidationError,
    VerificationFailed,
)

logger = logging.getLogger(__name__)

# Most specific first: NetworkError is matched through UpstreamError
_STATUS_CODES: list[tuple[type[RegistrationError], int]] = [
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
    (RegistrationNotReady, status.HTTP_409_CONFLICT),
    (StateConflictError, status.HTTP_409_CONFLICT),
    (EmailAlreadyClaimed, status.HTTP_409_CONFLICT),
    (VerificationFailed, status.HTTP_400_BAD_REQUEST),
    (InternalError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(exc: RegistrationError) -> int:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def registration_error_handler(request: Request, exc: RegistrationError) -> JSONResponse:
    status_code = status_code_for(exc)
    body: dict = {"detail": str(exc), "error": type(exc).__name__}
    headers: dict[str, str] = {}

    if isinstance(exc, EmailAlreadyClaimed):
        # Generic message: do not reveal which emails are registered
        body["detail"] = "Registration failed"
    elif isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    elif isinstance(exc, RateLimitedError):
        body["retry_after"] = exc.retry_after
        headers["Retry-After"] = str(exc.retry_after)
    elif isinstance(exc, RegistrationNotReady):
        body["missing"] = exc.missing
    elif isinstance(exc, UpstreamError) and exc.status_code is not None:
        body["upstream_status"] = exc.status_code

    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)

    return JSONResponse(status_code=status_code, content=body, headers=headers or None)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "error": "InternalError"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RegistrationError, registration_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
