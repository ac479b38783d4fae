"""
API v1 identity verification routes.

Session creation and status, the administrative approval override, the
provider webhook and the user-facing callback redirect.

The webhook is the only authoritative writer of session status. The
callback redirect reads status on a best-effort basis and records what
it saw into an advisory column from a background task; neither the
read nor the write can prevent the redirect.
"""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool

from src.adapters.kyc.signature import SIGNATURE_HEADER, TIMESTAMP_HEADER, verify_signature
from src.api.dependencies import (
    get_admin_actor,
    get_audit_log,
    get_identity_service,
    get_session_repository,
    get_webhook_reconciler,
)
from src.api.models import (
    ApproveRequest,
    ApproveResponse,
    CreateSessionRequest,
    ErrorResponse,
    SessionResponse,
    WebhookAck,
)
from src.config.settings import Settings, get_settings
from src.domain.exceptions import ConfigurationError
from src.domain.identity import IdentitySessionService
from src.domain.models import AuditEvent, DecisionBundle, IdentitySession
from src.domain.ports import AuditLog, SessionRepository
from src.domain.webhooks import WebhookReconciler, redirect_route

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/identity", tags=["identity"])


@router.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown or expired registration"},
        422: {"model": ErrorResponse, "description": "Missing personal data"},
        502: {"model": ErrorResponse, "description": "Provider failure"},
        503: {"model": ErrorResponse, "description": "Provider not configured"},
    },
    summary="Create an identity verification session",
)
def create_session(
    request_data: CreateSessionRequest,
    service: IdentitySessionService = Depends(get_identity_service),
    settings: Settings = Depends(get_settings),
) -> SessionResponse:
    callback_url = request_data.callback_url or f"{settings.public_base_url.rstrip('/')}/v1/identity/callback"
    session = service.create_session(request_data.verification_token, callback_url)
    return SessionResponse(session_id=session.session_id, url=session.url, status=session.status.value)


@router.get(
    "/sessions/{session_id}",
    responses={404: {"model": ErrorResponse, "description": "Session not found or expired"}},
    summary="Get the provider decision for a session",
)
def get_session_status(
    session_id: str,
    service: IdentitySessionService = Depends(get_identity_service),
) -> dict:
    return service.get_status(session_id)


@router.post(
    "/sessions/{session_id}/approve",
    response_model=ApproveResponse,
    responses={
        401: {"description": "Invalid administrator credentials"},
        409: {"model": ErrorResponse, "description": "Session is not In Review"},
    },
    summary="Approve a session under manual review",
    description="Administrative override. Only allowed while the provider reports In Review.",
)
def approve_session(
    session_id: str,
    request_data: ApproveRequest | None = None,
    actor: str = Depends(get_admin_actor),
    service: IdentitySessionService = Depends(get_identity_service),
) -> ApproveResponse:
    comment = request_data.comment if request_data else None
    bundle = service.admin_approve(session_id, actor, comment)
    return ApproveResponse(
        session_id=bundle.session_id,
        status=bundle.status.value,
        checks_passed=bundle.checks_passed,
    )


def _parse_webhook_body(body: bytes) -> DecisionBundle:
    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body is not valid JSON") from None
    if not isinstance(payload, dict) or not payload.get("session_id") or not payload.get("status"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="session_id and status are required")
    if not isinstance(payload["session_id"], str) or not isinstance(payload["status"], str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="session_id and status must be strings")
    try:
        return DecisionBundle.from_payload(payload)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown session status") from None


@router.post(
    "/webhook",
    response_model=WebhookAck,
    responses={
        400: {"description": "Malformed payload"},
        401: {"description": "Invalid signature"},
        500: {"description": "Processing failed; the provider will retry"},
        503: {"model": ErrorResponse, "description": "Webhook secret not configured"},
    },
    summary="Provider decision webhook",
)
async def identity_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
    audit: AuditLog = Depends(get_audit_log),
    settings: Settings = Depends(get_settings),
):
    if not settings.kyc_webhook_secret:
        raise ConfigurationError("webhook secret is not configured")

    body = await request.body()
    if not verify_signature(
        settings.kyc_webhook_secret,
        body,
        request.headers.get(SIGNATURE_HEADER),
        request.headers.get(TIMESTAMP_HEADER),
        max_skew=settings.kyc_webhook_skew_seconds,
    ):
        logger.warning("Rejected webhook with invalid signature")
        await run_in_threadpool(
            audit.record,
            AuditEvent(actor="provider", action="identity.webhook", subject_id=None, outcome="bad_signature"),
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        bundle = _parse_webhook_body(body)
    except HTTPException as e:
        logger.warning("Rejected malformed webhook: %s", e.detail)
        await run_in_threadpool(
            audit.record,
            AuditEvent(
                actor="provider",
                action="identity.webhook",
                subject_id=None,
                outcome="malformed",
                detail={"error": e.detail},
            ),
        )
        raise

    try:
        outcome = await run_in_threadpool(reconciler.reconcile, bundle)
    except Exception as e:
        # Answer 500 so the provider redelivers; never let it escape the handler
        logger.exception("Webhook processing failed for session %s", bundle.session_id)
        try:
            await run_in_threadpool(
                audit.record,
                AuditEvent(
                    actor="provider",
                    action="identity.webhook",
                    subject_id=bundle.session_id,
                    outcome="error",
                    detail={"error": type(e).__name__},
                ),
            )
        except Exception:
            logger.exception("Could not audit webhook failure for session %s", bundle.session_id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Webhook processing failed", "session_id": bundle.session_id},
        )

    return WebhookAck(
        session_id=bundle.session_id,
        applied=outcome.applied,
        status=outcome.stored_status.value,
    )


def record_redirect_status(sessions: SessionRepository, session_id: str, reported_status: str) -> None:
    """Advisory write from the redirect path. Failures are logged only."""
    try:
        sessions.record_redirect_status(session_id, reported_status)
    except Exception:
        logger.warning("Could not record redirect status for session %s", session_id, exc_info=True)


@router.get(
    "/callback",
    response_class=RedirectResponse,
    status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    summary="User-facing redirect after the provider flow",
)
def identity_callback(
    background_tasks: BackgroundTasks,
    session_id: str | None = None,
    status_param: str | None = Query(None, alias="status"),
    sessions: SessionRepository = Depends(get_session_repository),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    session: IdentitySession | None = None
    if session_id:
        try:
            session = sessions.get(session_id)
        except Exception:
            logger.warning("Callback status read failed for session %s", session_id, exc_info=True)
        if status_param:
            background_tasks.add_task(record_redirect_status, sessions, session_id, status_param)

    route = redirect_route(session, status_param)
    target = f"{settings.frontend_base_url.rstrip('/')}/register/verification/{route}"
    return RedirectResponse(target, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
