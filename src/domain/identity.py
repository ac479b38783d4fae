"""
Identity verification session manager.

Creates and queries sessions with the external KYC provider and performs
the administrative approval override. Provider errors arrive already
typed (ConfigurationError, NotFoundError, UpstreamError, NetworkError)
from the provider adapter and are re-raised after auditing.
"""

import logging
from dataclasses import dataclass
from typing import Any

from .exceptions import (
    ConfigurationError,
    NotFoundError,
    RegistrationError,
    StateConflictError,
    UpstreamError,
    ValidationError,
)
from .models import AuditEvent, DecisionBundle, IdentitySession
from .ports import AuditLog, DraftRepository, IdentityProvider, SessionRepository
from .registration import load_active_draft
from .states import SessionStatus
from .webhooks import WebhookReconciler

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("first_name", "last_name", "date_of_birth", "email", "document_number")


def parse_decision(session_id: str, payload: dict[str, Any]) -> DecisionBundle:
    """
    Build a DecisionBundle from a decision-endpoint response.

    Raises:
        UpstreamError: Response carries no recognizable status
    """
    try:
        return DecisionBundle.from_payload({**payload, "session_id": payload.get("session_id") or session_id})
    except (KeyError, ValueError) as e:
        raise UpstreamError(f"Unrecognized decision payload: {e}") from e


@dataclass
class IdentitySessionService:
    provider: IdentityProvider
    drafts: DraftRepository
    sessions: SessionRepository
    reconciler: WebhookReconciler
    audit: AuditLog
    workflow_id: str = ""
    language: str = "es"
    country: str = "VEN"

    def create_session(self, token: str, callback_url: str) -> IdentitySession:
        """
        Create a provider session for a draft.

        Args:
            token: Draft verification token
            callback_url: Where the provider redirects the user afterwards

        Raises:
            NotFoundError: Unknown or expired draft
            StateConflictError: Email not yet verified
            ValidationError: A required personal field is missing
            ConfigurationError: Provider credentials or workflow missing
            UpstreamError: Provider rejected the request
        """
        draft = load_active_draft(self.drafts, token)

        self._audit("user", "identity.session.create", draft.id, "attempted", {})
        try:
            if draft.email_verified_at is None:
                raise StateConflictError("email not verified")
            for name in REQUIRED_FIELDS:
                if not getattr(draft, name):
                    raise ValidationError(f"{name} is required", field=name)
            if not self.workflow_id:
                raise ConfigurationError("identity provider workflow is not configured")

            response = self.provider.create_session(
                workflow_id=self.workflow_id,
                vendor_data=draft.id,
                callback_url=callback_url,
                contact_details={
                    "email": draft.email,
                    "email_lang": self.language,
                    "phone": draft.phone,
                },
                expected_details={
                    "first_name": draft.first_name,
                    "last_name": draft.last_name,
                    "date_of_birth": draft.date_of_birth.isoformat(),
                    "identification_number": draft.document_number,
                    "country": self.country,
                },
                metadata={
                    "registration_id": draft.id,
                    "document_type": draft.document_type,
                },
            )
            session_id = response.get("session_id")
            if not session_id:
                raise UpstreamError("Provider response missing session_id", body=str(response))
            status = SessionStatus.parse(response.get("status") or SessionStatus.NOT_STARTED.value)
        except ValueError as e:
            self._audit("user", "identity.session.create", draft.id, "failed", {"error": str(e)})
            raise UpstreamError(f"Unrecognized session status: {e}") from e
        except RegistrationError as e:
            self._audit("user", "identity.session.create", draft.id, "failed", {"error": type(e).__name__})
            raise

        session = IdentitySession(
            session_id=str(session_id),
            status=status,
            workflow_id=self.workflow_id,
            vendor_data=draft.id,
            url=response.get("url"),
        )
        self.sessions.create(session)
        self.drafts.link_identity_session(draft.id, session.session_id)
        self._audit("user", "identity.session.create", draft.id, "created", {"session_id": session.session_id})
        logger.info("Identity session %s created for draft %s", session.session_id, draft.id)
        return session

    def get_status(self, session_id: str) -> dict[str, Any]:
        """
        Current provider decision bundle for a session.

        Raises:
            NotFoundError: Provider does not know the session (or it expired)
        """
        try:
            return self.provider.get_decision(session_id)
        except NotFoundError:
            raise NotFoundError("session not found or expired") from None

    def admin_approve(self, session_id: str, actor: str, comment: str | None = None) -> DecisionBundle:
        """
        Administrative override to Approved.

        Only permitted while the provider reports exactly "In Review".
        Audited before the attempt and again once the result is known.

        Raises:
            StateConflictError: Provider status is not In Review
            NotFoundError: Unknown session
        """
        self._audit(actor, "identity.admin_approve", session_id, "attempted", {"comment": comment})
        try:
            current = parse_decision(session_id, self.get_status(session_id))
            if current.status != SessionStatus.IN_REVIEW:
                raise StateConflictError(
                    f"session is {current.status.value}; approval requires In Review"
                )
            self.provider.update_status(session_id, SessionStatus.APPROVED.value, comment)
            refreshed = parse_decision(session_id, self.get_status(session_id))
            outcome = self.reconciler.reconcile(refreshed, actor=f"admin:{actor}")
        except RegistrationError as e:
            self._audit(actor, "identity.admin_approve", session_id, "failed", {"error": str(e)})
            raise

        self._audit(
            actor,
            "identity.admin_approve",
            session_id,
            "approved",
            {"stored_status": outcome.stored_status.value, "applied": outcome.applied},
        )
        return refreshed

    def _audit(self, actor: str, action: str, subject_id: str | None, outcome: str, detail: dict) -> None:
        self.audit.record(
            AuditEvent(actor=actor, action=action, subject_id=subject_id, outcome=outcome, detail=detail)
        )
