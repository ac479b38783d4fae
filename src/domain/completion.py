"""
Registration completion gate.

The single point that turns a fully verified draft into a permanent
account. Readiness is recomputed from persisted state on every call:
the email step from the draft, the license step by re-classifying the
pinned registry result, the identity step from the stored session.

finalize() is exactly-once. The repository re-checks the draft status
under a row lock, so two concurrent calls cannot both create records.
"""

import logging
from dataclasses import dataclass
from typing import Any

from .classification import classify
from .exceptions import NotFoundError, RegistrationNotReady, StateConflictError
from .models import (
    AuditEvent,
    CompletedRegistration,
    PermanentRecords,
    Readiness,
    RegistrationDraft,
)
from .ports import AuditLog, DraftRepository, LicenseCache, SessionRepository
from .registration import utcnow
from .states import DraftStatus, SessionStatus

logger = logging.getLogger(__name__)

EMAIL_VERIFICATION = "email_verification"
LICENSE_VERIFICATION = "license_verification"
IDENTITY_VERIFICATION = "identity_verification"


@dataclass
class CompletionGate:
    drafts: DraftRepository
    licenses: LicenseCache
    sessions: SessionRepository
    audit: AuditLog

    def check_readiness(self, token: str) -> Readiness:
        """
        Read-only readiness report for a draft.

        Raises:
            NotFoundError: Unknown token
        """
        draft = self.drafts.get_by_token(token)
        if draft is None:
            raise NotFoundError("registration not found")
        readiness, _ = self._evaluate(draft)
        return readiness

    def finalize(self, token: str) -> CompletedRegistration:
        """
        Create the permanent account for a verified draft.

        Raises:
            NotFoundError: Unknown token
            StateConflictError: Draft completed, cancelled or expired
            RegistrationNotReady: A prerequisite has not passed
        """
        draft = self.drafts.get_by_token(token)
        if draft is None:
            self._audit(None, "rejected", {"reason": "not_found"})
            raise NotFoundError("registration not found")

        if draft.status == DraftStatus.COMPLETED:
            self._audit(draft.id, "rejected", {"reason": "already_completed"})
            raise StateConflictError("registration already completed")
        if draft.status.is_terminal:
            self._audit(draft.id, "rejected", {"reason": draft.status.value})
            raise StateConflictError(f"registration is {draft.status.value}")
        if draft.is_expired(utcnow()):
            self.drafts.mark_terminal(draft.id, DraftStatus.EXPIRED)
            self._audit(draft.id, "rejected", {"reason": "expired"})
            raise StateConflictError("registration is expired")

        readiness, records = self._evaluate(draft)
        if not readiness.ready or records is None:
            self._audit(draft.id, "rejected", {"reason": "not_ready", "missing": readiness.missing})
            raise RegistrationNotReady(readiness.missing)

        completed = self.drafts.finalize(draft.id, records)
        if completed is None:
            self._audit(draft.id, "rejected", {"reason": "already_completed"})
            raise StateConflictError("registration already completed")

        self._audit(draft.id, "completed", {"user_id": completed.user.get("id")})
        logger.info("Registration draft %s completed", draft.id)
        return completed

    def _evaluate(self, draft: RegistrationDraft) -> tuple[Readiness, PermanentRecords | None]:
        missing: list[str] = []
        data: dict[str, Any] = {
            "status": draft.status.value,
            "email": draft.email,
            "expires_at": draft.expires_at.isoformat(),
        }

        email_ok = draft.email_verified_at is not None
        data["email_verified"] = email_ok
        if not email_ok:
            missing.append(EMAIL_VERIFICATION)

        result = self.licenses.get(draft.license_result_id) if draft.license_result_id else None
        classification = classify(result) if result is not None else None
        data["license"] = (
            {
                "document_number": result.document_number,
                "found": result.found,
                "fetched_at": result.fetched_at.isoformat(),
                "classification": classification.to_dict(),
            }
            if result is not None and classification is not None
            else None
        )
        if classification is None or not classification.valid_professional:
            missing.append(LICENSE_VERIFICATION)

        session = self.sessions.get(draft.identity_session_id) if draft.identity_session_id else None
        identity_ok = (
            session is not None
            and session.status == SessionStatus.APPROVED
            and session.checks_passed
        )
        data["identity"] = (
            {
                "session_id": session.session_id,
                "status": session.status.value,
                "overall_status": session.overall_status,
            }
            if session is not None
            else None
        )
        if not identity_ok:
            missing.append(IDENTITY_VERIFICATION)

        readiness = Readiness(ready=not missing, missing=missing, data=data)
        if missing:
            return readiness, None

        record = result.record
        records = PermanentRecords(
            email=draft.email,
            password_hash=draft.password_hash,
            first_name=draft.first_name,
            last_name=draft.last_name,
            phone=draft.phone,
            date_of_birth=draft.date_of_birth,
            document_type=draft.document_type or result.document_type,
            document_number=result.document_number,
            license_number=record.license_number,
            profession=classification.profession,
            specialty=classification.specialty,
            primary_dashboard=classification.primary_dashboard,
            allowed_dashboards=classification.allowed_dashboards,
            requires_approval=classification.requires_approval,
            license_result_id=result.id,
            identity_session_id=session.session_id,
        )
        return readiness, records

    def _audit(self, subject_id: str | None, outcome: str, detail: dict) -> None:
        self.audit.record(
            AuditEvent(
                actor="user",
                action="registration.finalize",
                subject_id=subject_id,
                outcome=outcome,
                detail=detail,
            )
        )
