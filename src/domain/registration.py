"""
Registration domain service - draft lifecycle and email verification.

Draft State Machine (Forward-Only Transitions)
==============================================

States:
- PENDING_EMAIL: draft created, email code sent
- EMAIL_VERIFIED: email code confirmed
- LICENSE_VERIFIED: registry lookup pinned and classified valid
- IDENTITY_VERIFIED: identity session approved with passing sub-checks
- COMPLETED: terminal, converted into a permanent account
- CANCELLED: terminal, abandoned by the user or locked by failed codes
- EXPIRED: terminal, 24h TTL exceeded

Valid Transitions (forward-only, enforced by repository):
    PENDING_EMAIL -> EMAIL_VERIFIED -> LICENSE_VERIFIED -> IDENTITY_VERIFIED
    any non-terminal -> COMPLETED (finalize, all checks passed)
    any non-terminal -> CANCELLED | EXPIRED

License and identity steps may complete in either order; the status
records the furthest step reached.

Note: State transition enforcement happens at the repository level via
conditional UPDATEs and row locks (SELECT FOR UPDATE).
"""

import logging
import secrets
from datetime import date, datetime, timezone
from dataclasses import dataclass

import bcrypt

from .documents import normalize_document
from .exceptions import EmailAlreadyClaimed, NotFoundError, StateConflictError
from .models import AuditEvent, NewDraft, RegistrationDraft
from .ports import AuditLog, DraftRepository, EmailSender
from .rate_limit import FixedWindowRateLimiter
from .states import DraftStatus, VerifyResult

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def load_active_draft(drafts: DraftRepository, token: str) -> RegistrationDraft:
    """
    Fetch a non-terminal, unexpired draft by verification token.

    A draft found past its expiry is moved to EXPIRED on the way out.

    Raises:
        NotFoundError: Unknown token or expired draft
        StateConflictError: Draft is completed or cancelled
    """
    draft = drafts.get_by_token(token)
    if draft is None or draft.status == DraftStatus.EXPIRED:
        raise NotFoundError("registration not found or expired")
    if draft.status.is_terminal:
        raise StateConflictError(f"registration is {draft.status.value}")
    if draft.is_expired(utcnow()):
        drafts.mark_terminal(draft.id, DraftStatus.EXPIRED)
        raise NotFoundError("registration not found or expired")
    return draft


@dataclass
class RegistrationService:
    """
    Domain service for registration drafts.

    Orchestrates the first pipeline step: email normalization, password
    hashing, code generation, draft persistence and code verification.
    """

    repository: DraftRepository
    email_sender: EmailSender
    audit: AuditLog
    email_rate_limiter: FixedWindowRateLimiter | None = None
    code_length: int = 6
    ttl_hours: int = 24
    bcrypt_cost: int = 10
    max_code_attempts: int = 3

    def start_registration(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
        phone: str | None = None,
        date_of_birth: date | None = None,
        document_type: str | None = None,
        document_number: str | None = None,
    ) -> RegistrationDraft:
        """
        Create a registration draft and send its email code.

        Args:
            email: User's email address (will be normalized)
            password: User's password (will be hashed)

        Returns:
            The created draft

        Raises:
            RateLimitedError: Too many code requests for this email
            ValidationError: Malformed document number
            EmailAlreadyClaimed: Email already owns a live draft or account
        """
        normalized_email = self._normalize_email(email)
        if self.email_rate_limiter is not None:
            self.email_rate_limiter.check(normalized_email)

        if document_number:
            document_number = normalize_document(document_type or "cedula_identidad", document_number)
            document_type = document_type or "cedula_identidad"

        code = self._generate_verification_code()
        draft = self.repository.create_draft(
            NewDraft(
                email=normalized_email,
                password_hash=self._hash_password(password),
                email_code=code,
                first_name=first_name,
                last_name=last_name,
                phone=phone,
                date_of_birth=date_of_birth,
                document_type=document_type,
                document_number=document_number,
                ttl_hours=self.ttl_hours,
            )
        )
        if draft is None:
            self._audit("draft.create", None, "rejected", {"reason": "email_claimed"})
            raise EmailAlreadyClaimed(normalized_email)

        self.email_sender.send_verification_code(normalized_email, code)
        self._audit("draft.create", draft.id, "created", {})
        logger.info("Registration draft %s created", draft.id)
        return draft

    def resend_email_code(self, token: str) -> RegistrationDraft:
        """
        Replace the email code of a PENDING_EMAIL draft and resend it.

        Raises:
            NotFoundError: Unknown or expired draft
            StateConflictError: Email already verified or draft terminal
            RateLimitedError: Too many code requests for this email
        """
        draft = load_active_draft(self.repository, token)
        if draft.status != DraftStatus.PENDING_EMAIL:
            raise StateConflictError("email already verified")
        if self.email_rate_limiter is not None:
            self.email_rate_limiter.check(draft.email)

        code = self._generate_verification_code()
        if not self.repository.replace_email_code(draft.id, code):
            raise StateConflictError("email already verified")

        self.email_sender.send_verification_code(draft.email, code)
        self._audit("draft.resend_code", draft.id, "sent", {})
        return draft

    def verify_email(self, token: str, code: str) -> VerifyResult:
        """
        Verify the email code for a draft.

        Delegates the comparison to the repository, which handles:
        - Atomic row-level locking (SELECT FOR UPDATE)
        - Code comparison (constant-time via secrets.compare_digest)
        - TTL check and lazy expiry
        - Attempt counting and cancellation at the limit

        Returns:
            VerifyResult indicating success or specific failure reason
        """
        result = self.repository.verify_email_code(token, code.strip(), self.max_code_attempts)
        draft = self.repository.get_by_token(token)
        self._audit("draft.verify_email", draft.id if draft else None, result.value, {})
        return result

    def cancel(self, token: str) -> RegistrationDraft:
        """
        Cancel a live draft.

        Raises:
            NotFoundError: Unknown or expired draft
            StateConflictError: Draft already terminal
        """
        draft = load_active_draft(self.repository, token)
        if not self.repository.mark_terminal(draft.id, DraftStatus.CANCELLED):
            raise StateConflictError("registration can no longer be cancelled")
        self._audit("draft.cancel", draft.id, "cancelled", {})
        return draft

    def _audit(self, action: str, subject_id: str | None, outcome: str, detail: dict) -> None:
        self.audit.record(
            AuditEvent(actor="user", action=action, subject_id=subject_id, outcome=outcome, detail=detail)
        )

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and lookup.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()

    def _generate_verification_code(self) -> str:
        """
        Generate a cryptographically secure numeric verification code.

        Returns string to preserve leading zeros.
        """
        return "".join(secrets.choice("0123456789") for _ in range(self.code_length))

    def _hash_password(self, password: str) -> str:
        """Hash password using bcrypt with cost factor >= 10."""
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=max(self.bcrypt_cost, 10))).decode()
