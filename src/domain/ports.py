"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols. The state
enums are re-exported here for callers that only need the contracts.
"""

from datetime import timedelta
from typing import Any, Protocol

from .states import (
    DRAFT_PROGRESSION,
    TERMINAL_RANK,
    DraftStatus,
    SessionStatus,
    VerifyResult,
)
from .models import (
    AuditEvent,
    CompletedRegistration,
    DecisionBundle,
    IdentitySession,
    LicenseVerificationResult,
    NewDraft,
    PermanentRecords,
    RegistrationDraft,
    RegistryOutcome,
    UpsertOutcome,
)


class DraftRepository(Protocol):
    """Port interface for registration draft persistence."""

    def create_draft(self, draft: NewDraft) -> RegistrationDraft | None:
        """
        Atomically create a draft for an email.

        Stale drafts for the same email (expires_at in the past) are
        marked EXPIRED first.

        Returns:
            The created draft, or None if the email already owns a live
            non-terminal draft
        """
        ...

    def get_by_token(self, token: str) -> RegistrationDraft | None:
        """Fetch a draft by verification token."""
        ...

    def get_by_id(self, draft_id: str) -> RegistrationDraft | None:
        """Fetch a draft by its id (the provider's vendor_data)."""
        ...

    def replace_email_code(self, draft_id: str, code: str) -> bool:
        """Store a new email code and reset attempts (PENDING_EMAIL only)."""
        ...

    def verify_email_code(self, token: str, code: str, max_attempts: int) -> VerifyResult:
        """
        Verify the email code with row-level locking.

        Wrong codes increment the attempt counter; reaching max_attempts
        moves the draft to CANCELLED. Success records email_verified_at
        and advances the status.
        """
        ...

    def attach_license(
        self,
        draft_id: str,
        result_id: int,
        document_type: str,
        document_number: str,
        advance: bool,
    ) -> None:
        """Pin a license verification result to the draft."""
        ...

    def link_identity_session(self, draft_id: str, session_id: str) -> None:
        """Record the provider session created for the draft."""
        ...

    def mark_identity_verified(self, draft_id: str) -> bool:
        """Set identity_verified_at and advance the status."""
        ...

    def mark_terminal(self, draft_id: str, status: DraftStatus) -> bool:
        """Move a non-terminal draft to CANCELLED or EXPIRED."""
        ...

    def finalize(self, draft_id: str, records: PermanentRecords) -> CompletedRegistration | None:
        """
        Create the permanent account records and mark the draft COMPLETED.

        Runs in one transaction holding a row lock on the draft.

        Returns:
            The created records, or None if the draft was no longer in a
            non-terminal state when the lock was taken
        """
        ...


class LicenseCache(Protocol):
    """Port interface for registry lookup results."""

    def get_fresh(self, document_number: str, max_age: timedelta) -> LicenseVerificationResult | None:
        """Newest found result younger than max_age."""
        ...

    def save(self, result: LicenseVerificationResult) -> int:
        """Insert a found result; returns its id. Rows are never updated."""
        ...

    def get(self, result_id: int) -> LicenseVerificationResult | None:
        """Fetch a stored result by id."""
        ...


class RegistryScraper(Protocol):
    """Port interface for the external license registry."""

    async def fetch(self, document_type: str, document_number: str) -> RegistryOutcome:
        """
        Query the registry for a normalized document number.

        Implementations may raise on unexpected failures; the lookup
        service converts anything raised into a Failed outcome.
        """
        ...


class IdentityProvider(Protocol):
    """Port interface for the external KYC provider."""

    def create_session(
        self,
        workflow_id: str,
        vendor_data: str,
        callback_url: str,
        contact_details: dict[str, Any],
        expected_details: dict[str, Any],
        metadata: dict[str, Any],
    ) -> dict[str, Any]:
        """Create a verification session; returns session_id, url, status."""
        ...

    def get_decision(self, session_id: str) -> dict[str, Any]:
        """Fetch the current decision bundle for a session."""
        ...

    def update_status(self, session_id: str, new_status: str, comment: str | None = None) -> dict[str, Any]:
        """Administrative status override."""
        ...


class SessionRepository(Protocol):
    """Port interface for identity verification session persistence."""

    def create(self, session: IdentitySession) -> None:
        """Insert a freshly created session (no-op if it already exists)."""
        ...

    def upsert_decision(self, bundle: DecisionBundle, overall_status: str) -> UpsertOutcome:
        """
        Apply a provider decision keyed by session_id.

        A stored terminal status is never overwritten and a stored status
        never moves to a lower rank. Identical replays change nothing.
        """
        ...

    def get(self, session_id: str) -> IdentitySession | None:
        """Fetch the stored session."""
        ...

    def record_redirect_status(self, session_id: str, status: str) -> None:
        """Advisory write from the user-facing redirect path."""
        ...


class AuditLog(Protocol):
    """Port interface for the append-only audit trail."""

    def record(self, event: AuditEvent) -> None:
        """Append an event. Events are never updated or deleted."""
        ...


class RateLimitStore(Protocol):
    """Port interface for fixed-window counters."""

    def hit(self, key: str, window_start: int, window_seconds: int) -> int:
        """Increment the counter for (key, window_start); returns the new count."""
        ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send_verification_code(self, email: str, code: str) -> None:
        """
        Send verification code to email address.

        Args:
            email: Recipient email address
            code: Numeric verification code
        """
        ...
