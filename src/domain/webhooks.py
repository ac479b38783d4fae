"""
Webhook reconciliation - applies provider decisions to durable state.

Session State Machine
=====================

    NOT_STARTED -> IN_PROGRESS -> IN_REVIEW -> {APPROVED | DECLINED}
    any non-terminal -> ABANDONED | EXPIRED

Deliveries are at-least-once and may arrive out of order. The session
store applies a delivery only when the stored status is non-terminal and
the delivered status does not rank below it, so concurrent or duplicate
deliveries commute. That guard is the only concurrency control.

The user-facing redirect path may also record a status, but only into
an advisory column that nothing reads for decisions.
"""

import logging
from dataclasses import dataclass

from .models import AuditEvent, DecisionBundle, IdentitySession, UpsertOutcome
from .ports import AuditLog, DraftRepository, SessionRepository
from .states import SessionStatus

logger = logging.getLogger(__name__)

# UX routes the callback redirect may land on
REDIRECT_ROUTES = ("pending", "success", "failed", "in_review")


def overall_status(bundle: DecisionBundle) -> str:
    """Summary status stored alongside the provider status."""
    status = bundle.status
    if status == SessionStatus.APPROVED:
        return "approved" if bundle.checks_passed else "needs_review"
    if status == SessionStatus.DECLINED:
        return "declined"
    if status == SessionStatus.EXPIRED:
        return "expired"
    if status == SessionStatus.ABANDONED:
        return "abandoned"
    if status == SessionStatus.IN_REVIEW:
        return "in_review"
    return "pending"


def redirect_route(session: IdentitySession | None, reported_status: str | None = None) -> str:
    """
    Pick the UX route for the callback redirect.

    The stored session wins when present; the status reported on the
    redirect itself is a fallback. Unknown or missing -> "pending".
    """
    if session is not None:
        summary = session.overall_status
    elif reported_status:
        try:
            status = SessionStatus.parse(reported_status)
        except ValueError:
            return "pending"
        # No sub-checks travel with the redirect
        summary = "approved" if status == SessionStatus.APPROVED else overall_status(
            DecisionBundle(session_id="", status=status)
        )
    else:
        return "pending"

    if summary == "approved":
        return "success"
    if summary in ("declined", "expired", "abandoned"):
        return "failed"
    if summary in ("in_review", "needs_review"):
        return "in_review"
    return "pending"


@dataclass
class WebhookReconciler:
    """Persists provider decisions and propagates approvals to drafts."""

    sessions: SessionRepository
    drafts: DraftRepository
    audit: AuditLog

    def reconcile(self, bundle: DecisionBundle, actor: str = "provider") -> UpsertOutcome:
        """
        Apply one decision delivery.

        Idempotent: replaying the same payload leaves the stored session
        and the owning draft unchanged.
        """
        summary = overall_status(bundle)
        outcome = self.sessions.upsert_decision(bundle, summary)

        self.audit.record(
            AuditEvent(
                actor=actor,
                action="identity.decision",
                subject_id=bundle.session_id,
                outcome="applied" if outcome.applied else "ignored",
                detail={
                    "reported_status": bundle.status.value,
                    "stored_status": outcome.stored_status.value,
                    "previous_status": outcome.previous_status.value if outcome.previous_status else None,
                    "overall_status": summary,
                },
            )
        )
        if not outcome.applied:
            logger.info(
                "Ignored %s delivery for session %s (stored %s)",
                bundle.status.value,
                bundle.session_id,
                outcome.stored_status.value,
            )
            return outcome

        if outcome.entered_approved:
            self._apply_approval(bundle, actor)
        return outcome

    def _apply_approval(self, bundle: DecisionBundle, actor: str) -> None:
        draft_id = bundle.vendor_data
        if not draft_id:
            stored = self.sessions.get(bundle.session_id)
            draft_id = stored.vendor_data if stored else None

        failed = bundle.failed_checks()
        if failed:
            logger.warning(
                "Session %s approved by provider but sub-checks failed: %s",
                bundle.session_id,
                ", ".join(failed),
            )
            self.audit.record(
                AuditEvent(
                    actor=actor,
                    action="identity.discrepancy",
                    subject_id=bundle.session_id,
                    outcome="checks_failed",
                    detail={"draft_id": draft_id, "failed_checks": failed},
                )
            )
            return

        if not draft_id:
            logger.warning("Approved session %s has no owning draft", bundle.session_id)
            return

        updated = self.drafts.mark_identity_verified(draft_id)
        self.audit.record(
            AuditEvent(
                actor=actor,
                action="draft.identity_verified",
                subject_id=draft_id,
                outcome="verified" if updated else "unchanged",
                detail={"session_id": bundle.session_id},
            )
        )
