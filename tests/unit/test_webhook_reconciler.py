"""
Unit tests for webhook reconciliation and the redirect route.

The session store is mocked, so these cover the decisions made around
the upsert; the guard itself is covered against PostgreSQL in the
integration and adversarial suites.
"""

from unittest.mock import Mock

import pytest

from src.domain.models import DecisionBundle, IdentitySession, UpsertOutcome
from src.domain.states import SessionStatus
from src.domain.webhooks import WebhookReconciler, overall_status, redirect_route

DRAFT_ID = "7b0c5f8e-2d7e-4a59-9a43-2f3c1e9d6a10"


def _outcome(applied: bool, previous, stored) -> UpsertOutcome:
    return UpsertOutcome(applied=applied, previous_status=previous, stored_status=stored)


@pytest.fixture
def reconciler() -> WebhookReconciler:
    return WebhookReconciler(sessions=Mock(), drafts=Mock(), audit=Mock())


def _audit_actions(reconciler: WebhookReconciler) -> list[tuple[str, str]]:
    return [(call[0][0].action, call[0][0].outcome) for call in reconciler.audit.record.call_args_list]


class TestDecisionBundle:
    def test_checks_read_from_decision_object(self, decision_payload) -> None:
        bundle = DecisionBundle.from_payload(decision_payload())

        assert bundle.status == SessionStatus.APPROVED
        assert bundle.vendor_data == DRAFT_ID
        assert bundle.checks_passed is True

    def test_top_level_checks_and_passive_liveness_are_accepted(self) -> None:
        payload = {
            "session_id": "S1",
            "status": "Approved",
            "id_verification": {"status": "Approved"},
            "face_match": {"status": "Approved"},
            "passive_liveness": {"status": "Approved"},
            "aml": {"status": "Approved"},
        }

        assert DecisionBundle.from_payload(payload).checks_passed is True

    def test_missing_check_fails(self, decision_payload) -> None:
        payload = decision_payload(checks={"id_verification": {"status": "Approved"}})

        bundle = DecisionBundle.from_payload(payload)

        assert bundle.failed_checks() == ["face_match", "liveness", "aml"]

    def test_status_spellings_are_parsed(self) -> None:
        for spelling in ("In Review", "InReview", "in_review", "IN REVIEW"):
            assert DecisionBundle.from_payload({"session_id": "S1", "status": spelling}).status == (
                SessionStatus.IN_REVIEW
            )

    def test_unknown_status_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            DecisionBundle.from_payload({"session_id": "S1", "status": "Teleported"})

    @pytest.mark.parametrize("value", [5, None, ["Approved"], {"status": "Approved"}])
    def test_non_string_status_is_value_error(self, value) -> None:
        with pytest.raises(ValueError):
            DecisionBundle.from_payload({"session_id": "S1", "status": value})

    def test_non_string_vendor_data_is_dropped(self, decision_payload) -> None:
        bundle = DecisionBundle.from_payload(decision_payload(vendor_data={"draft": "x"}))

        assert bundle.vendor_data is None


class TestOverallStatus:
    def test_approved_with_passing_checks(self, decision_payload) -> None:
        assert overall_status(DecisionBundle.from_payload(decision_payload())) == "approved"

    def test_approved_with_failing_check_needs_review(self, decision_payload) -> None:
        checks = {
            "id_verification": {"status": "Approved"},
            "face_match": {"status": "Declined"},
            "liveness": {"status": "Approved"},
            "aml": {"status": "Approved"},
        }

        assert overall_status(DecisionBundle.from_payload(decision_payload(checks=checks))) == "needs_review"

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            ("Not Started", "pending"),
            ("In Progress", "pending"),
            ("In Review", "in_review"),
            ("Declined", "declined"),
            ("Abandoned", "abandoned"),
            ("Expired", "expired"),
        ],
    )
    def test_other_statuses(self, status: str, expected: str) -> None:
        assert overall_status(DecisionBundle(session_id="S1", status=SessionStatus.parse(status))) == expected


class TestReconcile:
    def test_entering_approved_marks_draft_verified(self, reconciler, decision_payload) -> None:
        reconciler.sessions.upsert_decision.return_value = _outcome(
            True, SessionStatus.IN_REVIEW, SessionStatus.APPROVED
        )
        reconciler.drafts.mark_identity_verified.return_value = True

        outcome = reconciler.reconcile(DecisionBundle.from_payload(decision_payload()))

        assert outcome.applied is True
        reconciler.drafts.mark_identity_verified.assert_called_once_with(DRAFT_ID)
        assert _audit_actions(reconciler) == [
            ("identity.decision", "applied"),
            ("draft.identity_verified", "verified"),
        ]

    def test_overall_status_is_stored(self, reconciler, decision_payload) -> None:
        reconciler.sessions.upsert_decision.return_value = _outcome(True, None, SessionStatus.APPROVED)

        reconciler.reconcile(DecisionBundle.from_payload(decision_payload()))

        _, summary = reconciler.sessions.upsert_decision.call_args[0]
        assert summary == "approved"

    def test_failed_sub_check_keeps_draft_unverified(self, reconciler, decision_payload) -> None:
        checks = {
            "id_verification": {"status": "Approved"},
            "face_match": {"status": "Approved"},
            "liveness": {"status": "Approved"},
            "aml": {"status": "Declined"},
        }
        reconciler.sessions.upsert_decision.return_value = _outcome(
            True, SessionStatus.IN_REVIEW, SessionStatus.APPROVED
        )

        reconciler.reconcile(DecisionBundle.from_payload(decision_payload(checks=checks)))

        reconciler.drafts.mark_identity_verified.assert_not_called()
        discrepancy = reconciler.audit.record.call_args_list[-1][0][0]
        assert discrepancy.action == "identity.discrepancy"
        assert discrepancy.detail["failed_checks"] == ["aml"]

    def test_ignored_delivery_touches_nothing(self, reconciler, decision_payload) -> None:
        reconciler.sessions.upsert_decision.return_value = _outcome(
            False, SessionStatus.APPROVED, SessionStatus.APPROVED
        )

        outcome = reconciler.reconcile(DecisionBundle.from_payload(decision_payload(status="In Progress")))

        assert outcome.applied is False
        assert outcome.stored_status == SessionStatus.APPROVED
        reconciler.drafts.mark_identity_verified.assert_not_called()
        assert _audit_actions(reconciler) == [("identity.decision", "ignored")]

    def test_replayed_approval_is_not_reapplied(self, reconciler, decision_payload) -> None:
        reconciler.sessions.upsert_decision.return_value = _outcome(
            False, SessionStatus.APPROVED, SessionStatus.APPROVED
        )

        reconciler.reconcile(DecisionBundle.from_payload(decision_payload()))

        reconciler.drafts.mark_identity_verified.assert_not_called()

    def test_non_approved_transition_does_not_touch_draft(self, reconciler, decision_payload) -> None:
        reconciler.sessions.upsert_decision.return_value = _outcome(
            True, SessionStatus.IN_PROGRESS, SessionStatus.IN_REVIEW
        )

        reconciler.reconcile(DecisionBundle.from_payload(decision_payload(status="In Review")))

        reconciler.drafts.mark_identity_verified.assert_not_called()

    def test_draft_id_falls_back_to_stored_session(self, reconciler, decision_payload) -> None:
        reconciler.sessions.upsert_decision.return_value = _outcome(
            True, SessionStatus.IN_REVIEW, SessionStatus.APPROVED
        )
        reconciler.sessions.get.return_value = IdentitySession(
            session_id="S1", status=SessionStatus.APPROVED, vendor_data="draft-from-store"
        )

        reconciler.reconcile(DecisionBundle.from_payload(decision_payload(vendor_data=None)))

        reconciler.drafts.mark_identity_verified.assert_called_once_with("draft-from-store")

    def test_actor_is_recorded(self, reconciler, decision_payload) -> None:
        reconciler.sessions.upsert_decision.return_value = _outcome(
            True, SessionStatus.IN_REVIEW, SessionStatus.APPROVED
        )

        reconciler.reconcile(DecisionBundle.from_payload(decision_payload()), actor="admin:ops")

        actors = {call[0][0].actor for call in reconciler.audit.record.call_args_list}
        assert actors == {"admin:ops"}


class TestRedirectRoute:
    def _session(self, overall: str) -> IdentitySession:
        return IdentitySession(session_id="S1", status=SessionStatus.IN_PROGRESS, overall_status=overall)

    @pytest.mark.parametrize(
        ("overall", "route"),
        [
            ("approved", "success"),
            ("declined", "failed"),
            ("expired", "failed"),
            ("abandoned", "failed"),
            ("in_review", "in_review"),
            ("needs_review", "in_review"),
            ("pending", "pending"),
        ],
    )
    def test_stored_status_picks_route(self, overall: str, route: str) -> None:
        assert redirect_route(self._session(overall)) == route

    def test_stored_status_wins_over_reported(self) -> None:
        assert redirect_route(self._session("declined"), "Approved") == "failed"

    def test_reported_status_is_fallback(self) -> None:
        assert redirect_route(None, "Approved") == "success"
        assert redirect_route(None, "In Review") == "in_review"

    def test_unknown_or_missing_is_pending(self) -> None:
        assert redirect_route(None, "Teleported") == "pending"
        assert redirect_route(None, None) == "pending"
