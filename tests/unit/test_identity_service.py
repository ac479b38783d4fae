"""
Unit tests for IdentitySessionService.

Provider, repositories and audit log are mocked to verify:
- Required-field validation before any provider call
- Typed error propagation with audit entries on failure
- Administrative approval only from In Review, audited before and after
"""

from unittest.mock import Mock

import pytest

from src.domain.exceptions import (
    ConfigurationError,
    NetworkError,
    NotFoundError,
    StateConflictError,
    UpstreamError,
    ValidationError,
)
from src.domain.identity import IdentitySessionService, parse_decision
from src.domain.models import UpsertOutcome
from src.domain.states import SessionStatus


@pytest.fixture
def provider() -> Mock:
    provider = Mock()
    provider.create_session.return_value = {
        "session_id": "S1",
        "url": "https://verify.example/session/S1",
        "status": "Not Started",
    }
    return provider


@pytest.fixture
def drafts(make_draft) -> Mock:
    drafts = Mock()
    drafts.get_by_token.return_value = make_draft()
    return drafts


@pytest.fixture
def service(provider: Mock, drafts: Mock) -> IdentitySessionService:
    return IdentitySessionService(
        provider=provider,
        drafts=drafts,
        sessions=Mock(),
        reconciler=Mock(),
        audit=Mock(),
        workflow_id="wf-1",
    )


def _audit_outcomes(service: IdentitySessionService) -> list[str]:
    return [call[0][0].outcome for call in service.audit.record.call_args_list]


class TestCreateSession:
    def test_creates_and_links_session(self, service, provider, drafts) -> None:
        session = service.create_session("token-abc", "https://api.example/v1/identity/callback")

        draft = drafts.get_by_token.return_value
        assert session.session_id == "S1"
        assert session.status == SessionStatus.NOT_STARTED
        assert session.url == "https://verify.example/session/S1"
        assert session.vendor_data == draft.id
        service.sessions.create.assert_called_once_with(session)
        drafts.link_identity_session.assert_called_once_with(draft.id, "S1")
        assert _audit_outcomes(service) == ["attempted", "created"]

    def test_sends_registration_data_to_provider(self, service, provider) -> None:
        service.create_session("token-abc", "https://api.example/cb")

        kwargs = provider.create_session.call_args.kwargs
        assert kwargs["workflow_id"] == "wf-1"
        assert kwargs["callback_url"] == "https://api.example/cb"
        assert kwargs["contact_details"]["email"] == "maria@example.com"
        assert kwargs["expected_details"]["date_of_birth"] == "1980-05-17"
        assert kwargs["expected_details"]["identification_number"] == "V-12345678"

    @pytest.mark.parametrize("field", ["first_name", "last_name", "date_of_birth", "document_number"])
    def test_missing_field_is_rejected_before_provider_call(
        self, service, provider, drafts, make_draft, field: str
    ) -> None:
        drafts.get_by_token.return_value = make_draft(**{field: None})

        with pytest.raises(ValidationError) as exc_info:
            service.create_session("token-abc", "https://api.example/cb")

        assert exc_info.value.field == field
        provider.create_session.assert_not_called()
        assert _audit_outcomes(service) == ["attempted", "failed"]
        assert service.audit.record.call_args[0][0].detail["error"] == "ValidationError"

    def test_unverified_email_is_conflict(self, service, provider, drafts, make_draft) -> None:
        drafts.get_by_token.return_value = make_draft(email_verified_at=None)

        with pytest.raises(StateConflictError):
            service.create_session("token-abc", "https://api.example/cb")

        provider.create_session.assert_not_called()
        assert _audit_outcomes(service) == ["attempted", "failed"]

    def test_missing_workflow_is_configuration_error(self, service, provider) -> None:
        service.workflow_id = ""

        with pytest.raises(ConfigurationError):
            service.create_session("token-abc", "https://api.example/cb")

        provider.create_session.assert_not_called()
        assert _audit_outcomes(service) == ["attempted", "failed"]
        service.sessions.create.assert_not_called()

    @pytest.mark.parametrize(
        "error",
        [
            ConfigurationError("identity provider rejected the API credentials"),
            UpstreamError("Identity provider returned HTTP 400", status_code=400, body="{}"),
            NetworkError("Failed to reach identity provider after 3 attempts"),
        ],
    )
    def test_provider_errors_are_audited_and_reraised(self, service, provider, error) -> None:
        provider.create_session.side_effect = error

        with pytest.raises(type(error)):
            service.create_session("token-abc", "https://api.example/cb")

        assert _audit_outcomes(service) == ["attempted", "failed"]
        service.sessions.create.assert_not_called()

    def test_response_without_session_id_is_upstream_error(self, service, provider) -> None:
        provider.create_session.return_value = {"url": "https://verify.example"}

        with pytest.raises(UpstreamError):
            service.create_session("token-abc", "https://api.example/cb")

        assert _audit_outcomes(service) == ["attempted", "failed"]

    def test_unknown_status_is_upstream_error(self, service, provider) -> None:
        provider.create_session.return_value = {"session_id": "S1", "status": "Teleported"}

        with pytest.raises(UpstreamError):
            service.create_session("token-abc", "https://api.example/cb")

        assert _audit_outcomes(service) == ["attempted", "failed"]

    def test_non_string_status_is_upstream_error(self, service, provider) -> None:
        provider.create_session.return_value = {"session_id": "S1", "status": 5}

        with pytest.raises(UpstreamError):
            service.create_session("token-abc", "https://api.example/cb")

        assert _audit_outcomes(service) == ["attempted", "failed"]


class TestGetStatus:
    def test_returns_decision_bundle(self, service, provider) -> None:
        provider.get_decision.return_value = {"session_id": "S1", "status": "In Review"}

        assert service.get_status("S1") == {"session_id": "S1", "status": "In Review"}

    def test_provider_404_is_session_not_found(self, service, provider) -> None:
        provider.get_decision.side_effect = NotFoundError("session not found or expired")

        with pytest.raises(NotFoundError, match="session not found or expired"):
            service.get_status("S404")


class TestAdminApprove:
    def test_in_review_session_is_approved(self, service, provider, decision_payload) -> None:
        provider.get_decision.side_effect = [
            decision_payload(status="In Review"),
            decision_payload(status="Approved"),
        ]
        service.reconciler.reconcile.return_value = UpsertOutcome(
            applied=True, previous_status=SessionStatus.IN_REVIEW, stored_status=SessionStatus.APPROVED
        )

        bundle = service.admin_approve("S1", actor="ops", comment="documents checked by hand")

        provider.update_status.assert_called_once_with("S1", "Approved", "documents checked by hand")
        assert bundle.status == SessionStatus.APPROVED
        reconciled, = service.reconciler.reconcile.call_args[0]
        assert reconciled.session_id == "S1"
        assert service.reconciler.reconcile.call_args.kwargs["actor"] == "admin:ops"
        assert _audit_outcomes(service) == ["attempted", "approved"]

    @pytest.mark.parametrize("status", ["Not Started", "In Progress", "Approved", "Declined", "Expired"])
    def test_other_statuses_are_rejected(self, service, provider, decision_payload, status: str) -> None:
        provider.get_decision.return_value = decision_payload(status=status)

        with pytest.raises(StateConflictError):
            service.admin_approve("S1", actor="ops")

        provider.update_status.assert_not_called()
        assert _audit_outcomes(service) == ["attempted", "failed"]

    def test_unknown_session_is_audited_and_not_found(self, service, provider) -> None:
        provider.get_decision.side_effect = NotFoundError("session not found or expired")

        with pytest.raises(NotFoundError):
            service.admin_approve("S404", actor="ops")

        assert _audit_outcomes(service) == ["attempted", "failed"]

    def test_audit_names_the_administrator(self, service, provider, decision_payload) -> None:
        provider.get_decision.return_value = decision_payload(status="Declined")

        with pytest.raises(StateConflictError):
            service.admin_approve("S1", actor="ops")

        actors = {call[0][0].actor for call in service.audit.record.call_args_list}
        assert actors == {"ops"}


class TestParseDecision:
    def test_session_id_defaults_to_requested_id(self) -> None:
        bundle = parse_decision("S9", {"status": "In Progress"})

        assert bundle.session_id == "S9"

    def test_missing_status_is_upstream_error(self) -> None:
        with pytest.raises(UpstreamError):
            parse_decision("S9", {})
