"""
Adversarial tests for race condition attack prevention.

Verifies that concurrent operations are handled atomically, so that
racing requests cannot:
- Create two live drafts or two accounts for one email
- Finalize a registration twice
- Apply one identity decision twice or let a late delivery undo it

Atomic SQL (ON CONFLICT against a partial unique index, SELECT FOR
UPDATE, and the guarded session upsert) carries all of these.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from unittest.mock import Mock

import pytest
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresDraftRepository
from src.adapters.repository.sessions import PostgresSessionRepository
from src.domain.models import DecisionBundle, NewDraft, PermanentRecords
from src.domain.states import SessionStatus
from src.domain.webhooks import WebhookReconciler

pytestmark = [pytest.mark.adversarial, pytest.mark.usefixtures("clean_database")]

NUM_ATTACKERS = 8


def run_concurrently(task, count: int = NUM_ATTACKERS) -> list:
    with ThreadPoolExecutor(max_workers=count) as executor:
        futures = [executor.submit(task, i) for i in range(count)]
        return [f.result() for f in futures]


def new_draft(email: str = "attack@example.com") -> NewDraft:
    return NewDraft(
        email=email,
        password_hash="$2b$10$attackhash",
        email_code="123456",
        first_name="Maria",
        last_name="Perez",
        date_of_birth=date(1980, 5, 17),
        document_type="cedula_identidad",
        document_number="V-12345678",
    )


def records(email: str = "attack@example.com") -> PermanentRecords:
    return PermanentRecords(
        email=email,
        password_hash="$2b$10$attackhash",
        first_name="Maria",
        last_name="Perez",
        phone=None,
        date_of_birth=date(1980, 5, 17),
        document_type="cedula_identidad",
        document_number="V-12345678",
        license_number="MPPS-67301",
        profession="MÉDICO(A) CIRUJANO(A)",
        specialty="MEDICINA GENERAL",
        primary_dashboard="general-medicine",
        allowed_dashboards=["general-medicine"],
        requires_approval=False,
        license_result_id=1,
        identity_session_id="S1",
    )


def count(pool: ConnectionPool, sql: str, params: tuple = ()) -> int:
    with pool.connection() as conn:
        return conn.execute(sql, params).fetchone()[0]


class TestDraftRaces:
    def test_concurrent_registrations_create_one_draft(self, pool: ConnectionPool) -> None:
        repository = PostgresDraftRepository(pool)

        results = run_concurrently(lambda _: repository.create_draft(new_draft()))

        created = [draft for draft in results if draft is not None]
        assert len(created) == 1, f"{len(created)} drafts created for one email"
        live = count(
            pool,
            "SELECT COUNT(*) FROM registration_drafts WHERE email = %s AND status = 'pending_email'",
            ("attack@example.com",),
        )
        assert live == 1

    def test_different_emails_do_not_block_each_other(self, pool: ConnectionPool) -> None:
        repository = PostgresDraftRepository(pool)

        results = run_concurrently(lambda i: repository.create_draft(new_draft(f"user{i}@example.com")))

        assert all(draft is not None for draft in results)

    def test_concurrent_finalize_creates_one_account(self, pool: ConnectionPool) -> None:
        repository = PostgresDraftRepository(pool)
        draft = repository.create_draft(new_draft())

        results = run_concurrently(lambda _: repository.finalize(draft.id, records()))

        assert sum(1 for result in results if result is not None) == 1
        assert count(pool, "SELECT COUNT(*) FROM users") == 1
        assert count(pool, "SELECT COUNT(*) FROM professional_records") == 1
        assert count(pool, "SELECT COUNT(*) FROM doctor_profiles") == 1


class TestWebhookRaces:
    def _bundle(self, status: str, draft_id: str) -> DecisionBundle:
        return DecisionBundle.from_payload(
            {
                "session_id": "S1",
                "status": status,
                "vendor_data": draft_id,
                "decision": {
                    "id_verification": {"status": "Approved"},
                    "face_match": {"status": "Approved"},
                    "liveness": {"status": "Approved"},
                    "aml": {"status": "Approved"},
                },
            }
        )

    def test_concurrent_approvals_apply_once(self, pool: ConnectionPool) -> None:
        drafts = PostgresDraftRepository(pool)
        draft = drafts.create_draft(new_draft())
        audit = Mock()
        reconciler = WebhookReconciler(sessions=PostgresSessionRepository(pool), drafts=drafts, audit=audit)

        outcomes = run_concurrently(lambda _: reconciler.reconcile(self._bundle("Approved", draft.id)))

        assert sum(1 for outcome in outcomes if outcome.applied) == 1
        assert all(outcome.stored_status == SessionStatus.APPROVED for outcome in outcomes)
        assert count(pool, "SELECT COUNT(*) FROM identity_sessions") == 1
        verified_events = [
            call for call in audit.record.call_args_list if call[0][0].action == "draft.identity_verified"
        ]
        assert len(verified_events) == 1

    def test_mixed_deliveries_settle_on_terminal_status(self, pool: ConnectionPool) -> None:
        drafts = PostgresDraftRepository(pool)
        draft = drafts.create_draft(new_draft())
        sessions = PostgresSessionRepository(pool)
        reconciler = WebhookReconciler(sessions=sessions, drafts=drafts, audit=Mock())
        statuses = ["In Progress", "Approved", "In Review", "Not Started"] * 3

        run_concurrently(lambda i: reconciler.reconcile(self._bundle(statuses[i], draft.id)), len(statuses))

        stored = sessions.get("S1")
        assert stored.status == SessionStatus.APPROVED
        assert stored.overall_status == "approved"
