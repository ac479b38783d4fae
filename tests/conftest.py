"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- Draft, registry result and provider decision factories
- A migrated database connection pool (integration and adversarial)
"""

from collections.abc import Callable, Generator
from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import run_migrations
from src.config.settings import get_settings
from src.domain.models import (
    Found,
    LicenseRecord,
    LicenseVerificationResult,
    RegistrationDraft,
)
from src.domain.states import DraftStatus

# Deletion order respects foreign keys
TABLES = (
    "professional_records",
    "doctor_profiles",
    "users",
    "registration_drafts",
    "identity_sessions",
    "license_verifications",
    "audit_events",
    "rate_limit_windows",
)

ALL_CHECKS_APPROVED = {
    "id_verification": {"status": "Approved"},
    "face_match": {"status": "Approved", "score": 97.5},
    "liveness": {"status": "Approved"},
    "aml": {"status": "Approved", "total_hits": 0},
}


@pytest.fixture
def make_draft() -> Callable[..., RegistrationDraft]:
    """Factory for RegistrationDraft objects with sensible defaults."""

    def factory(**overrides: Any) -> RegistrationDraft:
        now = datetime.now(timezone.utc)
        values: dict[str, Any] = {
            "id": "7b0c5f8e-2d7e-4a59-9a43-2f3c1e9d6a10",
            "verification_token": "token-abc",
            "email": "maria@example.com",
            "password_hash": "$2b$10$hash",
            "status": DraftStatus.EMAIL_VERIFIED,
            "created_at": now,
            "expires_at": now + timedelta(hours=24),
            "first_name": "Maria",
            "last_name": "Perez",
            "phone": "+584141234567",
            "date_of_birth": date(1980, 5, 17),
            "document_type": "cedula_identidad",
            "document_number": "V-12345678",
            "email_verified_at": now,
        }
        values.update(overrides)
        return RegistrationDraft(**values)

    return factory


@pytest.fixture
def make_found_result() -> Callable[..., LicenseVerificationResult]:
    """Factory for Found registry results."""

    def factory(
        profession: str = "MÉDICO(A) CIRUJANO(A)",
        specialty: str | None = None,
        name: str = "MARIA PEREZ",
        **overrides: Any,
    ) -> LicenseVerificationResult:
        values: dict[str, Any] = {
            "document_type": "cedula_identidad",
            "document_number": "V-12345678",
            "outcome": Found(
                LicenseRecord(
                    name=name,
                    profession=profession,
                    license_number="MPPS-67301",
                    registration_date="2005-01-13",
                    specialty=specialty,
                )
            ),
            "fetched_at": datetime.now(timezone.utc),
        }
        values.update(overrides)
        return LicenseVerificationResult(**values)

    return factory


@pytest.fixture
def decision_payload() -> Callable[..., dict[str, Any]]:
    """Factory for provider webhook / decision payloads."""

    def factory(
        session_id: str = "S1",
        status: str = "Approved",
        checks: dict[str, Any] | None = None,
        vendor_data: str | None = "7b0c5f8e-2d7e-4a59-9a43-2f3c1e9d6a10",
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "session_id": session_id,
            "status": status,
            "workflow_id": "wf-1",
            "decision": dict(ALL_CHECKS_APPROVED if checks is None else checks),
        }
        if vendor_data is not None:
            payload["vendor_data"] = vendor_data
        return payload

    return factory


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Migrated connection pool for integration and adversarial tests."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=True,
    )
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty every pipeline table before the test."""
    with pool.connection() as conn:
        for table in TABLES:
            conn.execute(f"DELETE FROM {table}")
        conn.commit()
    yield
