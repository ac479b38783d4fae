"""
PostgreSQL repository adapter - Implements DraftRepository protocol.

This module provides the PostgreSQL implementation of the domain's
draft repository port using psycopg3 with raw SQL, plus the migration
runner used at application start-up.

Concurrency Design:
-------------------
1. **Partial unique index**: at most one non-terminal draft per email.
   create_draft() relies on INSERT ... ON CONFLICT DO NOTHING against it,
   so concurrent registrations for one email produce exactly one draft.

2. **Conditional UPDATEs**: every status change carries the allowed
   source statuses in its WHERE clause; a draft never moves backwards
   and a terminal draft is never touched.

3. **SELECT FOR UPDATE**: verify_email_code() and finalize() lock the
   draft row, serializing attempt counting and account creation.

4. **secrets.compare_digest()**: email codes are compared in constant
   time, and the comparison always runs before any state-based return.
"""

import logging
import secrets
import uuid
from pathlib import Path
from typing import Any

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from src.domain.models import CompletedRegistration, NewDraft, PermanentRecords, RegistrationDraft
from src.domain.states import DraftStatus, VerifyResult

logger = logging.getLogger(__name__)

_TERMINAL = ("completed", "cancelled", "expired")

_DRAFT_COLUMNS = """
    id, verification_token, email, password_hash, first_name, last_name, phone,
    date_of_birth, document_type, document_number, code_attempts, status,
    email_verified_at, license_result_id, identity_session_id,
    identity_verified_at, created_at, expires_at, completed_at
"""

# Compared against when no draft matches, so the comparison always runs.
_DUMMY_CODE = "000000"


def _row_to_draft(row: dict[str, Any]) -> RegistrationDraft:
    return RegistrationDraft(
        id=str(row["id"]),
        verification_token=row["verification_token"],
        email=row["email"],
        password_hash=row["password_hash"],
        status=DraftStatus(row["status"]),
        created_at=row["created_at"],
        expires_at=row["expires_at"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        phone=row["phone"],
        date_of_birth=row["date_of_birth"],
        document_type=row["document_type"],
        document_number=row["document_number"],
        code_attempts=row["code_attempts"],
        email_verified_at=row["email_verified_at"],
        license_result_id=row["license_result_id"],
        identity_session_id=row["identity_session_id"],
        identity_verified_at=row["identity_verified_at"],
        completed_at=row["completed_at"],
    )


class PostgresDraftRepository:
    """
    Implements DraftRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def create_draft(self, draft: NewDraft) -> RegistrationDraft | None:
        """
        Atomically create a draft for an email.

        Stale drafts (past expires_at) for the email are expired first, in
        the same transaction. The insert is skipped when the email already
        owns a live draft (partial unique index) or a permanent account.

        Returns:
            The created draft, or None if the email is already claimed
        """
        expire_sql = f"""
            UPDATE registration_drafts
            SET status = 'expired'
            WHERE email = %s
              AND status NOT IN {_TERMINAL}
              AND expires_at <= NOW()
        """
        insert_sql = f"""
            INSERT INTO registration_drafts (
                id, verification_token, email, password_hash, first_name, last_name,
                phone, date_of_birth, document_type, document_number, email_code,
                status, expires_at
            )
            SELECT %(id)s::uuid, %(token)s::text, %(email)s::text, %(password_hash)s::text,
                   %(first_name)s::text, %(last_name)s::text, %(phone)s::text,
                   %(date_of_birth)s::date, %(document_type)s::text,
                   %(document_number)s::text, %(email_code)s::text, 'pending_email',
                   NOW() + make_interval(hours => %(ttl_hours)s::int)
            WHERE NOT EXISTS (SELECT 1 FROM users WHERE email = %(email)s)
            ON CONFLICT (email) WHERE status NOT IN {_TERMINAL} DO NOTHING
            RETURNING {_DRAFT_COLUMNS}
        """
        params = {
            "id": str(uuid.uuid4()),
            "token": secrets.token_urlsafe(32),
            "email": draft.email,
            "password_hash": draft.password_hash,
            "first_name": draft.first_name,
            "last_name": draft.last_name,
            "phone": draft.phone,
            "date_of_birth": draft.date_of_birth,
            "document_type": draft.document_type,
            "document_number": draft.document_number,
            "email_code": draft.email_code,
            "ttl_hours": draft.ttl_hours,
        }

        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(expire_sql, (draft.email,))
            cursor.execute(insert_sql, params)
            row = cursor.fetchone()
            conn.commit()
            return _row_to_draft(row) if row is not None else None

    def get_by_token(self, token: str) -> RegistrationDraft | None:
        sql = f"SELECT {_DRAFT_COLUMNS} FROM registration_drafts WHERE verification_token = %s"
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (token,))
            row = cursor.fetchone()
            return _row_to_draft(row) if row is not None else None

    def get_by_id(self, draft_id: str) -> RegistrationDraft | None:
        # vendor_data comes from the provider; compare as text so a
        # malformed id is simply not found
        sql = f"SELECT {_DRAFT_COLUMNS} FROM registration_drafts WHERE id::text = %s"
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (draft_id,))
            row = cursor.fetchone()
            return _row_to_draft(row) if row is not None else None

    def replace_email_code(self, draft_id: str, code: str) -> bool:
        sql = """
            UPDATE registration_drafts
            SET email_code = %s, code_attempts = 0
            WHERE id::text = %s AND status = 'pending_email' AND expires_at > NOW()
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (code, draft_id))
            conn.commit()
            return cursor.rowcount == 1

    def verify_email_code(self, token: str, code: str, max_attempts: int) -> VerifyResult:
        """
        Verify the email code with row-level locking.

        Wrong codes increment the attempt counter; the attempt that
        reaches max_attempts cancels the draft. An expired draft is moved
        to EXPIRED on the way out.

        Returns:
            VerifyResult indicating success or specific failure reason
        """
        select_sql = """
            SELECT id, email_code, status, code_attempts, expires_at <= NOW() AS expired
            FROM registration_drafts
            WHERE verification_token = %s
            FOR UPDATE
        """
        verified_sql = """
            UPDATE registration_drafts
            SET status = 'email_verified', email_verified_at = NOW()
            WHERE id = %s AND status = 'pending_email'
        """
        increment_sql = """
            UPDATE registration_drafts
            SET code_attempts = code_attempts + 1
            WHERE id = %s AND status = 'pending_email'
        """
        cancel_sql = """
            UPDATE registration_drafts
            SET status = 'cancelled', code_attempts = code_attempts + 1
            WHERE id = %s AND status = 'pending_email'
        """
        expire_sql = f"""
            UPDATE registration_drafts
            SET status = 'expired'
            WHERE id = %s AND status NOT IN {_TERMINAL}
        """

        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(select_sql, (token,))
            row = cursor.fetchone()

            stored_code = row["email_code"] if row is not None else _DUMMY_CODE
            # Always compare, before any state-based return
            code_valid = secrets.compare_digest(stored_code.encode(), code.encode())

            if row is None:
                conn.commit()
                return VerifyResult.NOT_FOUND

            status = DraftStatus(row["status"])
            if status == DraftStatus.CANCELLED and row["code_attempts"] >= max_attempts:
                conn.commit()
                return VerifyResult.LOCKED
            if status.is_terminal:
                conn.commit()
                return VerifyResult.NOT_FOUND

            if row["expired"]:
                cursor.execute(expire_sql, (row["id"],))
                conn.commit()
                return VerifyResult.EXPIRED

            if status != DraftStatus.PENDING_EMAIL:
                # Already verified; no attempt is counted
                conn.commit()
                return VerifyResult.SUCCESS if code_valid else VerifyResult.INVALID_CODE

            if not code_valid:
                if row["code_attempts"] + 1 >= max_attempts:
                    cursor.execute(cancel_sql, (row["id"],))
                    conn.commit()
                    return VerifyResult.LOCKED
                cursor.execute(increment_sql, (row["id"],))
                conn.commit()
                return VerifyResult.INVALID_CODE

            cursor.execute(verified_sql, (row["id"],))
            conn.commit()
            return VerifyResult.SUCCESS

    def attach_license(
        self,
        draft_id: str,
        result_id: int,
        document_type: str,
        document_number: str,
        advance: bool,
    ) -> None:
        sql = f"""
            UPDATE registration_drafts
            SET license_result_id = %s,
                document_type = %s,
                document_number = %s,
                status = CASE
                    WHEN %s AND status = 'email_verified' THEN 'license_verified'
                    ELSE status
                END
            WHERE id::text = %s AND status NOT IN {_TERMINAL}
        """
        with self._pool.connection() as conn:
            conn.execute(sql, (result_id, document_type, document_number, advance, draft_id))
            conn.commit()

    def link_identity_session(self, draft_id: str, session_id: str) -> None:
        sql = f"""
            UPDATE registration_drafts
            SET identity_session_id = %s, identity_verified_at = NULL
            WHERE id::text = %s AND status NOT IN {_TERMINAL}
        """
        with self._pool.connection() as conn:
            conn.execute(sql, (session_id, draft_id))
            conn.commit()

    def mark_identity_verified(self, draft_id: str) -> bool:
        sql = f"""
            UPDATE registration_drafts
            SET identity_verified_at = NOW(),
                status = CASE
                    WHEN status IN ('email_verified', 'license_verified') THEN 'identity_verified'
                    ELSE status
                END
            WHERE id::text = %s
              AND status NOT IN {_TERMINAL}
              AND identity_verified_at IS NULL
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (draft_id,))
            conn.commit()
            return cursor.rowcount == 1

    def mark_terminal(self, draft_id: str, status: DraftStatus) -> bool:
        if status not in (DraftStatus.CANCELLED, DraftStatus.EXPIRED):
            raise ValueError(f"Not a cancellation status: {status}")
        sql = f"""
            UPDATE registration_drafts
            SET status = %s
            WHERE id::text = %s AND status NOT IN {_TERMINAL}
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (status.value, draft_id))
            conn.commit()
            return cursor.rowcount == 1

    def finalize(self, draft_id: str, records: PermanentRecords) -> CompletedRegistration | None:
        """
        Create users, doctor_profiles and professional_records rows and
        mark the draft COMPLETED, all under a row lock on the draft.

        Returns:
            The created records, or None if the draft was already terminal
            once the lock was acquired
        """
        lock_sql = "SELECT status FROM registration_drafts WHERE id::text = %s FOR UPDATE"
        user_sql = """
            INSERT INTO users (id, email, password_hash, role)
            VALUES (%s, %s, %s, 'doctor')
            RETURNING id, email, role, created_at
        """
        profile_sql = """
            INSERT INTO doctor_profiles (
                id, user_id, first_name, last_name, phone, date_of_birth,
                document_type, document_number, specialty, primary_dashboard,
                allowed_dashboards, requires_approval
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id, user_id, first_name, last_name, specialty,
                      primary_dashboard, allowed_dashboards, requires_approval
        """
        record_sql = """
            INSERT INTO professional_records (
                id, user_id, registration_draft_id, license_number, profession,
                license_result_id, identity_session_id
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING id, user_id, license_number, profession, verified_at
        """
        complete_sql = """
            UPDATE registration_drafts
            SET status = 'completed', completed_at = NOW()
            WHERE id::text = %s
        """

        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(lock_sql, (draft_id,))
            row = cursor.fetchone()
            if row is None or DraftStatus(row["status"]).is_terminal:
                conn.commit()
                return None

            user_id = uuid.uuid4()
            cursor.execute(user_sql, (user_id, records.email, records.password_hash))
            user = cursor.fetchone()
            cursor.execute(
                profile_sql,
                (
                    uuid.uuid4(),
                    user_id,
                    records.first_name,
                    records.last_name,
                    records.phone,
                    records.date_of_birth,
                    records.document_type,
                    records.document_number,
                    records.specialty,
                    records.primary_dashboard,
                    records.allowed_dashboards,
                    records.requires_approval,
                ),
            )
            profile = cursor.fetchone()
            cursor.execute(
                record_sql,
                (
                    uuid.uuid4(),
                    user_id,
                    draft_id,
                    records.license_number,
                    records.profession,
                    records.license_result_id,
                    records.identity_session_id,
                ),
            )
            professional_record = cursor.fetchone()
            cursor.execute(complete_sql, (draft_id,))
            conn.commit()

        return CompletedRegistration(
            user=_jsonable(user),
            profile=_jsonable(profile),
            professional_record=_jsonable(professional_record),
        )


def _jsonable(row: dict[str, Any]) -> dict[str, Any]:
    """Stringify UUIDs and timestamps so the record can be returned as JSON."""
    result: dict[str, Any] = {}
    for key, value in row.items():
        if isinstance(value, uuid.UUID):
            value = str(value)
        elif hasattr(value, "isoformat"):
            value = value.isoformat()
        result[key] = value
    return result


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))
    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        try:
            with pool.connection() as conn:
                conn.execute(sql_file.read_text())
            logger.info("Migration complete: %s", sql_file.name)
        except Exception as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
