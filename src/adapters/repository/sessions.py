"""
PostgreSQL identity session store - Implements SessionRepository protocol.

Webhook Idempotency Design:
---------------------------
upsert_decision() is a single INSERT ... ON CONFLICT DO UPDATE whose
WHERE clause is the whole concurrency-control story:

1. **Terminal guard**: a stored row with status_rank 3 (Approved,
   Declined, Expired) is never updated.

2. **No regression**: a delivery whose rank is below the stored rank is
   ignored, so a late In Progress cannot undo In Review.

3. **Replay no-op**: a delivery identical to the stored row changes
   nothing (IS DISTINCT FROM).

Because each condition only compares the stored row with the delivery,
duplicate and concurrent deliveries commute; no external lock is taken.
"""

import logging
from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from src.domain.models import DecisionBundle, IdentitySession, UpsertOutcome
from src.domain.states import TERMINAL_RANK, SessionStatus

logger = logging.getLogger(__name__)

_COLUMNS = """
    session_id, workflow_id, vendor_data, url, status, overall_status,
    decision, redirect_status, created_at, updated_at
"""


def _row_to_session(row: dict[str, Any]) -> IdentitySession:
    return IdentitySession(
        session_id=row["session_id"],
        status=SessionStatus(row["status"]),
        workflow_id=row["workflow_id"],
        vendor_data=row["vendor_data"],
        url=row["url"],
        overall_status=row["overall_status"],
        checks=row["decision"] or {},
        redirect_status=row["redirect_status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresSessionRepository:
    """Implements SessionRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create(self, session: IdentitySession) -> None:
        sql = """
            INSERT INTO identity_sessions (
                session_id, workflow_id, vendor_data, url, status, status_rank, overall_status
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (session_id) DO NOTHING
        """
        with self._pool.connection() as conn:
            conn.execute(
                sql,
                (
                    session.session_id,
                    session.workflow_id,
                    session.vendor_data,
                    session.url,
                    session.status.value,
                    session.status.rank,
                    session.overall_status,
                ),
            )
            conn.commit()

    def upsert_decision(self, bundle: DecisionBundle, overall_status: str) -> UpsertOutcome:
        """
        Apply a provider decision keyed by session_id.

        Returns:
            Whether the delivery was applied, the status seen before it,
            and the status stored afterwards
        """
        upsert_sql = f"""
            WITH previous AS (
                SELECT status FROM identity_sessions WHERE session_id = %(session_id)s
            ),
            upserted AS (
                INSERT INTO identity_sessions (
                    session_id, workflow_id, vendor_data, status, status_rank,
                    overall_status, decision
                )
                VALUES (
                    %(session_id)s, %(workflow_id)s, %(vendor_data)s, %(status)s,
                    %(rank)s, %(overall_status)s, %(decision)s
                )
                ON CONFLICT (session_id) DO UPDATE
                SET status = EXCLUDED.status,
                    status_rank = EXCLUDED.status_rank,
                    overall_status = EXCLUDED.overall_status,
                    decision = EXCLUDED.decision,
                    workflow_id = COALESCE(EXCLUDED.workflow_id, identity_sessions.workflow_id),
                    vendor_data = COALESCE(EXCLUDED.vendor_data, identity_sessions.vendor_data),
                    updated_at = NOW()
                WHERE identity_sessions.status_rank < {TERMINAL_RANK}
                  AND EXCLUDED.status_rank >= identity_sessions.status_rank
                  AND (identity_sessions.status, identity_sessions.overall_status, identity_sessions.decision)
                      IS DISTINCT FROM
                      (EXCLUDED.status, EXCLUDED.overall_status, EXCLUDED.decision)
                RETURNING status
            )
            SELECT
                (SELECT status FROM upserted) AS applied_status,
                (SELECT status FROM previous) AS previous_status
        """
        current_sql = "SELECT status FROM identity_sessions WHERE session_id = %s"
        params = {
            "session_id": bundle.session_id,
            "workflow_id": bundle.workflow_id,
            "vendor_data": bundle.vendor_data,
            "status": bundle.status.value,
            "rank": bundle.status.rank,
            "overall_status": overall_status,
            "decision": Jsonb(bundle.checks),
        }

        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(upsert_sql, params)
            row = cursor.fetchone()
            previous = SessionStatus(row["previous_status"]) if row["previous_status"] else None

            if row["applied_status"] is not None:
                conn.commit()
                return UpsertOutcome(
                    applied=True,
                    previous_status=previous,
                    stored_status=SessionStatus(row["applied_status"]),
                )

            cursor.execute(current_sql, (bundle.session_id,))
            current = cursor.fetchone()
            conn.commit()
            return UpsertOutcome(
                applied=False,
                previous_status=previous,
                stored_status=SessionStatus(current["status"]),
            )

    def get(self, session_id: str) -> IdentitySession | None:
        sql = f"SELECT {_COLUMNS} FROM identity_sessions WHERE session_id = %s"
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (session_id,))
            row = cursor.fetchone()
            return _row_to_session(row) if row is not None else None

    def record_redirect_status(self, session_id: str, status: str) -> None:
        """Advisory write; touches only redirect_status."""
        sql = "UPDATE identity_sessions SET redirect_status = %s WHERE session_id = %s"
        with self._pool.connection() as conn:
            conn.execute(sql, (status, session_id))
            conn.commit()
