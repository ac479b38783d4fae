"""PostgreSQL audit trail - Implements AuditLog protocol (insert-only)."""

from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from src.domain.models import AuditEvent


class PostgresAuditLog:
    """Appends to audit_events. There is no update or delete path."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def record(self, event: AuditEvent) -> None:
        sql = """
            INSERT INTO audit_events (actor, action, subject_id, outcome, detail)
            VALUES (%s, %s, %s, %s, %s)
        """
        with self._pool.connection() as conn:
            conn.execute(
                sql,
                (event.actor, event.action, event.subject_id, event.outcome, Jsonb(event.detail)),
            )
            conn.commit()
