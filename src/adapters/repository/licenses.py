"""
PostgreSQL license cache - Implements LicenseCache protocol.

Rows in license_verifications are insert-only. A fresh registry fetch
adds a new row; the newest found row younger than the TTL is the cache
hit. Drafts pin the row id they were verified against, so a later fetch
never changes what an earlier draft was checked with.
"""

import logging
from datetime import timedelta
from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from src.domain.models import (
    Failed,
    Found,
    LicenseRecord,
    LicenseVerificationResult,
    NotFound,
    RegistryOutcome,
)

logger = logging.getLogger(__name__)

_COLUMNS = "id, document_type, document_number, found, record, error, source, processing_time_ms, fetched_at"


def _row_to_result(row: dict[str, Any]) -> LicenseVerificationResult:
    outcome: RegistryOutcome
    if row["found"]:
        outcome = Found(LicenseRecord.from_dict(row["record"]))
    elif row["error"]:
        outcome = Failed(row["error"])
    else:
        outcome = NotFound()
    return LicenseVerificationResult(
        document_type=row["document_type"],
        document_number=row["document_number"],
        outcome=outcome,
        fetched_at=row["fetched_at"],
        source=row["source"],
        processing_time_ms=row["processing_time_ms"],
        id=row["id"],
    )


class PostgresLicenseCache:
    """Implements LicenseCache protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get_fresh(self, document_number: str, max_age: timedelta) -> LicenseVerificationResult | None:
        sql = f"""
            SELECT {_COLUMNS}
            FROM license_verifications
            WHERE document_number = %s
              AND found
              AND fetched_at > NOW() - %s
            ORDER BY fetched_at DESC, id DESC
            LIMIT 1
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (document_number, max_age))
            row = cursor.fetchone()
            return _row_to_result(row) if row is not None else None

    def save(self, result: LicenseVerificationResult) -> int:
        """
        Insert a found result.

        Raises:
            ValueError: If the result is not Found
        """
        record = result.record
        if record is None:
            raise ValueError("Only found results are cached")

        sql = """
            INSERT INTO license_verifications (
                document_type, document_number, found, record, source,
                processing_time_ms, fetched_at
            )
            VALUES (%s, %s, TRUE, %s, %s, %s, %s)
            RETURNING id
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                sql,
                (
                    result.document_type,
                    result.document_number,
                    Jsonb(record.to_dict()),
                    result.source,
                    result.processing_time_ms,
                    result.fetched_at,
                ),
            )
            row = cursor.fetchone()
            conn.commit()
            return row[0]

    def get(self, result_id: int) -> LicenseVerificationResult | None:
        sql = f"SELECT {_COLUMNS} FROM license_verifications WHERE id = %s"
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (result_id,))
            row = cursor.fetchone()
            return _row_to_result(row) if row is not None else None
