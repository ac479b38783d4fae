"""PostgreSQL fixed-window counters - Implements RateLimitStore protocol."""

from psycopg_pool import ConnectionPool


class PostgresRateLimitStore:
    """
    Counters keyed by (key, window_start).

    The increment is a single upsert, so concurrent hits from several
    server instances are counted exactly.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def hit(self, key: str, window_start: int, window_seconds: int) -> int:
        upsert_sql = """
            INSERT INTO rate_limit_windows (key, window_start, count, expires_at)
            VALUES (%s, %s, 1, to_timestamp(%s))
            ON CONFLICT (key, window_start) DO UPDATE
            SET count = rate_limit_windows.count + 1
            RETURNING count
        """
        # A new window makes the key's older windows dead weight
        purge_sql = "DELETE FROM rate_limit_windows WHERE key = %s AND window_start < %s"

        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(upsert_sql, (key, window_start, window_start + window_seconds))
            count = cursor.fetchone()[0]
            if count == 1:
                cursor.execute(purge_sql, (key, window_start))
            conn.commit()
            return count
