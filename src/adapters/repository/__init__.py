"""Repository adapters - Database implementations."""

from .audit import PostgresAuditLog
from .licenses import PostgresLicenseCache
from .postgres import PostgresDraftRepository, run_migrations
from .rate_limits import PostgresRateLimitStore
from .sessions import PostgresSessionRepository

__all__ = [
    "PostgresAuditLog",
    "PostgresDraftRepository",
    "PostgresLicenseCache",
    "PostgresRateLimitStore",
    "PostgresSessionRepository",
    "run_migrations",
]
