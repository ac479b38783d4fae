"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

import secrets
from datetime import timedelta

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from psycopg_pool import ConnectionPool

from src.adapters.kyc.didit import DiditClient
from src.adapters.registry.browser import BrowserPool
from src.adapters.registry.scraper import SacsRegistryScraper
from src.adapters.repository.audit import PostgresAuditLog
from src.adapters.repository.licenses import PostgresLicenseCache
from src.adapters.repository.postgres import PostgresDraftRepository
from src.adapters.repository.rate_limits import PostgresRateLimitStore
from src.adapters.repository.sessions import PostgresSessionRepository
from src.adapters.smtp.console import ConsoleEmailSender
from src.config.settings import Settings, get_settings
from src.domain.completion import CompletionGate
from src.domain.exceptions import ConfigurationError
from src.domain.identity import IdentitySessionService
from src.domain.licensing import LicenseAttachmentService, LicenseLookupService
from src.domain.rate_limit import FixedWindowRateLimiter
from src.domain.registration import RegistrationService
from src.domain.webhooks import WebhookReconciler


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_draft_repository(request: Request) -> PostgresDraftRepository:
    return PostgresDraftRepository(get_pool(request))


def get_license_cache(request: Request) -> PostgresLicenseCache:
    return PostgresLicenseCache(get_pool(request))


def get_session_repository(request: Request) -> PostgresSessionRepository:
    return PostgresSessionRepository(get_pool(request))


def get_audit_log(request: Request) -> PostgresAuditLog:
    return PostgresAuditLog(get_pool(request))


def get_rate_limit_store(request: Request) -> PostgresRateLimitStore:
    return PostgresRateLimitStore(get_pool(request))


def get_email_sender() -> ConsoleEmailSender:
    return ConsoleEmailSender(valid_hours=get_settings().draft_ttl_hours)


def get_browser_pool(request: Request) -> BrowserPool:
    """Browser pool created in the app lifespan (one per process)."""
    return request.app.state.browser_pool


def get_identity_provider(request: Request) -> DiditClient:
    """KYC client created in the app lifespan."""
    return request.app.state.kyc_client


def get_registration_service(request: Request) -> RegistrationService:
    """
    Create registration service with injected dependencies.

    Wires together the draft repository, email sender, audit log and the
    per-email code rate limiter.
    """
    settings = get_settings()
    return RegistrationService(
        repository=get_draft_repository(request),
        email_sender=get_email_sender(),
        audit=get_audit_log(request),
        email_rate_limiter=FixedWindowRateLimiter(
            store=get_rate_limit_store(request),
            limit=settings.email_code_rate_limit,
            window_seconds=settings.email_code_rate_window_seconds,
            scope="email-code",
        ),
        code_length=settings.email_code_length,
        ttl_hours=settings.draft_ttl_hours,
        bcrypt_cost=settings.bcrypt_cost,
        max_code_attempts=settings.max_code_attempts,
    )


def get_lookup_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    settings = get_settings()
    return FixedWindowRateLimiter(
        store=get_rate_limit_store(request),
        limit=settings.lookup_rate_limit,
        window_seconds=settings.lookup_rate_window_seconds,
        scope="lookup",
    )


def get_lookup_service(request: Request) -> LicenseLookupService:
    settings = get_settings()
    scraper = SacsRegistryScraper(
        pool=get_browser_pool(request),
        url=settings.registry_url,
        navigation_timeout=settings.registry_navigation_timeout,
        step_timeout=settings.registry_step_timeout,
        results_timeout=settings.registry_results_timeout,
        specialty_timeout=settings.registry_specialty_timeout,
        deadline=settings.registry_deadline,
        max_retries=settings.registry_max_retries,
        backoff_base=settings.registry_backoff_base,
        backoff_max=settings.registry_backoff_max,
    )
    return LicenseLookupService(
        scraper=scraper,
        cache=get_license_cache(request),
        cache_ttl=timedelta(hours=settings.license_cache_ttl_hours),
        audit=get_audit_log(request),
    )


def get_license_attachment_service(request: Request) -> LicenseAttachmentService:
    return LicenseAttachmentService(
        lookup_service=get_lookup_service(request),
        drafts=get_draft_repository(request),
        audit=get_audit_log(request),
    )


def get_webhook_reconciler(request: Request) -> WebhookReconciler:
    return WebhookReconciler(
        sessions=get_session_repository(request),
        drafts=get_draft_repository(request),
        audit=get_audit_log(request),
    )


def get_identity_service(request: Request) -> IdentitySessionService:
    settings = get_settings()
    return IdentitySessionService(
        provider=get_identity_provider(request),
        drafts=get_draft_repository(request),
        sessions=get_session_repository(request),
        reconciler=get_webhook_reconciler(request),
        audit=get_audit_log(request),
        workflow_id=settings.kyc_workflow_id,
        language=settings.kyc_language,
        country=settings.kyc_country,
    )


def get_completion_gate(request: Request) -> CompletionGate:
    return CompletionGate(
        drafts=get_draft_repository(request),
        licenses=get_license_cache(request),
        sessions=get_session_repository(request),
        audit=get_audit_log(request),
    )


# HTTP BASIC AUTH security scheme for OpenAPI documentation
http_basic = HTTPBasic()


def get_admin_actor(
    credentials: HTTPBasicCredentials = Depends(http_basic),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Authenticate an administrator via HTTP BASIC AUTH.

    FastAPI's HTTPBasic automatically returns 401 for a missing or
    malformed Authorization header. Both fields are compared in constant
    time, and both comparisons always run.

    Returns:
        The administrator username, used as the audit actor

    Raises:
        ConfigurationError: No administrator password configured
        HTTPException: 401 for wrong credentials
    """
    if not settings.admin_password:
        raise ConfigurationError("administrator credentials are not configured")

    username_ok = secrets.compare_digest(credentials.username.encode(), settings.admin_username.encode())
    password_ok = secrets.compare_digest(credentials.password.encode(), settings.admin_password.encode())
    if not (username_ok and password_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid administrator credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username
