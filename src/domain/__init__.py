"""
Domain layer - Pure business logic with zero framework imports.

This package contains the credential verification pipeline: registration
drafts, registry lookups and classification, identity sessions, webhook
reconciliation and the completion gate. It defines its own port
interfaces for infrastructure abstraction, ensuring true hexagonal
architecture decoupling.
"""

from .classification import classify, match_name
from .completion import CompletionGate
from .exceptions import (
    ConfigurationError,
    EmailAlreadyClaimed,
    InternalError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    RegistrationError,
    RegistrationNotReady,
    StateConflictError,
    UpstreamError,
    ValidationError,
    VerificationFailed,
)
from .identity import IdentitySessionService
from .licensing import LicenseAttachmentService, LicenseLookupService
from .ports import EmailSender
from .registration import RegistrationService
from .states import DraftStatus, SessionStatus, VerifyResult
from .webhooks import WebhookReconciler

__all__ = [
    "CompletionGate",
    "ConfigurationError",
    "DraftStatus",
    "EmailAlreadyClaimed",
    "EmailSender",
    "IdentitySessionService",
    "InternalError",
    "LicenseAttachmentService",
    "LicenseLookupService",
    "NetworkError",
    "NotFoundError",
    "RateLimitedError",
    "RegistrationError",
    "RegistrationNotReady",
    "RegistrationService",
    "SessionStatus",
    "StateConflictError",
    "UpstreamError",
    "ValidationError",
    "VerificationFailed",
    "VerifyResult",
    "WebhookReconciler",
    "classify",
    "match_name",
]
