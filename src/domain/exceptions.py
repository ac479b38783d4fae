"""
Domain exceptions - Semantic error types for the verification pipeline.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
The API layer maps each type to a single HTTP status.
"""


class RegistrationError(Exception):
    """Base class for registration domain errors."""

    pass


class EmailAlreadyClaimed(RegistrationError):
    """Email already owns a live (non-terminal) registration draft."""

    pass


class VerificationFailed(RegistrationError):
    """Email code mismatch or too many attempts."""

    pass


class ConfigurationError(RegistrationError):
    """Provider credentials or settings are missing or rejected."""

    pass


class ValidationError(RegistrationError):
    """Caller input is malformed or incomplete."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(RegistrationError):
    """Unknown or expired draft, registry miss, or unknown provider session."""

    pass


class RateLimitedError(RegistrationError):
    """Request exceeded its fixed-window budget or the lookup capacity."""

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamError(RegistrationError):
    """External system answered with a failure or an unparseable body."""

    def __init__(
        self, message: str, status_code: int | None = None, body: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class NetworkError(UpstreamError):
    """External system could not be reached at all."""

    pass


class StateConflictError(RegistrationError):
    """Operation is not allowed in the current state."""

    pass


class RegistrationNotReady(RegistrationError):
    """Finalize requested before every prerequisite passed."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__("registration not ready")
        self.missing = missing


class InternalError(RegistrationError):
    """Unexpected failure."""

    pass
