"""
Pipeline state enums.

Shared by the domain models, ports and adapters. Values are the strings
stored in PostgreSQL (drafts) or reported by the provider (sessions).
"""

from enum import Enum


class DraftStatus(str, Enum):
    """
    Registration draft lifecycle.

    Progression (forward-only):
        PENDING_EMAIL -> EMAIL_VERIFIED -> LICENSE_VERIFIED
            -> IDENTITY_VERIFIED -> COMPLETED

    License and identity checks may finish in either order; the status
    records the furthest step reached and never moves backwards.

    Terminal States:
    - COMPLETED: converted into a permanent profile
    - CANCELLED: abandoned by the user or locked by failed code attempts
    - EXPIRED: 24h TTL exceeded
    """

    PENDING_EMAIL = "pending_email"
    EMAIL_VERIFIED = "email_verified"
    LICENSE_VERIFIED = "license_verified"
    IDENTITY_VERIFIED = "identity_verified"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (DraftStatus.COMPLETED, DraftStatus.CANCELLED, DraftStatus.EXPIRED)

    def statuses_before(self) -> list["DraftStatus"]:
        """Non-terminal statuses that may advance to this one."""
        order = DRAFT_PROGRESSION
        if self not in order:
            return []
        return order[: order.index(self)]


DRAFT_PROGRESSION = [
    DraftStatus.PENDING_EMAIL,
    DraftStatus.EMAIL_VERIFIED,
    DraftStatus.LICENSE_VERIFIED,
    DraftStatus.IDENTITY_VERIFIED,
]


class SessionStatus(str, Enum):
    """
    Identity verification session states, as reported by the provider.

    State Transitions:
        NOT_STARTED -> IN_PROGRESS -> IN_REVIEW -> {APPROVED | DECLINED}
        any non-terminal -> ABANDONED | EXPIRED

    Terminal States: APPROVED, DECLINED, EXPIRED. A stored terminal status
    is never overwritten by a later delivery.
    """

    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    IN_REVIEW = "In Review"
    APPROVED = "Approved"
    DECLINED = "Declined"
    ABANDONED = "Abandoned"
    EXPIRED = "Expired"

    @property
    def rank(self) -> int:
        return _SESSION_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self.rank == TERMINAL_RANK

    @classmethod
    def parse(cls, value: str) -> "SessionStatus":
        """
        Parse a provider status string.

        Accepts "In Review", "InReview", "in_review" and similar spellings.

        Raises:
            ValueError: If the value is not a string or names no known status
        """
        if not isinstance(value, str):
            raise ValueError(f"Session status must be a string, got {type(value).__name__}")
        key = "".join(ch for ch in value.lower() if ch.isalpha())
        for status in cls:
            if status.value.replace(" ", "").lower() == key:
                return status
        raise ValueError(f"Unknown session status: {value!r}")


TERMINAL_RANK = 3

_SESSION_RANK = {
    SessionStatus.NOT_STARTED: 0,
    SessionStatus.IN_PROGRESS: 1,
    SessionStatus.IN_REVIEW: 2,
    SessionStatus.ABANDONED: 2,
    SessionStatus.APPROVED: TERMINAL_RANK,
    SessionStatus.DECLINED: TERMINAL_RANK,
    SessionStatus.EXPIRED: TERMINAL_RANK,
}


class VerifyResult(Enum):
    """
    Result of an email-code verification attempt.

    Used by verify_email_code() to indicate success or specific failure.
    """

    SUCCESS = "success"
    INVALID_CODE = "invalid_code"
    EXPIRED = "expired"
    LOCKED = "locked"
    NOT_FOUND = "not_found"
