"""
Domain models - Plain dataclasses passed between services and ports.

Nothing here performs I/O. Registry outcomes are modelled as a tagged
variant (Found | NotFound | Failed) so that every caller handles all
three cases explicitly.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Union

from .states import DraftStatus, SessionStatus

REGISTRY_SOURCE = "sacs"

# Decision sub-checks that must all be present and approved.
REQUIRED_CHECKS = ("id_verification", "face_match", "liveness", "aml")


@dataclass(frozen=True)
class NewDraft:
    """Input for DraftRepository.create_draft()."""

    email: str
    password_hash: str
    email_code: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    date_of_birth: date | None = None
    document_type: str | None = None
    document_number: str | None = None
    ttl_hours: int = 24


@dataclass
class RegistrationDraft:
    """In-flight registration keyed by an unguessable verification token."""

    id: str
    verification_token: str
    email: str
    password_hash: str
    status: DraftStatus
    created_at: datetime
    expires_at: datetime
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    date_of_birth: date | None = None
    document_type: str | None = None
    document_number: str | None = None
    code_attempts: int = 0
    email_verified_at: datetime | None = None
    license_result_id: int | None = None
    identity_session_id: str | None = None
    identity_verified_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass(frozen=True)
class LicenseRecord:
    """Fields scraped from a registry hit."""

    name: str
    profession: str
    license_number: str
    registration_date: str
    specialty: str | None = None
    volume: str | None = None
    folio: str | None = None
    has_postgraduate: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "profession": self.profession,
            "specialty": self.specialty,
            "license_number": self.license_number,
            "registration_date": self.registration_date,
            "volume": self.volume,
            "folio": self.folio,
            "has_postgraduate": self.has_postgraduate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LicenseRecord":
        return cls(
            name=data["name"],
            profession=data["profession"],
            license_number=data["license_number"],
            registration_date=data["registration_date"],
            specialty=data.get("specialty"),
            volume=data.get("volume"),
            folio=data.get("folio"),
            has_postgraduate=bool(data.get("has_postgraduate", False)),
        )


@dataclass(frozen=True)
class Found:
    record: LicenseRecord


@dataclass(frozen=True)
class NotFound:
    reason: str = "no professional registered for this document"


@dataclass(frozen=True)
class Failed:
    reason: str


RegistryOutcome = Union[Found, NotFound, Failed]


@dataclass(frozen=True)
class LicenseVerificationResult:
    """
    Outcome of a registry lookup for one normalized document number.

    Immutable once built. A fresh fetch produces a new result (and a new
    cache row) rather than mutating an old one.
    """

    document_type: str
    document_number: str
    outcome: RegistryOutcome
    fetched_at: datetime
    source: str = REGISTRY_SOURCE
    cached: bool = False
    processing_time_ms: int = 0
    id: int | None = None

    @property
    def found(self) -> bool:
        return isinstance(self.outcome, Found)

    @property
    def record(self) -> LicenseRecord | None:
        if isinstance(self.outcome, Found):
            return self.outcome.record
        return None

    @property
    def error(self) -> str | None:
        if isinstance(self.outcome, (NotFound, Failed)):
            return self.outcome.reason
        return None


@dataclass(frozen=True)
class ProfessionClassification:
    valid_professional: bool
    profession: str
    specialty: str | None
    legal_status: str
    primary_dashboard: str
    allowed_dashboards: list[str]
    requires_approval: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid_professional": self.valid_professional,
            "profession": self.profession,
            "specialty": self.specialty,
            "legal_status": self.legal_status,
            "primary_dashboard": self.primary_dashboard,
            "allowed_dashboards": list(self.allowed_dashboards),
            "requires_approval": self.requires_approval,
        }


@dataclass(frozen=True)
class NameMatch:
    registry_name: str
    registered_name: str
    matches: bool
    confidence: float


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


@dataclass(frozen=True)
class DecisionBundle:
    """
    Provider decision for a session, as delivered by webhook or fetched
    from the decision endpoint.
    """

    session_id: str
    status: SessionStatus
    workflow_id: str | None = None
    vendor_data: str | None = None
    checks: dict[str, dict[str, Any]] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "DecisionBundle":
        """
        Build a bundle from a provider payload.

        The sub-check objects may sit at the top level or under a
        "decision" key; "passive_liveness" is accepted for "liveness".

        Raises:
            KeyError: If session_id or status is missing
            ValueError: If status names no known session status
        """
        session_id = payload["session_id"]
        status = SessionStatus.parse(payload["status"])
        decision = payload.get("decision")
        if not isinstance(decision, dict):
            decision = {}

        checks: dict[str, dict[str, Any]] = {}
        for name in REQUIRED_CHECKS:
            aliases = (name, "passive_liveness") if name == "liveness" else (name,)
            for alias in aliases:
                value = decision.get(alias) or payload.get(alias)
                if isinstance(value, dict):
                    checks[name] = value
                    break

        return cls(
            session_id=str(session_id),
            status=status,
            workflow_id=_text(payload.get("workflow_id") or decision.get("workflow_id")),
            vendor_data=_text(payload.get("vendor_data") or decision.get("vendor_data")),
            checks=checks,
            raw=payload,
        )

    def failed_checks(self) -> list[str]:
        """Sub-checks that are missing or not approved."""
        failed = []
        for name in REQUIRED_CHECKS:
            check = self.checks.get(name)
            if check is None or str(check.get("status", "")).strip().lower() != "approved":
                failed.append(name)
        return failed

    @property
    def checks_passed(self) -> bool:
        return not self.failed_checks()


@dataclass
class IdentitySession:
    session_id: str
    status: SessionStatus
    workflow_id: str | None = None
    vendor_data: str | None = None
    url: str | None = None
    overall_status: str = "pending"
    checks: dict[str, dict[str, Any]] = field(default_factory=dict)
    redirect_status: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def checks_passed(self) -> bool:
        bundle = DecisionBundle(session_id=self.session_id, status=self.status, checks=self.checks)
        return bundle.checks_passed


@dataclass(frozen=True)
class UpsertOutcome:
    """
    Result of applying a decision to the session store.

    applied is False when the terminal/rank guard rejected the delivery.
    previous_status is None when the session row was created.
    """

    applied: bool
    previous_status: SessionStatus | None
    stored_status: SessionStatus

    @property
    def entered_approved(self) -> bool:
        return (
            self.applied
            and self.stored_status == SessionStatus.APPROVED
            and self.previous_status != SessionStatus.APPROVED
        )


@dataclass(frozen=True)
class AuditEvent:
    actor: str
    action: str
    subject_id: str | None
    outcome: str
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Readiness:
    ready: bool
    missing: list[str]
    data: dict[str, Any]


@dataclass(frozen=True)
class PermanentRecords:
    """Everything finalize() writes, derived from the verified draft."""

    email: str
    password_hash: str
    first_name: str | None
    last_name: str | None
    phone: str | None
    date_of_birth: date | None
    document_type: str
    document_number: str
    license_number: str
    profession: str
    specialty: str
    primary_dashboard: str
    allowed_dashboards: list[str]
    requires_approval: bool
    license_result_id: int
    identity_session_id: str


@dataclass(frozen=True)
class CompletedRegistration:
    user: dict[str, Any]
    profile: dict[str, Any]
    professional_record: dict[str, Any]
