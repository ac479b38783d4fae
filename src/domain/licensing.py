"""
License lookup and attachment services.

The lookup service fronts the registry scraper with a read-through cache
of found results. Whatever the scraper does, lookup() returns a terminal
LicenseVerificationResult; only an admission failure (the browser pool
is saturated) is raised to the caller, as a RateLimitedError.
"""

import logging
import time
from dataclasses import dataclass, replace
from datetime import timedelta

from .classification import classify, match_name
from .documents import mask_document, normalize_document
from .exceptions import RateLimitedError, RegistrationError, StateConflictError
from .models import (
    AuditEvent,
    Failed,
    LicenseVerificationResult,
    NameMatch,
    ProfessionClassification,
)
from .ports import AuditLog, DraftRepository, LicenseCache, RegistryScraper
from .registration import load_active_draft, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LicenseCheck:
    """A lookup result together with its derived classification."""

    result: LicenseVerificationResult
    classification: ProfessionClassification
    name_match: NameMatch | None = None


@dataclass
class LicenseLookupService:
    scraper: RegistryScraper
    cache: LicenseCache
    cache_ttl: timedelta = timedelta(hours=6)
    audit: AuditLog | None = None

    async def lookup(self, document_type: str, document_number: str) -> LicenseVerificationResult:
        """
        Look up a professional license by identity document.

        Raises:
            ValidationError: Malformed document type or number
            RateLimitedError: No browser capacity within the admission window
        """
        normalized = normalize_document(document_type, document_number)

        cached = self.cache.get_fresh(normalized, self.cache_ttl)
        if cached is not None:
            logger.info("Registry cache hit for %s", mask_document(normalized))
            return replace(cached, cached=True)

        started = time.monotonic()
        try:
            outcome = await self.scraper.fetch(document_type, normalized)
        except RateLimitedError:
            raise
        except Exception as e:
            logger.warning("Registry lookup for %s failed: %s", mask_document(normalized), e)
            outcome = Failed(f"registry lookup failed: {e}")

        result = LicenseVerificationResult(
            document_type=document_type,
            document_number=normalized,
            outcome=outcome,
            fetched_at=utcnow(),
            processing_time_ms=int((time.monotonic() - started) * 1000),
        )
        if result.found:
            result = replace(result, id=self.cache.save(result))

        logger.info(
            "Registry lookup for %s finished: found=%s in %dms",
            mask_document(normalized),
            result.found,
            result.processing_time_ms,
        )
        return result

    async def check(self, document_type: str, document_number: str) -> LicenseCheck:
        """
        Lookup plus classification, without touching any draft.

        Audited as an anonymous lookup; the document number is masked.
        """
        detail = {"document_type": document_type, "document": mask_document(document_number)}
        self._audit("attempted", detail)
        try:
            result = await self.lookup(document_type, document_number)
        except RegistrationError as e:
            self._audit("failed", {**detail, "error": type(e).__name__})
            raise

        classification = classify(result)
        self._audit(
            "valid" if classification.valid_professional else "invalid",
            {
                **detail,
                "found": result.found,
                "cached": result.cached,
                "error": result.error,
                "legal_status": classification.legal_status,
            },
        )
        return LicenseCheck(result=result, classification=classification)

    def _audit(self, outcome: str, detail: dict) -> None:
        if self.audit is None:
            return
        self.audit.record(
            AuditEvent(actor="anonymous", action="license.lookup", subject_id=None, outcome=outcome, detail=detail)
        )


@dataclass
class LicenseAttachmentService:
    """Runs a lookup for a draft and pins the result to it."""

    lookup_service: LicenseLookupService
    drafts: DraftRepository
    audit: AuditLog

    async def attach_license(self, token: str, document_type: str, document_number: str) -> LicenseCheck:
        """
        Look up the license and pin the result to the draft.

        The draft advances to LICENSE_VERIFIED only when the result
        classifies as a valid professional.

        Raises:
            NotFoundError: Unknown or expired draft
            StateConflictError: Email not yet verified or draft terminal
            ValidationError: Malformed document type or number
            RateLimitedError: No browser capacity within the admission window
        """
        draft = load_active_draft(self.drafts, token)

        self.audit.record(
            AuditEvent(
                actor="user",
                action="license.lookup",
                subject_id=draft.id,
                outcome="attempted",
                detail={"document_type": document_type},
            )
        )
        try:
            if draft.email_verified_at is None:
                raise StateConflictError("email not verified")
            result = await self.lookup_service.lookup(document_type, document_number)
        except RegistrationError as e:
            self.audit.record(
                AuditEvent(
                    actor="user",
                    action="license.lookup",
                    subject_id=draft.id,
                    outcome="failed",
                    detail={"document_type": document_type, "error": type(e).__name__},
                )
            )
            raise

        classification = classify(result)
        name_match = match_name(result.record.name, draft.full_name) if result.record else None

        if result.found and result.id is not None:
            self.drafts.attach_license(
                draft.id,
                result.id,
                document_type,
                result.document_number,
                advance=classification.valid_professional,
            )

        self.audit.record(
            AuditEvent(
                actor="user",
                action="license.lookup",
                subject_id=draft.id,
                outcome="valid" if classification.valid_professional else "invalid",
                detail={
                    "found": result.found,
                    "cached": result.cached,
                    "error": result.error,
                    "legal_status": classification.legal_status,
                    "name_match": name_match.matches if name_match else None,
                },
            )
        )
        return LicenseCheck(result=result, classification=classification, name_match=name_match)
