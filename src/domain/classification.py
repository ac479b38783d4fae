"""
Profession/specialty classifier - pure decision engine.

Turns a registry lookup result into a legal-status, specialty and
dashboard-access decision. No I/O, no clock, no randomness: identical
input always yields an identical classification.

Evaluation order is fixed:
    1. exclusion patterns (checked first, any hit is final)
    2. inclusion patterns (a human-medicine profession must match one)
    3. specialty assignment (explicit "ESPECIALISTA EN" marker only)
    4. dashboard table lookup
"""

import re
import unicodedata

from .models import LicenseVerificationResult, NameMatch, ProfessionClassification

GENERAL_MEDICINE = "MEDICINA GENERAL"
GENERAL_DASHBOARD = "general-medicine"
SPECIALIST_MARKER = "ESPECIALISTA EN"

# Excluded professions may still carry a medical-sounding token
# ("MEDICO(A) VETERINARIO(A)"), so these run before inclusion.
EXCLUSION_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("veterinary", re.compile(r"VETERINARI|VETERINARY|\bVET\b")),
    ("dentistry", re.compile(r"ODONTOLOG|DENTIST")),
    ("nursing", re.compile(r"ENFERMER|NURSE")),
    ("technician", re.compile(r"TECNICO|TECHNICIAN")),
)

INCLUSION_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("physician", re.compile(r"MEDIC")),
    ("surgeon", re.compile(r"CIRUJAN|SURGEON")),
    ("specialist", re.compile(r"ESPECIALISTA|SPECIALIST")),
    ("doctor", re.compile(r"DOCTOR|\bDRA?\.")),
)

# Keyed by exact specialty label. Anything else that reaches the table
# falls back to general-medicine pending manual approval.
DASHBOARD_TABLE: dict[str, tuple[str, list[str]]] = {
    GENERAL_MEDICINE: (GENERAL_DASHBOARD, [GENERAL_DASHBOARD]),
    "MEDICINA INTERNA": ("internal-medicine", ["internal-medicine", "general-medicine"]),
    "CARDIOLOGIA": ("cardiology", ["cardiology", "internal-medicine"]),
    "NEUROLOGIA": ("neurology", ["neurology", "internal-medicine"]),
    "PEDIATRIA": ("pediatrics", ["pediatrics", "general-medicine"]),
    "GINECOLOGIA": ("gynecology", ["gynecology", "obstetrics"]),
    "OBSTETRICIA": ("obstetrics", ["obstetrics", "gynecology"]),
    "CIRUGIA GENERAL": ("general-surgery", ["general-surgery", "surgery"]),
    "ORTOPEDIA": ("orthopedics", ["orthopedics", "surgery"]),
    "DERMATOLOGIA": ("dermatology", ["dermatology", "general-medicine"]),
    "PSIQUIATRIA": ("psychiatry", ["psychiatry", "mental-health"]),
    "ANESTESIOLOGIA": ("anesthesiology", ["anesthesiology", "surgery"]),
    "RADIOLOGIA": ("radiology", ["radiology", "diagnostic-imaging"]),
    "EMERGENCIA": ("emergency-medicine", ["emergency-medicine", "general-medicine"]),
    "FAMILIA": ("family-medicine", ["family-medicine", "general-medicine"]),
}

NAME_MATCH_THRESHOLD = 0.8


def normalize_text(value: str | None) -> str:
    """Upper-case, strip accents and collapse whitespace."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return " ".join(stripped.upper().split())


def excluded_profession(profession: str) -> str | None:
    """Name of the first exclusion pattern matching the profession, if any."""
    text = normalize_text(profession)
    for name, pattern in EXCLUSION_PATTERNS:
        if pattern.search(text):
            return name
    return None


def included_profession(profession: str) -> str | None:
    text = normalize_text(profession)
    for name, pattern in INCLUSION_PATTERNS:
        if pattern.search(text):
            return name
    return None


def assign_specialty(raw_specialty: str | None) -> str:
    """
    Specialty label for a valid professional.

    Only an explicit "ESPECIALISTA EN ..." marker yields a non-default
    specialty; the profession label is never consulted.
    """
    if raw_specialty and SPECIALIST_MARKER in normalize_text(raw_specialty):
        return raw_specialty.strip()
    return GENERAL_MEDICINE


def dashboard_access(specialty: str) -> tuple[str, list[str], bool]:
    """Return (primary, allowed, requires_approval) for a specialty label."""
    entry = DASHBOARD_TABLE.get(specialty)
    if entry is None:
        return GENERAL_DASHBOARD, [GENERAL_DASHBOARD], True

    primary, dashboards = entry
    allowed = [GENERAL_DASHBOARD]
    for dashboard in dashboards:
        if dashboard not in allowed:
            allowed.append(dashboard)
    return primary, allowed, False


def invalid_classification(profession: str) -> ProfessionClassification:
    return ProfessionClassification(
        valid_professional=False,
        profession=profession,
        specialty=None,
        legal_status="illegal",
        primary_dashboard="none",
        allowed_dashboards=[],
        requires_approval=True,
    )


def classify(result: LicenseVerificationResult) -> ProfessionClassification:
    """
    Classify a registry lookup result into an access decision.

    A result that is not Found classifies as invalid.
    """
    record = result.record
    if record is None:
        return invalid_classification("")

    profession = record.profession or ""
    if excluded_profession(profession) is not None:
        return invalid_classification(profession)
    if included_profession(profession) is None:
        return invalid_classification(profession)

    specialty = assign_specialty(record.specialty)
    primary, allowed, requires_approval = dashboard_access(specialty)
    return ProfessionClassification(
        valid_professional=True,
        profession=profession,
        specialty=specialty,
        legal_status="legal",
        primary_dashboard=primary,
        allowed_dashboards=allowed,
        requires_approval=requires_approval,
    )


def match_name(registry_name: str | None, registered_name: str | None) -> NameMatch:
    """
    Compare the registry name with the name given at registration.

    Confidence is the share of words present in both names, relative to
    the longer name. Informational only; it never gates completion.
    """
    registry_name = registry_name or ""
    registered_name = registered_name or ""
    left = normalize_text(registry_name).split()
    right = normalize_text(registered_name).split()
    if not left or not right:
        return NameMatch(registry_name, registered_name, matches=False, confidence=0.0)

    remaining = list(right)
    shared = 0
    for word in left:
        if word in remaining:
            remaining.remove(word)
            shared += 1

    confidence = round(shared / max(len(left), len(right)), 3)
    return NameMatch(
        registry_name,
        registered_name,
        matches=confidence >= NAME_MATCH_THRESHOLD,
        confidence=confidence,
    )
