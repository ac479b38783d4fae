"""Identity document normalization."""

import re

from .exceptions import ValidationError

# Document type -> canonical registry prefix
DOCUMENT_PREFIXES = {
    "cedula_identidad": "V",
    "cedula_extranjera": "E",
}

_PREFIX_RE = re.compile(r"^[VE]")


def normalize_document(document_type: str, document_number: str) -> str:
    """
    Normalize a document number to its canonical registry form.

    Strips any prefix letter, separators and whitespace, then applies the
    prefix of the declared document type: "v 12.345.678" -> "V-12345678".

    Raises:
        ValidationError: Unknown document type or not 7-8 digits
    """
    prefix = DOCUMENT_PREFIXES.get((document_type or "").strip().lower())
    if prefix is None:
        raise ValidationError(
            f"Unsupported document type: {document_type!r}", field="documentType"
        )

    compact = re.sub(r"[\s.\-_/]", "", (document_number or "").upper())
    digits = _PREFIX_RE.sub("", compact, count=1)
    if not digits.isdigit() or not 7 <= len(digits) <= 8:
        raise ValidationError(
            "Document number must contain 7 or 8 digits", field="documentNumber"
        )
    return f"{prefix}-{digits}"


def mask_document(document_number: str | None) -> str:
    """Mask all but the last three digits for logging."""
    if not document_number:
        return ""
    return "*" * max(len(document_number) - 3, 0) + document_number[-3:]
