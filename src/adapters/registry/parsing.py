"""
Registry results page parsing.

Pure functions over the cell texts of the results table, one list of
strings per <tr>. Kept free of browser objects so the page layout rules
can be tested with literal fixtures.

Layout of a hit:
    ["NÚMERO DE CÉDULA:", "V-12345678"]
    ["NOMBRE Y APELLIDO:", "MARIA PEREZ"]
    ["PROFESIÓN", "MATRÍCULA", "FECHA", "TOMO", "FOLIO", ""]         (header)
    ["MÉDICO(A) CIRUJANO(A)", "MPPS-67301", "2005-01-13", "101", "87", "Postgrados"]
"""

from dataclasses import dataclass, field

from src.domain.classification import normalize_text
from src.domain.models import Failed, Found, LicenseRecord, NotFound, RegistryOutcome

DOCUMENT_LABEL = "NUMERO DE CEDULA:"
NAME_LABEL = "NOMBRE Y APELLIDO:"
HEADER_FIRST_CELLS = ("PROFESION", "PROFESIONES")
PROFESSIONAL_ROW_WIDTH = 6
MIN_NAME_LENGTH = 5
SPECIALTY_MARKER = "ESPECIALISTA EN"
SPECIALIST_WORD = "ESPECIALISTA"
GENERIC_PROFESSION = "MÉDICO(A) CIRUJANO(A)"


@dataclass
class RegistryPage:
    document: str | None = None
    name: str | None = None
    professional_rows: list[list[str]] = field(default_factory=list)

    @property
    def professional(self) -> list[str] | None:
        """First human-medicine row, else the first professional row."""
        for row in self.professional_rows:
            text = normalize_text(row[0])
            if "MEDIC" in text or "CIRUJAN" in text:
                return row
        return self.professional_rows[0] if self.professional_rows else None

    @property
    def has_professional(self) -> bool:
        return bool(self.name and len(self.name) > MIN_NAME_LENGTH and self.professional)


def parse_rows(rows: list[list[str]]) -> RegistryPage:
    page = RegistryPage()
    for cells in rows:
        cells = [cell.strip() for cell in cells]
        if len(cells) == 2:
            label = normalize_text(cells[0])
            if label == DOCUMENT_LABEL and cells[1]:
                page.document = cells[1]
            elif label == NAME_LABEL and cells[1]:
                page.name = cells[1]
        elif len(cells) == PROFESSIONAL_ROW_WIDTH and cells[0]:
            if normalize_text(cells[0]) in HEADER_FIRST_CELLS:
                continue
            page.professional_rows.append(cells)
    return page


def find_specialty(rows: list[list[str]]) -> str | None:
    """First cell carrying an "especialista en" marker."""
    for cells in rows:
        for cell in cells:
            if SPECIALTY_MARKER in normalize_text(cell):
                return cell.strip()
    return None


def build_outcome(
    page: RegistryPage, specialty: str | None, postgraduate_control: bool
) -> RegistryOutcome:
    """
    Turn a parsed page into a registry outcome.

    When the page offers no postgraduate control but the profession
    itself names a specialist title, the title moves to the specialty
    and the profession becomes the generic surgeon label.
    """
    if not page.has_professional:
        if page.professional_rows or page.name:
            return Failed("registry page did not contain a complete professional record")
        return NotFound()

    profession, license_number, registration_date, volume, folio, postgraduate = page.professional
    if not postgraduate_control and specialty is None and SPECIALIST_WORD in normalize_text(profession):
        specialty = profession
        profession = GENERIC_PROFESSION

    return Found(
        LicenseRecord(
            name=page.name,
            profession=profession,
            license_number=license_number,
            registration_date=registration_date,
            specialty=specialty,
            volume=volume or None,
            folio=folio or None,
            has_postgraduate="POSTGRADO" in normalize_text(postgraduate),
        )
    )
