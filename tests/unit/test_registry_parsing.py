"""Unit tests for registry results page parsing (literal row fixtures)."""

from src.adapters.registry.parsing import (
    GENERIC_PROFESSION,
    build_outcome,
    find_specialty,
    parse_rows,
)
from src.domain.models import Failed, Found, NotFound

HEADER = ["PROFESIÓN", "MATRÍCULA", "FECHA", "TOMO", "FOLIO", ""]

HIT_ROWS = [
    ["NÚMERO DE CÉDULA:", "V-12345678"],
    ["NOMBRE Y APELLIDO:", "MARIA PEREZ"],
    HEADER,
    ["MÉDICO(A) CIRUJANO(A)", "MPPS-67301", "2005-01-13", "101", "87", ""],
]


class TestParseRows:
    def test_reads_labels_and_professional_rows(self) -> None:
        page = parse_rows(HIT_ROWS)

        assert page.document == "V-12345678"
        assert page.name == "MARIA PEREZ"
        assert page.professional_rows == [HIT_ROWS[3]]

    def test_header_row_is_skipped(self) -> None:
        page = parse_rows([HEADER])

        assert page.professional_rows == []

    def test_cells_are_stripped(self) -> None:
        page = parse_rows([[" NOMBRE Y APELLIDO: ", "  MARIA PEREZ  "]])

        assert page.name == "MARIA PEREZ"

    def test_medical_row_is_preferred(self) -> None:
        rows = HIT_ROWS[:3] + [
            ["LICENCIADO(A) EN NUTRICIÓN", "N-1", "2001-01-01", "1", "1", ""],
            ["MÉDICO(A) CIRUJANO(A)", "MPPS-67301", "2005-01-13", "101", "87", ""],
        ]

        page = parse_rows(rows)

        assert page.professional[0] == "MÉDICO(A) CIRUJANO(A)"


class TestBuildOutcome:
    def test_complete_page_is_found(self) -> None:
        outcome = build_outcome(parse_rows(HIT_ROWS), specialty=None, postgraduate_control=False)

        assert isinstance(outcome, Found)
        assert outcome.record.name == "MARIA PEREZ"
        assert outcome.record.profession == "MÉDICO(A) CIRUJANO(A)"
        assert outcome.record.license_number == "MPPS-67301"
        assert outcome.record.registration_date == "2005-01-13"
        assert outcome.record.specialty is None
        assert outcome.record.volume == "101"
        assert outcome.record.has_postgraduate is False

    def test_empty_page_is_not_found(self) -> None:
        assert isinstance(build_outcome(parse_rows([]), None, False), NotFound)

    def test_partial_page_is_failed(self) -> None:
        outcome = build_outcome(parse_rows(HIT_ROWS[:2]), None, False)

        assert isinstance(outcome, Failed)

    def test_short_name_is_not_a_professional(self) -> None:
        rows = [["NOMBRE Y APELLIDO:", "ANA"], HIT_ROWS[3]]

        assert isinstance(build_outcome(parse_rows(rows), None, False), Failed)

    def test_probed_specialty_is_kept(self) -> None:
        outcome = build_outcome(
            parse_rows(HIT_ROWS), specialty="ESPECIALISTA EN CARDIOLOGIA", postgraduate_control=True
        )

        assert outcome.record.specialty == "ESPECIALISTA EN CARDIOLOGIA"

    def test_specialist_profession_moves_to_specialty(self) -> None:
        rows = HIT_ROWS[:3] + [["ESPECIALISTA EN PEDIATRIA", "MPPS-1", "2010-02-02", "5", "9", ""]]

        outcome = build_outcome(parse_rows(rows), specialty=None, postgraduate_control=False)

        assert outcome.record.profession == GENERIC_PROFESSION
        assert outcome.record.specialty == "ESPECIALISTA EN PEDIATRIA"

    def test_postgraduate_column_sets_flag(self) -> None:
        rows = HIT_ROWS[:3] + [["MÉDICO(A) CIRUJANO(A)", "MPPS-67301", "2005-01-13", "101", "87", "Postgrados"]]

        outcome = build_outcome(parse_rows(rows), None, True)

        assert outcome.record.has_postgraduate is True


class TestFindSpecialty:
    def test_finds_marker_in_any_cell(self) -> None:
        rows = [["POSTGRADO", "Especialista en Medicina Interna", "2012"]]

        assert find_specialty(rows) == "Especialista en Medicina Interna"

    def test_no_marker_is_none(self) -> None:
        assert find_specialty([["POSTGRADO", "MAGISTER EN SALUD PUBLICA"]]) is None
