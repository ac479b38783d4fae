"""
Unit tests for API request/response models.

Tests Pydantic model validation for registration, lookup and identity
endpoints.
"""

import pytest
from pydantic import ValidationError

from src.api.models import (
    ApproveRequest,
    LicenseLookupRequest,
    LicenseLookupResponse,
    RegisterRequest,
    VerifyEmailRequest,
)
from src.domain.classification import classify, match_name
from src.domain.licensing import LicenseCheck
from src.domain.models import Failed, LicenseVerificationResult


class TestRegisterRequest:
    """Tests for RegisterRequest model."""

    def test_minimal_request(self) -> None:
        request = RegisterRequest(email="user@example.com", password="secure123")

        assert request.email == "user@example.com"
        assert request.document_number is None

    def test_email_domain_normalized(self) -> None:
        """EmailStr normalizes domain to lowercase."""
        request = RegisterRequest(email="USER@EXAMPLE.COM", password="secure123")
        assert request.email == "USER@example.com"

    def test_invalid_email_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            RegisterRequest(email="not-an-email", password="secure123")
        assert "email" in str(exc_info.value)

    def test_password_minimum_length(self) -> None:
        with pytest.raises(ValidationError):
            RegisterRequest(email="user@example.com", password="short")

    def test_date_of_birth_is_parsed(self) -> None:
        request = RegisterRequest(email="user@example.com", password="secure123", date_of_birth="1980-05-17")

        assert request.date_of_birth.year == 1980


class TestVerifyEmailRequest:
    def test_six_digit_code_accepted(self) -> None:
        assert VerifyEmailRequest(verification_token="t", code="012345").code == "012345"

    @pytest.mark.parametrize("code", ["12345", "1234567", "12a456", ""])
    def test_bad_code_rejected(self, code: str) -> None:
        with pytest.raises(ValidationError):
            VerifyEmailRequest(verification_token="t", code=code)


class TestLicenseLookupRequest:
    def test_camel_case_fields(self) -> None:
        request = LicenseLookupRequest.model_validate(
            {"documentType": "cedula_identidad", "documentNumber": "V-12345678"}
        )

        assert request.document_type == "cedula_identidad"
        assert request.document_number == "V-12345678"
        assert request.verification_token is None

    def test_snake_case_fields(self) -> None:
        request = LicenseLookupRequest.model_validate(
            {"document_type": "cedula_extranjera", "document_number": "E-1234567", "verification_token": "t"}
        )

        assert request.document_type == "cedula_extranjera"
        assert request.verification_token == "t"

    def test_document_number_required(self) -> None:
        with pytest.raises(ValidationError):
            LicenseLookupRequest.model_validate({"documentType": "cedula_identidad"})


class TestLicenseLookupResponse:
    def test_found_result(self, make_found_result) -> None:
        result = make_found_result(specialty="ESPECIALISTA EN PEDIATRIA")
        check = LicenseCheck(
            result=result,
            classification=classify(result),
            name_match=match_name("MARIA PEREZ", "Maria Perez"),
        )

        response = LicenseLookupResponse.from_check(check)

        assert response.found is True
        assert response.error is None
        assert response.record.license_number == "MPPS-67301"
        assert response.classification.specialty == "ESPECIALISTA EN PEDIATRIA"
        assert response.classification.requires_approval is True
        assert response.name_match.matches is True

    def test_failed_result_has_no_record(self) -> None:
        from datetime import datetime, timezone

        result = LicenseVerificationResult(
            document_type="cedula_identidad",
            document_number="V-12345678",
            outcome=Failed("registry unreachable"),
            fetched_at=datetime.now(timezone.utc),
        )

        response = LicenseLookupResponse.from_check(LicenseCheck(result=result, classification=classify(result)))

        assert response.found is False
        assert response.record is None
        assert response.error == "registry unreachable"
        assert response.classification.valid_professional is False
        assert response.name_match is None


class TestApproveRequest:
    def test_comment_is_optional(self) -> None:
        assert ApproveRequest().comment is None

    def test_comment_length_is_bounded(self) -> None:
        with pytest.raises(ValidationError):
            ApproveRequest(comment="x" * 501)
