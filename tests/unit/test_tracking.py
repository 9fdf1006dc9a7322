"""
Unit tests for tracked-certificate creation, updates and the manual template.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from railway import ErrorCode, ResultAssertions

from cert_tracker.adapters.x509_parser import parse_certificate
from cert_tracker.tracking import (
    build_tracked_certificate,
    manual_entry_template,
    one_year_after,
    validate_changes,
)
from tests.conftest import NOT_AFTER, NOT_BEFORE, make_certificate, make_name, to_pem

VALID = {
    "name": "Shop",
    "issuer": "Example CA",
    "domains": ["shop.example.com"],
    "issued_at": NOT_BEFORE,
    "expires_at": NOT_AFTER,
}


class TestBuildTrackedCertificate:
    def test_valid_details(self) -> None:
        """
        GIVEN complete manual details
        WHEN build_tracked_certificate is called
        THEN a certificate with a synthesized description is returned.
        """
        cert = ResultAssertions.assert_success(build_tracked_certificate(**VALID))

        assert cert.name == "Shop"
        assert cert.domains == ("shop.example.com",)
        assert cert.description == "Certificate for shop.example.com"
        assert cert.notes is None

    def test_blank_domains_dropped(self) -> None:
        details = {**VALID, "domains": ["", " a.example.com ", "  ", "b.example.com"]}
        cert = ResultAssertions.assert_success(build_tracked_certificate(**details))
        assert cert.domains == ("a.example.com", "b.example.com")

    @pytest.mark.parametrize(
        ("field", "value", "message"),
        [
            ("name", "  ", "Certificate name is required"),
            ("issuer", None, "Certificate issuer is required"),
            ("domains", ["", " "], "At least one domain is required"),
            ("issued_at", None, "Issue date is required"),
            ("expires_at", None, "Expiration date is required"),
        ],
    )
    def test_required_fields(self, field: str, value: object, message: str) -> None:
        result = build_tracked_certificate(**{**VALID, field: value})
        error = ResultAssertions.assert_failure(result, ErrorCode.VALIDATION_ERROR)
        assert error.message == message

    def test_first_missing_field_reported(self) -> None:
        result = build_tracked_certificate(**{**VALID, "name": "", "expires_at": None})
        ResultAssertions.assert_failure_message_contains(result, "name is required")

    def test_dn_strings_parsed(self) -> None:
        cert = ResultAssertions.assert_success(
            build_tracked_certificate(
                **VALID,
                subject_dn="CN=shop.example.com,O=Shop Ltd",
                issuer_dn="CN=Example CA,C=GB",
            )
        )
        assert cert.subject.organization == "Shop Ltd"
        assert cert.issuer_details.country == "GB"

    def test_parsed_details_kept_as_given(self) -> None:
        """
        GIVEN a parsed record whose subject carries an email and a comma in a value
        WHEN it is tracked with its structured subject and issuer details
        THEN both DNs are stored unchanged.
        """
        cert = make_certificate(
            subject=make_name(
                COMMON_NAME="shop.example.com",
                ORGANIZATION_NAME="Shop, Ltd",
                EMAIL_ADDRESS="admin@example.com",
            ),
            dns_names=["shop.example.com"],
        )
        record = parse_certificate(to_pem(cert))

        tracked = ResultAssertions.assert_success(
            build_tracked_certificate(
                name=record.name,
                issuer=record.issuer,
                domains=record.domains,
                issued_at=record.issued_at,
                expires_at=record.expires_at,
                subject=record.subject,
                issuer_details=record.issuer_details,
                subject_dn="CN=ignored",
                serial_number=record.serial_number,
            )
        )

        assert tracked.subject == record.subject
        assert tracked.subject.email_address == "admin@example.com"
        assert tracked.subject.organization == "Shop, Ltd"
        assert tracked.issuer_details == record.issuer_details
        assert tracked.serial_number == record.serial_number


class TestValidateChanges:
    def test_partial_update(self) -> None:
        changes = ResultAssertions.assert_success(
            validate_changes({"notes": "moved to new LB", "domains": ["a.example.com", ""]})
        )
        assert changes == {"notes": "moved to new LB", "domains": ("a.example.com",)}

    def test_optional_field_can_be_cleared(self) -> None:
        changes = ResultAssertions.assert_success(validate_changes({"notes": "", "description": None}))
        assert changes == {"notes": None, "description": None}

    def test_required_field_cannot_be_cleared(self) -> None:
        result = validate_changes({"name": ""})
        ResultAssertions.assert_failure(result, ErrorCode.VALIDATION_ERROR)

    def test_domains_cannot_be_emptied(self) -> None:
        ResultAssertions.assert_failure_message_contains(
            validate_changes({"domains": None}), "At least one domain"
        )

    def test_unknown_fields_rejected(self) -> None:
        ResultAssertions.assert_failure_message_contains(
            validate_changes({"id": "x", "serial_number": "1"}), "id, serial_number"
        )


class TestManualEntryTemplate:
    def test_template_values(self) -> None:
        now = datetime(2025, 3, 15, 10, 0, tzinfo=UTC)
        template = manual_entry_template(now)

        assert template["name"] == "New Certificate"
        assert template["issuer"] == ""
        assert template["domains"] == [""]
        assert template["issued_at"] == now
        assert template["expires_at"] == datetime(2026, 3, 15, 10, 0, tzinfo=UTC)
        assert template["description"] == "Manually entered certificate"

    def test_leap_day_rolls_to_march(self) -> None:
        assert one_year_after(datetime(2024, 2, 29, tzinfo=UTC)) == datetime(2025, 3, 1, tzinfo=UTC)
