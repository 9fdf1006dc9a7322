"""
Unit tests for listing views — days remaining, status, filters and sorting.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from cert_tracker.domain.models import ExpirationStatus
from cert_tracker.listing import (
    SortOption,
    StatusFilter,
    available_issuers,
    days_remaining,
    expiration_status,
    filter_certificates,
    sort_certificates,
)
from tests.conftest import days_from, make_tracked


class TestDaysRemaining:
    def test_partial_days_round_up(self, now) -> None:
        assert days_remaining(now + timedelta(hours=1), now) == 1
        assert days_remaining(now + timedelta(days=6, hours=1), now) == 7

    def test_exact_days(self, now) -> None:
        assert days_remaining(days_from(now, 30), now) == 30

    def test_expired(self, now) -> None:
        assert days_remaining(now - timedelta(hours=1), now) == 0
        assert days_remaining(now - timedelta(days=2), now) == -2


class TestExpirationStatus:
    @pytest.mark.parametrize(
        ("days", "status"),
        [
            (-1, ExpirationStatus.EXPIRED),
            (0, ExpirationStatus.WARNING),
            (29, ExpirationStatus.WARNING),
            (30, ExpirationStatus.VALID),
            (365, ExpirationStatus.VALID),
        ],
    )
    def test_thresholds(self, days: int, status: ExpirationStatus) -> None:
        assert expiration_status(days) is status


@pytest.fixture()
def certificates(now):
    return [
        make_tracked("Shop", expires_at=days_from(now, 90), issuer="Let's Encrypt",
                     domains=("shop.example.com",)),
        make_tracked("API", expires_at=days_from(now, 10), issuer="DigiCert",
                     domains=("api.example.com", "api2.example.com")),
        make_tracked("legacy", expires_at=days_from(now, -5), issuer="Let's Encrypt",
                     domains=("old.example.org",)),
    ]


class TestFilterCertificates:
    def test_no_criteria_keeps_everything(self, certificates, now) -> None:
        assert filter_certificates(certificates, now) == certificates

    @pytest.mark.parametrize(
        ("term", "expected"),
        [("shop", ["Shop"]), ("API2.EXAMPLE", ["API"]), ("let's", ["Shop", "legacy"]), ("nothing", [])],
    )
    def test_search_over_name_domains_and_issuer(self, certificates, now, term, expected) -> None:
        found = filter_certificates(certificates, now, search=term)
        assert [c.name for c in found] == expected

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (StatusFilter.VALID, ["Shop"]),
            (StatusFilter.EXPIRING, ["API"]),
            (StatusFilter.EXPIRED, ["legacy"]),
        ],
    )
    def test_status_filter(self, certificates, now, status, expected) -> None:
        assert [c.name for c in filter_certificates(certificates, now, status=status)] == expected

    def test_issuer_must_match_exactly(self, certificates, now) -> None:
        assert [c.name for c in filter_certificates(certificates, now, issuer="DigiCert")] == ["API"]
        assert filter_certificates(certificates, now, issuer="digicert") == []

    def test_criteria_combine(self, certificates, now) -> None:
        found = filter_certificates(
            certificates, now, search="example", status=StatusFilter.EXPIRED, issuer="Let's Encrypt"
        )
        assert [c.name for c in found] == ["legacy"]


class TestSortCertificates:
    @pytest.mark.parametrize(
        ("option", "expected"),
        [
            (SortOption.EXPIRATION_ASC, ["legacy", "API", "Shop"]),
            (SortOption.EXPIRATION_DESC, ["Shop", "API", "legacy"]),
            (SortOption.NAME_ASC, ["API", "legacy", "Shop"]),
            (SortOption.NAME_DESC, ["Shop", "legacy", "API"]),
            (SortOption.ISSUER, ["API", "Shop", "legacy"]),
        ],
    )
    def test_sort_options(self, certificates, option, expected) -> None:
        assert [c.name for c in sort_certificates(certificates, option)] == expected

    def test_default_is_soonest_expiry_first(self, certificates) -> None:
        assert sort_certificates(certificates)[0].name == "legacy"


class TestAvailableIssuers:
    def test_sorted_unique(self, certificates) -> None:
        assert available_issuers(certificates) == ["DigiCert", "Let's Encrypt"]

    def test_blank_issuers_skipped(self, now) -> None:
        assert available_issuers([make_tracked(expires_at=now, issuer="")]) == []
