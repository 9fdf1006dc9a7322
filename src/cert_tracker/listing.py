"""
Listing views over tracked certificates — days remaining, status, search, sort.

Pure functions; the HTTP layer passes in `now` so results are reproducible.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from cert_tracker.domain.models import ExpirationStatus, TrackedCertificate

WARNING_THRESHOLD_DAYS = 30

_DAY = timedelta(days=1)


class StatusFilter(StrEnum):
    ALL = "all"
    VALID = "valid"
    EXPIRING = "expiring"
    EXPIRED = "expired"


class SortOption(StrEnum):
    EXPIRATION_ASC = "expiration-asc"
    EXPIRATION_DESC = "expiration-desc"
    NAME_ASC = "name-asc"
    NAME_DESC = "name-desc"
    ISSUER = "issuer"


def days_remaining(expires_at: datetime, now: datetime) -> int:
    """Whole days until expiry, rounded up; negative once expired."""
    return math.ceil((expires_at - now) / _DAY)


def expiration_status(days: int) -> ExpirationStatus:
    if days < 0:
        return ExpirationStatus.EXPIRED
    if days < WARNING_THRESHOLD_DAYS:
        return ExpirationStatus.WARNING
    return ExpirationStatus.VALID


_STATUS_MATCH: dict[StatusFilter, ExpirationStatus] = {
    StatusFilter.VALID: ExpirationStatus.VALID,
    StatusFilter.EXPIRING: ExpirationStatus.WARNING,
    StatusFilter.EXPIRED: ExpirationStatus.EXPIRED,
}


def _matches_search(certificate: TrackedCertificate, term: str) -> bool:
    haystack = [certificate.name, certificate.issuer, *certificate.domains]
    return any(term in text.lower() for text in haystack)


def filter_certificates(
    certificates: Iterable[TrackedCertificate],
    now: datetime,
    search: str = "",
    status: StatusFilter = StatusFilter.ALL,
    issuer: str | None = None,
) -> list[TrackedCertificate]:
    """
    Keep certificates matching every given criterion.

    `search` is a case-insensitive substring over name, issuer and domains;
    `issuer` must match exactly.
    """
    term = search.strip().lower()
    wanted = _STATUS_MATCH.get(status)
    return [
        cert
        for cert in certificates
        if (not term or _matches_search(cert, term))
        and (wanted is None or expiration_status(days_remaining(cert.expires_at, now)) is wanted)
        and (not issuer or cert.issuer == issuer)
    ]


_SORT_KEYS: dict[SortOption, tuple[Callable[[TrackedCertificate], Any], bool]] = {
    SortOption.EXPIRATION_ASC: (lambda c: c.expires_at, False),
    SortOption.EXPIRATION_DESC: (lambda c: c.expires_at, True),
    SortOption.NAME_ASC: (lambda c: c.name.lower(), False),
    SortOption.NAME_DESC: (lambda c: c.name.lower(), True),
    SortOption.ISSUER: (lambda c: c.issuer.lower(), False),
}


def sort_certificates(
    certificates: Iterable[TrackedCertificate],
    option: SortOption = SortOption.EXPIRATION_ASC,
) -> list[TrackedCertificate]:
    key, reverse = _SORT_KEYS[option]
    return sorted(certificates, key=key, reverse=reverse)


def available_issuers(certificates: Iterable[TrackedCertificate]) -> list[str]:
    """Distinct non-empty issuers, sorted."""
    return sorted({cert.issuer for cert in certificates if cert.issuer})
