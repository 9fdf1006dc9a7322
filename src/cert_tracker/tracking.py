"""
Tracked-certificate creation and update rules.

Certificates enter the tracker either from a reviewed parse result or from
manually entered details. Both paths end in build_tracked_certificate(),
which applies the same required-field rules. Reviewed parse results carry
structured subject and issuer details; manual entry may give DN strings.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

import structlog
from railway import ErrorCode
from railway.result import Result

from cert_tracker.distinguished_names import distinguished_name_from_string
from cert_tracker.domain.models import DistinguishedName, TrackedCertificate

log = structlog.get_logger()

UPDATABLE_FIELDS = frozenset(
    {"name", "issuer", "domains", "issued_at", "expires_at", "description", "notes"}
)

_REQUIRED_MESSAGES = {
    "name": "Certificate name is required",
    "issuer": "Certificate issuer is required",
    "domains": "At least one domain is required",
    "issued_at": "Issue date is required",
    "expires_at": "Expiration date is required",
}


def clean_domains(domains: Iterable[str]) -> tuple[str, ...]:
    """Trimmed domains with blank entries removed, order kept."""
    return tuple(d.strip() for d in domains if d and d.strip())


def describe_domains(domains: Iterable[str]) -> str:
    return f"Certificate for {', '.join(domains)}"


def _require(field_name: str, value: Any) -> Result[Any]:
    present = value.strip() if isinstance(value, str) else value
    if not present:
        return Result.failure(ErrorCode.VALIDATION_ERROR, _REQUIRED_MESSAGES[field_name])
    return Result.success(present)


def _parse_dn(dn: str | None) -> DistinguishedName:
    return distinguished_name_from_string(dn) if dn else DistinguishedName()


def build_tracked_certificate(
    *,
    name: str | None,
    issuer: str | None,
    domains: Iterable[str],
    issued_at: datetime | None,
    expires_at: datetime | None,
    description: str | None = None,
    notes: str | None = None,
    subject: DistinguishedName | None = None,
    issuer_details: DistinguishedName | None = None,
    subject_dn: str | None = None,
    issuer_dn: str | None = None,
    serial_number: str | None = None,
    signature_algorithm: str | None = None,
) -> Result[TrackedCertificate]:
    """
    Validate user-supplied details and build a TrackedCertificate.

    Checks run in form order; the first missing field is reported.
    The description defaults to "Certificate for <domains>". Structured
    `subject`/`issuer_details` are kept as given and take precedence over
    the `*_dn` strings.
    """
    cleaned = clean_domains(domains)
    checks = [
        _require("name", name),
        _require("issuer", issuer),
        _require("domains", cleaned[0] if cleaned else None),
        _require("issued_at", issued_at),
        _require("expires_at", expires_at),
    ]
    return Result.all_of(checks).map(
        lambda values: TrackedCertificate(
            name=values[0],
            issuer=values[1],
            domains=cleaned,
            issued_at=values[3],
            expires_at=values[4],
            description=description or describe_domains(cleaned),
            notes=notes or None,
            subject=subject if subject is not None else _parse_dn(subject_dn),
            issuer_details=issuer_details if issuer_details is not None else _parse_dn(issuer_dn),
            serial_number=serial_number,
            signature_algorithm=signature_algorithm,
        )
    )


def validate_changes(changes: Mapping[str, Any]) -> Result[dict[str, Any]]:
    """
    Validate a partial update.

    Unknown fields are rejected. Required fields may be changed but not
    cleared; blank domains are dropped before the check.
    """
    unknown = sorted(set(changes) - UPDATABLE_FIELDS)
    if unknown:
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            f"Fields cannot be updated: {', '.join(unknown)}",
        )

    validated: dict[str, Any] = {}
    for field_name, value in changes.items():
        if field_name not in _REQUIRED_MESSAGES:
            validated[field_name] = value or None
            continue
        if field_name == "domains":
            value = clean_domains(value or ())
        check = _require(field_name, value)
        if check.is_failure():
            return Result.failure_from(check.error())
        validated[field_name] = check.value()

    log.debug("tracking.changes_validated", fields=sorted(validated))
    return Result.success(validated)


def one_year_after(moment: datetime) -> datetime:
    try:
        return moment.replace(year=moment.year + 1)
    except ValueError:
        # 29 February rolls over to 1 March.
        return moment.replace(year=moment.year + 1, month=3, day=1)


def manual_entry_template(now: datetime) -> dict[str, Any]:
    """Prefilled form values for entering a certificate by hand."""
    return {
        "name": "New Certificate",
        "issuer": "",
        "domains": [""],
        "issued_at": now,
        "expires_at": one_year_after(now),
        "description": "Manually entered certificate",
    }
