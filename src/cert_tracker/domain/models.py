"""
Domain models — immutable value objects for parsed and tracked certificates.

These are pure value objects with no behavior beyond small derived views.
All models are frozen dataclasses; updates go through dataclasses.replace().

  raw upload text
    → DecodedCertificate   (boundary object of the X.509 decoder)
      → CertificateRecord  (normalized parse result)
        → TrackedCertificate (persisted, monitored)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

# One (attribute-type OID, value) pair and one RDN set of such pairs.
type NameAttribute = tuple[str, Any]
type RelativeDistinguishedName = tuple[NameAttribute, ...]


@dataclass(frozen=True, slots=True)
class DistinguishedName:
    """
    Subject or issuer name, reduced to the attributes the tracker displays.

    At most one value per attribute type is kept (last-seen wins).
    """

    common_name: str | None = None
    organization: str | None = None
    organizational_unit: str | None = None
    country: str | None = None
    state: str | None = None
    locality: str | None = None
    email_address: str | None = None

    def display_name(self, fallback: str) -> str:
        """Common name, else organization, else the fallback."""
        return self.common_name or self.organization or fallback

    def as_dict(self) -> dict[str, str]:
        """Only the attributes that are present."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True, slots=True)
class DecodedCertificate:
    """
    Structural decode result, adapted from the X.509 library at the boundary.

    Names are kept in the canonical RDN form; `extensions` maps extension
    OIDs to their raw (still DER-encoded) extension values.
    """

    subject: tuple[RelativeDistinguishedName, ...]
    issuer: tuple[RelativeDistinguishedName, ...]
    not_before: datetime
    not_after: datetime
    serial_number: int
    signature_algorithm_oid: str
    extensions: dict[str, bytes] = field(default_factory=dict, repr=False)


@dataclass(frozen=True, slots=True)
class CertificateRecord:
    """Normalized result of parsing one certificate file."""

    name: str
    issuer: str
    issuer_details: DistinguishedName
    subject: DistinguishedName
    domains: tuple[str, ...]
    issued_at: datetime
    expires_at: datetime
    serial_number: str
    signature_algorithm: str
    description: str


@dataclass(frozen=True, slots=True)
class TrackedCertificate:
    """
    A certificate the user tracks for expiry.

    Created from a CertificateRecord or from manually entered details, so
    the DN details, serial and algorithm are optional here.
    """

    name: str
    issuer: str
    domains: tuple[str, ...]
    issued_at: datetime
    expires_at: datetime
    id: UUID = field(default_factory=uuid4)
    issuer_details: DistinguishedName = field(default_factory=DistinguishedName)
    subject: DistinguishedName = field(default_factory=DistinguishedName)
    description: str | None = None
    notes: str | None = None
    serial_number: str | None = None
    signature_algorithm: str | None = None
    last_notification_sent: datetime | None = None


class ExpirationStatus(StrEnum):
    VALID = "valid"
    WARNING = "warning"
    EXPIRED = "expired"


class NotificationStatus(StrEnum):
    SENT = "sent"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass(frozen=True, slots=True)
class NotificationSettings:
    """
    Monitoring configuration.

    `emails` is retained for record-keeping only; nothing is ever delivered.
    `notification_days` is kept positive and sorted descending.
    """

    enabled: bool = False
    emails: tuple[str, ...] = ()
    notification_days: tuple[int, ...] = (30, 7, 1)
    last_check: datetime | None = None


@dataclass(frozen=True, slots=True)
class NotificationHistoryEntry:
    """One monitoring hit: a certificate reached one of the notification days."""

    certificate_id: UUID
    certificate_name: str
    sent_at: datetime
    days_until_expiration: int
    status: NotificationStatus = NotificationStatus.SENT
    emails: tuple[str, ...] = ()
    id: UUID = field(default_factory=uuid4)
    error: str | None = None
    success_count: int = 0
    failure_count: int = 0


@dataclass(frozen=True, slots=True)
class MonitoringReport:
    """Outcome of one monitoring check."""

    checked_at: datetime
    enabled: bool
    certificates_checked: int = 0
    entries: tuple[NotificationHistoryEntry, ...] = ()

    @property
    def tracked_certificate_ids(self) -> list[UUID]:
        return [entry.certificate_id for entry in self.entries]
