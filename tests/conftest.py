"""
Shared test fixtures and helpers for the cert-tracker test suite.

Certificates are generated on the fly with the cryptography builder and a
session-wide EC key, so tests control every field they assert on.
"""

from __future__ import annotations

import base64
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from functools import cache
from ipaddress import IPv4Address
from uuid import UUID, uuid4

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from cert_tracker.domain.models import TrackedCertificate

NOT_BEFORE = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)
NOT_AFTER = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


@cache
def _signing_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


def make_name(**attributes: str) -> x509.Name:
    """Build an x509.Name from NameOID attribute names, e.g. COMMON_NAME="a"."""
    return x509.Name(
        [x509.NameAttribute(getattr(NameOID, oid_name), value) for oid_name, value in attributes.items()]
    )


def make_certificate(
    *,
    subject: x509.Name | None = None,
    issuer: x509.Name | None = None,
    dns_names: Sequence[str] = (),
    ip_addresses: Sequence[str] = (),
    serial_number: int = 0x1A2B3C,
    not_before: datetime = NOT_BEFORE,
    not_after: datetime = NOT_AFTER,
) -> x509.Certificate:
    """
    Build a signed certificate.

    Defaults: subject CN=example.com, issuer CN=Test CA / O=Test Org,
    no SubjectAlternativeName unless dns_names or ip_addresses are given.
    """
    key = _signing_key()
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject if subject is not None else make_name(COMMON_NAME="example.com"))
        .issuer_name(
            issuer
            if issuer is not None
            else make_name(COMMON_NAME="Test CA", ORGANIZATION_NAME="Test Org", COUNTRY_NAME="US")
        )
        .public_key(key.public_key())
        .serial_number(serial_number)
        .not_valid_before(not_before)
        .not_valid_after(not_after)
    )
    general_names: list[x509.GeneralName] = [x509.DNSName(name) for name in dns_names]
    general_names += [x509.IPAddress(IPv4Address(ip)) for ip in ip_addresses]
    if general_names:
        builder = builder.add_extension(x509.SubjectAlternativeName(general_names), critical=False)
    return builder.sign(key, hashes.SHA256())


def to_pem(cert: x509.Certificate) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def to_der(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)


def to_base64(cert: x509.Certificate) -> str:
    """Unarmored single-line base64 of the DER encoding."""
    return base64.b64encode(to_der(cert)).decode("ascii")


def private_key_pem() -> str:
    return _signing_key().private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


def make_tracked(
    name: str = "example.com Certificate",
    *,
    expires_at: datetime,
    issuer: str = "Test CA",
    domains: tuple[str, ...] = ("example.com",),
    issued_at: datetime = NOT_BEFORE,
    certificate_id: UUID | None = None,
) -> TrackedCertificate:
    return TrackedCertificate(
        id=certificate_id or uuid4(),
        name=name,
        issuer=issuer,
        domains=domains,
        issued_at=issued_at,
        expires_at=expires_at,
    )


@pytest.fixture()
def now() -> datetime:
    return datetime(2025, 6, 1, 9, 0, 0, tzinfo=UTC)


@pytest.fixture()
def example_certificate() -> x509.Certificate:
    """CN=example.com with SANs example.com and www.example.com."""
    return make_certificate(dns_names=["example.com", "www.example.com"])


def days_from(moment: datetime, days: float) -> datetime:
    return moment + timedelta(days=days)
