"""
Classified certificate ingestion errors.

Raised by the pure parsing functions and converted into railway failures
(MALFORMED_INPUT, STRUCTURAL_DECODE, NO_IDENTITY) by the parser adapter.
Messages are user-facing: callers display them and offer manual entry.
"""

from __future__ import annotations


class CertificateParseError(Exception):
    """Base class for every hard failure of the certificate parser."""


class MalformedInputError(CertificateParseError):
    """Armor or base64 could not be normalized into DER bytes."""


class StructuralDecodeError(CertificateParseError):
    """The DER bytes are not a well-formed X.509 certificate."""


class NoIdentityError(CertificateParseError):
    """The certificate has neither a subject common name nor SAN DNS names."""
