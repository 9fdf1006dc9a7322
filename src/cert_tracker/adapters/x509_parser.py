"""
X.509 certificate parser adapter — uploaded text → CertificateRecord.

Adapter layer — implements the CertificateParser port using:
  - cryptography (PyCA): structural decode, validity, serial, names
  - asn1crypto: raw extension lookup, SAN GeneralNames walk, algorithm names

Pipeline:
  raw upload text
    → normalize_input(): PEM block / bare base64 → DER bytes
    → decode_certificate(): cryptography + asn1crypto → DecodedCertificate
    → build_record(): names, domains (CN + SAN), synthesized display fields
    → CertificateRecord

Two failure paths, on purpose:
  - hard: input cannot be normalized, bytes are not a certificate, or no
    name can be derived → classified exception → Result.failure
  - soft: a malformed name attribute, an unreadable extension or SAN value
    → that piece is omitted and the parse continues
"""

from __future__ import annotations

import base64
import re
from collections.abc import Callable, Mapping

import structlog
from asn1crypto import core
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from railway import ErrorCode
from railway.result import Result

from cert_tracker.distinguished_names import distinguished_name_from_rdns
from cert_tracker.domain.errors import (
    CertificateParseError,
    MalformedInputError,
    NoIdentityError,
    StructuralDecodeError,
)
from cert_tracker.domain.models import (
    CertificateRecord,
    DecodedCertificate,
    DistinguishedName,
    RelativeDistinguishedName,
)

log = structlog.get_logger()

SUBJECT_ALT_NAME_OID = "2.5.29.17"

_BEGIN_CERTIFICATE = "-----BEGIN CERTIFICATE-----"
_END_CERTIFICATE = "-----END CERTIFICATE-----"
_PEM_BEGIN = "-----BEGIN"
_PEM_LINE_LENGTH = 64
_CERTIFICATE_DELIMITERS = re.compile(r"-----(?:BEGIN|END) CERTIFICATE-----")
_WHITESPACE = re.compile(r"\s+")

# Labels of alphanumerics, '-' and '*', not starting or ending with '-'.
_DOMAIN_LABEL = r"[a-zA-Z0-9*](?:[a-zA-Z0-9*-]*[a-zA-Z0-9*])?"
_DOMAIN = re.compile(rf"{_DOMAIN_LABEL}(?:\.{_DOMAIN_LABEL})*")
_MAX_DOMAIN_LENGTH = 253

_UNKNOWN_OID = "Unknown OID"

_ERROR_CODES: dict[type[CertificateParseError], ErrorCode] = {
    MalformedInputError: ErrorCode.MALFORMED_INPUT,
    StructuralDecodeError: ErrorCode.STRUCTURAL_DECODE,
    NoIdentityError: ErrorCode.NO_IDENTITY,
}


# ─────────────────────── Input Normalization ───────────────────────


def _first_certificate_block(text: str) -> str | None:
    """
    Capture the first BEGIN CERTIFICATE … END CERTIFICATE span, line by line.

    Lines outside the span (other PEM objects, comments) are ignored. A block
    without an END line runs to the end of the text.
    """
    captured: list[str] = []
    for line in text.splitlines():
        if not captured:
            if _BEGIN_CERTIFICATE in line:
                captured.append(line)
            continue
        captured.append(line)
        if _END_CERTIFICATE in line:
            break
    return "\n".join(captured) if captured else None


def _armor(base64_text: str) -> str:
    """Wrap bare base64 into a synthesized PEM certificate block."""
    body = _WHITESPACE.sub("", base64_text)
    lines = [body[i : i + _PEM_LINE_LENGTH] for i in range(0, len(body), _PEM_LINE_LENGTH)]
    return "\n".join([_BEGIN_CERTIFICATE, *lines, _END_CERTIFICATE])


def to_pem(raw: str) -> str:
    """
    Produce PEM text holding exactly one certificate block.

    Armored input (a CERTIFICATE block, or a bundle whose other PEM objects
    surround one) yields its first certificate block; anything else is
    treated as bare base64 and armored.
    """
    text = raw.strip()
    if not text:
        raise MalformedInputError("The certificate file is empty.")

    if _PEM_BEGIN in text:
        block = _first_certificate_block(text)
        if block is not None:
            return block
    return _armor(text)


def pem_to_der(pem: str) -> bytes:
    """Strip certificate delimiters and whitespace, then base64-decode strictly."""
    body = _WHITESPACE.sub("", _CERTIFICATE_DELIMITERS.sub("", pem))
    if not body:
        raise MalformedInputError("No certificate data was found between the PEM delimiters.")
    try:
        return base64.b64decode(body, validate=True)
    except ValueError as e:
        raise MalformedInputError(
            "Unable to decode certificate. The file may be corrupted or in an unsupported encoding."
        ) from e


def normalize_input(raw: str) -> bytes:
    """RawCertificateInput → EncodedCertificate (DER)."""
    return pem_to_der(to_pem(raw))


# ─────────────────────── Structural Decode ───────────────────────


def _adapt_name(
    read_name: Callable[[], x509.Name],
    label: str,
) -> tuple[RelativeDistinguishedName, ...]:
    """Adapt a cryptography Name into canonical RDNs; unreadable names become empty."""
    try:
        name = read_name()
        return tuple(
            tuple((attribute.oid.dotted_string, attribute.value) for attribute in rdn)
            for rdn in name.rdns
        )
    except ValueError as e:
        log.warning("parser.name_unreadable", name=label, error=str(e))
        return ()


def _raw_extensions(der: bytes) -> dict[str, bytes]:
    """
    Map extension OID → raw extension value, parsing each extension lazily.

    A malformed extension is skipped without hiding the others.
    """
    try:
        extensions = asn1_x509.Certificate.load(der)["tbs_certificate"]["extensions"]
    except ValueError as e:
        log.warning("parser.extensions_unreadable", error=str(e))
        return {}
    if isinstance(extensions, core.Void):
        return {}

    raw: dict[str, bytes] = {}
    for index, extension in enumerate(extensions):
        try:
            raw[extension["extn_id"].dotted] = extension["extn_value"].contents
        except ValueError as e:
            log.warning("parser.extension_skipped", index=index, error=str(e))
    return raw


def decode_certificate(der: bytes) -> DecodedCertificate:
    """
    EncodedCertificate → DecodedCertificate.

    Raises StructuralDecodeError for anything the X.509 decoder rejects:
    bad ASN.1, unsupported version, truncated data, a PKCS#7 container.
    """
    try:
        cert = x509.load_der_x509_certificate(der)
        not_before = cert.not_valid_before_utc
        not_after = cert.not_valid_after_utc
        serial_number = cert.serial_number
        signature_algorithm_oid = cert.signature_algorithm_oid.dotted_string
    except (ValueError, x509.InvalidVersion) as e:
        raise StructuralDecodeError(
            "Invalid certificate format. Please ensure the file contains a valid X.509 certificate."
        ) from e

    return DecodedCertificate(
        subject=_adapt_name(lambda: cert.subject, "subject"),
        issuer=_adapt_name(lambda: cert.issuer, "issuer"),
        not_before=not_before,
        not_after=not_after,
        serial_number=serial_number,
        signature_algorithm_oid=signature_algorithm_oid,
        extensions=_raw_extensions(der),
    )


# ─────────────────────── Domains ───────────────────────


def is_valid_domain(name: str) -> bool:
    """Permissive hostname check; wildcard labels such as *.example.com pass."""
    return 0 < len(name) <= _MAX_DOMAIN_LENGTH and _DOMAIN.fullmatch(name) is not None


def extract_san_dns_names(raw_value: bytes) -> list[str]:
    """
    DNS names of a SubjectAlternativeName extension value, in order.

    The GeneralNames SEQUENCE is walked with the ASN.1 decoder; only dNSName
    entries that pass is_valid_domain() are kept. Undecodable values yield [].
    """
    try:
        candidates = [
            general_name.native
            for general_name in asn1_x509.GeneralNames.load(raw_value)
            if general_name.name == "dns_name"
        ]
    except (ValueError, TypeError) as e:
        log.warning("parser.san_unreadable", error=str(e))
        return []
    return [name for name in candidates if is_valid_domain(name)]


def derive_domains(subject: DistinguishedName, extensions: Mapping[str, bytes]) -> list[str]:
    """
    Ordered, de-duplicated domains: valid common name first, then SAN DNS names.

    A common name that fails validation is still used when nothing else is
    found. Raises NoIdentityError when there is neither.
    """
    common_name = subject.common_name
    domains: list[str] = []
    if common_name and is_valid_domain(common_name):
        domains.append(common_name)

    san_value = extensions.get(SUBJECT_ALT_NAME_OID)
    if san_value is not None:
        for name in extract_san_dns_names(san_value):
            if name not in domains:
                domains.append(name)

    if not domains and common_name:
        domains.append(common_name)
    if not domains:
        raise NoIdentityError(
            "The certificate has no common name or DNS subject alternative name to identify it."
        )
    return domains


# ─────────────────────── Record Synthesis ───────────────────────


def signature_algorithm_name(oid: str) -> str:
    """Display name for a signature algorithm OID, "Unknown" when unmapped."""
    name = x509.ObjectIdentifier(oid)._name
    return "Unknown" if name == _UNKNOWN_OID else name


def serial_number_hex(serial_number: int) -> str:
    """Hex of the DER INTEGER content, keeping the leading 00 of high-bit serials."""
    return serial_number.to_bytes(serial_number.bit_length() // 8 + 1, "big", signed=True).hex()


def build_record(decoded: DecodedCertificate) -> CertificateRecord:
    subject = distinguished_name_from_rdns(decoded.subject)
    issuer = distinguished_name_from_rdns(decoded.issuer)
    domains = derive_domains(subject, decoded.extensions)

    return CertificateRecord(
        name=f"{domains[0]} Certificate",
        issuer=issuer.display_name("Unknown Issuer"),
        issuer_details=issuer,
        subject=subject,
        domains=tuple(domains),
        issued_at=decoded.not_before,
        expires_at=decoded.not_after,
        serial_number=serial_number_hex(decoded.serial_number),
        signature_algorithm=signature_algorithm_name(decoded.signature_algorithm_oid),
        description=f"Certificate for {', '.join(domains)}",
    )


def parse_certificate(raw: str) -> CertificateRecord:
    """
    Parse uploaded certificate text into a CertificateRecord.

    Raises MalformedInputError, StructuralDecodeError or NoIdentityError.
    Pure: the same input always yields an equal record.
    """
    return build_record(decode_certificate(normalize_input(raw)))


# ─────────────────────── Public Parser Class ───────────────────────


class X509CertificateParser:
    """
    Parse uploaded certificate text into a CertificateRecord.

    Implements the CertificateParser port. Classified parse errors become
    failures with their own ErrorCode; anything else is a TECHNICAL_ERROR.
    """

    def parse(self, raw: str) -> Result[CertificateRecord]:
        try:
            record = parse_certificate(raw)
        except CertificateParseError as e:
            code = _ERROR_CODES.get(type(e), ErrorCode.UNKNOWN_ERROR)
            log.warning("parser.rejected", error_code=code.value, reason=str(e))
            return Result.failure(code, str(e), e)
        except Exception as e:
            log.error("parser.unexpected_error", error=str(e))
            return Result.failure(ErrorCode.TECHNICAL_ERROR, "Failed to parse certificate", e)

        log.info(
            "parser.complete",
            name=record.name,
            domains=len(record.domains),
            expires_at=record.expires_at.isoformat(),
        )
        return Result.success(record)
