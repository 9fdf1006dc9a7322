"""
Distinguished-name extraction — one canonical representation, two adapters.

X.509 libraries expose names either as RDN sets of (OID, value) pairs or as
a formatted "CN=...,O=...,C=..." string. Both are adapted into the canonical
RDN tuple form here, and DistinguishedName is built from that form only.

Extraction is best-effort: a malformed attribute is skipped and logged, it
never aborts the parse.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from cert_tracker.domain.models import DistinguishedName, RelativeDistinguishedName

log = structlog.get_logger()

COMMON_NAME_OID = "2.5.4.3"

# Attribute-type OID → DistinguishedName field.
OID_FIELDS: dict[str, str] = {
    COMMON_NAME_OID: "common_name",
    "2.5.4.10": "organization",
    "2.5.4.11": "organizational_unit",
    "2.5.4.6": "country",
    "2.5.4.8": "state",
    "2.5.4.7": "locality",
    "1.2.840.113549.1.9.1": "email_address",
}

# String-form keys. No short form for emailAddress: string-mode names never
# carry an email, only the structured path does.
SHORT_NAME_OIDS: dict[str, str] = {
    "CN": COMMON_NAME_OID,
    "O": "2.5.4.10",
    "OU": "2.5.4.11",
    "C": "2.5.4.6",
    "ST": "2.5.4.8",
    "L": "2.5.4.7",
}


def rdns_from_dn_string(dn: str) -> tuple[RelativeDistinguishedName, ...]:
    """
    Adapt a "CN=example.com,O=Example Corp,C=US" string into canonical RDNs.

    Each comma-separated segment becomes a single-attribute RDN. The key is
    matched case-insensitively against the short forms; unknown keys and
    segments without a key or value are dropped.
    """
    rdns: list[RelativeDistinguishedName] = []
    for part in dn.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep or not key or not value:
            continue
        oid = SHORT_NAME_OIDS.get(key.upper())
        if oid is not None:
            rdns.append(((oid, value),))
    return tuple(rdns)


def distinguished_name_from_rdns(
    rdns: Iterable[Iterable[Any]],
) -> DistinguishedName:
    """
    Build a DistinguishedName from every attribute of every RDN set.

    Unknown OIDs are ignored. An attribute that is not an (oid, text) pair
    is skipped.
    """
    values: dict[str, str] = {}
    for rdn in rdns:
        for attribute in rdn:
            try:
                oid, value = attribute
                if not isinstance(value, str):
                    raise TypeError(f"non-text value of type {type(value).__name__}")
                field_name = OID_FIELDS.get(oid)
            except (TypeError, ValueError) as e:
                log.debug("names.attribute_skipped", reason=str(e))
                continue
            if field_name and value:
                values[field_name] = value
    return DistinguishedName(**values)


def distinguished_name_from_string(dn: str) -> DistinguishedName:
    return distinguished_name_from_rdns(rdns_from_dn_string(dn))
