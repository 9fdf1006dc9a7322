"""
Failure description — structured error information for the failure track.

An ErrorCode classifies WHAT went wrong; the FailureDescription carries the
user-facing message, the originating exception (if any) and a timestamp.

Certificate ingestion adds three classified codes of its own
(MALFORMED_INPUT, STRUCTURAL_DECODE, NO_IDENTITY) next to the generic
client/server codes used by the tracking store and the HTTP layer.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    Organized by HTTP status range for natural REST API mapping:
    - Client errors (4xx): ingestion errors, VALIDATION, NOT_FOUND
    - Server errors (5xx): DATABASE, CONFIGURATION, TECHNICAL, UNKNOWN
    """

    # --- Certificate ingestion (→ 422) ---
    MALFORMED_INPUT = "MALFORMED_INPUT"
    """Armor/base64 could not be normalized into DER bytes."""

    STRUCTURAL_DECODE = "STRUCTURAL_DECODE"
    """Bytes are not a well-formed X.509 certificate."""

    NO_IDENTITY = "NO_IDENTITY"
    """Certificate decoded, but neither subject CN nor SAN yields a name."""

    # --- Client-side errors (4xx HTTP range) ---
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Invalid input format, missing fields, unsupported upload (→ 422)."""

    NOT_FOUND = "NOT_FOUND"
    """Tracked certificate doesn't exist (→ 404)."""

    # --- Server-side errors (5xx HTTP range) ---
    DATABASE_ERROR = "DATABASE_ERROR"
    """Database connectivity or query failures (→ 500)."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """System misconfiguration (→ 500)."""

    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Infrastructure issues (→ 500)."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    """Unexpected/unclassified failures (→ 500)."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor carrying error code, message, optional exception, and timestamp.

    >>> desc = FailureDescription(ErrorCode.NO_IDENTITY, "No name found")
    >>> desc.code
    <ErrorCode.NO_IDENTITY: 'NO_IDENTITY'>
    >>> desc.message
    'No name found'
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(
                type(self.exception), self.exception, self.exception.__traceback__
            )
        )
        return f"{self.message}\n{tb}"
