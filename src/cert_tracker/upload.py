"""
Upload boundary — uploaded file bytes → certificate text for the parser.

Binary containers (.der, .p7b, .p7c) are base64-encoded so the parser can
treat them as unarmored input; everything else is read as UTF-8 text.
"""

from __future__ import annotations

import base64
from pathlib import PurePath

import structlog
from railway import ErrorCode
from railway.result import Result

log = structlog.get_logger()

DEFAULT_MAX_BYTES = 5 * 1024 * 1024

ACCEPTED_EXTENSIONS = frozenset({".crt", ".cer", ".pem", ".der", ".txt", ".p7b", ".p7c"})
BINARY_EXTENSIONS = frozenset({".der", ".p7b", ".p7c"})


def file_extension(filename: str) -> str:
    return PurePath(filename).suffix.lower()


def read_upload(filename: str, data: bytes, max_bytes: int = DEFAULT_MAX_BYTES) -> Result[str]:
    """
    Validate an uploaded certificate file and return its text content.

    Failures are VALIDATION_ERROR with a message fit for the user.
    """
    extension = file_extension(filename)
    if extension not in ACCEPTED_EXTENSIONS:
        accepted = ", ".join(sorted(ACCEPTED_EXTENSIONS))
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            f"Unsupported file type '{extension or filename}'. Accepted types: {accepted}",
        )

    if len(data) > max_bytes:
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            f"File is too large ({len(data)} bytes). Maximum size is {max_bytes} bytes.",
        )

    if extension in BINARY_EXTENSIONS:
        content = base64.b64encode(data).decode("ascii")
    else:
        content = data.decode("utf-8", errors="replace")

    if not content.strip():
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            "The file appears to be empty. Please select a valid certificate file.",
        )

    log.debug("upload.accepted", filename=filename, size=len(data), binary=extension in BINARY_EXTENSIONS)
    return Result.success(content)
