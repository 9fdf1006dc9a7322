"""
Unit tests for the upload boundary — extension, size and content checks.
"""

from __future__ import annotations

import base64

import pytest
from railway import ErrorCode, ResultAssertions

from cert_tracker.adapters.x509_parser import parse_certificate
from cert_tracker.upload import read_upload
from tests.conftest import to_der, to_pem


class TestReadUpload:
    @pytest.mark.parametrize("filename", ["site.crt", "site.CER", "site.pem", "notes.txt"])
    def test_text_files_returned_as_text(self, filename: str, example_certificate) -> None:
        """
        GIVEN a PEM file with a text extension
        WHEN read_upload is called
        THEN its text is returned unchanged.
        """
        pem = to_pem(example_certificate)
        content = ResultAssertions.assert_success(read_upload(filename, pem.encode()))
        assert content == pem

    @pytest.mark.parametrize("filename", ["site.der", "bundle.p7b", "bundle.P7C"])
    def test_binary_files_are_base64_encoded(self, filename: str) -> None:
        data = b"\x30\x82\x01\x00binary"
        content = ResultAssertions.assert_success(read_upload(filename, data))
        assert base64.b64decode(content) == data

    def test_der_upload_parses(self, example_certificate) -> None:
        """
        GIVEN a .der upload
        WHEN it is read and parsed
        THEN the certificate is extracted.
        """
        content = ResultAssertions.assert_success(read_upload("site.der", to_der(example_certificate)))
        assert parse_certificate(content).domains == ("example.com", "www.example.com")

    @pytest.mark.parametrize("filename", ["key.key", "archive.zip", "noextension"])
    def test_unsupported_extension_rejected(self, filename: str) -> None:
        result = read_upload(filename, b"data")
        ResultAssertions.assert_failure(result, ErrorCode.VALIDATION_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "Unsupported file type")

    def test_too_large_rejected(self) -> None:
        """
        GIVEN a file one byte over the limit
        WHEN read_upload is called
        THEN it fails before decoding.
        """
        result = read_upload("big.pem", b"A" * 11, max_bytes=10)
        ResultAssertions.assert_failure(result, ErrorCode.VALIDATION_ERROR)
        ResultAssertions.assert_failure_message_contains(result, "too large")

    def test_limit_is_inclusive(self) -> None:
        ResultAssertions.assert_success(read_upload("ok.pem", b"A" * 10, max_bytes=10))

    @pytest.mark.parametrize(("filename", "data"), [("empty.pem", b""), ("blank.crt", b" \n\t "), ("empty.der", b"")])
    def test_empty_file_rejected(self, filename: str, data: bytes) -> None:
        result = read_upload(filename, data)
        ResultAssertions.assert_failure_message_contains(result, "appears to be empty")

    def test_undecodable_text_is_replaced_not_rejected(self) -> None:
        content = ResultAssertions.assert_success(read_upload("odd.pem", b"\xffabc"))
        assert content.endswith("abc")
