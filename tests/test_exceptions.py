"""Tests for tagged errors."""

import pytest

from sslagent.exceptions import (
    ChainInvalidError,
    ErrorKind,
    FileSystemError,
    RevokedError,
    SSLAgentError,
    TransportError,
)


@pytest.mark.unit
class TestWrap:
    """Test prefixing errors at the action boundary."""

    def test_wrap_keeps_revoked_subclass(self):
        error = RevokedError("certificate revoked (23)", code=23)

        wrapped = error.wrap("Verify failed")

        assert isinstance(wrapped, RevokedError)
        assert isinstance(wrapped, ChainInvalidError)
        assert wrapped.kind == ErrorKind.REVOKED
        assert wrapped.code == 23
        assert wrapped.cause is error
        assert str(wrapped) == "Verify failed: certificate revoked (23)"
        assert wrapped.args == ("Verify failed: certificate revoked (23)",)

    def test_wrap_keeps_status_code(self):
        error = TransportError("Failed to retrieve CA certificate: 500", status_code=500)

        wrapped = error.wrap("Failed to submit certificate request")

        assert isinstance(wrapped, TransportError)
        assert wrapped.status_code == 500
        assert wrapped.kind == ErrorKind.TRANSPORT

    def test_wrap_leaves_original_untouched(self):
        cause = OSError("disk full")
        error = FileSystemError("Failed to write crl.pem", cause=cause)

        error.wrap("Failed to download certificate")

        assert error.message == "Failed to write crl.pem"
        assert error.cause is cause

    def test_wrap_keeps_explicit_kind(self):
        error = SSLAgentError("boom", kind=ErrorKind.UNKNOWN_SERVICE)

        wrapped = error.wrap("Outer")

        assert type(wrapped) is SSLAgentError
        assert wrapped.kind == ErrorKind.UNKNOWN_SERVICE
