"""
sslagent exceptions.

Every failure raised by the agent is an ``SSLAgentError`` tagged with an
``ErrorKind``. Callers branch on ``error.kind`` (or on the subclass) rather
than on message text. The optional ``cause`` is the lower-level failure the
error wraps; it is also chained as ``__cause__`` when raised with ``from``.
"""

import copy
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Kinds of failure surfaced by the agent."""

    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    ALREADY_SUBMITTED = "already_submitted"
    KEY_MISMATCH = "key_mismatch"
    MISSING_KEY = "missing_key"
    MISSING_CERTIFICATE = "missing_certificate"
    KEY_CERT_MISMATCH = "key_cert_mismatch"
    CHAIN_INVALID = "chain_invalid"
    REVOKED = "revoked"
    UNSAFE_OPERATION = "unsafe_operation"
    FILE_SYSTEM = "file_system"
    UNKNOWN_ACTION = "unknown_action"
    UNKNOWN_SERVICE = "unknown_service"


class SSLAgentError(Exception):
    """Base exception for sslagent errors."""

    kind: ErrorKind = ErrorKind.CONFIGURATION

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.cause = cause

    def __str__(self) -> str:
        return self.message

    def wrap(self, prefix: str) -> "SSLAgentError":
        """
        Return a copy of this error whose message is prefixed.

        The copy keeps the subclass and its fields (``kind``, ``code``,
        ``status_code``) and has this error as its ``cause``.
        """
        wrapped = copy.copy(self)
        wrapped.message = f"{prefix}: {self.message}"
        wrapped.args = (wrapped.message,)
        wrapped.cause = self
        return wrapped


class ConfigurationError(SSLAgentError):
    """Raised when settings are missing or invalid."""

    kind = ErrorKind.CONFIGURATION


class TransportError(SSLAgentError):
    """Raised when the CA is unreachable or answers with a non-2xx status."""

    kind = ErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause=cause)
        self.status_code = status_code


class AlreadySubmittedError(SSLAgentError):
    """Raised when the CA already holds a pending request for the certname."""

    kind = ErrorKind.ALREADY_SUBMITTED


class KeyMismatchError(SSLAgentError):
    """Raised when a downloaded certificate does not match the local key."""

    kind = ErrorKind.KEY_MISMATCH


class MissingKeyError(SSLAgentError):
    kind = ErrorKind.MISSING_KEY


class MissingCertificateError(SSLAgentError):
    kind = ErrorKind.MISSING_CERTIFICATE


class KeyCertMismatchError(SSLAgentError):
    kind = ErrorKind.KEY_CERT_MISMATCH


class ChainInvalidError(SSLAgentError):
    """Raised when the certificate does not validate against the trust store."""

    kind = ErrorKind.CHAIN_INVALID

    def __init__(self, message: str, code: Optional[int] = None, cause: Optional[BaseException] = None):
        super().__init__(message, cause=cause)
        self.code = code


class RevokedError(ChainInvalidError):
    """Raised when a certificate in the chain appears on a CRL."""

    kind = ErrorKind.REVOKED


class UnsafeOperationError(SSLAgentError):
    """Raised when the safety guard vetoes a destructive action."""

    kind = ErrorKind.UNSAFE_OPERATION


class FileSystemError(SSLAgentError):
    kind = ErrorKind.FILE_SYSTEM


class UnknownActionError(SSLAgentError):
    kind = ErrorKind.UNKNOWN_ACTION


class UnknownServiceError(SSLAgentError):
    kind = ErrorKind.UNKNOWN_SERVICE
