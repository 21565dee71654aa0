"""Verification and clean decision models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from cryptography import x509

from .host import CertificateSummary

# OpenSSL X509_V_ERR_* codes reported with chain failures
X509_V_ERR_UNABLE_TO_GET_CRL = 3
X509_V_ERR_CERT_SIGNATURE_FAILURE = 7
X509_V_ERR_CRL_SIGNATURE_FAILURE = 8
X509_V_ERR_CERT_NOT_YET_VALID = 9
X509_V_ERR_CERT_HAS_EXPIRED = 10
X509_V_ERR_CRL_HAS_EXPIRED = 12
X509_V_ERR_DEPTH_ZERO_SELF_SIGNED_CERT = 18
X509_V_ERR_UNABLE_TO_GET_ISSUER_CERT_LOCALLY = 20
X509_V_ERR_CERT_REVOKED = 23
X509_V_ERR_INVALID_CA = 24


class VerifyReason(str, Enum):
    """Why a host certificate failed verification."""

    MISSING_KEY = "missing_key"
    MISSING_CERTIFICATE = "missing_certificate"
    KEY_CERT_MISMATCH = "key_cert_mismatch"
    CHAIN_INVALID = "chain_invalid"
    REVOKED = "revoked"


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying a key/certificate pair against a trust context."""

    ok: bool
    certname: Optional[str] = None
    reason: Optional[VerifyReason] = None
    code: Optional[int] = None
    message: str = ""
    chain: List[x509.Certificate] = field(default_factory=list)

    @classmethod
    def success(cls, certname: str, chain: List[x509.Certificate]) -> "VerificationResult":
        return cls(ok=True, certname=certname, chain=chain)

    @classmethod
    def failure(
        cls, reason: VerifyReason, message: str, code: Optional[int] = None
    ) -> "VerificationResult":
        return cls(ok=False, reason=reason, code=code, message=message)


@dataclass(frozen=True)
class CleanDecision:
    """Safety guard verdict on whether local credentials may be removed."""

    allowed: bool
    existing: Optional[CertificateSummary] = None

    @classmethod
    def allow(cls) -> "CleanDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, existing: CertificateSummary) -> "CleanDecision":
        return cls(allowed=False, existing=existing)
