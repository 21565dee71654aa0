"""Trust verification of the host's key and certificate."""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Tuple

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from sslagent.models.config import RevocationMode
from sslagent.models.host import TrustContext
from sslagent.models.verification import (
    X509_V_ERR_CERT_HAS_EXPIRED,
    X509_V_ERR_CERT_NOT_YET_VALID,
    X509_V_ERR_CERT_REVOKED,
    X509_V_ERR_CERT_SIGNATURE_FAILURE,
    X509_V_ERR_CRL_HAS_EXPIRED,
    X509_V_ERR_CRL_SIGNATURE_FAILURE,
    X509_V_ERR_DEPTH_ZERO_SELF_SIGNED_CERT,
    X509_V_ERR_INVALID_CA,
    X509_V_ERR_UNABLE_TO_GET_CRL,
    X509_V_ERR_UNABLE_TO_GET_ISSUER_CERT_LOCALLY,
    VerificationResult,
    VerifyReason,
)
from sslagent.services.parser_service import CertificateParser

logger = logging.getLogger("sslagent")

MAX_CHAIN_DEPTH = 10

# (code, message) of the first failed check, or None when the check passed
ChainError = Optional[Tuple[int, str]]


class TrustVerifier(Protocol):
    def verify(
        self,
        key: Optional[PrivateKeyTypes],
        cert: Optional[x509.Certificate],
        trust_context: TrustContext,
    ) -> VerificationResult: ...


class X509TrustVerifier:
    """
    Verifies a key/certificate pair against a CA bundle and CRLs.

    Checks run in a fixed order and stop at the first failure:

    1. the private key exists
    2. the certificate exists
    3. the certificate's public key is exactly the key's public key
    4. the certificate chains to a trust anchor in the CA bundle, with valid
       signatures, CA constraints and validity periods
    5. no certificate covered by the revocation mode is on a CRL
    """

    def __init__(self, now: Optional[datetime] = None):
        """
        Initialize verifier.

        Args:
            now: Fixed verification time; defaults to the current time per call
        """
        self._now = now

    def verify(
        self,
        key: Optional[PrivateKeyTypes],
        cert: Optional[x509.Certificate],
        trust_context: TrustContext,
    ) -> VerificationResult:
        """
        Verify a key/certificate pair.

        Args:
            key: Host private key, or None if missing
            cert: Host certificate, or None if missing
            trust_context: CA bundle, CRLs and revocation mode

        Returns:
            Successful result carrying the chain (root first), or a failure
            carrying the reason, an OpenSSL verify code and a message
        """
        if key is None:
            return VerificationResult.failure(VerifyReason.MISSING_KEY, "The host's private key is missing")

        if cert is None:
            return VerificationResult.failure(
                VerifyReason.MISSING_CERTIFICATE, "The host's certificate is missing"
            )

        if not CertificateParser.key_matches_certificate(key, cert):
            return VerificationResult.failure(
                VerifyReason.KEY_CERT_MISMATCH, "The host's key does not match the certificate"
            )

        now = self._now or datetime.now(timezone.utc)

        chain, error = self._build_chain(cert, trust_context.ca_certs)
        if error is None:
            error = self._check_validity(chain, now)
        if error is None:
            error = self._check_revocation(chain, trust_context, now)

        if error is not None:
            code, message = error
            reason = VerifyReason.REVOKED if code == X509_V_ERR_CERT_REVOKED else VerifyReason.CHAIN_INVALID
            logger.debug(f"Verification of '{CertificateParser.get_cn(cert)}' failed: {message} ({code})")
            return VerificationResult.failure(reason, message, code=code)

        return VerificationResult.success(CertificateParser.get_cn(cert), list(reversed(chain)))

    @staticmethod
    def _build_chain(
        cert: x509.Certificate, anchors: List[x509.Certificate]
    ) -> Tuple[List[x509.Certificate], ChainError]:
        """
        Follow issuer links from the leaf up to a self-signed trust anchor.

        Returns:
            Chain ordered leaf first, and the error that stopped it, if any
        """
        chain = [cert]
        if cert.subject == cert.issuer:
            if cert not in anchors:
                return chain, (X509_V_ERR_DEPTH_ZERO_SELF_SIGNED_CERT, "self signed certificate")
            return chain, None

        current = cert
        for _ in range(MAX_CHAIN_DEPTH):
            candidates = [ca for ca in anchors if ca.subject == current.issuer]
            if not candidates:
                return chain, (
                    X509_V_ERR_UNABLE_TO_GET_ISSUER_CERT_LOCALLY,
                    "unable to get local issuer certificate",
                )

            issuer = None
            for candidate in candidates:
                try:
                    current.verify_directly_issued_by(candidate)
                except (InvalidSignature, ValueError, TypeError):
                    continue
                issuer = candidate
                break

            if issuer is None:
                return chain, (X509_V_ERR_CERT_SIGNATURE_FAILURE, "certificate signature failure")

            if not CertificateParser.is_ca(issuer):
                return chain, (X509_V_ERR_INVALID_CA, "invalid CA certificate")

            chain.append(issuer)
            if issuer.subject == issuer.issuer:
                return chain, None
            current = issuer

        return chain, (X509_V_ERR_UNABLE_TO_GET_ISSUER_CERT_LOCALLY, "certificate chain too long")

    @staticmethod
    def _check_validity(chain: List[x509.Certificate], now: datetime) -> ChainError:
        for cert in chain:
            if now < cert.not_valid_before_utc:
                return X509_V_ERR_CERT_NOT_YET_VALID, "certificate is not yet valid"
            if now > cert.not_valid_after_utc:
                return X509_V_ERR_CERT_HAS_EXPIRED, "certificate has expired"
        return None

    @staticmethod
    def _check_revocation(chain: List[x509.Certificate], trust_context: TrustContext, now: datetime) -> ChainError:
        if trust_context.revocation == RevocationMode.FALSE:
            return None

        checked = chain if trust_context.revocation == RevocationMode.CHAIN else chain[:1]
        for depth, cert in enumerate(checked):
            # The root is its own issuer
            issuer = chain[depth + 1] if depth + 1 < len(chain) else cert

            crl = next((c for c in trust_context.crls if c.issuer == cert.issuer), None)
            if crl is None:
                return X509_V_ERR_UNABLE_TO_GET_CRL, "unable to get certificate CRL"

            if not crl.is_signature_valid(issuer.public_key()):
                return X509_V_ERR_CRL_SIGNATURE_FAILURE, "CRL signature failure"

            next_update = crl.next_update_utc
            if next_update is not None and now > next_update:
                return X509_V_ERR_CRL_HAS_EXPIRED, "CRL has expired"

            if crl.get_revoked_certificate_by_serial_number(cert.serial_number) is not None:
                return X509_V_ERR_CERT_REVOKED, "certificate revoked"

        return None
