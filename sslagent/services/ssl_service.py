"""SSL lifecycle actions: submit_request, download_cert, verify and clean."""

import logging
from pathlib import Path
from typing import Callable, List, Optional

from cryptography import x509

from sslagent.exceptions import (
    ChainInvalidError,
    ErrorKind,
    FileSystemError,
    KeyCertMismatchError,
    MissingCertificateError,
    MissingKeyError,
    RevokedError,
    SSLAgentError,
    UnsafeOperationError,
)
from sslagent.models.config import SSLSettings
from sslagent.models.verification import VerificationResult, VerifyReason
from sslagent.services.host_service import HostIdentity
from sslagent.services.parser_service import CertificateParser
from sslagent.services.safety_service import SafetyGuard
from sslagent.services.trust_service import TrustVerifier
from sslagent.utils.file_utils import FileUtils

logger = logging.getLogger("sslagent")

UNSAFE_CLEAN_MESSAGE = """\
The certificate {certname} must be cleaned from the CA first. The CA still holds
certificate {fingerprint} (serial {serial}) for it. To fix this,
run the following commands on the CA:
  puppetserver ca clean --certname {certname}
  sslagent clean"""


class SSLService:
    """Service for the host's certificate lifecycle actions."""

    def __init__(
        self,
        host: HostIdentity,
        verifier: TrustVerifier,
        guard: SafetyGuard,
        settings: SSLSettings,
        show_chain: bool = False,
        echo: Callable[[str], None] = print,
    ):
        """
        Initialize SSL service.

        Args:
            host: Host identity for the certname being managed
            verifier: Trust verifier used by ``verify``
            guard: Safety guard consulted by ``clean``
            settings: Resolved settings (CA location and artifact paths)
            show_chain: Print the issuer chain after a successful verify
            echo: Sink for user-facing confirmation lines
        """
        self.host = host
        self.verifier = verifier
        self.guard = guard
        self.settings = settings
        self.show_chain = show_chain
        self.echo = echo

    def submit_request(self) -> None:
        """
        Submit a CSR for this host to the CA.

        A key pair is generated first if none exists. Submitting while the CA
        still holds a pending request for the certname fails.

        Raises:
            SSLAgentError: ``ALREADY_SUBMITTED`` for a pending request, or the
                kind of whatever else failed
        """
        try:
            self.host.ensure_ca_certificate()
            self.host.ensure_crl()
            self.host.submit_request()
        except (SSLAgentError, OSError) as e:
            raise self._wrap("Failed to submit certificate request", e) from e

        self.echo(f"Submitted certificate request for '{self.host.name}' to {self.settings.ca_url}")

    def download_cert(self) -> Optional[x509.Certificate]:
        """
        Download this host's certificate from the CA.

        Returns:
            The saved certificate, or None if the CA has not signed one yet

        Raises:
            SSLAgentError: ``KEY_MISMATCH`` if the CA's certificate is for a
                different key, or the kind of whatever else failed
        """
        try:
            self.host.ensure_ca_certificate()
            self.host.ensure_crl()

            self.echo(f"Downloading certificate '{self.host.name}' from {self.settings.ca_url}")
            cert = self.host.download_host_certificate()
        except (SSLAgentError, OSError) as e:
            raise self._wrap("Failed to download certificate", e) from e

        if cert is None:
            self.echo(f"No certificate for '{self.host.name}' on CA")
            return None

        self.echo(
            f"Downloaded certificate '{self.host.name}' with fingerprint {CertificateParser.fingerprint(cert)}"
        )
        return cert

    def submit_and_download(self) -> Optional[x509.Certificate]:
        """Submit a request, then immediately try to download the signed certificate."""
        self.submit_request()
        return self.download_cert()

    def verify(self) -> VerificationResult:
        """
        Verify the host's key and certificate against the local trust store.

        Only the CA bundle is downloaded if missing. The CRL is never fetched
        here; a missing CRL fails revocation checking.

        Returns:
            The successful verification result

        Raises:
            SSLAgentError: with the kind of the first check that failed
        """
        try:
            self.host.ensure_ca_certificate()

            key = self.host.key()
            cert = self.host.check_for_certificate_on_disk(self.host.name)
            result = self.verifier.verify(key, cert, self.host.ssl_store())
            if not result.ok:
                raise self._verification_error(self.host.name, result)
        except (SSLAgentError, OSError) as e:
            raise self._wrap("Verify failed", e) from e

        self.echo(f"Verified certificate '{self.host.name}'")
        if self.show_chain:
            # result.chain is root first; list the issuers of the host cert
            for depth, issuer in enumerate(result.chain[:-1], start=1):
                self.echo(f"{'  ' * depth}{issuer.subject.rfc4514_string()}")
        return result

    def clean(self, localca: bool = False) -> List[Path]:
        """
        Remove the host's local credential files.

        Args:
            localca: Also remove the local CA bundle and CRL

        Returns:
            Paths that were removed; files already absent are skipped

        Raises:
            UnsafeOperationError: If this host is the CA server and the CA
                still holds its certificate; nothing is removed
            SSLAgentError: ``TRANSPORT`` if the CA cannot be asked
            FileSystemError: If a file exists but cannot be removed
        """
        try:
            decision = self.guard.may_clean(self.host.name)
        except SSLAgentError as e:
            raise self._wrap("Failed to clean", e) from e

        if not decision.allowed:
            existing = decision.existing
            raise UnsafeOperationError(
                UNSAFE_CLEAN_MESSAGE.format(
                    certname=self.host.name,
                    fingerprint=existing.fingerprint_sha256,
                    serial=existing.serial_number,
                )
            )

        paths = self.settings.paths
        artifacts = [
            (paths.hostprivkey, "private key"),
            (paths.hostpubkey, "public key"),
            (paths.hostcsr, "certificate request"),
            (paths.hostcert, "certificate"),
            (paths.passfile, "private key password file"),
        ]
        if localca:
            artifacts.extend([(paths.localcacert, "local CA certificate"), (paths.hostcrl, "local CRL")])

        removed = []
        for path, label in artifacts:
            try:
                if not FileUtils.unlink(path):
                    continue
            except OSError as e:
                raise FileSystemError(f"Failed to remove {label} {path}: {e}", cause=e) from e
            logger.info(f"Removed {label} {path}")
            self.echo(f"Removed {label} {path}")
            removed.append(path)

        return removed

    @staticmethod
    def _verification_error(certname: str, result: VerificationResult) -> SSLAgentError:
        if result.reason == VerifyReason.MISSING_KEY:
            return MissingKeyError(result.message)
        if result.reason == VerifyReason.MISSING_CERTIFICATE:
            return MissingCertificateError(result.message)
        if result.reason == VerifyReason.KEY_CERT_MISMATCH:
            return KeyCertMismatchError(result.message)

        error_class = RevokedError if result.reason == VerifyReason.REVOKED else ChainInvalidError
        return error_class(
            f"Failed to verify certificate '{certname}': {result.message} ({result.code})", code=result.code
        )

    def _wrap(self, prefix: str, error: Exception) -> SSLAgentError:
        if isinstance(error, SSLAgentError):
            wrapped = error.wrap(prefix)
        else:
            wrapped = SSLAgentError(f"{prefix}: {error}", kind=ErrorKind.FILE_SYSTEM, cause=error)
        logger.debug(f"{wrapped.kind.value}: {wrapped.message}")
        return wrapped
