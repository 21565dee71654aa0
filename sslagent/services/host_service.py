"""Host identity: the host's key pair, CSR, certificate and trust material."""

import logging
from pathlib import Path
from typing import List, Optional, Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.x509.oid import NameOID

from sslagent.exceptions import FileSystemError, KeyMismatchError, MissingKeyError
from sslagent.models.config import RevocationMode, SSLSettings
from sslagent.models.host import ArtifactPresence, LifecycleStage, TrustContext, lifecycle_stage
from sslagent.services.parser_service import CertificateParser
from sslagent.utils.file_utils import FileUtils

logger = logging.getLogger("sslagent")

PRIVATE_KEY_MODE = 0o640


class CATransport(Protocol):
    """Remote operations against the CA."""

    def fetch_ca_bundle(self) -> List[x509.Certificate]: ...

    def fetch_crls(self) -> List[x509.CertificateRevocationList]: ...

    def fetch_certificate(self, certname: str) -> Optional[x509.Certificate]: ...

    def submit_request(self, certname: str, csr: x509.CertificateSigningRequest) -> None: ...


class HostIdentity(Protocol):
    """Local credential state of one certname."""

    name: str

    def ensure_ca_certificate(self) -> None: ...

    def ensure_crl(self) -> None: ...

    def submit_request(self) -> x509.CertificateSigningRequest: ...

    def download_host_certificate(self) -> Optional[x509.Certificate]: ...

    def check_for_certificate_on_disk(self, certname: str) -> Optional[x509.Certificate]: ...

    def key(self) -> Optional[PrivateKeyTypes]: ...

    def ssl_store(self) -> TrustContext: ...

    def artifact_presence(self) -> ArtifactPresence: ...

    def lifecycle_stage(self) -> LifecycleStage: ...


class Host:
    """
    Host identity backed by PEM files on disk.

    Which files exist is the host's lifecycle state; nothing else is stored.
    """

    def __init__(self, settings: SSLSettings, transport: CATransport):
        """
        Initialize host.

        Args:
            settings: Resolved settings for this invocation
            transport: CA transport used for remote state
        """
        self.name = settings.certname
        self.settings = settings
        self.paths = settings.paths
        self.transport = transport

    # ==========================================================================
    # Trust material
    # ==========================================================================

    def ensure_ca_certificate(self) -> None:
        """
        Make sure the local CA bundle exists, downloading it if missing.

        Raises:
            TransportError: If the bundle cannot be downloaded
            FileSystemError: If it cannot be saved
        """
        if not self.paths.localcacert.exists():
            logger.info(f"Downloading CA bundle to {self.paths.localcacert}")
            certs = self.transport.fetch_ca_bundle()
            pem = b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in certs)
            self._write(self.paths.localcacert, pem)

    def ensure_crl(self) -> None:
        """
        Make sure the local CRL exists when revocation is checked.

        Raises:
            TransportError: If the CRL cannot be downloaded
            FileSystemError: If it cannot be saved
        """
        if self.settings.certificate_revocation != RevocationMode.FALSE and not self.paths.hostcrl.exists():
            logger.info(f"Downloading CRL to {self.paths.hostcrl}")
            crls = self.transport.fetch_crls()
            pem = b"".join(crl.public_bytes(serialization.Encoding.PEM) for crl in crls)
            self._write(self.paths.hostcrl, pem)

    def ssl_store(self) -> TrustContext:
        """
        Load the trust context from the local CA bundle and CRL.

        Returns:
            Trust context; empty lists for files that do not exist
        """
        ca_certs: List[x509.Certificate] = []
        if self.paths.localcacert.exists():
            ca_certs = self._load(self.paths.localcacert, "CA bundle", CertificateParser.load_certificates)

        crls: List[x509.CertificateRevocationList] = []
        if self.settings.certificate_revocation != RevocationMode.FALSE and self.paths.hostcrl.exists():
            crls = self._load(self.paths.hostcrl, "CRL", CertificateParser.load_crls)

        return TrustContext(ca_certs=ca_certs, crls=crls, revocation=self.settings.certificate_revocation)

    # ==========================================================================
    # Key pair and request
    # ==========================================================================

    def key(self) -> Optional[PrivateKeyTypes]:
        """
        Load the host's private key.

        Returns:
            The private key, or None if none exists yet

        Raises:
            FileSystemError: If the key file exists but cannot be loaded
        """
        if not self.paths.hostprivkey.exists():
            return None

        password = self._password()
        return self._load(
            self.paths.hostprivkey,
            "private key",
            lambda data: serialization.load_pem_private_key(data, password=password),
        )

    def generate_key(self) -> PrivateKeyTypes:
        """
        Generate and save a new RSA key pair.

        Returns:
            The new private key
        """
        logger.info(f"Creating a new RSA SSL key for {self.name}")
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=self.settings.keylength)

        password = self._password()
        encryption = (
            serialization.BestAvailableEncryption(password) if password else serialization.NoEncryption()
        )
        self._write(
            self.paths.hostprivkey,
            private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=encryption,
            ),
            mode=PRIVATE_KEY_MODE,
        )
        self._write(
            self.paths.hostpubkey,
            private_key.public_key().public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            ),
        )
        return private_key

    def generate_request(self, private_key: PrivateKeyTypes) -> x509.CertificateSigningRequest:
        """
        Build a CSR for this host's certname.

        Args:
            private_key: Key the request is signed with

        Returns:
            Signed certificate signing request
        """
        subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, self.name)])
        return x509.CertificateSigningRequestBuilder().subject_name(subject).sign(private_key, hashes.SHA256())

    def submit_request(self) -> x509.CertificateSigningRequest:
        """
        Generate a CSR (creating a key pair if needed) and submit it to the CA.

        The CSR is only saved locally once the CA accepted it.

        Returns:
            The submitted CSR

        Raises:
            AlreadySubmittedError: If the CA already holds a pending request
            TransportError: If the submission fails
        """
        private_key = self.key() or self.generate_key()
        csr = self.generate_request(private_key)
        self.transport.submit_request(self.name, csr)
        self._write(self.paths.hostcsr, csr.public_bytes(serialization.Encoding.PEM))
        return csr

    # ==========================================================================
    # Certificate
    # ==========================================================================

    def download_host_certificate(self) -> Optional[x509.Certificate]:
        """
        Download this host's certificate and save it if it matches the key.

        Returns:
            The saved certificate, or None if the CA has not signed one yet

        Raises:
            MissingKeyError: If there is no private key to check against
            KeyMismatchError: If the certificate belongs to a different key;
                the local certificate is left untouched
        """
        cert = self.transport.fetch_certificate(self.name)
        if cert is None:
            return None

        fingerprint = CertificateParser.fingerprint(cert)
        private_key = self.key()
        if private_key is None:
            raise MissingKeyError(
                f"No private key with which to validate certificate with fingerprint: {fingerprint}"
            )
        if not CertificateParser.key_matches_certificate(private_key, cert):
            raise KeyMismatchError(
                f"The certificate retrieved from the CA does not match the agent's private key.\n"
                f"Certificate fingerprint: {fingerprint}\n"
                f"To fix this, remove the certificate from both the CA and the agent and then start "
                f"a new certificate request."
            )

        self._write(self.paths.hostcert, cert.public_bytes(serialization.Encoding.PEM))
        logger.info(f"Saved certificate {fingerprint} to {self.paths.hostcert}")
        return cert

    def check_for_certificate_on_disk(self, certname: str) -> Optional[x509.Certificate]:
        """
        Load a certificate from the local certificate directory.

        Args:
            certname: Certificate name

        Returns:
            The certificate, or None if no file exists for it
        """
        path = self.paths.hostcert if certname == self.name else self.paths.hostcert.with_name(f"{certname}.pem")
        if not path.exists():
            return None
        return self._load(path, "certificate", CertificateParser.load_certificate)

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def artifact_presence(self) -> ArtifactPresence:
        return ArtifactPresence(
            private_key=self.paths.hostprivkey.exists(),
            public_key=self.paths.hostpubkey.exists(),
            csr=self.paths.hostcsr.exists(),
            certificate=self.paths.hostcert.exists(),
            password_file=self.paths.passfile.exists(),
            ca_bundle=self.paths.localcacert.exists(),
            crl=self.paths.hostcrl.exists(),
        )

    def lifecycle_stage(self) -> LifecycleStage:
        """Current lifecycle stage, recomputed from disk on every call."""
        return lifecycle_stage(self.artifact_presence())

    # ==========================================================================
    # Internal
    # ==========================================================================

    def _password(self) -> Optional[bytes]:
        if not self.paths.passfile.exists():
            return None
        try:
            return FileUtils.read_binary_file(self.paths.passfile).strip() or None
        except OSError as e:
            raise FileSystemError(f"Failed to read {self.paths.passfile}: {e}", cause=e) from e

    @staticmethod
    def _load(path: Path, label: str, loader):
        try:
            return loader(FileUtils.read_binary_file(path))
        except OSError as e:
            raise FileSystemError(f"Failed to read {label} {path}: {e}", cause=e) from e
        except (ValueError, TypeError) as e:
            raise FileSystemError(f"Failed to load {label} {path}: {e}", cause=e) from e

    @staticmethod
    def _write(path: Path, content: bytes, mode: int = 0o644) -> None:
        try:
            FileUtils.write_binary_file(path, content, mode=mode)
        except OSError as e:
            raise FileSystemError(f"Failed to write {path}: {e}", cause=e) from e
