"""Certificate parsing service."""

import logging
import re
from typing import List, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes, PublicKeyTypes

from sslagent.models.host import CertificateSummary

logger = logging.getLogger("sslagent")

CRL_PATTERN = r"-----BEGIN X509 CRL-----(?:.|\n)+?-----END X509 CRL-----"


class CertificateParser:
    """Helpers for loading and comparing X.509 material."""

    @staticmethod
    def load_certificate(pem: bytes) -> x509.Certificate:
        """
        Load a single PEM certificate.

        Args:
            pem: PEM-encoded certificate

        Returns:
            A cryptography x509.Certificate object

        Raises:
            ValueError: If the content is not a PEM certificate
        """
        return x509.load_pem_x509_certificate(pem)

    @staticmethod
    def load_certificates(pem_bundle: bytes) -> List[x509.Certificate]:
        """
        Load every certificate from a PEM bundle.

        Args:
            pem_bundle: One or more PEM-encoded certificates

        Returns:
            Certificates in bundle order

        Raises:
            ValueError: If no certificate can be loaded
        """
        return x509.load_pem_x509_certificates(pem_bundle)

    @staticmethod
    def load_crls(pem_bundle: bytes) -> List[x509.CertificateRevocationList]:
        """
        Load every CRL from a PEM bundle.

        Args:
            pem_bundle: One or more PEM-encoded CRLs

        Returns:
            CRLs in bundle order

        Raises:
            ValueError: If the bundle holds no CRL or a CRL cannot be parsed
        """
        blocks = re.findall(CRL_PATTERN, pem_bundle.decode("ascii", errors="replace"))
        if not blocks:
            raise ValueError("No CRLs found in the provided content")
        return [x509.load_pem_x509_crl(block.encode("ascii")) for block in blocks]

    @staticmethod
    def fingerprint(cert: x509.Certificate) -> str:
        """SHA-256 fingerprint as colon-separated upper-case hex."""
        return cert.fingerprint(hashes.SHA256()).hex(":").upper()

    @staticmethod
    def public_key_bytes(key: Union[PrivateKeyTypes, PublicKeyTypes]) -> bytes:
        """
        Encode the public half of a key as DER SubjectPublicKeyInfo.

        Args:
            key: Private or public key

        Returns:
            DER-encoded public key
        """
        public_key = key.public_key() if hasattr(key, "private_bytes") else key
        return public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    @staticmethod
    def key_matches_certificate(key: PrivateKeyTypes, cert: x509.Certificate) -> bool:
        """
        Check that the certificate carries exactly this key's public key.

        Args:
            key: Private key
            cert: Certificate

        Returns:
            True if the encoded public keys are identical
        """
        return CertificateParser.public_key_bytes(key) == CertificateParser.public_key_bytes(cert.public_key())

    @staticmethod
    def get_cn(cert: x509.Certificate) -> str:
        """Get Common Name from certificate subject."""
        cn_attrs = cert.subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)
        return str(cn_attrs[0].value) if cn_attrs else "Unknown"

    @staticmethod
    def is_ca(cert: x509.Certificate) -> bool:
        """
        Check if certificate is a CA certificate.

        Args:
            cert: Certificate object

        Returns:
            True if Basic Constraints has CA:TRUE
        """
        try:
            basic_constraints = cert.extensions.get_extension_for_class(x509.BasicConstraints)
            return basic_constraints.value.ca
        except x509.ExtensionNotFound:
            return False

    @staticmethod
    def summarize(cert: x509.Certificate) -> CertificateSummary:
        return CertificateSummary(
            certname=CertificateParser.get_cn(cert),
            fingerprint_sha256=CertificateParser.fingerprint(cert),
            serial_number=format(cert.serial_number, "X"),
            not_after=cert.not_valid_after_utc,
        )
