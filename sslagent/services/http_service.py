"""
CA HTTP client.

Talks to the CA's v1 REST API to fetch the CA bundle and CRL, submit
certificate signing requests, and fetch signed certificates by certname.
"""

import logging
import ssl
from pathlib import Path
from typing import List, Optional

import httpx
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from sslagent import __version__
from sslagent.exceptions import AlreadySubmittedError, TransportError
from sslagent.models.config import SSLSettings
from sslagent.services.parser_service import CertificateParser

logger = logging.getLogger("sslagent")

CA_API_PREFIX = "/puppet-ca/v1"
ALREADY_REQUESTED_MARKER = "already has a requested certificate"


class CAClient:
    """
    CA transport over HTTPS.

    The underlying ``httpx.Client`` is created on first use. Until the local
    CA bundle exists the server cannot be authenticated, so only the bootstrap
    download of the bundle itself runs unverified; once the bundle is saved
    the client is rebuilt to verify against it and to present the host
    certificate when one is available.
    """

    def __init__(
        self,
        ca_server: str,
        ca_port: int,
        localcacert: Optional[Path] = None,
        hostcert: Optional[Path] = None,
        hostprivkey: Optional[Path] = None,
        passfile: Optional[Path] = None,
        connect_timeout: float = 120.0,
        read_timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize CA client.

        Args:
            ca_server: CA host name
            ca_port: CA port
            localcacert: Local CA bundle used to verify the server
            hostcert: Host certificate presented for client authentication
            hostprivkey: Host private key matching ``hostcert``
            passfile: File holding the private key password, if encrypted
            connect_timeout: Connect timeout in seconds
            read_timeout: Read timeout in seconds (None waits indefinitely)
            client: Pre-built HTTP client; used as-is and never rebuilt
        """
        self.base_url = f"https://{ca_server}:{ca_port}{CA_API_PREFIX}"
        self.localcacert = localcacert
        self.hostcert = hostcert
        self.hostprivkey = hostprivkey
        self.passfile = passfile
        self.timeout = httpx.Timeout(connect=connect_timeout, read=read_timeout, write=read_timeout, pool=None)
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: SSLSettings) -> "CAClient":
        return cls(
            ca_server=settings.ca_server,
            ca_port=settings.ca_port,
            localcacert=settings.paths.localcacert,
            hostcert=settings.paths.hostcert,
            hostprivkey=settings.paths.hostprivkey,
            passfile=settings.paths.passfile,
            connect_timeout=settings.http_connect_timeout,
            read_timeout=settings.http_read_timeout,
        )

    def __enter__(self) -> "CAClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    # ==========================================================================
    # CA API
    # ==========================================================================

    def fetch_ca_bundle(self) -> List[x509.Certificate]:
        """
        Download the CA certificate bundle.

        Returns:
            CA certificates, root and intermediates

        Raises:
            TransportError: If the request fails or the bundle is malformed
        """
        response = self._request("GET", "/certificate/ca")
        self._expect_success(response, "CA certificate")
        try:
            certs = CertificateParser.load_certificates(response.content)
        except ValueError as e:
            raise TransportError(f"CA returned a malformed CA bundle: {e}", cause=e) from e

        # The bundle is now trusted; verify the server against it from here on
        self.close()
        return certs

    def fetch_crls(self) -> List[x509.CertificateRevocationList]:
        """
        Download the CA's certificate revocation list(s).

        Returns:
            CRLs published by the CA

        Raises:
            TransportError: If the request fails or the CRL is malformed
        """
        response = self._request("GET", "/certificate_revocation_list/ca")
        self._expect_success(response, "CRL")
        try:
            return CertificateParser.load_crls(response.content)
        except ValueError as e:
            raise TransportError(f"CA returned a malformed CRL: {e}", cause=e) from e

    def fetch_certificate(self, certname: str) -> Optional[x509.Certificate]:
        """
        Fetch the signed certificate for a certname.

        Args:
            certname: Certificate name

        Returns:
            The certificate, or None if the CA has none for this name

        Raises:
            TransportError: If the request fails or the certificate is malformed
        """
        response = self._request("GET", f"/certificate/{certname}")
        if response.status_code == 404:
            logger.debug(f"No certificate for '{certname}' on CA")
            return None
        self._expect_success(response, f"certificate '{certname}'")
        try:
            return CertificateParser.load_certificate(response.content)
        except ValueError as e:
            raise TransportError(f"CA returned a malformed certificate for '{certname}': {e}", cause=e) from e

    def submit_request(self, certname: str, csr: x509.CertificateSigningRequest) -> None:
        """
        Submit a certificate signing request.

        Args:
            certname: Certificate name the request is for
            csr: Signed CSR

        Raises:
            AlreadySubmittedError: If the CA already holds a pending request
            TransportError: If the request fails for any other reason
        """
        response = self._request(
            "PUT",
            f"/certificate_request/{certname}",
            content=csr.public_bytes(serialization.Encoding.PEM),
            headers={"Content-Type": "text/plain"},
        )
        if response.status_code == 400 and ALREADY_REQUESTED_MARKER in response.text.lower():
            raise AlreadySubmittedError(f"{certname} already has a requested certificate")
        self._expect_success(response, f"certificate request '{certname}'")
        logger.info(f"Submitted certificate request for '{certname}' to {self.base_url}")

    # ==========================================================================
    # Internal
    # ==========================================================================

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                verify=self._ssl_context(),
                headers={
                    "Accept": "text/plain",
                    "User-Agent": f"sslagent/{__version__}",
                },
            )
        return self._client

    def _ssl_context(self):
        if self.localcacert is None or not self.localcacert.exists():
            logger.warning(f"No local CA bundle; the CA server at {self.base_url} will not be verified")
            return False

        context = ssl.create_default_context(cafile=str(self.localcacert))
        if self.hostcert and self.hostprivkey and self.hostcert.exists() and self.hostprivkey.exists():
            try:
                context.load_cert_chain(
                    certfile=str(self.hostcert),
                    keyfile=str(self.hostprivkey),
                    password=self._key_password,
                )
            except (ssl.SSLError, OSError) as e:
                # An encrypted or mismatched key still allows anonymous requests
                logger.warning(f"Not presenting host certificate {self.hostcert}: {e}")
        return context

    def _key_password(self) -> bytes:
        # Never fall back to an interactive OpenSSL prompt
        if self.passfile is not None and self.passfile.exists():
            return self.passfile.read_bytes().strip()
        return b""

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Perform a request, turning network failures into TransportError."""
        try:
            response = self._http().request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.debug(f"Request {method} {self.base_url}{path} failed: {e!r}")
            raise TransportError(f"Request to {self.base_url}{path} failed: {e}", cause=e) from e

        logger.debug(f"{method} {path} -> {response.status_code}")
        return response

    @staticmethod
    def _expect_success(response: httpx.Response, what: str) -> None:
        if response.is_success:
            return
        detail = response.text.strip()
        message = f"Failed to retrieve {what}" if response.request.method == "GET" else f"Failed to send {what}"
        message = f"{message}: {response.status_code} {response.reason_phrase}"
        if detail:
            message = f"{message} ({detail})"
        raise TransportError(message, status_code=response.status_code)
