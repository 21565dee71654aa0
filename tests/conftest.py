"""Pytest configuration and shared fixtures."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import PlainTextResponse
from fastapi.testclient import TestClient

from sslagent.exceptions import AlreadySubmittedError, TransportError
from sslagent.models.config import AgentConfig, RunModeSettings
from sslagent.services.host_service import Host
from sslagent.services.http_service import CA_API_PREFIX, CAClient
from sslagent.services.safety_service import SafetyGuard
from sslagent.services.ssl_service import SSLService
from sslagent.services.trust_service import X509TrustVerifier

CA_SERVER = "ca.test"
TEST_KEYLENGTH = 2048


def generate_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=TEST_KEYLENGTH)


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


class FakeCA:
    """
    In-memory certificate authority.

    Implements the CA transport interface directly, and is also served over
    HTTP by ``build_ca_app`` for the HTTP client tests.
    """

    def __init__(self, autosign: bool = False):
        self.autosign = autosign
        self.root_key = generate_key()
        self._serial = 1
        self.root_cert = self.issue(self.root_key.public_key(), "Test CA", is_ca=True)
        self.pending: Dict[str, x509.CertificateSigningRequest] = {}
        self.signed: Dict[str, x509.Certificate] = {}
        self.revoked: List[int] = []
        self.calls: List[str] = []
        self.error: Optional[Exception] = None

    def issue(
        self,
        public_key,
        common_name: str,
        is_ca: bool = False,
        not_before: Optional[datetime] = None,
        not_after: Optional[datetime] = None,
        issuer_key=None,
        issuer_cert: Optional[x509.Certificate] = None,
    ) -> x509.Certificate:
        """Issue a certificate; self-signed by the CA key when no issuer cert exists yet."""
        now = datetime.now(timezone.utc)
        issuer_key = issuer_key or self.root_key
        issuer_name = issuer_cert.subject if issuer_cert else (
            self.root_cert.subject if hasattr(self, "root_cert") else _name(common_name)
        )
        serial = self._serial
        self._serial += 1

        builder = (
            x509.CertificateBuilder()
            .subject_name(_name(common_name))
            .issuer_name(issuer_name)
            .public_key(public_key)
            .serial_number(serial)
            .not_valid_before(not_before or now - timedelta(days=1))
            .not_valid_after(not_after or now + timedelta(days=365))
            .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
        )
        return builder.sign(issuer_key, hashes.SHA256())

    def crl(
        self,
        revoked: Optional[Iterable[int]] = None,
        next_update: Optional[datetime] = None,
        signing_key=None,
        issuer_cert: Optional[x509.Certificate] = None,
    ) -> x509.CertificateRevocationList:
        now = datetime.now(timezone.utc)
        builder = (
            x509.CertificateRevocationListBuilder()
            .issuer_name((issuer_cert or self.root_cert).subject)
            .last_update(now - timedelta(days=1))
            .next_update(next_update or now + timedelta(days=30))
        )
        for serial in self.revoked if revoked is None else revoked:
            builder = builder.add_revoked_certificate(
                x509.RevokedCertificateBuilder().serial_number(serial).revocation_date(now).build()
            )
        return builder.sign(signing_key or self.root_key, hashes.SHA256())

    def sign(self, certname: str) -> x509.Certificate:
        csr = self.pending.pop(certname)
        cert = self.issue(csr.public_key(), certname)
        self.signed[certname] = cert
        return cert

    def revoke(self, certname: str) -> None:
        self.revoked.append(self.signed[certname].serial_number)

    # CA transport interface

    def fetch_ca_bundle(self) -> List[x509.Certificate]:
        self._record("fetch_ca_bundle")
        return [self.root_cert]

    def fetch_crls(self) -> List[x509.CertificateRevocationList]:
        self._record("fetch_crls")
        return [self.crl()]

    def fetch_certificate(self, certname: str) -> Optional[x509.Certificate]:
        self._record(f"fetch_certificate:{certname}")
        return self.signed.get(certname)

    def submit_request(self, certname: str, csr: x509.CertificateSigningRequest) -> None:
        self._record(f"submit_request:{certname}")
        if certname in self.pending:
            raise AlreadySubmittedError(f"{certname} already has a requested certificate")
        self.pending[certname] = csr
        if self.autosign:
            self.sign(certname)

    def _record(self, call: str) -> None:
        self.calls.append(call)
        if self.error is not None:
            raise self.error


def build_ca_app(ca: FakeCA) -> FastAPI:
    """Serve a FakeCA over the CA's v1 REST API."""
    app = FastAPI()
    router = APIRouter(prefix=CA_API_PREFIX)
    app.state.fail_status = None

    def pem(obj) -> PlainTextResponse:
        return PlainTextResponse(obj.public_bytes(serialization.Encoding.PEM).decode("ascii"))

    def failure() -> Optional[PlainTextResponse]:
        if app.state.fail_status:
            return PlainTextResponse("Internal Server Error", status_code=app.state.fail_status)
        return None

    @router.get("/certificate/{certname}")
    def get_certificate(certname: str):
        error = failure()
        if error is not None:
            return error
        if certname == "ca":
            return pem(ca.root_cert)
        cert = ca.signed.get(certname)
        if cert is None:
            return PlainTextResponse(f"Not Found: Could not find certificate {certname}", status_code=404)
        return pem(cert)

    @router.get("/certificate_revocation_list/ca")
    def get_crl():
        error = failure()
        if error is not None:
            return error
        return pem(ca.crl())

    @router.put("/certificate_request/{certname}")
    async def put_certificate_request(certname: str, request: Request):
        error = failure()
        if error is not None:
            return error
        csr = x509.load_pem_x509_csr(await request.body())
        if certname in ca.pending:
            return PlainTextResponse(
                f"{certname} already has a requested certificate; ignoring certificate request",
                status_code=400,
            )
        ca.submit_request(certname, csr)
        return PlainTextResponse("")

    app.include_router(router)
    return app


@pytest.fixture(autouse=True)
def reset_logger():
    """Drop handlers added by setup_logger so each test starts unconfigured."""
    yield
    logger = logging.getLogger("sslagent")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def ssldir(tmp_path):
    """Fresh ssl directory for each test."""
    path = tmp_path / "ssl"
    path.mkdir()
    return path


@pytest.fixture
def make_config(ssldir):
    """Build an agent configuration rooted at the test ssl directory."""

    def _make(agent: Optional[dict] = None, **main) -> AgentConfig:
        main.setdefault("ssldir", str(ssldir))
        main.setdefault("server", CA_SERVER)
        main.setdefault("keylength", TEST_KEYLENGTH)
        return AgentConfig(main=RunModeSettings(**main), agent=RunModeSettings(**(agent or {})))

    return _make


@pytest.fixture
def make_settings(make_config):
    """Resolve settings for a certname."""

    def _make(certname: str = "agent1", **main):
        return make_config(**main).resolve("main", certname=certname)

    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def fake_ca():
    return FakeCA()


@pytest.fixture
def autosign_ca():
    return FakeCA(autosign=True)


@pytest.fixture
def output():
    """Collected user-facing output lines."""
    return []


@pytest.fixture
def make_service(output):
    """Build an SSLService around a settings object and a CA transport."""

    def _make(settings, transport, ca_server: str = CA_SERVER, show_chain: bool = False) -> SSLService:
        return SSLService(
            host=Host(settings, transport),
            verifier=X509TrustVerifier(),
            guard=SafetyGuard(ca_server, transport),
            settings=settings,
            show_chain=show_chain,
            echo=output.append,
        )

    return _make


@pytest.fixture
def ca_app(fake_ca):
    return build_ca_app(fake_ca)


@pytest.fixture
def ca_client(ca_app, settings):
    """CAClient talking to the fake CA app in-process."""
    http_client = TestClient(ca_app, base_url=f"https://{CA_SERVER}:8140{CA_API_PREFIX}")
    client = CAClient(CA_SERVER, 8140, localcacert=settings.paths.localcacert, client=http_client)
    yield client
    http_client.close()


@pytest.fixture
def unreachable_error():
    return TransportError("Request to https://ca.test:8140/puppet-ca/v1 failed: connection refused")


@pytest.fixture
def new_key():
    """Factory for fresh RSA keys."""
    return generate_key


@pytest.fixture
def new_ca():
    """Factory for additional, unrelated CAs."""
    return FakeCA
