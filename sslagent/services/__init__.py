"""Service layer for the certificate lifecycle."""

from .host_service import CATransport, Host, HostIdentity
from .http_service import CAClient
from .parser_service import CertificateParser
from .registry import ServiceRegistry
from .safety_service import SafetyGuard
from .ssl_service import SSLService
from .trust_service import TrustVerifier, X509TrustVerifier
from .yaml_service import YAMLService

__all__ = [
    "YAMLService",
    "CertificateParser",
    "CATransport",
    "HostIdentity",
    "Host",
    "CAClient",
    "ServiceRegistry",
    "SafetyGuard",
    "TrustVerifier",
    "X509TrustVerifier",
    "SSLService",
]
