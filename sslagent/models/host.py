"""Host identity data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List

from cryptography import x509
from pydantic import BaseModel

from .config import RevocationMode


class LifecycleStage(str, Enum):
    """Enrollment stage of a host, derived from which artifacts exist."""

    NO_KEY_NO_CERT = "no_key_no_cert"
    KEY_ONLY = "key_only"
    REQUEST_SUBMITTED = "request_submitted"
    CERT_DOWNLOADED = "cert_downloaded"
    # A cleaned host is indistinguishable on disk from a fresh one
    CLEANED = "no_key_no_cert"


class ArtifactPresence(BaseModel):
    """Which credential artifacts currently exist on disk."""

    private_key: bool = False
    public_key: bool = False
    csr: bool = False
    certificate: bool = False
    password_file: bool = False
    ca_bundle: bool = False
    crl: bool = False


def lifecycle_stage(presence: ArtifactPresence) -> LifecycleStage:
    """
    Compute the lifecycle stage from artifact presence.

    The stage is never stored; it is recomputed from disk every time so it
    cannot drift from the artifacts themselves.

    Args:
        presence: Artifact presence snapshot

    Returns:
        The lifecycle stage
    """
    if presence.certificate:
        return LifecycleStage.CERT_DOWNLOADED
    if presence.csr:
        return LifecycleStage.REQUEST_SUBMITTED
    if presence.private_key:
        return LifecycleStage.KEY_ONLY
    return LifecycleStage.NO_KEY_NO_CERT


class CertificateSummary(BaseModel):
    """Identifying details of a certificate, for operator-facing messages."""

    certname: str
    fingerprint_sha256: str
    serial_number: str
    not_after: datetime


@dataclass(frozen=True)
class TrustContext:
    """CA bundle and CRLs used to validate a host certificate."""

    ca_certs: List[x509.Certificate] = field(default_factory=list)
    crls: List[x509.CertificateRevocationList] = field(default_factory=list)
    revocation: RevocationMode = RevocationMode.CHAIN
