"""Data models for sslagent."""

from .config import AgentConfig, LoggingSettings, RevocationMode, RunModeSettings, SSLPaths, SSLSettings
from .host import ArtifactPresence, CertificateSummary, LifecycleStage, TrustContext, lifecycle_stage
from .verification import CleanDecision, VerificationResult, VerifyReason

__all__ = [
    "AgentConfig",
    "RunModeSettings",
    "LoggingSettings",
    "RevocationMode",
    "SSLPaths",
    "SSLSettings",
    "ArtifactPresence",
    "CertificateSummary",
    "LifecycleStage",
    "TrustContext",
    "lifecycle_stage",
    "CleanDecision",
    "VerificationResult",
    "VerifyReason",
]
