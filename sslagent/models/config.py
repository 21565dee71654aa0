"""Agent configuration models."""

import socket
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_CA_PORT = 8140
DEFAULT_KEYLENGTH = 4096


class RevocationMode(str, Enum):
    """How much of the chain is checked against CRLs."""

    CHAIN = "chain"
    LEAF = "leaf"
    FALSE = "false"


class RunModeSettings(BaseModel):
    """
    Settings for one run mode section of config.yaml.

    Every field is optional so that the ``agent`` section only needs to name
    the values it overrides from ``main``.
    """

    certname: Optional[str] = None
    server: Optional[str] = None
    ca_server: Optional[str] = None
    ca_port: Optional[int] = Field(None, gt=0, lt=65536)
    ssldir: Optional[str] = None
    keylength: Optional[int] = Field(None, ge=2048)
    certificate_revocation: Optional[RevocationMode] = None
    http_connect_timeout: Optional[float] = Field(None, gt=0)
    http_read_timeout: Optional[float] = Field(None, gt=0)

    # Per-artifact path overrides
    hostprivkey: Optional[str] = None
    hostpubkey: Optional[str] = None
    hostcsr: Optional[str] = None
    hostcert: Optional[str] = None
    passfile: Optional[str] = None
    localcacert: Optional[str] = None
    hostcrl: Optional[str] = None

    @field_validator("certificate_revocation", mode="before")
    @classmethod
    def _yaml_boolean_revocation(cls, value):
        # YAML reads a bare `false` as a boolean
        if isinstance(value, bool):
            return "chain" if value else "false"
        return value


class LoggingSettings(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class SSLPaths(BaseModel):
    """Resolved locations of the host's credential artifacts."""

    hostprivkey: Path
    hostpubkey: Path
    hostcsr: Path
    hostcert: Path
    passfile: Path
    localcacert: Path
    hostcrl: Path


class SSLSettings(BaseModel):
    """Fully resolved settings for one invocation."""

    certname: str
    server: str
    ca_server: str
    ca_port: int = DEFAULT_CA_PORT
    keylength: int = DEFAULT_KEYLENGTH
    certificate_revocation: RevocationMode = RevocationMode.CHAIN
    http_connect_timeout: float = 120.0
    http_read_timeout: Optional[float] = None
    paths: SSLPaths

    @property
    def ca_url(self) -> str:
        return f"https://{self.ca_server}:{self.ca_port}"


class AgentConfig(BaseModel):
    """Main agent configuration."""

    main: RunModeSettings = RunModeSettings()
    agent: RunModeSettings = RunModeSettings()
    logging: LoggingSettings = LoggingSettings()

    def section(self, run_mode: str = "main") -> RunModeSettings:
        """
        Merge the ``main`` section with the section of the given run mode.

        Args:
            run_mode: ``main`` or ``agent``

        Returns:
            Settings where the run mode's values override ``main``
        """
        if run_mode == "main":
            return self.main
        if run_mode != "agent":
            raise ValueError(f"Unknown run mode: {run_mode}")

        merged = self.main.model_dump(exclude_none=True)
        merged.update(self.agent.model_dump(exclude_none=True))
        return RunModeSettings(**merged)

    def resolve(self, run_mode: str = "main", certname: Optional[str] = None) -> SSLSettings:
        """
        Resolve concrete settings for a run mode.

        Args:
            run_mode: Run mode whose section overrides ``main``
            certname: Explicit certname, overriding the configured one

        Returns:
            Resolved settings with artifact paths interpolated for the certname
        """
        values = self.section(run_mode)

        name = certname or values.certname or socket.getfqdn().lower()
        server = values.server or "puppet"
        ssldir = Path(values.ssldir or "./ssl")

        paths = SSLPaths(
            hostprivkey=Path(values.hostprivkey or ssldir / "private_keys" / f"{name}.pem"),
            hostpubkey=Path(values.hostpubkey or ssldir / "public_keys" / f"{name}.pem"),
            hostcsr=Path(values.hostcsr or ssldir / "certificate_requests" / f"{name}.pem"),
            hostcert=Path(values.hostcert or ssldir / "certs" / f"{name}.pem"),
            passfile=Path(values.passfile or ssldir / "private" / "password"),
            localcacert=Path(values.localcacert or ssldir / "certs" / "ca.pem"),
            hostcrl=Path(values.hostcrl or ssldir / "crl.pem"),
        )

        settings = {
            "certname": name,
            "server": server,
            "ca_server": values.ca_server or server,
            "paths": paths,
        }
        for field in (
            "ca_port",
            "keylength",
            "certificate_revocation",
            "http_connect_timeout",
            "http_read_timeout",
        ):
            value = getattr(values, field)
            if value is not None:
                settings[field] = value

        return SSLSettings(**settings)
