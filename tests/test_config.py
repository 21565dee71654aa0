"""Tests for configuration loading and settings resolution."""

import logging
from pathlib import Path

import pytest

from sslagent.exceptions import ConfigurationError, ErrorKind
from sslagent.models.config import AgentConfig, RevocationMode, RunModeSettings
from sslagent.services.config_service import load_config, resolve_ca_server, resolve_settings
from sslagent.utils.logger import setup_logger
from sslagent.utils.validators import validate_certname


@pytest.fixture
def config_file(tmp_path):
    def _write(content: str) -> Path:
        path = tmp_path / "config.yaml"
        path.write_text(content)
        return path

    return _write


@pytest.mark.unit
class TestLoadConfig:
    """Test reading config.yaml."""

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")

        assert config == AgentConfig()

    def test_load_sections(self, config_file):
        path = config_file(
            """
main:
  certname: agent1
  server: puppet.example.com
  ssldir: /var/lib/sslagent/ssl
agent:
  ca_server: puppetca.example.com
logging:
  level: DEBUG
"""
        )

        config = load_config(path)

        assert config.main.certname == "agent1"
        assert config.agent.ca_server == "puppetca.example.com"
        assert config.logging.level == "DEBUG"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("false", RevocationMode.FALSE),
            ("true", RevocationMode.CHAIN),
            ("chain", RevocationMode.CHAIN),
            ("leaf", RevocationMode.LEAF),
        ],
    )
    def test_certificate_revocation_values(self, config_file, value, expected):
        config = load_config(config_file(f"main:\n  certificate_revocation: {value}\n"))

        assert config.main.certificate_revocation == expected

    def test_invalid_revocation_mode(self, config_file):
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config(config_file("main:\n  certificate_revocation: sometimes\n"))

    def test_keylength_too_short(self, config_file):
        with pytest.raises(ConfigurationError):
            load_config(config_file("main:\n  keylength: 1024\n"))

    def test_invalid_yaml(self, config_file):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(config_file("main: [unclosed\n"))

        assert exc_info.value.kind == ErrorKind.CONFIGURATION
        assert exc_info.value.cause is not None

    def test_not_a_mapping(self, config_file):
        with pytest.raises(ConfigurationError, match="expected a mapping"):
            load_config(config_file("- just\n- a list\n"))


@pytest.mark.unit
class TestResolveSettings:
    """Test turning run mode sections into concrete settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.setattr("sslagent.models.config.socket.getfqdn", lambda: "Node1.Example.COM")

        settings = AgentConfig().resolve()

        ssldir = Path("./ssl")
        assert settings.certname == "node1.example.com"
        assert settings.server == "puppet"
        assert settings.ca_server == "puppet"
        assert settings.ca_port == 8140
        assert settings.keylength == 4096
        assert settings.certificate_revocation == RevocationMode.CHAIN
        assert settings.ca_url == "https://puppet:8140"
        assert settings.paths.hostprivkey == ssldir / "private_keys" / "node1.example.com.pem"
        assert settings.paths.hostpubkey == ssldir / "public_keys" / "node1.example.com.pem"
        assert settings.paths.hostcsr == ssldir / "certificate_requests" / "node1.example.com.pem"
        assert settings.paths.hostcert == ssldir / "certs" / "node1.example.com.pem"
        assert settings.paths.passfile == ssldir / "private" / "password"
        assert settings.paths.localcacert == ssldir / "certs" / "ca.pem"
        assert settings.paths.hostcrl == ssldir / "crl.pem"

    def test_explicit_certname_wins(self, make_config):
        config = make_config(certname="configured")

        assert config.resolve(certname="agent2").certname == "agent2"
        assert config.resolve().certname == "configured"

    def test_ca_server_defaults_to_server(self, make_config):
        settings = make_config(server="puppet.example.com").resolve(certname="agent1")

        assert settings.ca_server == "puppet.example.com"

    def test_agent_section_overrides_main(self, make_config):
        config = make_config(ca_server="main-ca", agent={"ca_server": "agent-ca", "ca_port": 8141})

        main = config.resolve("main", certname="agent1")
        agent = config.resolve("agent", certname="agent1")

        assert main.ca_server == "main-ca"
        assert agent.ca_server == "agent-ca"
        assert agent.ca_port == 8141
        assert agent.keylength == main.keylength

    def test_resolve_ca_server_uses_agent_mode(self, make_config):
        config = make_config(ca_server="main-ca", agent={"ca_server": "agent-ca"})

        assert resolve_ca_server(config) == "agent-ca"

    def test_path_override(self, make_config, tmp_path):
        config = make_config(hostcert=str(tmp_path / "elsewhere.pem"))

        assert config.resolve(certname="agent1").paths.hostcert == tmp_path / "elsewhere.pem"

    def test_unknown_run_mode(self):
        with pytest.raises(ValueError, match="Unknown run mode"):
            AgentConfig().section("user")

    def test_resolve_settings_validates_certname(self, make_config):
        with pytest.raises(ConfigurationError, match="must be lower case"):
            resolve_settings(make_config(), certname="Agent1")

    def test_resolve_settings(self, make_config, ssldir):
        settings = resolve_settings(make_config(), certname="agent1")

        assert settings.paths.hostcert == ssldir / "certs" / "agent1.pem"

    def test_run_mode_settings_all_optional(self):
        assert RunModeSettings().model_dump(exclude_none=True) == {}


@pytest.mark.unit
class TestValidateCertname:
    """Test certname validation."""

    @pytest.mark.parametrize("certname", ["agent1", "agent1.example.com", "web-01", "db_02"])
    def test_valid(self, certname):
        assert validate_certname(certname) == certname

    @pytest.mark.parametrize("certname", ["", "   ", "Agent1", ".", "..", "../etc", "a/b", "agent 1"])
    def test_invalid(self, certname):
        with pytest.raises(ConfigurationError):
            validate_certname(certname)


@pytest.mark.unit
class TestLogger:
    """Test logger setup."""

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "sslagent.log"
        config = AgentConfig(logging={"level": "INFO", "file": str(log_file)})

        logger = setup_logger(config)
        logger.info("hello from the agent")
        for handler in logger.handlers:
            handler.flush()

        assert "hello from the agent" in log_file.read_text()

    def test_debug_level(self):
        logger = setup_logger(AgentConfig(), debug=True)

        assert logger.level == logging.DEBUG

    def test_no_duplicate_handlers(self):
        logger = setup_logger(AgentConfig())
        count = len(logger.handlers)

        setup_logger(AgentConfig())

        assert len(logger.handlers) == count
