"""Configuration loading."""

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from sslagent.exceptions import ConfigurationError
from sslagent.models.config import AgentConfig, SSLSettings
from sslagent.services.yaml_service import YAMLService
from sslagent.utils.validators import validate_certname

logger = logging.getLogger("sslagent")

DEFAULT_CONFIG_PATH = Path("config.yaml")


def load_config(config_path: Optional[Path] = None) -> AgentConfig:
    """
    Load agent configuration.

    A missing file yields the built-in defaults.

    Args:
        config_path: Path to config.yaml

    Returns:
        Agent configuration

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation
    """
    config_path = config_path or DEFAULT_CONFIG_PATH
    if not config_path.exists():
        logger.debug(f"No config file at {config_path}, using defaults")
        return AgentConfig()

    try:
        config_data = YAMLService.load_yaml(config_path)
        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Invalid configuration in {config_path}: expected a mapping")
        return AgentConfig(**config_data)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}", cause=e) from e
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}", cause=e) from e


def resolve_settings(config: AgentConfig, certname: Optional[str] = None) -> SSLSettings:
    """
    Resolve the settings used by this invocation.

    Args:
        config: Agent configuration
        certname: Certname given on the command line, if any

    Returns:
        Resolved settings

    Raises:
        ConfigurationError: If the resulting certname is invalid
    """
    settings = config.resolve("main", certname=certname)
    validate_certname(settings.certname)
    return settings


def resolve_ca_server(config: AgentConfig) -> str:
    """
    Resolve the CA server's certname as the agent run mode sees it.

    Args:
        config: Agent configuration

    Returns:
        The ``ca_server`` value interpolated for the ``agent`` run mode
    """
    return config.resolve("agent").ca_server
