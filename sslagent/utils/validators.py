"""Input validation utilities."""

import re

from sslagent.exceptions import ConfigurationError

CERTNAME_PATTERN = re.compile(r"^[a-z0-9._-]+$")


def validate_certname(certname: str) -> str:
    """
    Validate a certname before it is interpolated into file paths.

    Args:
        certname: Certname to validate

    Returns:
        The certname, unchanged

    Raises:
        ConfigurationError: If certname is empty, not lowercase, or could
            escape the ssl directory

    Example:
        >>> validate_certname("agent1.example.com")
        'agent1.example.com'
    """
    if not certname or len(certname.strip()) == 0:
        raise ConfigurationError("Certname cannot be empty")

    if certname != certname.lower():
        raise ConfigurationError(f"Certificate names must be lower case: {certname}")

    if certname in (".", "..") or not CERTNAME_PATTERN.match(certname):
        raise ConfigurationError(f"Invalid certname: {certname}")

    return certname
