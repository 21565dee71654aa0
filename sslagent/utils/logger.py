"""Logging configuration."""

import logging
from pathlib import Path
from typing import Optional

from sslagent.models.config import AgentConfig


def setup_logger(config: Optional[AgentConfig] = None, debug: bool = False) -> logging.Logger:
    """
    Configure application logger.

    Args:
        config: Agent configuration
        debug: Force DEBUG level on the console

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("sslagent")

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    # Set level
    level = logging.WARNING
    if config and hasattr(config, "logging"):
        level = getattr(logging, config.logging.level.upper(), logging.WARNING)
    if debug:
        level = logging.DEBUG

    logger.setLevel(level)

    # Console handler; user-facing output goes to stdout, logs to stderr
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    console_formatter = logging.Formatter("%(levelname)s: %(message)s")
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # File handler (if configured)
    if config and config.logging.file:
        log_file = Path(config.logging.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_formatter = logging.Formatter(config.logging.format)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger
