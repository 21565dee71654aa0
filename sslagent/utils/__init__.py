"""Utility modules."""

from .file_utils import FileUtils
from .logger import setup_logger
from .validators import validate_certname

__all__ = ["FileUtils", "setup_logger", "validate_certname"]
