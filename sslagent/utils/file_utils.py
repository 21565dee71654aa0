"""File system utilities."""

import logging
import os
from pathlib import Path

logger = logging.getLogger("sslagent")


class FileUtils:
    """Utility class for file operations."""

    @staticmethod
    def ensure_directory(path: Path) -> None:
        """
        Ensure directory exists, create if not.

        Args:
            path: Directory path to ensure
        """
        path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Ensured directory exists: {path}")

    @staticmethod
    def unlink(path: Path) -> bool:
        """
        Remove a file if it exists.

        Args:
            path: File path to remove

        Returns:
            True if the file was removed, False if it was already absent
        """
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Removed file: {path}")
        return True

    @staticmethod
    def read_binary_file(path: Path) -> bytes:
        """
        Read file contents as bytes.

        Args:
            path: File path to read

        Returns:
            File contents as bytes
        """
        with open(path, "rb") as f:
            return f.read()

    @staticmethod
    def write_binary_file(path: Path, content: bytes, mode: int = 0o644) -> None:
        """
        Write binary content to file, replacing it atomically.

        The content goes to a temporary sibling first and is renamed over the
        target, so readers never observe a half-written PEM file.

        Args:
            path: File path to write
            content: Binary content to write
            mode: Permission bits for the new file
        """
        FileUtils.ensure_directory(path.parent)
        tmp_path = path.with_name(f".{path.name}.tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote binary file: {path}")
