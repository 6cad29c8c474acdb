"""
Utility functions for file system operations and string sanitization.

This module provides helper functions for:
- Sanitizing uploaded filenames for display and bookkeeping
- Ensuring directory creation with proper error handling
- Writing output files atomically
"""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

# Pattern to match characters that are not safe for filesystem paths
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")


def sanitize_filename(filename: str, fallback: str = "document.pdf") -> str:
    """
    Generate a filesystem-safe filename from user input.

    Args:
        filename: The original filename, possibly including directories
        fallback: Value to return if sanitization results in an empty string

    Returns:
        A filesystem-safe filename or the fallback value

    Example:
        >>> sanitize_filename("../My Scan (1).pdf")
        "My-Scan-1-.pdf"
        >>> sanitize_filename("@#$")
        "document.pdf"
    """
    name = Path(filename.replace("\\", "/")).name
    cleaned = SANITIZE_PATTERN.sub("-", name.strip()).strip("-_.")
    return cleaned or fallback


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining

    Raises:
        OSError: If directory creation fails due to permissions or other I/O errors
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def atomic_write_bytes(path: Path, data: bytes) -> Path:
    """
    Write ``data`` to ``path`` so readers see either the old file or the complete new one.

    The bytes go to a temporary file in the same directory which then replaces
    ``path``. The temporary file is removed if anything fails.

    Raises:
        OSError: If the file cannot be written or moved into place
    """
    ensure_directory(path.parent)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
    return path
