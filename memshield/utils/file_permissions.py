"""
File permission hardening for the memshield data directory.

Sensitive files (settings, audit database, logs) are kept owner-only:
0o600 for files and 0o700 for directories. On Windows these checks are
skipped with a warning, since POSIX modes do not apply there.
"""
from __future__ import annotations

import logging
import os
import stat
import sys
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

SECURE_FILE_MODE = 0o600
SECURE_DIR_MODE = 0o700

# Files under the data directory that must never be group/world readable
SENSITIVE_FILES = ("settings.yaml", "security.db")
SENSITIVE_SUBDIRS = ("logs",)


def _is_windows() -> bool:
    return sys.platform == "win32"


def set_secure_permissions(file_path: PathLike) -> bool:
    """Set owner read/write only (0o600) on a file.

    Returns:
        True if permissions were set (always True on Windows)
    """
    path = Path(file_path)
    if _is_windows():
        logger.warning("File permission hardening not available on Windows: %s", path)
        return True

    if not path.exists():
        logger.error("Cannot set permissions, file does not exist: %s", path)
        return False

    try:
        os.chmod(path, SECURE_FILE_MODE)
    except OSError as e:
        logger.error("Failed to set secure permissions on %s: %s", path, e)
        return False

    logger.debug("Set secure permissions (0o600) on %s", path)
    return True


def check_permissions(file_path: PathLike) -> bool:
    """Check that a file is not group or world readable.

    Returns:
        True if the file is private (always True on Windows)
    """
    path = Path(file_path)
    if _is_windows():
        return True

    try:
        mode = path.stat().st_mode
    except OSError as e:
        logger.error("Cannot check permissions on %s: %s", path, e)
        return False

    group_read = bool(mode & stat.S_IRGRP)
    world_read = bool(mode & stat.S_IROTH)
    if group_read or world_read:
        logger.warning(
            "Insecure permissions on %s (mode=%s, group_readable=%s, world_readable=%s)",
            path, oct(mode & 0o777), group_read, world_read,
        )
        return False

    return True


def ensure_secure_directory(dir_path: PathLike) -> bool:
    """Ensure a directory exists with owner-only access (0o700).

    Creates the directory if needed and tightens an existing one.

    Returns:
        True if the directory exists and is private
    """
    path = Path(dir_path)

    try:
        if path.exists():
            if not path.is_dir():
                logger.error("Path exists but is not a directory: %s", path)
                return False

            if not _is_windows():
                mode = path.stat().st_mode
                if mode & 0o077:
                    logger.warning(
                        "Directory %s has insecure permissions (mode=%s), fixing",
                        path, oct(mode & 0o777),
                    )
                    os.chmod(path, SECURE_DIR_MODE)
            return True

        path.mkdir(parents=True, exist_ok=True)
        if _is_windows():
            logger.warning("Created %s (permission hardening not available on Windows)", path)
        else:
            # mkdir's mode is filtered by the umask, so set it explicitly
            os.chmod(path, SECURE_DIR_MODE)
            logger.info("Created directory with secure permissions (0o700): %s", path)
        return True

    except OSError as e:
        logger.error("Failed to ensure secure directory %s: %s", path, e)
        return False


def harden_data_directory(data_dir: Optional[PathLike] = None) -> bool:
    """Apply secure permissions to the data directory and its sensitive files.

    Args:
        data_dir: Data directory, defaults to ~/.memshield

    Returns:
        True if every permission change succeeded
    """
    path = Path(data_dir) if data_dir else Path.home() / ".memshield"
    logger.info("Hardening data directory permissions: %s", path)

    if _is_windows():
        logger.warning("Data directory hardening not available on Windows")
        return True

    if not path.exists():
        logger.warning("Data directory does not exist, nothing to harden: %s", path)
        return True

    all_ok = ensure_secure_directory(path)

    for name in SENSITIVE_FILES:
        file_path = path / name
        if file_path.exists() and not set_secure_permissions(file_path):
            all_ok = False

    for name in SENSITIVE_SUBDIRS:
        subdir = path / name
        if not subdir.is_dir():
            continue
        if not ensure_secure_directory(subdir):
            all_ok = False
        for child in subdir.iterdir():
            if child.is_file() and not set_secure_permissions(child):
                all_ok = False

    return all_ok
