"""
Database path resolution.

Precedence: explicit flag, then configured value, then ``.issuemirror.db``
in the current directory.
"""

import os
from pathlib import Path
from typing import Optional, Union

from ...core.exceptions import ConfigurationError
from ...core.ports.config_provider import DEFAULT_DB_FILENAME


def resolve_db_path(
    flag_path: Optional[Union[str, Path]] = None,
    configured_path: Optional[Union[str, Path]] = None,
) -> Path:
    """Pick the database path by precedence."""
    if flag_path:
        return Path(flag_path).expanduser()
    if configured_path:
        return Path(configured_path).expanduser()
    return Path(DEFAULT_DB_FILENAME)


def ensure_db_path(db_path: Path) -> Path:
    """
    Make sure the database file can be created.

    Creates missing parent directories.

    Raises:
        ConfigurationError: If the location is not writable
    """
    parent = db_path.parent if str(db_path.parent) else Path(".")

    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(
            f"Database path not writable: cannot create directory {parent}: {e}",
            cause=e,
        )

    if db_path.exists() and not os.access(db_path, os.W_OK):
        raise ConfigurationError(f"Database file is not writable: {db_path}")
    if not os.access(parent, os.W_OK):
        raise ConfigurationError(f"Database directory is not writable: {parent}")

    return db_path
