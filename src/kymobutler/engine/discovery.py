"""Engine installation discovery and checks."""

import logging
import os
import shutil

from pathlib import Path

from kymobutler.constants import (
    ENGINE_PACKAGE_DIR,
    ENGINE_PACKAGE_FILE,
    INSTALL_ROOT_CANDIDATES,
    INSTALL_ROOT_ENV_VAR,
)
from kymobutler.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "find_install_root",
    "is_install_root",
    "resolve_engine_executable",
    "resolve_install_root",
]


def is_install_root(path: Path) -> bool:
    """True if ``path`` contains packages/KymoButler.wl."""
    return (path / ENGINE_PACKAGE_DIR / ENGINE_PACKAGE_FILE).is_file()


def find_install_root(home: Path | None = None) -> Path | None:
    """
    Look for an engine install root.

    Checks $KYMOBUTLER_PATH first, then the usual download locations under
    the home directory.

    Args:
        home: Home directory to search (default: the user's home)

    Returns:
        First valid install root, or None
    """
    env_path = os.environ.get(INSTALL_ROOT_ENV_VAR, "").strip()
    if env_path and is_install_root(Path(env_path)):
        return Path(env_path)

    base = home or Path.home()
    for candidate in INSTALL_ROOT_CANDIDATES:
        path = base / candidate
        if is_install_root(path):
            logger.debug(f"Found engine install root at {path}")
            return path

    return None


def resolve_install_root(configured: Path | None) -> Path:
    """
    Validate the configured install root, or discover one.

    Raises:
        ConfigurationError: If no valid install root is available
    """
    if configured is not None:
        if not is_install_root(configured):
            raise ConfigurationError(
                f"{ENGINE_PACKAGE_DIR}/{ENGINE_PACKAGE_FILE} not found under "
                f"{configured}. Set a valid path with: "
                "kymobutler config set engine.install_root <path>"
            )
        return configured

    found = find_install_root()
    if found is None:
        raise ConfigurationError(
            "KymoButler install root is not set and could not be found. "
            f"Set ${INSTALL_ROOT_ENV_VAR} or run: "
            "kymobutler config set engine.install_root <path>"
        )
    return found


def resolve_engine_executable(engine_path: str) -> str:
    """
    Resolve the engine executable to an absolute path.

    Raises:
        ConfigurationError: If the executable cannot be found
    """
    resolved = shutil.which(engine_path)
    if resolved is None:
        raise ConfigurationError(
            f"Engine executable not found: {engine_path}. Set it with: "
            "kymobutler config set engine.path <path>"
        )
    return resolved
