"""Configuration management for KymoButler."""

import logging
import os
import tempfile
import tomllib

from pathlib import Path
from typing import Any

import tomli_w

from kymobutler.constants import (
    CONFIG_PATH_ENV_VAR,
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
)
from kymobutler.models.settings import Settings

logger = logging.getLogger(__name__)


def get_config_path() -> Path:
    """
    Get the path to the configuration file.

    Returns:
        Path from $KYMOBUTLER_CONFIG, or ~/.kymobutler/config.toml
    """
    override = os.environ.get(CONFIG_PATH_ENV_VAR)
    if override:
        return Path(override)
    return DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE


def load_config() -> dict[str, Any]:
    """
    Read the user's TOML config.

    A missing file is an empty config. An unreadable or malformed file is
    also treated as empty, with a warning, so a bad edit never blocks the CLI.
    """
    config_path = get_config_path()

    try:
        raw = config_path.read_bytes()
    except FileNotFoundError:
        return {}
    except OSError as e:
        logger.warning(f"Cannot read {config_path} ({e}); using defaults")
        return {}

    try:
        return tomllib.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Ignoring malformed config {config_path}: {e}")
        return {}


def save_config(config: dict[str, Any]) -> None:
    """
    Write ``config`` to the config path.

    The TOML is written to a sibling temp file and moved into place, so a
    reader never sees a half-written file. Errors creating the directory or
    writing the file propagate as OSError.
    """
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    fd, staging = tempfile.mkstemp(
        prefix=f".{config_path.name}.", dir=config_path.parent
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            tomli_w.dump(config, handle)
        os.replace(staging, config_path)
    except BaseException:
        Path(staging).unlink(missing_ok=True)
        raise


def parse_value(raw: str) -> Any:
    """
    Convert a command-line string into a TOML-compatible value.

    Args:
        raw: Value as typed by the user

    Returns:
        bool for true/false, int or float for numbers, a list for
        comma-separated values, otherwise the string unchanged
    """
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"

    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue

    if "," in raw:
        return [part.strip() for part in raw.split(",") if part.strip()]

    return raw


def get_value(key: str) -> Any:
    """
    Look up a dotted key (e.g. "engine.path") in the config.

    Returns:
        The stored value, or None if any part of the key is missing
    """
    node: Any = load_config()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def set_value(key: str, value: Any) -> None:
    """
    Set a dotted key in the config, creating tables as needed.

    Args:
        key: Dotted key such as "engine.timeout_seconds"
        value: Value to store
    """
    parts = key.split(".")
    config = load_config()

    node = config
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child

    node[parts[-1]] = value
    save_config(config)


def unset_value(key: str) -> bool:
    """
    Remove a dotted key from the config.

    Empty tables left behind are pruned. If the config becomes empty the file
    is deleted.

    Returns:
        True if the key existed and was removed
    """
    parts = key.split(".")
    config = load_config()

    trail = [config]
    for part in parts[:-1]:
        child = trail[-1].get(part)
        if not isinstance(child, dict):
            return False
        trail.append(child)

    if parts[-1] not in trail[-1]:
        return False

    del trail[-1][parts[-1]]

    for depth in range(len(trail) - 1, 0, -1):
        if not trail[depth]:
            del trail[depth - 1][parts[depth - 1]]

    if not config:
        config_path = get_config_path()
        if config_path.exists():
            config_path.unlink()
    else:
        save_config(config)

    return True


def load_settings() -> Settings:
    """Build Settings from the user's config file."""
    return Settings.from_config(load_config())
