"""
Logging setup for the KymoButler CLI.

Everything goes through the root logger: a console handler on stderr and,
unless disabled in the [logging] config table, a rotating log file. Engine
output arrives on the ``kymobutler.engine.supervisor`` logger, one record
per line.
"""

import logging
import logging.config
import os
import sys

from pathlib import Path
from typing import Any

from kymobutler.constants import (
    DEFAULT_LOG_BACKUP_COUNT,
    DEFAULT_LOG_DIR,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_MAX_BYTES,
    LOG_DIR_ENV_VAR,
)

_logging_configured = False

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Pillow logs every chunk it parses at DEBUG
_QUIET_LOGGERS = ("PIL",)


def get_log_dir() -> Path:
    """
    Directory for the rotating log file.

    $KYMOBUTLER_LOG_DIR wins over ~/.kymobutler/logs. The directory is
    created owner-only on first use.
    """
    override = os.environ.get(LOG_DIR_ENV_VAR)
    log_dir = Path(override) if override else DEFAULT_LOG_DIR
    os.makedirs(log_dir, mode=0o700, exist_ok=True)
    return log_dir


def get_log_path() -> Path:
    return get_log_dir() / DEFAULT_LOG_FILE


def _logging_table() -> dict[str, Any]:
    # Imported lazily: config imports models, which must not configure logging
    from kymobutler.config import load_config

    table = load_config().get("logging", {})
    return table if isinstance(table, dict) else {}


def _file_handler(table: dict[str, Any]) -> dict[str, Any]:
    max_size_mb = table.get("max_size_mb")
    max_bytes = (
        int(float(max_size_mb) * 1024 * 1024)
        if max_size_mb is not None
        else DEFAULT_LOG_MAX_BYTES
    )
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": str(table.get("level", "DEBUG")).upper(),
        "formatter": "file",
        "filename": str(get_log_path()),
        "maxBytes": max_bytes,
        "backupCount": int(table.get("backup_count", DEFAULT_LOG_BACKUP_COUNT)),
        "encoding": "utf-8",
    }


def _build_logging_config(
    verbose: bool = False,
    console_format: str | None = None,
) -> dict[str, Any]:
    """Assemble the dictConfig schema from CLI flags and the [logging] table."""
    table = _logging_table()
    handlers: dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": "DEBUG" if verbose else "INFO",
            "formatter": "console",
            "stream": "ext://sys.stderr",
        },
    }
    if table.get("enabled", True):
        handlers["file"] = _file_handler(table)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": console_format or FILE_FORMAT},
            "file": {"format": FILE_FORMAT},
        },
        "handlers": handlers,
        "loggers": {name: {"level": "INFO"} for name in _QUIET_LOGGERS},
        "root": {"level": "DEBUG", "handlers": list(handlers)},
    }


def setup_logging(
    *,
    verbose: bool = False,
    console_format: str | None = None,
) -> None:
    """
    Install handlers on the root logger, once per process.

    When the file handler cannot be created the CLI still runs with
    console-only logging.
    """
    global _logging_configured

    if _logging_configured:
        return
    _logging_configured = True

    try:
        logging.config.dictConfig(
            _build_logging_config(verbose=verbose, console_format=console_format)
        )
    except (OSError, ValueError, TypeError) as e:
        print(f"⚠ File logging disabled: {e}", file=sys.stderr)
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format=console_format or FILE_FORMAT,
            stream=sys.stderr,
        )
