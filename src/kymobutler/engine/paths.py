"""Output naming and per-job session directories."""

import logging
import re

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from kymobutler.constants import (
    FALLBACK_BASE_NAME,
    INPUT_SUFFIX,
    OVERLAY_SUFFIX,
    PPROC_HIST_DIST_SUFFIX,
    PPROC_HIST_T_SUFFIX,
    PPROC_HIST_V_SUFFIX,
    PPROC_TABLE_SUFFIX,
    RESPONSE_SUFFIX,
    SCRIPT_SUFFIX,
    SESSION_DIR_PREFIX,
    SESSION_TIMESTAMP_FORMAT,
    TRACKS_CSV_SUFFIX,
)
from kymobutler.exceptions import SessionError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")

# Upper bound on same-second collisions before giving up
_MAX_SESSION_ATTEMPTS = 1000


def sanitize(title: str | None) -> str:
    """
    Derive a filesystem-safe base name from a display title.

    The trailing extension is dropped (only when the last dot is not the
    first character), then every character outside [A-Za-z0-9._-] becomes
    an underscore.

    Args:
        title: Arbitrary user-supplied title, possibly None

    Returns:
        Non-empty safe name; "kymograph" for None or blank titles
    """
    if title is None or not title.strip():
        return FALLBACK_BASE_NAME

    base = title
    dot = base.rfind(".")
    if dot > 0:
        base = base[:dot]

    return _UNSAFE_CHARS.sub("_", base)


def session_dir_name(base_name: str, timestamp: datetime) -> str:
    """Directory name for a session started at ``timestamp``."""
    stamp = timestamp.strftime(SESSION_TIMESTAMP_FORMAT)
    return f"{SESSION_DIR_PREFIX}{stamp}_{base_name}"


@dataclass(frozen=True)
class Session:
    """
    Output directory and expected artifact paths for one job.

    Sessions are never deleted by the orchestrator; their contents are the
    product of the job.
    """

    directory: Path
    base_name: str

    def _artifact(self, suffix: str) -> Path:
        return self.directory / f"{self.base_name}{suffix}"

    @property
    def input_path(self) -> Path:
        return self._artifact(INPUT_SUFFIX)

    @property
    def response_path(self) -> Path:
        return self._artifact(RESPONSE_SUFFIX)

    @property
    def overlay_path(self) -> Path:
        return self._artifact(OVERLAY_SUFFIX)

    @property
    def tracks_csv_path(self) -> Path:
        return self._artifact(TRACKS_CSV_SUFFIX)

    @property
    def pproc_table_path(self) -> Path:
        return self._artifact(PPROC_TABLE_SUFFIX)

    @property
    def histogram_paths(self) -> tuple[Path, Path, Path]:
        """Velocity, duration and distance histogram images."""
        return (
            self._artifact(PPROC_HIST_V_SUFFIX),
            self._artifact(PPROC_HIST_T_SUFFIX),
            self._artifact(PPROC_HIST_DIST_SUFFIX),
        )

    @property
    def script_path(self) -> Path:
        return self._artifact(SCRIPT_SUFFIX)

    def artifact_paths(self) -> list[Path]:
        """Every file the job is expected to produce, script and input included."""
        return [
            self.input_path,
            self.response_path,
            self.overlay_path,
            self.tracks_csv_path,
            self.pproc_table_path,
            *self.histogram_paths,
            self.script_path,
        ]

    @classmethod
    def create(
        cls,
        output_root: Path,
        title: str | None,
        timestamp: datetime | None = None,
    ) -> "Session":
        """
        Create a fresh session directory under ``output_root``.

        The directory is keyed by timestamp and sanitized title. If a
        directory with that name already exists (two jobs in the same second),
        a numeric suffix is appended, so no two sessions share a directory.

        Args:
            output_root: Parent directory for sessions
            title: Display title of the input image
            timestamp: Session start time (default: now)

        Returns:
            Session bound to the newly created directory

        Raises:
            SessionError: If the directory cannot be created
        """
        base_name = sanitize(title)
        name = session_dir_name(base_name, timestamp or datetime.now())

        try:
            output_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SessionError(
                f"Unable to create output root {output_root}: {e}"
            ) from e

        for attempt in range(1, _MAX_SESSION_ATTEMPTS + 1):
            candidate = output_root / (name if attempt == 1 else f"{name}_{attempt}")
            try:
                candidate.mkdir()
            except FileExistsError:
                continue
            except OSError as e:
                raise SessionError(
                    f"Unable to create output directory {candidate}: {e}"
                ) from e

            logger.debug(f"Created session directory {candidate}")
            return cls(directory=candidate, base_name=base_name)

        raise SessionError(f"Too many sessions named {name} under {output_root}")
