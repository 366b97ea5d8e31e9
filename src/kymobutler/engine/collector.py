"""
Result collection and response validation.

collect() reads the response document a job left in its session;
validate() decodes a response document into an AnalysisOutcome exactly
once, so downstream code never inspects raw JSON.
"""

import json
import logging

from datetime import datetime
from pathlib import Path
from typing import Any

import numpy as np

from kymobutler.constants import (
    ANTEROGRADE_FIELD,
    DEBUG_FILE_SUFFIX,
    ERROR_FIELD,
    KYMOGRAPH_FIELD,
    MESSAGES_FIELD,
    OVERLAY_FIELD,
    RETROGRADE_FIELD,
    SESSION_TIMESTAMP_FORMAT,
    TRACKS_FIELD,
    UNDEFINED_ERROR_MESSAGE,
)
from kymobutler.engine.paths import Session
from kymobutler.engine.tracks import number_tracks
from kymobutler.models.outcome import (
    AnalysisOutcome,
    ApplicationError,
    Success,
    Track,
    TransportError,
    TransportErrorKind,
)

logger = logging.getLogger(__name__)


def collect(session: Session) -> bytes | None:
    """
    Read the response document of a finished job.

    Returns:
        Raw response bytes, or None if the engine wrote no response file
    """
    path = session.response_path
    try:
        return path.read_bytes()
    except FileNotFoundError:
        logger.warning(f"Response file not found: {path}")
        return None
    except OSError as e:
        logger.error(f"Unable to read response file {path}: {e}")
        return None


def missing_output(session: Session) -> TransportError:
    """Outcome for a job that exited without writing its response."""
    return TransportError(
        error_kind=TransportErrorKind.MISSING_OUTPUT,
        detail=f"no response file at {session.response_path}",
    )


def _malformed(detail: str) -> TransportError:
    logger.warning(f"Malformed response: {detail}")
    return TransportError(
        error_kind=TransportErrorKind.MALFORMED_RESPONSE, detail=detail
    )


def parse_document(raw: bytes | str) -> dict[str, Any] | None:
    """
    Parse a response document.

    Returns:
        The top-level JSON object, or None if the payload is not a JSON object
    """
    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    return data


def error_message(data: dict[str, Any]) -> str | None:
    """
    Application-level error carried by a response document.

    Returns:
        The engine's message (or the fixed undefined-error message) if the
        error flag is set, otherwise None
    """
    if not data.get(ERROR_FIELD):
        return None
    message = data.get(MESSAGES_FIELD)
    if message is None or message == "":
        return UNDEFINED_ERROR_MESSAGE
    return message if isinstance(message, str) else json.dumps(message)


def _track_list(data: dict[str, Any], field: str) -> list[Any]:
    value = data.get(field)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{field} must be a list of tracks, got {type(value).__name__}")
    return value


def _decode_tracks(data: dict[str, Any]) -> list[Track]:
    if ANTEROGRADE_FIELD in data or RETROGRADE_FIELD in data:
        return number_tracks(
            anterograde=_track_list(data, ANTEROGRADE_FIELD),
            retrograde=_track_list(data, RETROGRADE_FIELD),
        )
    return number_tracks(bidirectional=_track_list(data, TRACKS_FIELD))


def _decode_image(value: Any, field: str, ndims: tuple[int, ...]) -> np.ndarray:
    try:
        array = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{field} is not a rectangular pixel array") from e
    if array.ndim not in ndims:
        raise ValueError(f"{field} has {array.ndim} dimension(s), expected {ndims}")
    return array


def validate(raw: bytes | str, output_dir: Path | None = None) -> AnalysisOutcome:
    """
    Decode a response document into an outcome.

    Args:
        raw: Response document as produced by the engine or remote service
        output_dir: Session directory recorded on a Success

    Returns:
        TransportError(MALFORMED_RESPONSE) if the payload is not a JSON object
        or lacks the required fields, ApplicationError if the error flag is
        set, otherwise Success
    """
    data = parse_document(raw)
    if data is None:
        return _malformed("response is not a JSON object")

    message = error_message(data)
    if message is not None:
        logger.warning(f"Engine reported an error: {message}")
        return ApplicationError(message=message)

    missing = [f for f in (KYMOGRAPH_FIELD, OVERLAY_FIELD) if f not in data]
    if TRACKS_FIELD not in data and ANTEROGRADE_FIELD not in data:
        missing.append(TRACKS_FIELD)
    if missing:
        return _malformed(f"missing field(s): {', '.join(missing)}")

    try:
        kymograph = _decode_image(data[KYMOGRAPH_FIELD], KYMOGRAPH_FIELD, (2,))
        overlay = _decode_image(data[OVERLAY_FIELD], OVERLAY_FIELD, (2, 3))
        tracks = _decode_tracks(data)
    except ValueError as e:
        return _malformed(str(e))

    raw_bytes = raw.encode("utf-8") if isinstance(raw, str) else raw
    logger.info(f"Response decoded: {len(tracks)} track(s)")
    return Success(
        raw_json=raw_bytes,
        tracks=tracks,
        kymograph=kymograph,
        overlay=overlay,
        output_dir=output_dir,
    )


def save_debug_copy(raw: bytes, directory: Path) -> Path | None:
    """
    Keep a timestamped copy of a response document.

    Returns:
        Path written, or None if the copy could not be saved
    """
    stamp = datetime.now().strftime(SESSION_TIMESTAMP_FORMAT)
    path = directory / f"{stamp}{DEBUG_FILE_SUFFIX}"
    try:
        path.write_bytes(raw)
    except OSError as e:
        logger.warning(f"Unable to save debug copy to {path}: {e}")
        return None
    logger.debug(f"Saved debug copy of response to {path}")
    return path
