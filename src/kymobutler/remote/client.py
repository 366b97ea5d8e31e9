"""
Client for the legacy KymoButler web service.

Each call posts one multipart form and blocks until the response arrives.
A Watchdog runs alongside the request and aborts the connection if the
user cancels or the timeout expires.
"""

import http.client
import logging
import socket
import threading

from collections.abc import Iterable
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from kymobutler.constants import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_TIMEOUT_SECONDS,
    KYMOGRAPH_UPLOAD_FIELD,
    MINIMUM_FRAMES_UPLOAD_FIELD,
    MINIMUM_SIZE_UPLOAD_FIELD,
    QUERY_ANALYSIS,
    QUERY_FIELD,
    QUERY_STATS,
    QUERY_UPLOAD,
    THRESHOLD_UPLOAD_FIELD,
    TRACKS_UPLOAD_FIELD,
)
from kymobutler.engine.collector import (
    error_message,
    parse_document,
    save_debug_copy,
    validate,
)
from kymobutler.engine.tracks import encode_tracks
from kymobutler.exceptions import ConfigurationError
from kymobutler.imaging import normalize_to_png
from kymobutler.models.outcome import (
    AnalysisOutcome,
    ApplicationError,
    Cancelled,
    TimedOut,
    Track,
    TransportError,
    TransportErrorKind,
)
from kymobutler.models.request import AnalysisRequest
from kymobutler.remote.multipart import FilePart, FormValue, encode_multipart
from kymobutler.remote.watchdog import Watchdog, WatchdogProgress, WatchdogState

logger = logging.getLogger(__name__)

KYMOGRAPH_FILENAME = "kymograph.png"


def _abort_connection(connection: http.client.HTTPConnection) -> None:
    sock = connection.sock
    try:
        if sock is not None:
            sock.shutdown(socket.SHUT_RDWR)
    finally:
        connection.close()


class RemoteClient:
    """
    Blocking client with watchdog-enforced timeout and cancellation.

    Only one request runs at a time; cancel() interrupts the current one.

    Args:
        url: Service endpoint (http or https)
        timeout: Seconds allowed per request
        poll_interval: Seconds between watchdog checks
        progress: Optional callback receiving elapsed time while waiting
        debug_dir: If set, every response body is copied there
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        progress: WatchdogProgress | None = None,
        debug_dir: Path | None = None,
    ):
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ConfigurationError(f"Invalid remote URL: {url!r}")
        if timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive, got {timeout}")

        self.url = url
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.progress = progress
        self.debug_dir = debug_dir
        self.cancel_event = threading.Event()

        self._scheme = parts.scheme
        self._host = parts.hostname
        self._port = parts.port
        self._path = parts.path or "/"
        if parts.query:
            self._path = f"{self._path}?{parts.query}"
        self._request_lock = threading.Lock()

    def cancel(self) -> None:
        """Request cancellation of the in-flight request."""
        self.cancel_event.set()

    def analyze(self, request: AnalysisRequest) -> AnalysisOutcome:
        """Submit a kymograph for analysis."""
        fields: list[tuple[str, FormValue]] = [
            (QUERY_FIELD, QUERY_ANALYSIS),
            (KYMOGRAPH_UPLOAD_FIELD, self._image_part(request)),
            (THRESHOLD_UPLOAD_FIELD, str(float(request.threshold))),
            (MINIMUM_SIZE_UPLOAD_FIELD, str(float(request.minimum_size))),
            (MINIMUM_FRAMES_UPLOAD_FIELD, str(float(request.minimum_frames))),
        ]
        result = self._post(fields)
        if isinstance(result, bytes):
            return validate(result)
        return result

    def upload(
        self, request: AnalysisRequest, tracks: Iterable[Track]
    ) -> dict[str, Any] | AnalysisOutcome:
        """Send a kymograph with corrected tracks back to the service."""
        fields: list[tuple[str, FormValue]] = [
            (QUERY_FIELD, QUERY_UPLOAD),
            (KYMOGRAPH_UPLOAD_FIELD, self._image_part(request)),
            (TRACKS_UPLOAD_FIELD, encode_tracks(tracks)),
        ]
        return self._document(self._post(fields))

    def statistics(self) -> dict[str, Any] | AnalysisOutcome:
        """Fetch usage statistics from the service."""
        return self._document(self._post([(QUERY_FIELD, QUERY_STATS)]))

    def _image_part(self, request: AnalysisRequest) -> FilePart:
        return FilePart(
            filename=KYMOGRAPH_FILENAME,
            content=normalize_to_png(request.read_image()),
            content_type="image/png",
        )

    def _document(
        self, result: bytes | AnalysisOutcome
    ) -> dict[str, Any] | AnalysisOutcome:
        if not isinstance(result, bytes):
            return result
        data = parse_document(result)
        if data is None:
            return TransportError(
                error_kind=TransportErrorKind.MALFORMED_RESPONSE,
                detail="response is not a JSON object",
            )
        message = error_message(data)
        if message is not None:
            return ApplicationError(message=message)
        return data

    def _connect(self) -> http.client.HTTPConnection:
        # The socket timeout is only a backstop; the watchdog enforces the limit
        if self._scheme == "https":
            return http.client.HTTPSConnection(
                self._host, self._port, timeout=self.timeout + 5
            )
        return http.client.HTTPConnection(
            self._host, self._port, timeout=self.timeout + 5
        )

    def _post(self, fields: list[tuple[str, FormValue]]) -> bytes | AnalysisOutcome:
        """
        Post a form under watchdog supervision.

        Returns:
            The response body, or Cancelled/TimedOut/TransportError
        """
        body, content_type = encode_multipart(fields)

        with self._request_lock:
            self.cancel_event.clear()
            connection = self._connect()
            watchdog = Watchdog(
                abort=lambda: _abort_connection(connection),
                timeout=self.timeout,
                cancel_event=self.cancel_event,
                poll_interval=self.poll_interval,
                progress=self.progress,
            )
            logger.info(f"Posting {fields[0][1]} request to {self.url}")
            watchdog.start()
            failure: str | None = None
            data = b""
            try:
                connection.request(
                    "POST",
                    self._path,
                    body=body,
                    headers={
                        "Content-Type": content_type,
                        "Content-Length": str(len(body)),
                    },
                )
                response = connection.getresponse()
                data = response.read()
                if response.status >= 400:
                    logger.warning(f"Remote service answered HTTP {response.status}")
            except (OSError, http.client.HTTPException) as e:
                failure = str(e) or e.__class__.__name__
            finally:
                completed = watchdog.complete()
                watchdog.join(timeout=self.poll_interval * 4 + 1)
                connection.close()

        elapsed = watchdog.elapsed()
        if not completed:
            if watchdog.state == WatchdogState.CANCELLED:
                logger.info("Remote request cancelled")
                return Cancelled(elapsed_seconds=elapsed)
            logger.warning(f"Remote request timed out after {self.timeout:g}s")
            return TimedOut(timeout_seconds=self.timeout, elapsed_seconds=elapsed)

        if failure is not None:
            logger.error(f"Remote request failed: {failure}")
            return TransportError(
                error_kind=TransportErrorKind.CONNECTION_FAILED, detail=failure
            )

        logger.info(f"Response received in {elapsed:.1f}s ({len(data)} bytes)")
        if self.debug_dir is not None:
            save_debug_copy(data, self.debug_dir)
        return data
