"""
Job orchestration for local kymograph analysis.

This module provides the main entry point for running one analysis job:
creating the session directory, persisting the input and run script,
supervising the engine and turning its response into an AnalysisOutcome.
"""

import logging
import threading
from pathlib import Path

from kymobutler.engine.collector import (
    collect,
    missing_output,
    save_debug_copy,
    validate,
)
from kymobutler.engine.discovery import (
    resolve_engine_executable,
    resolve_install_root,
)
from kymobutler.engine.paths import Session
from kymobutler.engine.script import build_script
from kymobutler.engine.supervisor import JobSupervisor, ProgressCallback
from kymobutler.exceptions import SessionError
from kymobutler.imaging import decode_image, encode_png, improve_kymograph
from kymobutler.models.outcome import AnalysisOutcome, Cancelled, TimedOut
from kymobutler.models.request import AnalysisRequest
from kymobutler.models.settings import Settings

logger = logging.getLogger(__name__)

__all__ = ["Orchestrator"]


class Orchestrator:
    """
    Runs analysis jobs through the local engine.

    Every job gets its own session directory; the most recent one is kept
    as the "last output location" for table viewers and the CLI.

    Example:
        >>> orchestrator = Orchestrator(load_settings())
        >>> outcome = orchestrator.run_job(AnalysisRequest(image_path=Path("k.tif")))
        >>> orchestrator.last_output_dir
        PosixPath('/data/KymoButlerLocal_2025-01-01_12-00-00_k')
    """

    def __init__(self, settings: Settings, supervisor: JobSupervisor | None = None):
        """
        Initialize orchestrator.

        Args:
            settings: Engine, output and timeout settings
            supervisor: Engine supervisor (default: built from settings)

        Raises:
            ConfigurationError: If the engine or its install root is missing
        """
        self.settings = settings
        self.install_root = resolve_install_root(settings.install_root)
        if supervisor is None:
            supervisor = JobSupervisor(
                resolve_engine_executable(settings.engine_path),
                engine_args=settings.engine_args,
                poll_interval=settings.poll_interval,
            )
        self.supervisor = supervisor
        self.last_session: Session | None = None

    @property
    def last_output_dir(self) -> Path | None:
        return self.last_session.directory if self.last_session else None

    @property
    def last_tracks_csv_path(self) -> Path | None:
        return self.last_session.tracks_csv_path if self.last_session else None

    @property
    def last_pproc_table_path(self) -> Path | None:
        return self.last_session.pproc_table_path if self.last_session else None

    def output_root_for(self, request: AnalysisRequest) -> Path:
        """Directory in which the request's session is created."""
        if self.settings.outputs_beside_input and request.source_dir is not None:
            return request.source_dir
        return self.settings.output_dir

    def _input_png(self, request: AnalysisRequest) -> bytes:
        try:
            pixels = decode_image(request.read_image())
        except OSError as e:
            raise SessionError(f"Unable to read input image: {e}") from e

        if request.improve:
            pixels = improve_kymograph(
                pixels, start=request.improve_start, stop=request.improve_stop
            )
        return encode_png(pixels)

    def prepare_session(self, request: AnalysisRequest) -> Session:
        """
        Create the session directory and write the input copy and run script.

        Raises:
            SessionError: If the directory or either file cannot be written
            ImageDecodeError: If the input is not a readable image
        """
        png = self._input_png(request)
        session = Session.create(self.output_root_for(request), request.display_title)

        script = build_script(request, session, self.install_root)
        try:
            session.input_path.write_bytes(png)
            session.script_path.write_text(script, encoding="utf-8")
        except OSError as e:
            raise SessionError(
                f"Unable to write job files in {session.directory}: {e}"
            ) from e

        return session

    def run_job(
        self,
        request: AnalysisRequest,
        cancel_event: threading.Event | None = None,
        progress: ProgressCallback | None = None,
    ) -> AnalysisOutcome:
        """
        Run one analysis job to completion.

        Args:
            request: Image and analysis parameters
            cancel_event: Set by another thread to cancel the job
            progress: Called with elapsed seconds while the engine runs

        Returns:
            The job's outcome; timeouts, cancellation and bad output are
            outcomes, not exceptions

        Raises:
            SessionError: If the session cannot be prepared
            ImageDecodeError: If the input image cannot be decoded
            SpawnError: If the engine cannot be launched
        """
        session = self.prepare_session(request)
        self.last_session = session
        logger.info(f"Session directory: {session.directory}")

        status = self.supervisor.run(
            session.script_path,
            timeout=self.settings.timeout_seconds,
            cancel_event=cancel_event,
            progress=progress,
        )

        if status.timed_out:
            return TimedOut(
                timeout_seconds=self.settings.timeout_seconds,
                elapsed_seconds=status.elapsed_seconds,
            )
        if status.cancelled:
            return Cancelled(elapsed_seconds=status.elapsed_seconds)

        raw = collect(session)
        if raw is None:
            return missing_output(session)

        if self.settings.debug:
            save_debug_copy(raw, session.directory.parent)

        return validate(raw, output_dir=session.directory)

