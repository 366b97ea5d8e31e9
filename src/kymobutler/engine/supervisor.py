"""
Supervision of the external engine process.

JobSupervisor launches the engine with a generated script, drains its
combined stdout/stderr into the log on a reader thread, and blocks the
caller until the process exits, the timeout expires or cancellation is
requested. On timeout or cancellation the whole process group is killed.
"""

import logging
import os
import signal
import subprocess
import sys
import threading
import time

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from kymobutler.constants import DEFAULT_ENGINE_ARGS, DEFAULT_POLL_INTERVAL
from kymobutler.exceptions import SpawnError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

# Seconds to wait for a killed process (and the log reader) to wind down
KILL_GRACE_SECONDS = 5.0


class JobState(str, Enum):
    """Lifecycle of an engine process."""

    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ExitStatus:
    """How a supervised process ended."""

    state: JobState
    returncode: int | None
    elapsed_seconds: float

    @property
    def timed_out(self) -> bool:
        return self.state == JobState.TIMED_OUT

    @property
    def cancelled(self) -> bool:
        return self.state == JobState.CANCELLED


class JobHandle:
    """
    One running engine process.

    The handle moves out of RUNNING exactly once; later transitions are
    ignored.
    """

    def __init__(self, process: subprocess.Popen, timeout: float):
        self.process = process
        self.pid = process.pid
        self.timeout = timeout
        self.started_at = time.monotonic()
        self._state = JobState.RUNNING
        self._lock = threading.Lock()
        self._finished = threading.Event()
        self.reader: threading.Thread | None = None

    @property
    def state(self) -> JobState:
        with self._lock:
            return self._state

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def finish(self, state: JobState) -> bool:
        """
        Move to a terminal state.

        Returns:
            True if this call made the transition
        """
        with self._lock:
            if self._state != JobState.RUNNING:
                return False
            self._state = state
        self._finished.set()
        return True

    def wait_finished(self, timeout: float | None = None) -> bool:
        """Block until the handle reaches a terminal state."""
        return self._finished.wait(timeout)


def _drain_output(stream, sink: logging.Logger) -> None:
    """Log each non-blank line of the process output until EOF."""
    try:
        for line in stream:
            text = line.rstrip()
            if text.strip():
                sink.info(text)
    except (OSError, ValueError) as e:
        sink.debug(f"Engine output stream closed: {e}")
    finally:
        stream.close()


def _kill_process_tree(process: subprocess.Popen) -> None:
    """Forcibly stop the process and anything it spawned."""
    if process.poll() is not None:
        return

    if sys.platform != "win32":
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError) as e:
            logger.debug(f"killpg({process.pid}) failed: {e}")
        else:
            return

    try:
        process.kill()
    except OSError as e:
        logger.warning(f"Failed to kill engine process {process.pid}: {e}")


class JobSupervisor:
    """
    Runs the engine for one script at a time.

    Example:
        >>> supervisor = JobSupervisor("wolframscript")
        >>> status = supervisor.run(Path("job_local.wls"), timeout=120)
        >>> status.state
        <JobState.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        engine_path: str,
        engine_args: list[str] | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        output_logger: logging.Logger | None = None,
    ):
        """
        Initialize supervisor.

        Args:
            engine_path: Engine executable
            engine_args: Arguments placed before the script path (default: ["-file"])
            poll_interval: Seconds between timeout/cancellation checks
            output_logger: Logger receiving engine output (default: this module's)
        """
        self.engine_path = engine_path
        self.engine_args = (
            list(DEFAULT_ENGINE_ARGS) if engine_args is None else list(engine_args)
        )
        self.poll_interval = poll_interval
        self.output_logger = output_logger or logger

    def command(self, script_path: Path) -> list[str]:
        """Full command line for running ``script_path``."""
        return [self.engine_path, *self.engine_args, str(script_path)]

    def start(self, script_path: Path, timeout: float) -> JobHandle:
        """
        Launch the engine and start draining its output.

        Args:
            script_path: Generated run script
            timeout: Wall-clock limit in seconds, recorded on the handle

        Returns:
            Handle for the running process

        Raises:
            SpawnError: If the process cannot be launched
        """
        cmd = self.command(script_path)
        logger.info(f"Starting engine: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                cwd=script_path.parent,
                start_new_session=sys.platform != "win32",
            )
        except OSError as e:
            raise SpawnError(f"Failed to start engine {cmd[0]}: {e}", cmd) from e

        handle = JobHandle(process, timeout)
        handle.reader = threading.Thread(
            target=_drain_output,
            args=(process.stdout, self.output_logger),
            name=f"engine-output-{process.pid}",
            daemon=True,
        )
        handle.reader.start()
        return handle

    def wait(
        self,
        handle: JobHandle,
        cancel_event: threading.Event | None = None,
        progress: ProgressCallback | None = None,
    ) -> ExitStatus:
        """
        Block until the process exits, times out or is cancelled.

        Cancellation is observed within one poll interval. Timeout and
        cancellation both kill the process before returning.

        Args:
            handle: Handle returned by start()
            cancel_event: Set by another thread to request cancellation
            progress: Called with elapsed seconds after each poll
        """
        deadline = handle.started_at + handle.timeout
        process = handle.process

        while True:
            if cancel_event is not None and cancel_event.is_set():
                outcome = JobState.CANCELLED
                break

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                outcome = JobState.TIMED_OUT
                break

            try:
                process.wait(timeout=min(self.poll_interval, remaining))
            except subprocess.TimeoutExpired:
                if progress is not None:
                    progress(handle.elapsed())
                continue

            outcome = JobState.COMPLETED
            break

        if outcome != JobState.COMPLETED:
            _kill_process_tree(process)
            try:
                process.wait(timeout=KILL_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                logger.error(f"Engine process {handle.pid} did not exit after kill")

        handle.finish(outcome)
        if handle.reader is not None:
            handle.reader.join(timeout=KILL_GRACE_SECONDS)

        elapsed = handle.elapsed()
        returncode = process.returncode

        if outcome == JobState.TIMED_OUT:
            logger.warning(
                f"Engine timed out after {handle.timeout:g}s and was terminated"
            )
        elif outcome == JobState.CANCELLED:
            logger.info("Engine run cancelled by user")
        elif returncode != 0:
            logger.warning(f"Engine exited with non-zero status {returncode}")
        else:
            logger.info(f"Engine finished in {elapsed:.1f}s")

        return ExitStatus(state=outcome, returncode=returncode, elapsed_seconds=elapsed)

    def run(
        self,
        script_path: Path,
        timeout: float,
        cancel_event: threading.Event | None = None,
        progress: ProgressCallback | None = None,
    ) -> ExitStatus:
        """
        Launch the engine on ``script_path`` and wait for it.

        Raises:
            SpawnError: If the process cannot be launched
        """
        handle = self.start(script_path, timeout)
        return self.wait(handle, cancel_event=cancel_event, progress=progress)
