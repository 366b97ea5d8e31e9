"""
Watchdog for a single in-flight remote request.

The request itself blocks on network I/O in the caller's thread. The
watchdog runs on its own thread, polls for cancellation and the deadline,
and aborts the request by calling a supplied abort function. The terminal
state is decided exactly once under a lock, so a request that completes
before the deadline is never aborted.
"""

import logging
import threading
import time

from collections.abc import Callable
from enum import Enum

from kymobutler.constants import DEFAULT_POLL_INTERVAL
from kymobutler.utils.formatting import format_elapsed

logger = logging.getLogger(__name__)

# Receives (elapsed_seconds, "mm:ss")
WatchdogProgress = Callable[[float, str], None]


class WatchdogState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


class Watchdog:
    """
    Aborts a blocking request on cancellation or timeout.

    Args:
        abort: Called once from the watchdog thread to interrupt the request
        timeout: Seconds allowed before the request is aborted
        cancel_event: Set by the user to cancel the request
        poll_interval: Seconds between checks
        progress: Optional callback receiving elapsed time on each check
    """

    def __init__(
        self,
        abort: Callable[[], None],
        timeout: float,
        cancel_event: threading.Event,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        progress: WatchdogProgress | None = None,
    ):
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.abort = abort
        self.timeout = timeout
        self.cancel_event = cancel_event
        self.poll_interval = poll_interval
        self.progress = progress

        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._state = WatchdogState.IDLE
        self._started_at = 0.0
        self._thread: threading.Thread | None = None

    @property
    def state(self) -> WatchdogState:
        with self._lock:
            return self._state

    def elapsed(self) -> float:
        if not self._started_at:
            return 0.0
        return time.monotonic() - self._started_at

    def start(self) -> None:
        """Arm the watchdog and start its polling thread."""
        with self._lock:
            if self._state != WatchdogState.IDLE:
                raise RuntimeError(f"Watchdog already used (state={self._state.value})")
            self._state = WatchdogState.ARMED
            self._started_at = time.monotonic()
        self._thread = threading.Thread(
            target=self._run, name="kymobutler-watchdog", daemon=True
        )
        self._thread.start()

    def complete(self) -> bool:
        """
        Record that the request finished on its own.

        Returns:
            True if the request won the race, False if the watchdog had
            already cancelled or timed it out
        """
        with self._lock:
            if self._state != WatchdogState.ARMED:
                return False
            self._state = WatchdogState.COMPLETED
        self._wake.set()
        return True

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _report(self, elapsed: float) -> None:
        if self.progress is None:
            return
        try:
            self.progress(elapsed, format_elapsed(elapsed))
        except Exception:
            # A broken display must not stop timeout enforcement
            logger.exception("Watchdog progress callback failed")

    def _run(self) -> None:
        while True:
            self._wake.wait(self.poll_interval)
            elapsed = self.elapsed()
            with self._lock:
                if self._state != WatchdogState.ARMED:
                    return
                if self.cancel_event.is_set():
                    self._state = WatchdogState.CANCELLED
                elif elapsed >= self.timeout:
                    self._state = WatchdogState.TIMED_OUT
                final = self._state

            if final == WatchdogState.ARMED:
                self._report(elapsed)
                continue

            logger.info(f"Aborting remote request: {final.value} after {elapsed:.1f}s")
            try:
                self.abort()
            except OSError as e:
                logger.debug(f"Abort raised {e!r}")
            return
