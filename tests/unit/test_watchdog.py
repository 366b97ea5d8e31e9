"""Tests for the remote request watchdog."""

import threading
import time

import pytest

from kymobutler.remote.watchdog import Watchdog, WatchdogState


class AbortRecorder:
    """Abort callable that counts invocations."""

    def __init__(self):
        self.calls = 0
        self.called = threading.Event()

    def __call__(self):
        self.calls += 1
        self.called.set()


@pytest.fixture
def abort():
    return AbortRecorder()


def _watchdog(abort, timeout=5.0, cancel_event=None, **kwargs):
    return Watchdog(
        abort=abort,
        timeout=timeout,
        cancel_event=cancel_event or threading.Event(),
        poll_interval=0.02,
        **kwargs,
    )


class TestWatchdog:
    def test_completion_before_timeout_never_aborts(self, abort):
        watchdog = _watchdog(abort, timeout=0.3)
        watchdog.start()

        assert watchdog.complete() is True
        watchdog.join(timeout=2)
        time.sleep(0.4)

        assert abort.calls == 0
        assert watchdog.state == WatchdogState.COMPLETED

    def test_many_quick_completions_never_abort(self, abort):
        for _ in range(50):
            watchdog = _watchdog(abort, timeout=0.05)
            watchdog.start()
            watchdog.complete()
            watchdog.join(timeout=2)

        assert abort.calls == 0

    def test_timeout_aborts_once(self, abort):
        watchdog = _watchdog(abort, timeout=0.1)
        watchdog.start()

        assert abort.called.wait(timeout=5)
        watchdog.join(timeout=2)

        assert abort.calls == 1
        assert watchdog.state == WatchdogState.TIMED_OUT
        assert watchdog.complete() is False
        assert watchdog.state == WatchdogState.TIMED_OUT

    def test_cancellation_aborts(self, abort):
        cancel_event = threading.Event()
        watchdog = _watchdog(abort, timeout=30, cancel_event=cancel_event)
        watchdog.start()

        cancel_event.set()

        assert abort.called.wait(timeout=5)
        watchdog.join(timeout=2)
        assert watchdog.state == WatchdogState.CANCELLED
        assert watchdog.elapsed() < 5

    def test_progress_reports_elapsed_clock(self, abort):
        updates = []
        watchdog = _watchdog(
            abort, timeout=0.2, progress=lambda s, text: updates.append((s, text))
        )
        watchdog.start()
        watchdog.join(timeout=5)

        assert updates
        assert all(text == "00:00" for _, text in updates)
        assert [s for s, _ in updates] == sorted(s for s, _ in updates)

    def test_failing_progress_still_times_out(self, abort, caplog):
        def broken_display(elapsed, text):
            raise RuntimeError("terminal went away")

        watchdog = _watchdog(abort, timeout=0.2, progress=broken_display)
        watchdog.start()

        assert abort.called.wait(timeout=5)
        watchdog.join(timeout=2)

        assert abort.calls == 1
        assert watchdog.state == WatchdogState.TIMED_OUT
        assert "progress callback failed" in caplog.text

    def test_cannot_be_reused(self, abort):
        watchdog = _watchdog(abort)
        watchdog.start()
        watchdog.complete()

        with pytest.raises(RuntimeError):
            watchdog.start()

    def test_abort_errors_are_contained(self):
        def failing_abort():
            raise OSError("socket already closed")

        watchdog = _watchdog(failing_abort, timeout=0.05)
        watchdog.start()
        watchdog.join(timeout=5)

        assert watchdog.state == WatchdogState.TIMED_OUT

    def test_invalid_timeout(self, abort):
        with pytest.raises(ValueError):
            Watchdog(abort=abort, timeout=0, cancel_event=threading.Event())
