"""Tests for engine process supervision."""

import logging
import os
import sys
import threading
import time

from pathlib import Path

import pytest

from kymobutler.engine.supervisor import JobState, JobSupervisor
from kymobutler.exceptions import SpawnError

pytestmark = pytest.mark.subprocess


def _python_supervisor(code: str, **kwargs) -> JobSupervisor:
    """Supervisor whose "engine" runs ``code`` with the script path as argv[1]."""
    return JobSupervisor(sys.executable, engine_args=["-c", code], **kwargs)


def _is_alive(pid: int) -> bool:
    """True while ``pid`` exists and is not a zombie awaiting its reaper."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    stat = Path(f"/proc/{pid}/stat")
    try:
        state = stat.read_text().rsplit(")", 1)[1].split()[0]
    except (OSError, IndexError):
        return True
    return state not in ("Z", "X")


@pytest.fixture
def script_path(tmp_path):
    path = tmp_path / "job_local.wls"
    path.write_text("(* script *)\n")
    return path


class TestJobSupervisor:
    def test_command_places_args_before_script(self, script_path):
        supervisor = JobSupervisor("wolframscript")

        assert supervisor.command(script_path) == [
            "wolframscript",
            "-file",
            str(script_path),
        ]

    def test_quick_success(self, script_path):
        supervisor = _python_supervisor("import sys; sys.exit(0)", poll_interval=0.05)

        status = supervisor.run(script_path, timeout=20)

        assert status.state == JobState.COMPLETED
        assert status.returncode == 0
        assert not status.timed_out
        assert not status.cancelled

    def test_non_zero_exit_is_still_completed(self, script_path):
        supervisor = _python_supervisor("import sys; sys.exit(3)", poll_interval=0.05)

        status = supervisor.run(script_path, timeout=20)

        assert status.state == JobState.COMPLETED
        assert status.returncode == 3

    def test_script_path_is_passed_and_cwd_is_session(self, script_path):
        code = (
            "import os, sys; "
            "open('seen.txt', 'w').write(sys.argv[1] + '|' + os.getcwd())"
        )
        supervisor = _python_supervisor(code, poll_interval=0.05)

        supervisor.run(script_path, timeout=20)

        seen = (script_path.parent / "seen.txt").read_text()
        assert seen.split("|")[0] == str(script_path)

    def test_timeout_kills_process(self, script_path):
        supervisor = _python_supervisor("import time; time.sleep(60)", poll_interval=0.05)

        started = time.monotonic()
        status = supervisor.run(script_path, timeout=0.5)
        elapsed = time.monotonic() - started

        assert status.timed_out
        assert status.returncode is not None
        assert status.returncode != 0
        assert elapsed < 10

    @pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX only")
    def test_timeout_kills_grandchildren(self, script_path):
        code = (
            "import subprocess, sys, time; "
            "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)']); "
            "open('grandchild.pid', 'w').write(str(child.pid)); "
            "time.sleep(60)"
        )
        supervisor = _python_supervisor(code, poll_interval=0.05)

        status = supervisor.run(script_path, timeout=1.5)

        assert status.timed_out
        pid = int((script_path.parent / "grandchild.pid").read_text())
        deadline = time.monotonic() + 5
        while _is_alive(pid) and time.monotonic() < deadline:
            time.sleep(0.05)
        assert not _is_alive(pid)

    def test_cancel_kills_process(self, script_path):
        supervisor = _python_supervisor("import time; time.sleep(60)", poll_interval=0.05)
        cancel_event = threading.Event()
        timer = threading.Timer(0.3, cancel_event.set)
        timer.start()

        try:
            status = supervisor.run(script_path, timeout=30, cancel_event=cancel_event)
        finally:
            timer.cancel()

        assert status.cancelled
        assert status.returncode is not None
        assert status.elapsed_seconds < 10

    def test_cancel_before_start_is_observed(self, script_path):
        supervisor = _python_supervisor("import time; time.sleep(60)", poll_interval=0.05)
        cancel_event = threading.Event()
        cancel_event.set()

        status = supervisor.run(script_path, timeout=30, cancel_event=cancel_event)

        assert status.cancelled

    def test_progress_reports_elapsed_time(self, script_path):
        supervisor = _python_supervisor("import time; time.sleep(0.4)", poll_interval=0.05)
        ticks: list[float] = []

        supervisor.run(script_path, timeout=20, progress=ticks.append)

        assert ticks
        assert ticks == sorted(ticks)

    def test_output_is_logged_line_by_line(self, script_path, caplog):
        code = "print('first line'); print(''); import sys; print('oops', file=sys.stderr)"
        supervisor = _python_supervisor(code, poll_interval=0.05)

        with caplog.at_level(logging.INFO, logger="kymobutler.engine.supervisor"):
            supervisor.run(script_path, timeout=20)

        engine_lines = [
            r.getMessage()
            for r in caplog.records
            if r.name == "kymobutler.engine.supervisor"
            and r.getMessage() in ("first line", "oops", "")
        ]
        assert "first line" in engine_lines
        assert "oops" in engine_lines
        assert "" not in engine_lines

    def test_missing_executable_raises_spawn_error(self, script_path, tmp_path):
        supervisor = JobSupervisor(str(tmp_path / "no-such-engine"))

        with pytest.raises(SpawnError) as exc_info:
            supervisor.run(script_path, timeout=5)

        assert exc_info.value.command[0] == str(tmp_path / "no-such-engine")

    def test_handle_finishes_once(self, script_path):
        supervisor = _python_supervisor("pass", poll_interval=0.05)
        handle = supervisor.start(script_path, timeout=20)
        supervisor.wait(handle)

        assert handle.state == JobState.COMPLETED
        assert handle.finish(JobState.TIMED_OUT) is False
        assert handle.state == JobState.COMPLETED
        assert handle.wait_finished(0)
