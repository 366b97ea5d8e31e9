"""Tests for batch sweeps."""

import json
import threading

import pytest

from pydantic import ValidationError

from kymobutler.batch import BatchRunner, discover_files
from kymobutler.models.batch import BatchItemStatus, export_summary_json

pytestmark = pytest.mark.subprocess


@pytest.fixture
def image_tree(tmp_path, png_factory):
    """Three readable images (one nested) and one undecodable file."""
    root = tmp_path / "sweep"
    (root / "nested").mkdir(parents=True)
    (root / "a.png").write_bytes(png_factory(seed=1))
    (root / "b.png").write_bytes(png_factory(seed=2))
    (root / "nested" / "c.png").write_bytes(png_factory(seed=3))
    (root / "notes.txt").write_text("not an image")
    return root


class TestDiscoverFiles:
    def test_recursive_is_sorted(self, image_tree):
        files = discover_files(image_tree, recursive=True)

        assert [f.relative_to(image_tree).as_posix() for f in files] == [
            "a.png",
            "b.png",
            "nested/c.png",
            "notes.txt",
        ]

    def test_non_recursive(self, image_tree):
        files = discover_files(image_tree, recursive=False)

        assert [f.name for f in files] == ["a.png", "b.png", "notes.txt"]

    def test_session_directories_are_skipped(self, image_tree, png_factory):
        session = image_tree / "KymoButlerLocal_2025-01-01_00-00-00_a"
        session.mkdir()
        (session / "a_input.png").write_bytes(png_factory())

        files = discover_files(image_tree, recursive=True)

        assert not any("KymoButlerLocal_" in str(f) for f in files)

    def test_missing_root(self, tmp_path):
        assert discover_files(tmp_path / "missing", recursive=True) == []


class TestBatchRunner:
    def test_sweep_with_undecodable_file(self, make_settings, image_tree):
        runner = BatchRunner(make_settings())

        summary = runner.run_batch(image_tree, recursive=True)

        assert summary.total == 4
        assert summary.successes == 3
        assert summary.skipped == 1
        assert summary.failures == 0
        skipped = [i for i in summary.items if i.status == BatchItemStatus.SKIPPED]
        assert skipped[0].path.name == "notes.txt"
        assert not summary.is_partial_failure

    def test_sessions_are_created_beside_inputs(self, make_settings, image_tree):
        runner = BatchRunner(make_settings(outputs_beside_input=True))

        summary = runner.run_batch(image_tree, recursive=True)

        for item in summary.items:
            if item.status == BatchItemStatus.SUCCESS:
                assert item.output_dir.parent == item.path.parent
                assert item.track_count == 3

    def test_rerun_ignores_previous_sessions(self, make_settings, image_tree):
        runner = BatchRunner(make_settings(outputs_beside_input=True))

        runner.run_batch(image_tree, recursive=True)
        summary = runner.run_batch(image_tree, recursive=True)

        assert summary.total == 4

    def test_non_recursive(self, make_settings, image_tree):
        summary = BatchRunner(make_settings()).run_batch(image_tree, recursive=False)

        assert summary.successes == 2
        assert summary.skipped == 1

    def test_failures_are_recorded_and_sweep_continues(self, make_settings, image_tree):
        summary = BatchRunner(make_settings("error")).run_batch(image_tree)

        assert summary.failures == 3
        assert summary.skipped == 1
        assert all(i.outcome == "application_error" for i in summary.failed_items)
        assert all(i.output_dir is not None for i in summary.failed_items)

    def test_progress_reports_each_item(self, make_settings, image_tree):
        calls = []

        BatchRunner(make_settings()).run_batch(
            image_tree, progress=lambda i, n: calls.append((i, n))
        )

        assert calls == [(1, 4), (2, 4), (3, 4), (4, 4)]

    def test_cancel_stops_sweep(self, make_settings, image_tree):
        cancel_event = threading.Event()

        def progress(index, total):
            cancel_event.set()

        summary = BatchRunner(make_settings()).run_batch(
            image_tree, progress=progress, cancel_event=cancel_event
        )

        assert summary.cancelled
        assert summary.total == 1

    def test_options_apply_to_every_item(self, make_settings, image_tree):
        runner = BatchRunner(make_settings(), options={"use_bidirectional": True})

        summary = runner.run_batch(image_tree)

        assert {i.track_count for i in summary.items if i.output_dir} == {2}

    def test_invalid_options_fail_before_sweep(self, make_settings):
        with pytest.raises(ValidationError):
            BatchRunner(make_settings(), options={"threshold": 2})

    def test_export_summary(self, make_settings, image_tree, tmp_path):
        summary = BatchRunner(make_settings()).run_batch(image_tree)
        report = tmp_path / "report.json"

        export_summary_json(summary, report)

        data = json.loads(report.read_text())
        assert data["totals"] == {"total": 4, "success": 3, "failure": 0, "skipped": 1}
        assert len(data["items"]) == 4

    def test_oversized_image_is_skipped(self, make_settings, image_tree, oversized_png):
        (image_tree / "huge.png").write_bytes(oversized_png)

        summary = BatchRunner(make_settings()).run_batch(image_tree, recursive=False)

        assert summary.successes == 2
        assert summary.skipped == 2
        huge = next(i for i in summary.items if i.path.name == "huge.png")
        assert huge.status == BatchItemStatus.SKIPPED
        assert "exceeds limit" in huge.message

    def test_unexpected_item_error_is_recorded(
        self, make_settings, image_tree, monkeypatch
    ):
        runner = BatchRunner(make_settings())
        run_job = runner.orchestrator.run_job

        def flaky_run_job(request, cancel_event=None):
            if request.image_path.name == "a.png":
                raise RuntimeError("engine bridge exploded")
            return run_job(request, cancel_event=cancel_event)

        monkeypatch.setattr(runner.orchestrator, "run_job", flaky_run_job)

        summary = runner.run_batch(image_tree, recursive=False)

        assert summary.successes == 1
        assert summary.failures == 1
        failed = summary.failed_items[0]
        assert failed.path.name == "a.png"
        assert failed.outcome == "RuntimeError"
        assert failed.message == "engine bridge exploded"
        assert failed.output_dir is None
