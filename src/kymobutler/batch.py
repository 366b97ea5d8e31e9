"""
Batch analysis over a directory tree.

Runs one Orchestrator job per readable image, sequentially, and records a
per-item outcome. Undecodable files are skipped and failing items are
recorded; neither stops the sweep.
"""

import logging
import threading

from collections.abc import Callable
from pathlib import Path
from typing import Any

from kymobutler.constants import SESSION_DIR_PREFIX
from kymobutler.engine.paths import Session
from kymobutler.exceptions import ImageDecodeError, KymoButlerError
from kymobutler.imaging import decode_image
from kymobutler.models.batch import BatchItem, BatchItemStatus, BatchSummary
from kymobutler.models.outcome import Cancelled, Success, describe_outcome
from kymobutler.models.request import AnalysisRequest
from kymobutler.models.settings import Settings
from kymobutler.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

BatchProgressCallback = Callable[[int, int], None]


def discover_files(root: Path, recursive: bool) -> list[Path]:
    """
    List candidate files under ``root`` in a stable order.

    Session directories written by earlier runs are not descended into.

    Args:
        root: Directory to sweep
        recursive: Whether to include subdirectories

    Returns:
        Sorted list of non-directory entries
    """
    files: list[Path] = []
    try:
        entries = sorted(root.iterdir())
    except OSError as e:
        logger.warning(f"Cannot list {root}: {e}")
        return files

    for entry in entries:
        if entry.is_dir():
            if recursive and not entry.name.startswith(SESSION_DIR_PREFIX):
                files.extend(discover_files(entry, recursive=True))
        else:
            files.append(entry)
    return files


class BatchRunner:
    """Runs the orchestrator once per image in a directory."""

    def __init__(
        self,
        settings: Settings,
        orchestrator: Orchestrator | None = None,
        options: dict[str, Any] | None = None,
    ):
        """
        Initialize batch runner.

        Args:
            settings: Settings shared by every job in the batch
            orchestrator: Orchestrator to reuse (default: built from settings)
            options: AnalysisRequest fields applied to every item
                (threshold, minimum_size, ...)

        Raises:
            ConfigurationError: If the engine is not usable
            pydantic.ValidationError: If options are not valid request fields
        """
        self.settings = settings
        self.options = dict(options or {})
        self.options.setdefault("device", settings.device)
        self.options.setdefault("use_physical_units", settings.use_physical_units)
        # Fail before the sweep starts if options are invalid
        AnalysisRequest(image=b"", **self.options)
        self.orchestrator = orchestrator or Orchestrator(settings)

    def _failed_item(
        self, path: Path, error: Exception, previous: Session | None
    ) -> BatchItem:
        fresh_session = self.orchestrator.last_session is not previous
        return BatchItem(
            path=path,
            status=BatchItemStatus.FAILURE,
            outcome=type(error).__name__,
            message=str(error) or type(error).__name__,
            output_dir=self.orchestrator.last_output_dir if fresh_session else None,
        )

    def _run_item(
        self, path: Path, cancel_event: threading.Event | None
    ) -> BatchItem:
        try:
            decode_image(path)
        except ImageDecodeError as e:
            logger.info(f"Batch skipped (unsupported format): {path}")
            return BatchItem(path=path, status=BatchItemStatus.SKIPPED, message=str(e))

        request = AnalysisRequest(image_path=path, **self.options)
        previous = self.orchestrator.last_session
        try:
            outcome = self.orchestrator.run_job(request, cancel_event=cancel_event)
        except KymoButlerError as e:
            logger.error(f"Batch item failed: {path}: {e}")
            return self._failed_item(path, e, previous)
        except Exception as e:
            # One bad item never ends the sweep
            logger.exception(f"Batch item crashed: {path}")
            return self._failed_item(path, e, previous)

        if isinstance(outcome, Success):
            status = BatchItemStatus.SUCCESS
            tracks = len(outcome.tracks)
        elif isinstance(outcome, Cancelled):
            status = BatchItemStatus.SKIPPED
            tracks = 0
        else:
            status = BatchItemStatus.FAILURE
            tracks = 0
            logger.warning(f"Batch item failed: {path}: {describe_outcome(outcome)}")

        return BatchItem(
            path=path,
            status=status,
            outcome=outcome.kind,
            message=describe_outcome(outcome),
            output_dir=self.orchestrator.last_output_dir,
            track_count=tracks,
        )

    def run_batch(
        self,
        root: Path,
        recursive: bool = True,
        progress: BatchProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> BatchSummary:
        """
        Sweep ``root`` and analyze every readable image.

        Args:
            root: Directory to sweep
            recursive: Include subdirectories
            progress: Called with (index, total) after each item
            cancel_event: Stops the sweep after the current item when set

        Returns:
            Summary with one record per processed file
        """
        files = discover_files(root, recursive)
        summary = BatchSummary(root=root, recursive=recursive)
        total = len(files)

        logger.info(f"Batch started: {total} file(s) under {root}")

        for index, path in enumerate(files, 1):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Batch cancelled after {index - 1}/{total} file(s)")
                summary.cancelled = True
                break

            logger.info(f"Batch {index}/{total}: {path.name}")
            summary.items.append(self._run_item(path, cancel_event))

            if progress is not None:
                progress(index, total)

        logger.info(
            f"Batch complete: {summary.successes} succeeded, "
            f"{summary.failures} failed, {summary.skipped} skipped"
        )
        return summary
