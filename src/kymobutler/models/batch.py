"""
Batch sweep results.

Provides per-item records and the aggregate summary reported after a
BatchRunner sweep, plus JSON export.
"""

import json

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class BatchItemStatus(str, Enum):
    """Per-file result of a batch sweep."""

    SKIPPED = "skipped"
    SUCCESS = "success"
    FAILURE = "failure"


class BatchItem(BaseModel):
    """Outcome record for a single file in a batch."""

    path: Path = Field(description="Candidate file")
    status: BatchItemStatus = Field(description="skipped / success / failure")
    outcome: str | None = Field(
        default=None, description="Outcome variant name when the job ran"
    )
    message: str = Field(default="", description="Reason or summary")
    output_dir: Path | None = Field(default=None, description="Session directory")
    track_count: int = Field(default=0, ge=0, description="Tracks detected")


class BatchSummary(BaseModel):
    """Aggregate result of a batch sweep."""

    root: Path = Field(description="Directory that was swept")
    recursive: bool = Field(description="Whether subdirectories were included")
    items: list[BatchItem] = Field(default_factory=list)
    cancelled: bool = Field(
        default=False, description="Whether the sweep was stopped by the user"
    )

    @property
    def total(self) -> int:
        return len(self.items)

    def _count(self, status: BatchItemStatus) -> int:
        return sum(1 for item in self.items if item.status == status)

    @property
    def successes(self) -> int:
        return self._count(BatchItemStatus.SUCCESS)

    @property
    def failures(self) -> int:
        return self._count(BatchItemStatus.FAILURE)

    @property
    def skipped(self) -> int:
        return self._count(BatchItemStatus.SKIPPED)

    @property
    def failed_items(self) -> list[BatchItem]:
        return [i for i in self.items if i.status == BatchItemStatus.FAILURE]

    @property
    def is_partial_failure(self) -> bool:
        """True when some items failed while others succeeded."""
        return self.failures > 0 and self.successes > 0


def export_summary_json(summary: BatchSummary, output_path: Path) -> None:
    """
    Export a batch summary as JSON.

    Args:
        summary: Summary to export
        output_path: Path to output JSON file
    """
    data = summary.model_dump(mode="json")
    data["totals"] = {
        "total": summary.total,
        "success": summary.successes,
        "failure": summary.failures,
        "skipped": summary.skipped,
    }
    with open(output_path, "w") as f:
        json.dump(data, f, indent=2)
