"""
Outcome types for a single analysis job.

An AnalysisOutcome is one of Success, ApplicationError, TransportError,
Cancelled or TimedOut. The response document is decoded into one of these
once, at the boundary, and callers dispatch on the variant type.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import ClassVar

import numpy as np

from kymobutler.constants import Direction


class TransportErrorKind(str, Enum):
    """Reasons a job finished without a usable response."""

    MISSING_OUTPUT = "missing_output"
    MALFORMED_RESPONSE = "malformed_response"
    CONNECTION_FAILED = "connection_failed"


@dataclass(frozen=True)
class Track:
    """
    A detected trajectory.

    Attributes:
        track_id: Identifier, unique and sequential within one outcome
        direction: Direction classification
        points: (time index, space index) samples in engine order
    """

    track_id: int
    direction: Direction
    points: tuple[tuple[float, float], ...]

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True, eq=False)
class Success:
    """Job completed and produced a well-formed result."""

    kind: ClassVar[str] = "success"

    raw_json: bytes
    tracks: list[Track]
    kymograph: np.ndarray
    overlay: np.ndarray
    output_dir: Path | None = None

    @property
    def anterograde(self) -> list[Track]:
        return [t for t in self.tracks if t.direction == Direction.ANTEROGRADE]

    @property
    def retrograde(self) -> list[Track]:
        return [t for t in self.tracks if t.direction == Direction.RETROGRADE]


@dataclass(frozen=True)
class ApplicationError:
    """The engine reported an analysis failure."""

    kind: ClassVar[str] = "application_error"

    message: str


@dataclass(frozen=True)
class TransportError:
    """The job ran but its result could not be obtained or read."""

    kind: ClassVar[str] = "transport_error"

    error_kind: TransportErrorKind
    detail: str = ""


@dataclass(frozen=True)
class Cancelled:
    """The user cancelled the job."""

    kind: ClassVar[str] = "cancelled"

    elapsed_seconds: float = 0.0


@dataclass(frozen=True)
class TimedOut:
    """The job hit its wall-clock limit and was forcibly stopped."""

    kind: ClassVar[str] = "timed_out"

    timeout_seconds: float
    elapsed_seconds: float = field(default=0.0)


AnalysisOutcome = Success | ApplicationError | TransportError | Cancelled | TimedOut


def describe_outcome(outcome: AnalysisOutcome) -> str:
    """One-line human-readable summary of an outcome."""
    if isinstance(outcome, Success):
        return f"{len(outcome.tracks)} track(s) detected"
    if isinstance(outcome, ApplicationError):
        return f"Engine error: {outcome.message}"
    if isinstance(outcome, TransportError):
        detail = f" ({outcome.detail})" if outcome.detail else ""
        return f"No usable result: {outcome.error_kind.value}{detail}"
    if isinstance(outcome, Cancelled):
        return "Cancelled by user"
    return f"Timed out after {outcome.timeout_seconds:g}s"
