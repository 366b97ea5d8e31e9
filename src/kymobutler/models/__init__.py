"""Value types shared by the orchestrator, batch runner and CLI."""

from kymobutler.models.batch import BatchItem, BatchItemStatus, BatchSummary
from kymobutler.models.outcome import (
    AnalysisOutcome,
    ApplicationError,
    Cancelled,
    Success,
    TimedOut,
    Track,
    TransportError,
    TransportErrorKind,
)
from kymobutler.models.request import AnalysisRequest
from kymobutler.models.settings import Settings

__all__ = [
    "AnalysisOutcome",
    "AnalysisRequest",
    "ApplicationError",
    "BatchItem",
    "BatchItemStatus",
    "BatchSummary",
    "Cancelled",
    "Settings",
    "Success",
    "TimedOut",
    "Track",
    "TransportError",
    "TransportErrorKind",
]
