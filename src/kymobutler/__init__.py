"""
KymoButler: automated kymograph analysis

Runs the KymoButler analysis engine on kymograph images and collects its
tracks, overlays and post-processing tables.
"""

from typing import Any

__all__ = ["AnalysisRequest", "BatchRunner", "Orchestrator", "Settings"]


def __getattr__(name: str) -> Any:
    """Lazy load the public API to keep CLI startup light."""
    if name == "Orchestrator":
        from kymobutler.orchestrator import Orchestrator

        return Orchestrator
    if name == "BatchRunner":
        from kymobutler.batch import BatchRunner

        return BatchRunner
    if name == "AnalysisRequest":
        from kymobutler.models.request import AnalysisRequest

        return AnalysisRequest
    if name == "Settings":
        from kymobutler.models.settings import Settings

        return Settings
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
