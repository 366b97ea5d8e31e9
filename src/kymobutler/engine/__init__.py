"""Local engine path: session layout, script rendering, supervision, collection."""

from kymobutler.engine.collector import collect, validate
from kymobutler.engine.paths import Session, sanitize
from kymobutler.engine.script import build_script
from kymobutler.engine.supervisor import ExitStatus, JobHandle, JobState, JobSupervisor

__all__ = [
    "ExitStatus",
    "JobHandle",
    "JobState",
    "JobSupervisor",
    "Session",
    "build_script",
    "collect",
    "sanitize",
    "validate",
]
