"""Exception types raised by the job orchestrator."""


class KymoButlerError(Exception):
    """Base exception for orchestration errors."""


class ConfigurationError(KymoButlerError):
    """Engine executable or install root is missing or invalid."""


class SpawnError(KymoButlerError):
    """The engine process could not be launched."""

    def __init__(self, message: str, command: list[str] | None = None):
        super().__init__(message)
        self.command = command or []


class SessionError(KymoButlerError):
    """A session directory or one of its inputs could not be written."""


class ImageDecodeError(KymoButlerError):
    """A file could not be decoded as an image."""
