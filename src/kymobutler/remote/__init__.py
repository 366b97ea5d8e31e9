"""Legacy remote analysis service client."""

from kymobutler.remote.client import RemoteClient
from kymobutler.remote.watchdog import Watchdog, WatchdogState

__all__ = ["RemoteClient", "Watchdog", "WatchdogState"]
