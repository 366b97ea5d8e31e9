"""Runtime settings for the orchestrator and batch runner."""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kymobutler.constants import (
    DEFAULT_ENGINE_ARGS,
    DEFAULT_ENGINE_PATH,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_TIMEOUT_SECONDS,
    Device,
)

# TOML table -> {config key: Settings field}
_CONFIG_TABLES: dict[str, dict[str, str]] = {
    "engine": {
        "path": "engine_path",
        "args": "engine_args",
        "install_root": "install_root",
        "device": "device",
        "timeout_seconds": "timeout_seconds",
        "poll_interval": "poll_interval",
    },
    "output": {
        "dir": "output_dir",
        "beside_input": "outputs_beside_input",
        "use_physical_units": "use_physical_units",
        "debug": "debug",
    },
    "remote": {
        "url": "remote_url",
    },
}


class Settings(BaseModel):
    """
    Explicit settings passed to the Orchestrator and BatchRunner.

    Loading and saving is handled by kymobutler.config; this model only holds
    the values for one run.
    """

    model_config = ConfigDict(frozen=True)

    engine_path: str = Field(
        default=DEFAULT_ENGINE_PATH, description="Engine executable (name or path)"
    )
    engine_args: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ENGINE_ARGS),
        description="Arguments placed between the executable and the script path",
    )
    install_root: Path | None = Field(
        default=None, description="Engine install root (None = auto-discover)"
    )
    output_dir: Path = Field(
        default=DEFAULT_OUTPUT_DIR, description="Root for session directories"
    )
    outputs_beside_input: bool = Field(
        default=True,
        description="Write sessions next to the input image when its location is known",
    )
    device: Device = Field(default=Device.GPU, description="Default target device")
    use_physical_units: bool = Field(
        default=True, description="Use calibrated units in post-processing"
    )
    timeout_seconds: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS, gt=0, description="Per-job wall-clock limit"
    )
    poll_interval: float = Field(
        default=DEFAULT_POLL_INTERVAL,
        gt=0,
        description="Seconds between timeout/cancellation checks",
    )
    remote_url: str = Field(default="", description="Legacy remote service URL")
    debug: bool = Field(default=False, description="Keep a copy of every response")

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "Settings":
        """
        Build settings from a loaded config dictionary.

        Unknown keys are ignored; missing keys keep their defaults.

        Args:
            config: Dictionary as returned by kymobutler.config.load_config()
        """
        values: dict[str, Any] = {}
        for table, mapping in _CONFIG_TABLES.items():
            section = config.get(table, {})
            if not isinstance(section, dict):
                continue
            for key, field_name in mapping.items():
                if key in section:
                    values[field_name] = section[key]
        return cls(**values)
