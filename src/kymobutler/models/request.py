"""Analysis request model."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator

from kymobutler.constants import (
    DEFAULT_DECISION_THRESHOLD,
    DEFAULT_IMPROVE_START,
    DEFAULT_IMPROVE_STOP,
    DEFAULT_MINIMUM_FRAMES,
    DEFAULT_MINIMUM_SIZE,
    DEFAULT_SPACE_SIZE,
    DEFAULT_THRESHOLD,
    DEFAULT_TIME_SIZE,
    Device,
)


class AnalysisRequest(BaseModel):
    """
    Immutable description of one kymograph analysis job.

    Either ``image`` (encoded image bytes) or ``image_path`` must be given.
    When both are present the bytes win and the path only supplies the title
    and the default output location.
    """

    model_config = ConfigDict(frozen=True)

    image: bytes | None = Field(default=None, description="Encoded image bytes")
    image_path: Path | None = Field(default=None, description="Image file location")
    title: str | None = Field(
        default=None, description="Display title used to derive output names"
    )

    threshold: float = Field(
        default=DEFAULT_THRESHOLD, ge=0, le=1, description="Detection threshold"
    )
    minimum_size: float = Field(
        default=DEFAULT_MINIMUM_SIZE, ge=0, description="Minimum track size (pixels)"
    )
    minimum_frames: float = Field(
        default=DEFAULT_MINIMUM_FRAMES, ge=0, description="Minimum track frame count"
    )
    use_bidirectional: bool = Field(
        default=False, description="Use the bidirectional model"
    )
    decision_threshold: float = Field(
        default=DEFAULT_DECISION_THRESHOLD,
        ge=0,
        le=1,
        description="Bidirectional decision threshold",
    )
    device: Device = Field(default=Device.GPU, description="Target device")

    time_size: float = Field(
        default=DEFAULT_TIME_SIZE, gt=0, description="Seconds per pixel row"
    )
    space_size: float = Field(
        default=DEFAULT_SPACE_SIZE, gt=0, description="Distance per pixel column"
    )
    use_physical_units: bool = Field(
        default=True, description="Post-process in calibrated units"
    )

    improve: bool = Field(
        default=False, description="Apply difference-of-Gaussians enhancement first"
    )
    improve_start: int = Field(default=DEFAULT_IMPROVE_START, ge=1)
    improve_stop: int = Field(default=DEFAULT_IMPROVE_STOP, ge=1)

    @model_validator(mode="after")
    def _check_consistency(self) -> "AnalysisRequest":
        if self.image is None and self.image_path is None:
            raise ValueError("Either image bytes or image_path must be provided")
        if self.improve_start > self.improve_stop:
            raise ValueError(
                f"improve_start ({self.improve_start}) must not exceed "
                f"improve_stop ({self.improve_stop})"
            )
        return self

    @property
    def display_title(self) -> str | None:
        """Title used for output names, falling back to the file name."""
        if self.title:
            return self.title
        if self.image_path is not None:
            return self.image_path.name
        return None

    @property
    def source_dir(self) -> Path | None:
        """Directory holding the source image, if known."""
        if self.image_path is None:
            return None
        return self.image_path.parent

    def read_image(self) -> bytes:
        """Return the encoded image bytes, reading image_path if needed."""
        if self.image is not None:
            return self.image
        if self.image_path is None:
            raise ValueError("Request carries neither image bytes nor a path")
        return self.image_path.read_bytes()
