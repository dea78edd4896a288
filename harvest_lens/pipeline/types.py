"""Shared data structures for the detection pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from harvest_lens.constants import (
    CLASS_NAMES,
    DEFAULT_SURFACE_SIZE,
    DEFAULT_THRESHOLD,
)


if TYPE_CHECKING:
    import numpy as np


ClassTally = dict[str, int]


class FacingMode(Enum):
    """Preferred camera orientation, honoured best-effort."""

    USER = "user"
    ENVIRONMENT = "environment"


class LoopState(Enum):
    """Lifecycle states of the loop controller."""

    IDLE = "idle"
    CAMERA_ACTIVE = "camera_active"
    DETECTING = "detecting"
    STOPPED = "stopped"


class TallyMode(Enum):
    """Whether class counts reset every tick or accumulate over a session."""

    PER_TICK = "per_tick"
    SESSION = "session"


@dataclass
class CameraConfig:
    """Camera configuration settings."""

    source: int | str = 0
    width: int = 1280
    height: int = 720
    fps: int = 30
    facing_mode: FacingMode = FacingMode.ENVIRONMENT

    @property
    def frame_interval_s(self) -> float:
        """Seconds between frames at the requested rate."""
        return 1.0 / self.fps if self.fps > 0 else 0.0


@dataclass(frozen=True)
class SurfaceSize:
    """Pixel dimensions of a render surface."""

    width: int
    height: int


@dataclass
class DetectionConfig:
    """Detection settings shared by the controller and the runners."""

    model_path: str = "resources/models/fruits.onnx"
    class_names: tuple[str, ...] = CLASS_NAMES
    threshold: float = DEFAULT_THRESHOLD
    # None: take (height, width) from the model, default size if dynamic
    input_size: tuple[int, int] | None = None
    layout: str = "nhwc"
    surface_size: SurfaceSize = field(
        default_factory=lambda: SurfaceSize(*DEFAULT_SURFACE_SIZE)
    )
    tally_mode: TallyMode = TallyMode.PER_TICK
    max_consecutive_failures: int | None = 30
    slow_inference_ms: float | None = None
    debug_boxes: bool = False


@dataclass
class Frame:
    """One captured image; consumed by the preprocessor and then dropped."""

    pixels: np.ndarray
    index: int = 0
    timestamp: float = 0.0

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])


@dataclass(frozen=True)
class RawDetection:
    """One candidate detection exactly as emitted by the model."""

    box: tuple[float, float, float, float]
    score: float
    class_index: int


RawDetectionBatch = tuple[RawDetection, ...]


@dataclass(frozen=True)
class PixelBox:
    """Axis-aligned box in surface pixel space."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class Detection:
    """A thresholded, labelled detection ready for rendering and tallying."""

    class_name: str
    score: float
    pixel_box: PixelBox


@dataclass
class PerformanceMetrics:
    """Container for performance metrics."""

    camera_fps: float = 0.0
    inference_ms: float = 0.0
    inference_capacity_fps: float = 0.0
    frame_budget_percent: float = 0.0
    actual_throughput_fps: float = 0.0
    failed_ticks: int = 0
    process_rss_mb: float = 0.0
