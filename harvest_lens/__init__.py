"""Harvest-Lens real-time fruit detection package."""

from harvest_lens.constants import CLASS_NAMES
from harvest_lens.pipeline import (
    DetectionConfig,
    InferenceInvoker,
    LoopController,
    LoopState,
    OnnxDetectionModel,
    OpenCVFrameSource,
    OverlaySurface,
)


__all__ = [
    "CLASS_NAMES",
    "DetectionConfig",
    "InferenceInvoker",
    "LoopController",
    "LoopState",
    "OnnxDetectionModel",
    "OpenCVFrameSource",
    "OverlaySurface",
]
