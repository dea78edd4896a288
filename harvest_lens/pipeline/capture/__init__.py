"""Frame sources for the detection pipeline."""

from __future__ import annotations

from harvest_lens.pipeline.capture.core import DeviceHandle, FrameSource
from harvest_lens.pipeline.capture.opencv import OpenCVFrameSource
from harvest_lens.pipeline.capture.replay import ReplayFrameSource


__all__ = [
    "DeviceHandle",
    "FrameSource",
    "OpenCVFrameSource",
    "ReplayFrameSource",
]
