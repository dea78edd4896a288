from __future__ import annotations

from harvest_lens.pipeline.aggregate import Aggregator, tally
from harvest_lens.pipeline.capture import (
    DeviceHandle,
    FrameSource,
    OpenCVFrameSource,
    ReplayFrameSource,
)
from harvest_lens.pipeline.controller import LoopController, Notification
from harvest_lens.pipeline.errors import (
    AcquireError,
    BackendUnavailableError,
    FrameReadError,
    InferenceError,
    NoDeviceError,
    PermissionDeniedError,
    PipelineError,
    ShapeMismatchError,
    StateError,
)
from harvest_lens.pipeline.inference import (
    DetectionModel,
    InferenceInvoker,
    OnnxDetectionModel,
    decode_outputs,
    load_class_names,
)
from harvest_lens.pipeline.metrics.performance import PerformanceTracker
from harvest_lens.pipeline.postprocess import process, scale_box
from harvest_lens.pipeline.preprocess import infer_input_size, prepare
from harvest_lens.pipeline.render import OverlaySurface, RenderSurface, draw
from harvest_lens.pipeline.tensors import TensorLedger, TensorScope
from harvest_lens.pipeline.types import (
    CameraConfig,
    ClassTally,
    Detection,
    DetectionConfig,
    FacingMode,
    Frame,
    LoopState,
    PerformanceMetrics,
    PixelBox,
    RawDetection,
    SurfaceSize,
    TallyMode,
)


__all__ = [
    "AcquireError",
    "Aggregator",
    "BackendUnavailableError",
    "CameraConfig",
    "ClassTally",
    "Detection",
    "DetectionConfig",
    "DetectionModel",
    "DeviceHandle",
    "FacingMode",
    "Frame",
    "FrameReadError",
    "FrameSource",
    "InferenceError",
    "InferenceInvoker",
    "LoopController",
    "LoopState",
    "NoDeviceError",
    "Notification",
    "OnnxDetectionModel",
    "OpenCVFrameSource",
    "OverlaySurface",
    "PerformanceMetrics",
    "PerformanceTracker",
    "PermissionDeniedError",
    "PipelineError",
    "PixelBox",
    "RawDetection",
    "RenderSurface",
    "ReplayFrameSource",
    "ShapeMismatchError",
    "StateError",
    "SurfaceSize",
    "TallyMode",
    "TensorLedger",
    "TensorScope",
    "decode_outputs",
    "draw",
    "infer_input_size",
    "load_class_names",
    "prepare",
    "process",
    "scale_box",
    "tally",
]
