"""Wiring of command line options into a ready-to-use controller."""

from __future__ import annotations

import argparse
import platform

import cv2
from loguru import logger

from harvest_lens.constants import CLASS_NAMES
from harvest_lens.pipeline.capture.opencv import OpenCVFrameSource
from harvest_lens.pipeline.controller import LoopController
from harvest_lens.pipeline.inference import (
    InferenceInvoker,
    OnnxDetectionModel,
    load_class_names,
)
from harvest_lens.pipeline.render import OverlaySurface
from harvest_lens.pipeline.types import (
    CameraConfig,
    DetectionConfig,
    FacingMode,
    SurfaceSize,
    TallyMode,
)


def camera_config_from_args(args: argparse.Namespace) -> CameraConfig:
    return CameraConfig(
        source=args.source,
        width=args.width,
        height=args.height,
        fps=args.fps,
        facing_mode=FacingMode(args.facing),
    )


def detection_config_from_args(args: argparse.Namespace) -> DetectionConfig:
    class_names = load_class_names(args.classes) if args.classes else CLASS_NAMES
    width, height = args.surface
    input_size = None
    if args.input_size is not None:
        input_width, input_height = args.input_size
        input_size = (input_height, input_width)
    return DetectionConfig(
        model_path=args.model,
        class_names=class_names,
        threshold=args.conf,
        input_size=input_size,
        layout=args.layout,
        surface_size=SurfaceSize(width=width, height=height),
        tally_mode=TallyMode(args.tally_mode),
        max_consecutive_failures=args.max_failures,
        slow_inference_ms=args.slow_ms,
        debug_boxes=args.debug_boxes,
    )


def build_controller(
    args: argparse.Namespace, *, publish_frames: bool = False
) -> LoopController:
    """Create the OpenCV source, ONNX model and overlay for ``args``."""
    logger.info("=" * 60)
    logger.info("Harvest-Lens fruit detection")
    logger.info("=" * 60)
    logger.info("Platform: {} {}", platform.system(), platform.release())
    logger.info("Python: {}", platform.python_version())
    logger.info("OpenCV: {}", cv2.__version__)

    camera_config = camera_config_from_args(args)
    detection_config = detection_config_from_args(args)
    logger.info(
        "Requested: {}x{} @ {} FPS from {}",
        camera_config.width,
        camera_config.height,
        camera_config.fps,
        camera_config.source,
    )
    logger.info(
        "Classes: {} | threshold {:.2f}",
        ", ".join(detection_config.class_names),
        detection_config.threshold,
    )

    model = OnnxDetectionModel(detection_config.model_path, detection_config.class_names)
    return LoopController(
        OpenCVFrameSource(camera_config, probe_devices=args.probe_devices),
        InferenceInvoker(model),
        OverlaySurface(detection_config.surface_size),
        detection_config,
        publish_frames=publish_frames,
    )
