"""OpenCV capture backend."""

from __future__ import annotations

import os
import platform
import time
from contextlib import suppress
from pathlib import Path
from typing import TYPE_CHECKING

import cv2
from loguru import logger

from harvest_lens.pipeline.capture.core import DeviceHandle
from harvest_lens.pipeline.errors import (
    FrameReadError,
    NoDeviceError,
    PermissionDeniedError,
)
from harvest_lens.pipeline.types import Frame


if TYPE_CHECKING:
    from harvest_lens.pipeline.types import CameraConfig


def _device_node(index: int) -> Path:
    return Path(f"/dev/video{index}")


def _permission_denied(source: int | str) -> bool:
    """Best-effort check whether a failed open was an access problem."""
    if isinstance(source, int):
        if platform.system() != "Linux":
            return False
        node = _device_node(source)
        return node.exists() and not os.access(node, os.R_OK | os.W_OK)
    path = Path(source)
    return path.exists() and not os.access(path, os.R_OK)


class OpenCVFrameSource:
    """Frame source backed by ``cv2.VideoCapture``.

    ``config.source`` may be a device index, a video file, or a stream URL.
    OpenCV has no notion of camera orientation, so the facing-mode
    preference is recorded on the handle and logged; when the preferred
    index cannot be opened, up to ``probe_devices`` further indices are tried.
    """

    backend_name = "OpenCV"

    def __init__(self, config: CameraConfig, *, probe_devices: int = 0) -> None:
        self.config = config
        self.probe_devices = probe_devices

    def _candidates(self) -> list[int | str]:
        source = self.config.source
        if isinstance(source, str):
            return [source]
        return [source, *(source + step for step in range(1, self.probe_devices + 1))]

    def _configure(self, cap: cv2.VideoCapture) -> None:
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        cap.set(cv2.CAP_PROP_FPS, self.config.fps)
        with suppress(Exception):
            cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

    def open(self) -> DeviceHandle:
        """Open the first usable device and configure capture settings."""
        denied = False
        for candidate in self._candidates():
            logger.info("Opening camera {} with OpenCV...", candidate)
            cap = cv2.VideoCapture(candidate)
            if not cap.isOpened():
                cap.release()
                denied = denied or _permission_denied(candidate)
                logger.warning("Cannot open camera {} with OpenCV", candidate)
                continue

            if isinstance(candidate, int):
                self._configure(cap)

            actual_fps = float(cap.get(cv2.CAP_PROP_FPS)) or float(self.config.fps)
            handle = DeviceHandle(
                device=candidate,
                backend=self.backend_name,
                width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
                height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
                fps=actual_fps,
                facing_mode=self.config.facing_mode,
                indicator_on=True,
                resource=cap,
            )
            logger.success(
                "Camera opened: {}x{} @ {:.1f} FPS (facing {} requested)",
                handle.width,
                handle.height,
                handle.fps,
                self.config.facing_mode.value,
            )
            return handle

        if denied:
            message = f"Permission denied for camera {self.config.source}"
            raise PermissionDeniedError(message)
        message = f"No camera device available for source {self.config.source}"
        raise NoDeviceError(message)

    def next_frame(self, handle: DeviceHandle) -> Frame:
        """Read the latest frame from the device."""
        if handle.closed or handle.resource is None:
            message = "Camera handle is closed"
            raise FrameReadError(message)

        ok, pixels = handle.resource.read()
        if not ok or pixels is None:
            message = f"Failed to grab frame from camera {handle.device}"
            raise FrameReadError(message)

        frame = Frame(
            pixels=pixels, index=handle.frames_read, timestamp=time.perf_counter()
        )
        handle.frames_read += 1
        return frame

    def close(self, handle: DeviceHandle) -> None:
        """Release the OpenCV capture handle."""
        if handle.closed:
            return
        handle.closed = True
        handle.indicator_on = False
        cap, handle.resource = handle.resource, None
        if cap is not None:
            cap.release()
        logger.info("Camera {} released", handle.device)
