"""In-memory frame source for tests and offline demos."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from loguru import logger

from harvest_lens.pipeline.capture.core import DeviceHandle
from harvest_lens.pipeline.errors import FrameReadError
from harvest_lens.pipeline.types import FacingMode, Frame


if TYPE_CHECKING:
    from collections.abc import Sequence

    import numpy as np

    from harvest_lens.pipeline.errors import AcquireError


class ReplayFrameSource:
    """Serve a fixed sequence of frames through the ``FrameSource`` contract."""

    backend_name = "Replay"

    def __init__(
        self,
        frames: Sequence[np.ndarray],
        *,
        fps: float = 30.0,
        loop: bool = False,
        open_error: AcquireError | None = None,
    ) -> None:
        self.frames = list(frames)
        self.fps = fps
        self.loop = loop
        self.open_error = open_error
        self.open_count = 0
        self.close_count = 0

    def open(self) -> DeviceHandle:
        if self.open_error is not None:
            raise self.open_error
        self.open_count += 1
        height, width = self.frames[0].shape[:2] if self.frames else (0, 0)
        logger.info("Replaying {} frames", len(self.frames))
        return DeviceHandle(
            device="replay",
            backend=self.backend_name,
            width=int(width),
            height=int(height),
            fps=self.fps,
            facing_mode=FacingMode.ENVIRONMENT,
            indicator_on=True,
        )

    def next_frame(self, handle: DeviceHandle) -> Frame:
        if handle.closed:
            message = "Replay handle is closed"
            raise FrameReadError(message)
        if not self.frames:
            message = "Replay source has no frames"
            raise FrameReadError(message)

        position = handle.frames_read
        if position >= len(self.frames):
            if not self.loop:
                message = "Replay source exhausted"
                raise FrameReadError(message)
            position %= len(self.frames)

        frame = Frame(
            pixels=self.frames[position],
            index=handle.frames_read,
            timestamp=time.perf_counter(),
        )
        handle.frames_read += 1
        return frame

    def close(self, handle: DeviceHandle) -> None:
        if handle.closed:
            return
        handle.closed = True
        handle.indicator_on = False
        self.close_count += 1
