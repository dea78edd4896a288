"""Helpers for streaming encoded frames."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import cv2
from loguru import logger


if TYPE_CHECKING:
    from collections.abc import Iterator

    from harvest_lens.pipeline.controller import LoopController


def encode_chunk(frame_bytes: bytes) -> bytes:
    """Wrap one JPEG image as a multipart/x-mixed-replace part."""
    return b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + frame_bytes + b"\r\n\r\n"


def gen_frames(
    controller: LoopController,
    jpeg_quality: int = 70,
    wait_on_empty: float = 0.1,
    frame_delay: float = 1 / 30,
    max_frames: int | None = None,
) -> Iterator[bytes]:
    """Yield MJPEG chunks of what the controller is currently showing."""
    logger.info("Starting video stream...")
    sent = 0
    while max_frames is None or sent < max_frames:
        frame = controller.current_view()
        if frame is None:
            time.sleep(wait_on_empty)
            continue

        ret, buffer = cv2.imencode(
            ".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality]
        )
        if not ret:
            logger.warning("Frame encoding failed; skipping frame...")
            continue

        yield encode_chunk(buffer.tobytes())
        sent += 1
        if frame_delay > 0:
            time.sleep(frame_delay)
