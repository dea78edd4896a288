"""Overlay drawing for detections."""

from __future__ import annotations

import math
import threading
from typing import TYPE_CHECKING, Protocol

import cv2
import numpy as np

from harvest_lens.constants import (
    BOX_COLOR,
    BOX_THICKNESS,
    LABEL_FONT_SCALE,
    LABEL_OFFSET_PX,
)
from harvest_lens.pipeline.types import SurfaceSize


if TYPE_CHECKING:
    from collections.abc import Iterable

    from harvest_lens.pipeline.types import Detection, PixelBox


class RenderSurface(Protocol):
    """Draw target for the overlay."""

    @property
    def size(self) -> SurfaceSize:
        """Surface dimensions used for coordinate scaling."""
        ...

    def clear(self) -> None:
        """Erase the previous overlay."""
        ...

    def draw_rect(self, box: PixelBox, color: tuple[int, int, int]) -> None:
        """Stroke a rectangle outline."""
        ...

    def draw_text(
        self, text: str, origin: tuple[float, float], color: tuple[int, int, int]
    ) -> None:
        """Write a text label with its baseline at ``origin``."""
        ...


def score_percent(score: float) -> int:
    """Round a [0, 1] score to a whole percentage, halves rounding up."""
    return int(math.floor(score * 100 + 0.5))


def format_label(detection: Detection) -> str:
    return f"{detection.class_name} ({score_percent(detection.score)}%)"


def draw(
    detections: Iterable[Detection],
    surface: RenderSurface,
    color: tuple[int, int, int] = BOX_COLOR,
) -> None:
    """Clear ``surface`` and draw each detection's box and label."""
    surface.clear()
    for detection in detections:
        box = detection.pixel_box
        surface.draw_rect(box, color)
        surface.draw_text(
            format_label(detection), (box.x, box.y - LABEL_OFFSET_PX), color
        )


class OverlaySurface:
    """OpenCV canvas holding the detection overlay for one stream.

    The canvas is kept separate from camera frames; :meth:`composite` stamps
    the current overlay onto a frame of any size, stretching it the way the
    browser canvas is stretched over the video element.
    """

    def __init__(self, size: SurfaceSize) -> None:
        self._size = size
        self._lock = threading.Lock()
        self.canvas = np.zeros((size.height, size.width, 3), dtype=np.uint8)
        self.mask = np.zeros((size.height, size.width), dtype=np.uint8)

    @property
    def size(self) -> SurfaceSize:
        return self._size

    def clear(self) -> None:
        with self._lock:
            self.canvas.fill(0)
            self.mask.fill(0)

    def draw_rect(self, box: PixelBox, color: tuple[int, int, int]) -> None:
        top_left = (int(round(box.x)), int(round(box.y)))
        bottom_right = (int(round(box.x + box.width)), int(round(box.y + box.height)))
        with self._lock:
            cv2.rectangle(self.canvas, top_left, bottom_right, color, BOX_THICKNESS)
            cv2.rectangle(self.mask, top_left, bottom_right, 255, BOX_THICKNESS)

    def draw_text(
        self, text: str, origin: tuple[float, float], color: tuple[int, int, int]
    ) -> None:
        org = (int(round(origin[0])), int(round(origin[1])))
        with self._lock:
            cv2.putText(
                self.canvas,
                text,
                org,
                cv2.FONT_HERSHEY_SIMPLEX,
                LABEL_FONT_SCALE,
                color,
                1,
                cv2.LINE_AA,
            )
            cv2.putText(
                self.mask,
                text,
                org,
                cv2.FONT_HERSHEY_SIMPLEX,
                LABEL_FONT_SCALE,
                255,
                1,
                cv2.LINE_AA,
            )

    def composite(self, frame: np.ndarray) -> np.ndarray:
        """Return a copy of ``frame`` with the overlay drawn on top."""
        height, width = frame.shape[:2]
        with self._lock:
            canvas = self.canvas
            mask = self.mask
            if (width, height) != (self._size.width, self._size.height):
                canvas = cv2.resize(
                    canvas, (width, height), interpolation=cv2.INTER_NEAREST
                )
                mask = cv2.resize(mask, (width, height), interpolation=cv2.INTER_NEAREST)
            output = frame.copy()
            output[mask > 0] = canvas[mask > 0]
        return output
