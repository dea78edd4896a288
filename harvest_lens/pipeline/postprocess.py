"""Turn raw model detections into labelled, surface-space boxes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from harvest_lens.pipeline.types import Detection, PixelBox


if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from harvest_lens.pipeline.types import RawDetection, SurfaceSize


def scale_box(
    box: tuple[float, float, float, float], surface_size: SurfaceSize
) -> PixelBox:
    """Scale a normalised ``(y0, x0, y1, x1)`` box to surface pixels."""
    y0, x0, y1, x1 = box
    width, height = surface_size.width, surface_size.height
    return PixelBox(
        x=x0 * width,
        y=y0 * height,
        width=(x1 - x0) * width,
        height=(y1 - y0) * height,
    )


def process(
    batch: Iterable[RawDetection],
    threshold: float,
    class_names: Sequence[str],
    surface_size: SurfaceSize,
    *,
    debug_boxes: bool = False,
) -> list[Detection]:
    """Filter, label and scale one tick's raw detections.

    Only detections scoring strictly above ``threshold`` survive. A class
    index outside ``class_names`` is dropped silently; the model's class
    list is fixed, so such entries are padding rather than errors. Output
    keeps the batch order.
    """
    detections: list[Detection] = []
    dropped_classes = 0

    for raw in batch:
        if not raw.score > threshold:
            continue
        if not 0 <= raw.class_index < len(class_names):
            dropped_classes += 1
            continue
        detections.append(
            Detection(
                class_name=class_names[raw.class_index],
                score=raw.score,
                pixel_box=scale_box(raw.box, surface_size),
            )
        )

    if debug_boxes and detections:
        logger.debug(
            "Decoded boxes (first 3): {}",
            [(d.class_name, round(d.score, 3), d.pixel_box) for d in detections[:3]],
        )
    if dropped_classes:
        logger.trace("Dropped {} detections with unknown class index", dropped_classes)

    return detections
