"""Frame to model-input tensor conversion."""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2
import numpy as np

from harvest_lens.constants import DEFAULT_INPUT_SIZE


if TYPE_CHECKING:
    from collections.abc import Sequence

    from harvest_lens.pipeline.tensors import TensorScope
    from harvest_lens.pipeline.types import Frame


LAYOUTS = ("nhwc", "nchw")


def static_input_size(input_shape: Sequence[object] | None) -> tuple[int, int] | None:
    """Return (height, width) from a declared model input shape, if fixed.

    Both NHWC (``[1, H, W, 3]``) and NCHW (``[1, 3, H, W]``) shapes are
    understood. ``None`` is returned when either dimension is dynamic.
    """
    if not input_shape or len(input_shape) < 4:
        return None

    if input_shape[-1] == 3:
        height, width = input_shape[1], input_shape[2]
    else:
        height, width = input_shape[-2], input_shape[-1]

    if isinstance(height, int) and isinstance(width, int) and height > 0 and width > 0:
        return (height, width)
    return None


def infer_input_size(input_shape: Sequence[object] | None) -> tuple[int, int]:
    """Like :func:`static_input_size`, falling back to the default input size."""
    return static_input_size(input_shape) or DEFAULT_INPUT_SIZE


def expected_tensor_shape(
    input_size: tuple[int, int], layout: str = "nhwc"
) -> tuple[int, int, int, int]:
    """Return the batched tensor shape produced by :func:`prepare`."""
    height, width = input_size
    if layout == "nchw":
        return (1, 3, height, width)
    return (1, height, width, 3)


def prepare(
    frame: Frame,
    target_shape: tuple[int, int] = DEFAULT_INPUT_SIZE,
    *,
    scope: TensorScope | None = None,
    layout: str = "nhwc",
    swap_rb: bool = True,
) -> np.ndarray:
    """Resize, batch and normalise a frame for the detector.

    The chain mirrors what the model was exported with: RGB pixels,
    bilinear resize to ``target_shape`` (height, width) without letterboxing,
    a leading batch axis, and float32 values in ``[0, 1]``. Every
    intermediate array is adopted by ``scope`` so it is released with the
    tick.
    """
    if layout not in LAYOUTS:
        message = f"Unsupported tensor layout: {layout!r}"
        raise ValueError(message)

    def _own(tensor: np.ndarray) -> np.ndarray:
        return scope.adopt(tensor) if scope is not None else tensor

    pixels = frame.pixels
    if pixels.ndim == 2:
        pixels = _own(cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR))

    rgb = _own(cv2.cvtColor(pixels, cv2.COLOR_BGR2RGB)) if swap_rb else pixels

    height, width = target_shape
    resized = _own(cv2.resize(rgb, (width, height), interpolation=cv2.INTER_LINEAR))

    if layout == "nchw":
        resized = _own(resized.transpose(2, 0, 1))

    expanded = _own(resized[np.newaxis, ...])
    as_float = _own(np.ascontiguousarray(expanded, dtype=np.float32))
    return _own(as_float / 255.0)
