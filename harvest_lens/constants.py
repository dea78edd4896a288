"""Defaults for the bundled fruit detector."""

from __future__ import annotations


CLASS_NAMES: tuple[str, ...] = ("apple", "banana", "orange", "mango", "strawberry")

DEFAULT_THRESHOLD = 0.5
DEFAULT_INPUT_SIZE: tuple[int, int] = (640, 640)
DEFAULT_SURFACE_SIZE: tuple[int, int] = (640, 640)

# BGR of #16a34a
BOX_COLOR: tuple[int, int, int] = (74, 163, 22)
BOX_THICKNESS = 2
LABEL_OFFSET_PX = 5
LABEL_FONT_SCALE = 0.5
