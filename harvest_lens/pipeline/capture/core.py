"""Frame source contract and device handle."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from harvest_lens.pipeline.types import FacingMode


if TYPE_CHECKING:
    from harvest_lens.pipeline.types import Frame


@dataclass
class DeviceHandle:
    """An open camera session returned by :meth:`FrameSource.open`."""

    device: int | str
    backend: str
    width: int = 0
    height: int = 0
    fps: float = 0.0
    facing_mode: FacingMode = FacingMode.ENVIRONMENT
    indicator_on: bool = False
    closed: bool = False
    frames_read: int = 0
    resource: Any = field(default=None, repr=False)

    @property
    def frame_interval_s(self) -> float:
        return 1.0 / self.fps if self.fps > 0 else 0.0

    def get_info(self) -> dict:
        """Return backend metadata for diagnostics."""
        return {
            "backend": self.backend,
            "device": str(self.device),
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "facing_mode": self.facing_mode.value,
            "indicator_on": self.indicator_on,
        }


class FrameSource(Protocol):
    """Capability interface for anything that can deliver frames."""

    def open(self) -> DeviceHandle:
        """Acquire the device; raise an ``AcquireError`` on failure."""
        ...

    def next_frame(self, handle: DeviceHandle) -> Frame:
        """Return the most recent frame; raise ``FrameReadError`` if none."""
        ...

    def close(self, handle: DeviceHandle) -> None:
        """Release the device; closing twice is a no-op."""
        ...
