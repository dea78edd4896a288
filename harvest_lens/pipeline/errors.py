"""Exception taxonomy for the detection pipeline.

``AcquireError`` is fatal to a camera session, ``InferenceError`` and
``FrameReadError`` only cost the current tick. ``ShapeMismatchError`` is an
``InferenceError`` but is raised once, when detection starts, because it
would recur on every tick.
"""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for all pipeline failures."""


class AcquireError(PipelineError):
    """Raised when the frame source device cannot be acquired."""


class PermissionDeniedError(AcquireError):
    """Access to the camera device was refused."""


class NoDeviceError(AcquireError):
    """No camera device matched the request."""


class InferenceError(PipelineError):
    """Raised when a single inference call fails."""


class ShapeMismatchError(InferenceError):
    """The tensor shape does not match the model's declared input."""

    def __init__(self, expected: tuple[int, ...], actual: tuple[int, ...]) -> None:
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        super().__init__(
            f"Tensor shape {self.actual} does not match model input {self.expected}"
        )


class BackendUnavailableError(InferenceError):
    """The compute backend could not be initialised."""


class FrameReadError(PipelineError):
    """The frame source produced no frame for this tick."""


class StateError(PipelineError):
    """An operation was requested from a state that does not allow it."""
