"""Shared fakes and fixtures for pipeline tests."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import numpy as np
import pytest

from harvest_lens.pipeline.capture.replay import ReplayFrameSource
from harvest_lens.pipeline.controller import LoopController
from harvest_lens.pipeline.inference import InferenceInvoker
from harvest_lens.pipeline.tensors import TensorLedger
from harvest_lens.pipeline.types import DetectionConfig, SurfaceSize


MAX_DETECTIONS = 4


def make_outputs(
    entries: Sequence[tuple[Sequence[float], float, int]],
    max_detections: int = MAX_DETECTIONS,
) -> list[np.ndarray]:
    """Build batched boxes/scores/classes arrays padded to ``max_detections``."""
    boxes = np.zeros((1, max_detections, 4), dtype=np.float32)
    scores = np.zeros((1, max_detections), dtype=np.float32)
    classes = np.zeros((1, max_detections), dtype=np.float32)
    for i, (box, score, class_index) in enumerate(entries):
        boxes[0, i] = box
        scores[0, i] = score
        classes[0, i] = class_index
    return [boxes, scores, classes]


class FakeModel:
    """Stand-in for an ONNX model with a fixed input shape."""

    def __init__(
        self,
        outputs: Sequence[list[np.ndarray] | Exception]
        | Callable[[np.ndarray], list[np.ndarray]]
        | None = None,
        *,
        input_shape: tuple[int, ...] = (1, 640, 640, 3),
        class_names: tuple[str, ...] = ("apple", "banana"),
        load_error: Exception | None = None,
    ) -> None:
        self.input_shape = input_shape
        self.class_names = class_names
        self.load_error = load_error
        self._outputs = outputs
        self.calls = 0
        self.load_count = 0
        self.unload_count = 0
        self.seen_shapes: list[tuple[int, ...]] = []

    def load(self) -> None:
        if self.load_error is not None:
            raise self.load_error
        self.load_count += 1

    def unload(self) -> None:
        self.unload_count += 1

    def run(self, tensor: np.ndarray) -> list[np.ndarray]:
        self.seen_shapes.append(tuple(tensor.shape))
        index = self.calls
        self.calls += 1
        if self._outputs is None:
            return make_outputs([])
        if callable(self._outputs):
            return self._outputs(tensor)
        result = self._outputs[min(index, len(self._outputs) - 1)]
        if isinstance(result, Exception):
            raise result
        return result


class RecordingSurface:
    """Render surface that records every drawing call."""

    def __init__(self, size: SurfaceSize | None = None) -> None:
        self._size = size or SurfaceSize(640, 640)
        self.calls: list[tuple] = []

    @property
    def size(self) -> SurfaceSize:
        return self._size

    def clear(self) -> None:
        self.calls.append(("clear",))

    def draw_rect(self, box, color) -> None:
        self.calls.append(("rect", box, color))

    def draw_text(self, text, origin, color) -> None:
        self.calls.append(("text", text, origin, color))


@pytest.fixture
def frames() -> list[np.ndarray]:
    rng = np.random.default_rng(7)
    return [rng.integers(0, 255, size=(48, 64, 3), dtype=np.uint8) for _ in range(5)]


@pytest.fixture
def make_controller(frames: list[np.ndarray]):
    """Factory building a controller around fakes."""

    def _make(
        model: FakeModel | None = None,
        *,
        source: ReplayFrameSource | None = None,
        config: DetectionConfig | None = None,
        surface: RecordingSurface | None = None,
        **kwargs: object,
    ) -> LoopController:
        return LoopController(
            source or ReplayFrameSource(frames, loop=True),
            InferenceInvoker(model or FakeModel()),
            surface or RecordingSurface(),
            config or DetectionConfig(class_names=("apple", "banana")),
            ledger=TensorLedger(),
            frame_interval_s=0.0,
            **kwargs,
        )

    return _make


@pytest.fixture
def fake_model() -> type[FakeModel]:
    """The FakeModel class, for tests that configure their own outputs."""
    return FakeModel


@pytest.fixture
def outputs() -> Callable[..., list[np.ndarray]]:
    """The make_outputs helper."""
    return make_outputs


@pytest.fixture
def recording_surface() -> RecordingSurface:
    return RecordingSurface()
