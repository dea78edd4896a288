"""End-to-end detection runs against in-memory frames."""

from __future__ import annotations

import time

import numpy as np

from harvest_lens.constants import BOX_COLOR
from harvest_lens.pipeline.capture import ReplayFrameSource
from harvest_lens.pipeline.controller import LoopController
from harvest_lens.pipeline.inference import InferenceInvoker
from harvest_lens.pipeline.render import OverlaySurface
from harvest_lens.pipeline.tensors import TensorLedger
from harvest_lens.pipeline.types import DetectionConfig, LoopState, SurfaceSize


def _controller(model, frames) -> LoopController:
    config = DetectionConfig(class_names=("apple", "banana"))
    return LoopController(
        ReplayFrameSource(frames, loop=True),
        InferenceInvoker(model),
        OverlaySurface(SurfaceSize(640, 640)),
        config,
        ledger=TensorLedger(),
        frame_interval_s=0.0,
        publish_frames=True,
    )


def test_single_apple_is_counted_and_drawn(fake_model, outputs) -> None:
    """A confident apple is counted and drawn; a weak banana is not."""
    frames = [np.full((640, 640, 3), 30, dtype=np.uint8)]
    model = fake_model(
        [outputs([((0.1, 0.1, 0.3, 0.3), 0.92, 0), ((0.6, 0.6, 0.8, 0.8), 0.4, 1)])]
    )
    controller = _controller(model, frames)

    controller.open_camera()
    controller.start_detection(background=False)
    counts = controller.step()

    assert counts == {"apple": 1}
    annotated = controller.latest_frame
    assert annotated is not None
    assert annotated[64, 64].tolist() == list(BOX_COLOR)
    assert annotated[192, 192].tolist() == list(BOX_COLOR)
    assert annotated[320, 320].tolist() == [30, 30, 30]
    assert annotated[384, 384].tolist() == [30, 30, 30]
    # label baseline sits 5px above the box
    assert controller.surface.mask[40:59, 64:120].any()

    controller.shutdown()
    assert controller.state is LoopState.STOPPED
    assert controller.ledger.is_balanced()


def test_worker_session_survives_failures(fake_model, outputs) -> None:
    """A worker run with intermittent failures keeps ticking and stays balanced."""
    frames = [np.zeros((120, 160, 3), dtype=np.uint8) for _ in range(3)]
    good = outputs([((0.5, 0.5, 0.9, 0.9), 0.8, 1)])
    model = fake_model([good, RuntimeError("transient"), good, good] * 10)
    controller = _controller(model, frames)

    controller.open_camera()
    controller.start_detection()
    deadline = time.monotonic() + 5.0
    while model.calls < 12 and time.monotonic() < deadline:
        time.sleep(0.01)
    controller.stop_detection(timeout=5.0)

    assert model.calls >= 12
    assert controller.state is LoopState.CAMERA_ACTIVE
    assert controller.latest_tally == {"banana": 1}
    assert controller.perf_tracker.failed_ticks >= 1
    assert controller.ledger.is_balanced()

    controller.close_camera()
    assert controller.state is LoopState.IDLE
    assert controller.handle is None
