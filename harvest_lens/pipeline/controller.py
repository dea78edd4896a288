"""State machine that drives the detection pipeline tick by tick."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from harvest_lens.constants import DEFAULT_INPUT_SIZE
from harvest_lens.pipeline.aggregate import Aggregator
from harvest_lens.pipeline.errors import (
    AcquireError,
    FrameReadError,
    PipelineError,
    StateError,
)
from harvest_lens.pipeline.metrics.performance import PerformanceTracker
from harvest_lens.pipeline.postprocess import process
from harvest_lens.pipeline.preprocess import prepare
from harvest_lens.pipeline.render import draw
from harvest_lens.pipeline.tensors import TensorLedger, TensorScope
from harvest_lens.pipeline.types import (
    ClassTally,
    DetectionConfig,
    LoopState,
    TallyMode,
)


if TYPE_CHECKING:
    from collections.abc import Callable

    import numpy as np

    from harvest_lens.pipeline.capture.core import DeviceHandle, FrameSource
    from harvest_lens.pipeline.inference import InferenceInvoker
    from harvest_lens.pipeline.render import RenderSurface
    from harvest_lens.pipeline.types import Frame


@dataclass
class Notification:
    """A non-fatal (or demoting) error surfaced to the UI layer."""

    level: str
    message: str
    error_type: str
    timestamp: float = field(default_factory=time.time)


class LoopController:
    """Own the camera session, the backend context and the detection loop.

    ``IDLE -> open_camera() -> CAMERA_ACTIVE -> start_detection() ->
    DETECTING -> stop_detection() -> CAMERA_ACTIVE -> close_camera() -> IDLE``.
    ``close_camera()`` works from any state and ``shutdown()`` moves to the
    terminal ``STOPPED`` state.

    Ticks never overlap: the worker thread (or an external scheduler calling
    :meth:`step`) runs one full tick, through rendering, before the next
    frame is read. Cancellation is cooperative and checked at the top of
    every tick, so an in-flight inference call always completes.
    """

    def __init__(
        self,
        source: FrameSource,
        invoker: InferenceInvoker,
        surface: RenderSurface,
        config: DetectionConfig | None = None,
        *,
        ledger: TensorLedger | None = None,
        frame_interval_s: float | None = None,
        publish_frames: bool = False,
        on_tally: Callable[[ClassTally], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        notification_limit: int = 50,
    ) -> None:
        self.source = source
        self.invoker = invoker
        self.surface = surface
        self.config = config or DetectionConfig()
        self.ledger = ledger or TensorLedger()
        self.frame_interval_s = frame_interval_s
        self.publish_frames = publish_frames
        self.on_tally = on_tally
        self.on_error = on_error

        self.aggregator = Aggregator(self.config.tally_mode)
        self.perf_tracker = PerformanceTracker(avg_frames=30)
        self.notifications: deque[Notification] = deque(maxlen=notification_limit)

        self._state = LoopState.IDLE
        self._state_lock = threading.RLock()
        self._tick_lock = threading.RLock()
        self._cancel = threading.Event()
        self._worker: threading.Thread | None = None
        self._handle: DeviceHandle | None = None
        self._consecutive_failures = 0
        self._latest_frame: np.ndarray | None = None
        self._input_size = self.config.input_size or DEFAULT_INPUT_SIZE
        self._last_log_time = time.perf_counter()

    # ------------------------------------------------------------------
    # Read-only views for the UI layer
    # ------------------------------------------------------------------
    @property
    def state(self) -> LoopState:
        with self._state_lock:
            return self._state

    @property
    def handle(self) -> DeviceHandle | None:
        return self._handle

    @property
    def latest_tally(self) -> ClassTally:
        """Counts from the most recent successful tick."""
        return self.aggregator.current

    @property
    def session_tally(self) -> ClassTally:
        return self.aggregator.session

    @property
    def latest_frame(self) -> np.ndarray | None:
        """Most recent annotated frame when ``publish_frames`` is enabled."""
        return self._latest_frame

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def current_view(self) -> np.ndarray | None:
        """Frame to show the user: annotated while detecting, live otherwise.

        Outside ``DETECTING`` the frame is read under the tick lock, so a
        preview never competes with the detection worker for the device.
        """
        if self.state is LoopState.DETECTING:
            return self._latest_frame
        with self._tick_lock:
            handle = self._handle
            if handle is None or self.state is not LoopState.CAMERA_ACTIVE:
                return None
            try:
                return self.source.next_frame(handle).pixels.copy()
            except FrameReadError as exc:
                logger.debug("Preview frame unavailable: {}", exc)
                return None

    def status(self) -> dict:
        """Snapshot of state, counts and metrics for status endpoints."""
        handle = self._handle
        return {
            "state": self.state.value,
            "tally": self.latest_tally,
            "session_tally": self.session_tally,
            "tally_mode": self.config.tally_mode.value,
            "camera": handle.get_info() if handle is not None else None,
            "metrics": asdict(self.perf_tracker.get_metrics()),
            "tensors": self.ledger.snapshot(),
            "notifications": [asdict(note) for note in self.notifications],
        }

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------
    def _set_state(self, new_state: LoopState) -> None:
        with self._state_lock:
            if self._state is not new_state:
                logger.debug("Loop state {} -> {}", self._state.value, new_state.value)
            self._state = new_state

    def _require_not_stopped(self) -> None:
        if self._state is LoopState.STOPPED:
            message = "Controller has been shut down"
            raise StateError(message)

    def open_camera(self) -> DeviceHandle:
        """Acquire the frame source; acquisition errors leave the loop idle."""
        with self._state_lock:
            self._require_not_stopped()
            if self._handle is not None:
                logger.debug("Camera already open")
                return self._handle

            try:
                handle = self.source.open()
            except AcquireError as exc:
                logger.error("Failed to open camera: {}", exc)
                self._notify("fatal", exc)
                raise

            self._handle = handle
            self._set_state(LoopState.CAMERA_ACTIVE)
            return handle

    def start_detection(self, *, background: bool = True) -> None:
        """Enter ``DETECTING``.

        The preprocessing size is taken from the config, else from the
        model's declared input, and validated against the model first; a
        mismatch or an unavailable backend raises and leaves the camera
        active. With ``background=False`` no worker is started and the caller
        drives the loop through :meth:`step`.

        A worker still finishing its last tick after
        ``stop_detection(wait=False)`` is joined before the new run starts.
        """
        with self._state_lock:
            self._require_not_stopped()
            stopping = self._state is LoopState.DETECTING and self._cancel.is_set()
            pending = self._worker if stopping else None

        if pending is not None:
            logger.debug("Waiting for the previous detection run to finish")
            self._join_worker(pending, None)

        with self._state_lock:
            self._require_not_stopped()
            if self._state is LoopState.DETECTING:
                logger.debug("Detection already running")
                return
            if self._state is not LoopState.CAMERA_ACTIVE:
                message = "Camera must be open before detection can start"
                raise StateError(message)

            input_size = (
                self.config.input_size
                or self.invoker.declared_input_size()
                or DEFAULT_INPUT_SIZE
            )
            self.invoker.validate(input_size, self.config.layout)
            self._input_size = input_size

            self._cancel.clear()
            self._consecutive_failures = 0
            self.perf_tracker.reset()
            self.aggregator.reset()
            self._set_state(LoopState.DETECTING)

            if background:
                self._worker = threading.Thread(
                    target=self._run_loop,
                    name="harvest-lens-detection",
                    daemon=True,
                )
                self._worker.start()
            else:
                logger.info("Detection started; ticks are driven externally")

    def stop_detection(self, *, wait: bool = True, timeout: float | None = None) -> None:
        """Request cancellation; the in-flight tick is allowed to finish."""
        with self._state_lock:
            if self._state is not LoopState.DETECTING:
                return
            self._cancel.set()
            worker = self._worker

        if worker is None:
            with self._tick_lock, self._state_lock:
                if self._state is LoopState.DETECTING:
                    self._set_state(LoopState.CAMERA_ACTIVE)
            return

        if wait:
            self._join_worker(worker, timeout)

    def close_camera(self, *, timeout: float | None = None) -> None:
        """Stop any detection, release the device and the backend, go idle."""
        with self._state_lock:
            if self._state is LoopState.STOPPED:
                return
            self._cancel.set()
            worker = self._worker

        if worker is not None:
            self._join_worker(worker, timeout)

        with self._tick_lock, self._state_lock:
            handle, self._handle = self._handle, None
            if handle is not None:
                self.source.close(handle)
            self.invoker.release()
            self._latest_frame = None
            self._set_state(LoopState.IDLE)

    def shutdown(self) -> None:
        """Close everything and enter the terminal ``STOPPED`` state."""
        self.close_camera()
        self._set_state(LoopState.STOPPED)
        logger.info("Detection controller stopped")

    def _join_worker(self, worker: threading.Thread, timeout: float | None) -> None:
        if worker is threading.current_thread():
            return
        worker.join(timeout)
        if worker.is_alive():
            logger.warning("Detection worker still busy after {}s", timeout)

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------
    def step(self) -> ClassTally | None:
        """Run one tick if detection is active.

        Returns the tick's tally, or ``None`` when no tick ran or the tick
        failed.
        """
        with self._tick_lock:
            if self._cancel.is_set() or self.state is not LoopState.DETECTING:
                return None
            handle = self._handle
            if handle is None:
                return None
            return self._tick(handle)

    def _tick(self, handle: DeviceHandle) -> ClassTally | None:
        try:
            frame = self.source.next_frame(handle)
            self.perf_tracker.tick_camera()

            with TensorScope(self.ledger, name=f"tick-{frame.index}") as scope:
                tensor = prepare(
                    frame,
                    self._input_size,
                    scope=scope,
                    layout=self.config.layout,
                )
                inference_start = time.perf_counter()
                batch = self.invoker.infer(tensor, scope)
                inference_ms = (time.perf_counter() - inference_start) * 1000

            self.perf_tracker.add_inference_time(inference_ms)
            self._warn_if_slow(inference_ms)

            detections = process(
                batch,
                self.config.threshold,
                self.invoker.class_names,
                self.surface.size,
                debug_boxes=self.config.debug_boxes,
            )
            counts = self.aggregator.update(detections)
            draw(detections, self.surface)
            if self.publish_frames:
                self._publish(frame)
        except Exception as exc:
            self._record_failure(exc)
            return None

        self._consecutive_failures = 0
        if self.on_tally is not None:
            self.on_tally(counts)
        return counts

    def _publish(self, frame: Frame) -> None:
        composite = getattr(self.surface, "composite", None)
        if composite is None:
            self._latest_frame = frame.pixels.copy()
        else:
            self._latest_frame = composite(frame.pixels)

    def _frame_interval(self) -> float:
        if self.frame_interval_s is not None:
            return self.frame_interval_s
        handle = self._handle
        return handle.frame_interval_s if handle is not None else 0.0

    def _warn_if_slow(self, inference_ms: float) -> None:
        budget_ms = self.config.slow_inference_ms
        if budget_ms is None:
            budget_ms = self._frame_interval() * 1000
        if budget_ms > 0 and inference_ms > budget_ms:
            logger.warning(
                "Inference took {:.1f}ms, over the {:.1f}ms frame budget",
                inference_ms,
                budget_ms,
            )

    def _notify(self, level: str, exc: Exception) -> None:
        self.notifications.append(
            Notification(level=level, message=str(exc), error_type=type(exc).__name__)
        )

    def _record_failure(self, exc: Exception) -> None:
        self._consecutive_failures += 1
        self.perf_tracker.add_failure()
        if isinstance(exc, PipelineError):
            logger.warning("Detection tick failed: {}", exc)
        else:
            logger.exception("Error during detection: {}", exc)
        self._notify("error", exc)
        if self.on_error is not None:
            self.on_error(exc)

        limit = self.config.max_consecutive_failures
        if limit is not None and self._consecutive_failures >= limit:
            logger.error(
                "{} consecutive failed ticks, stopping detection",
                self._consecutive_failures,
            )
            message = (
                f"Detection stopped after {self._consecutive_failures} "
                f"consecutive failures: {exc}"
            )
            self.notifications.append(
                Notification(level="fatal", message=message, error_type=type(exc).__name__)
            )
            self._cancel.set()
            if self._worker is None:
                with self._state_lock:
                    if self._state is LoopState.DETECTING:
                        self._set_state(LoopState.CAMERA_ACTIVE)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _run_loop(self) -> None:
        logger.info("-" * 60)
        logger.info("Starting detection loop")
        logger.info("-" * 60)
        try:
            while not self._cancel.is_set():
                tick_start = time.perf_counter()
                self.step()
                self._log_periodic_metrics()
                remaining = self._frame_interval() - (time.perf_counter() - tick_start)
                if remaining > 0:
                    self._cancel.wait(remaining)
        finally:
            with self._state_lock:
                if self._worker is threading.current_thread():
                    self._worker = None
                if self._state is LoopState.DETECTING:
                    self._set_state(LoopState.CAMERA_ACTIVE)
            self._log_session_summary()

    def _log_periodic_metrics(self) -> None:
        now = time.perf_counter()
        if now - self._last_log_time < 2.0:
            return
        self._last_log_time = now
        metrics = self.perf_tracker.get_metrics()
        logger.info(
            "Camera: {:.1f} FPS | Inference: {:.1f}ms | Budget: {:.0f}% | Counts: {}",
            metrics.camera_fps,
            metrics.inference_ms,
            metrics.frame_budget_percent,
            self.latest_tally,
        )
        logger.debug(
            "Process RSS: {:.0f}MB | Live tensors: {}",
            metrics.process_rss_mb,
            self.ledger.live,
        )

    def _log_session_summary(self) -> None:
        metrics = self.perf_tracker.get_metrics()
        logger.info("=" * 60)
        logger.info("Detection Session Summary")
        logger.info("Total frames: {}", self.perf_tracker.frame_count)
        logger.info("Failed ticks: {}", metrics.failed_ticks)
        logger.info("Avg throughput: {:.1f} FPS", metrics.actual_throughput_fps)
        logger.info("Avg inference: {:.1f}ms", metrics.inference_ms)
        logger.info("Tensors: {}", self.ledger.snapshot())
        if self.config.tally_mode is TallyMode.SESSION:
            logger.info("Session counts: {}", self.session_tally)
        logger.info("=" * 60)
