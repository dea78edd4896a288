"""Rolling performance figures for the detection loop."""

from __future__ import annotations

import threading
import time
from collections import deque

import psutil
from loguru import logger

from harvest_lens.pipeline.types import PerformanceMetrics


class PerformanceTracker:
    """Track tick timing with moving averages.

    Besides frame rate and inference latency the tracker samples the
    process resident set size, which is the quickest way to notice tensors
    escaping their tick under continuous operation.
    """

    def __init__(self, avg_frames: int = 30) -> None:
        self.avg_frames = avg_frames
        self._lock = threading.Lock()
        self._frame_intervals: deque[float] = deque(maxlen=avg_frames)
        self._inference_times: deque[float] = deque(maxlen=avg_frames)
        self._last_frame_time: float | None = None
        self.frame_count = 0
        self.failed_ticks = 0
        self.start_time = time.perf_counter()
        try:
            self._process: psutil.Process | None = psutil.Process()
        except psutil.Error as exc:
            logger.debug("Process stats unavailable: {}", exc)
            self._process = None

    def reset(self) -> None:
        """Start a fresh measurement window, e.g. when detection restarts."""
        with self._lock:
            self._frame_intervals.clear()
            self._inference_times.clear()
            self._last_frame_time = None
            self.frame_count = 0
            self.failed_ticks = 0
            self.start_time = time.perf_counter()

    def tick_camera(self) -> None:
        """Record a frame arrival for FPS estimation."""
        now = time.perf_counter()
        with self._lock:
            if self._last_frame_time is not None:
                self._frame_intervals.append(now - self._last_frame_time)
            self._last_frame_time = now
            self.frame_count += 1

    def add_inference_time(self, elapsed_ms: float) -> None:
        with self._lock:
            self._inference_times.append(elapsed_ms)

    def add_failure(self) -> None:
        with self._lock:
            self.failed_ticks += 1

    def process_rss_mb(self) -> float:
        if self._process is None:
            return 0.0
        try:
            return self._process.memory_info().rss / (1024**2)
        except psutil.Error:
            return 0.0

    def get_metrics(self) -> PerformanceMetrics:
        """Compute aggregated performance metrics."""
        metrics = PerformanceMetrics()

        with self._lock:
            intervals = list(self._frame_intervals)
            inference_times = list(self._inference_times)
            frame_count = self.frame_count
            metrics.failed_ticks = self.failed_ticks
            start_time = self.start_time

        if intervals:
            avg_interval = sum(intervals) / len(intervals)
            metrics.camera_fps = 1.0 / avg_interval if avg_interval > 0 else 0.0

        if inference_times:
            metrics.inference_ms = sum(inference_times) / len(inference_times)
            metrics.inference_capacity_fps = (
                1000.0 / metrics.inference_ms if metrics.inference_ms > 0 else 0.0
            )
            if metrics.camera_fps > 0:
                frame_budget_ms = 1000.0 / metrics.camera_fps
                metrics.frame_budget_percent = (
                    metrics.inference_ms / frame_budget_ms
                ) * 100

        elapsed = time.perf_counter() - start_time
        metrics.actual_throughput_fps = frame_count / elapsed if elapsed > 0 else 0.0
        metrics.process_rss_mb = self.process_rss_mb()
        return metrics
