"""Performance metrics helpers for the pipeline."""

from __future__ import annotations

from harvest_lens.pipeline.metrics.performance import PerformanceTracker


__all__ = [
    "PerformanceTracker",
]
