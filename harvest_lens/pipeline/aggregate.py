"""Per-class counting of detections."""

from __future__ import annotations

import threading
from collections import Counter
from typing import TYPE_CHECKING

from harvest_lens.pipeline.types import ClassTally, TallyMode


if TYPE_CHECKING:
    from collections.abc import Iterable

    from harvest_lens.pipeline.types import Detection


def tally(detections: Iterable[Detection]) -> ClassTally:
    """Count detections per class name into a fresh mapping."""
    return dict(Counter(detection.class_name for detection in detections))


class Aggregator:
    """Hold the current tick's tally and, optionally, session totals."""

    def __init__(self, mode: TallyMode = TallyMode.PER_TICK) -> None:
        self.mode = mode
        self._lock = threading.Lock()
        self._current: ClassTally = {}
        self._session: Counter[str] = Counter()

    @property
    def current(self) -> ClassTally:
        with self._lock:
            return dict(self._current)

    @property
    def session(self) -> ClassTally:
        """Counts accumulated since :meth:`reset`; empty in per-tick mode."""
        with self._lock:
            return dict(self._session)

    def update(self, detections: Iterable[Detection]) -> ClassTally:
        """Replace the current tally with the counts of ``detections``."""
        counts = tally(detections)
        with self._lock:
            self._current = counts
            if self.mode is TallyMode.SESSION:
                self._session.update(counts)
        return dict(counts)

    def reset(self) -> None:
        with self._lock:
            self._current = {}
            self._session.clear()
