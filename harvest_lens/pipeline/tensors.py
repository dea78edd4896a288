"""Scoped ownership for the tensors created during one pipeline tick.

Every array produced while a frame travels through the pipeline is adopted by
a :class:`TensorScope`. Leaving the scope releases all of them, in reverse
order of adoption, whether the tick finished, raised, or was cancelled. The
shared :class:`TensorLedger` keeps running counts so that callers (and tests)
can check that acquisitions and releases stay balanced across many ticks.
"""

from __future__ import annotations

import threading
from contextlib import ExitStack
from typing import TYPE_CHECKING, Any

from loguru import logger


if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType


class TensorLedger:
    """Thread-safe acquire/release counters shared across ticks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.acquired = 0
        self.released = 0

    @property
    def live(self) -> int:
        """Tensors acquired but not yet released."""
        with self._lock:
            return self.acquired - self.released

    def record_acquire(self) -> None:
        with self._lock:
            self.acquired += 1

    def record_release(self) -> None:
        with self._lock:
            self.released += 1

    def is_balanced(self) -> bool:
        return self.live == 0

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "acquired": self.acquired,
                "released": self.released,
                "live": self.acquired - self.released,
            }


def _release_backend_buffer(tensor: Any) -> None:
    # onnxruntime OrtValue and similar wrappers expose an explicit release hook
    for name in ("release", "dispose", "close"):
        hook = getattr(tensor, name, None)
        if callable(hook):
            hook()
            return


class TensorScope:
    """Own the tensors of a single tick and release them on exit.

    Example:
        >>> ledger = TensorLedger()
        >>> with TensorScope(ledger) as scope:
        ...     blob = scope.adopt(np.zeros((1, 640, 640, 3), dtype=np.float32))
        >>> ledger.live
        0
    """

    def __init__(self, ledger: TensorLedger | None = None, name: str = "tick") -> None:
        self.ledger = ledger if ledger is not None else TensorLedger()
        self.name = name
        self._stack = ExitStack()
        self._slots: list[list[Any]] = []
        self._closed = False

    def __enter__(self) -> TensorScope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def live_count(self) -> int:
        """Tensors owned by this scope that are still held."""
        return sum(1 for slot in self._slots if slot)

    def adopt(self, tensor: Any, release: Callable[[Any], None] | None = None) -> Any:
        """Take ownership of ``tensor`` and schedule its release.

        ``release`` overrides the default hook, which calls ``release``,
        ``dispose`` or ``close`` on the tensor when present and otherwise just
        drops the scope's reference.
        """
        if self._closed:
            message = f"Tensor scope '{self.name}' is already closed"
            raise RuntimeError(message)

        slot = [tensor]
        self._slots.append(slot)
        self.ledger.record_acquire()
        self._stack.callback(self._release_slot, slot, release)
        return tensor

    def adopt_all(self, tensors: list[Any] | tuple[Any, ...]) -> list[Any]:
        """Adopt every tensor in ``tensors`` and return them as a list."""
        return [self.adopt(tensor) for tensor in tensors]

    def _release_slot(
        self, slot: list[Any], release: Callable[[Any], None] | None
    ) -> None:
        tensor = slot.pop()
        try:
            if release is not None:
                release(tensor)
            else:
                _release_backend_buffer(tensor)
        finally:
            self.ledger.record_release()

    def close(self) -> None:
        """Release every adopted tensor; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            self._stack.close()
        finally:
            self._slots.clear()
            logger.trace("Tensor scope '{}' released", self.name)
