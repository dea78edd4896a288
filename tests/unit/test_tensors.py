"""Unit tests for scoped tensor release."""

from __future__ import annotations

import weakref
from unittest.mock import MagicMock

import numpy as np
import pytest

from harvest_lens.pipeline.tensors import TensorLedger, TensorScope


class TestTensorScope:
    """Tests for TensorScope acquire/release pairing."""

    def test_release_on_normal_exit(self) -> None:
        ledger = TensorLedger()
        with TensorScope(ledger) as scope:
            scope.adopt(np.zeros(3))
            scope.adopt(np.ones(3))
            assert ledger.live == 2
            assert scope.live_count == 2

        assert ledger.snapshot() == {"acquired": 2, "released": 2, "live": 0}
        assert scope.live_count == 0

    def test_release_on_exception(self) -> None:
        ledger = TensorLedger()
        with pytest.raises(ValueError, match="boom"), TensorScope(ledger) as scope:
            scope.adopt(np.zeros(3))
            message = "boom"
            raise ValueError(message)

        assert ledger.is_balanced()
        assert ledger.acquired == 1

    def test_release_runs_in_reverse_order(self) -> None:
        order: list[str] = []
        with TensorScope() as scope:
            scope.adopt("first", release=lambda t: order.append(t))
            scope.adopt("second", release=lambda t: order.append(t))

        assert order == ["second", "first"]

    def test_backend_release_hook_called(self) -> None:
        buffer = MagicMock(spec=["release"])
        with TensorScope() as scope:
            scope.adopt(buffer)

        buffer.release.assert_called_once_with()

    def test_failing_release_still_counted(self) -> None:
        ledger = TensorLedger()

        def _explode(_tensor: object) -> None:
            message = "release failed"
            raise RuntimeError(message)

        with pytest.raises(RuntimeError, match="release failed"):
            with TensorScope(ledger) as scope:
                scope.adopt(np.zeros(1))
                scope.adopt(np.zeros(1), release=_explode)

        assert ledger.is_balanced()

    def test_close_is_idempotent(self) -> None:
        ledger = TensorLedger()
        scope = TensorScope(ledger)
        scope.adopt(np.zeros(1))
        scope.close()
        scope.close()
        assert ledger.released == 1

    def test_adopt_after_close_rejected(self) -> None:
        scope = TensorScope()
        scope.close()
        with pytest.raises(RuntimeError, match="already closed"):
            scope.adopt(np.zeros(1))

    def test_scope_drops_reference(self) -> None:
        scope = TensorScope()
        ref = weakref.ref(scope.adopt(np.zeros(4)))
        assert ref() is not None

        scope.close()

        assert ref() is None

    def test_adopt_all_returns_same_objects(self) -> None:
        arrays = [np.zeros(1), np.zeros(2)]
        with TensorScope() as scope:
            adopted = scope.adopt_all(arrays)
        assert adopted[0] is arrays[0]
        assert adopted[1] is arrays[1]
