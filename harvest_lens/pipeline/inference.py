"""Detection model boundary and the per-tick inference call."""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import numpy as np
import onnxruntime as ort
from loguru import logger

from harvest_lens.constants import CLASS_NAMES
from harvest_lens.pipeline.errors import (
    BackendUnavailableError,
    InferenceError,
    PipelineError,
    ShapeMismatchError,
)
from harvest_lens.pipeline.preprocess import expected_tensor_shape, static_input_size
from harvest_lens.pipeline.types import RawDetection, RawDetectionBatch


if TYPE_CHECKING:
    from collections.abc import Sequence

    from harvest_lens.pipeline.tensors import TensorScope


class DetectionModel(Protocol):
    """Black-box detector with a declared input shape and class list."""

    input_shape: tuple[int | None, ...]
    class_names: tuple[str, ...]

    def load(self) -> None:
        """Initialise the compute backend."""
        ...

    def unload(self) -> None:
        """Release the compute backend."""
        ...

    def run(self, tensor: np.ndarray) -> Sequence[np.ndarray]:
        """Return ``boxes[N,4]``, ``scores[N]`` and ``classes[N]`` outputs."""
        ...


def load_class_names(path: str | Path) -> tuple[str, ...]:
    """Load class names declared next to a model artifact.

    Accepts a JSON list, a JSON object mapping index to name, or a text file
    with one name per line.
    """
    file_path = Path(path)
    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() == ".json":
        data = json.loads(text)
        if isinstance(data, dict):
            return tuple(str(data[key]) for key in sorted(data, key=int))
        return tuple(str(name) for name in data)
    return tuple(line.strip() for line in text.splitlines() if line.strip())


def default_providers() -> list[object]:
    """Return execution providers, preferring CUDA when it is installed."""
    override = os.getenv("HARVEST_LENS_PROVIDERS", "").strip()
    if override:
        return [name.strip() for name in override.split(",") if name.strip()]

    available = set(ort.get_available_providers())
    providers: list[object] = []
    if "CUDAExecutionProvider" in available:
        providers.append(
            (
                "CUDAExecutionProvider",
                {"device_id": 0, "arena_extend_strategy": "kNextPowerOfTwo"},
            )
        )
    providers.append("CPUExecutionProvider")
    return providers


class OnnxDetectionModel:
    """ONNX Runtime implementation of :class:`DetectionModel`."""

    def __init__(
        self,
        model_path: str | Path,
        class_names: Sequence[str] = CLASS_NAMES,
        *,
        providers: list[object] | None = None,
    ) -> None:
        self.model_path = str(model_path)
        self.class_names = tuple(class_names)
        self.providers = providers
        self.input_shape: tuple[int | None, ...] = ()
        self._session: ort.InferenceSession | None = None
        self._input_name = ""

    @property
    def is_loaded(self) -> bool:
        return self._session is not None

    def load(self) -> None:
        if self._session is not None:
            return

        providers = self.providers or default_providers()
        logger.info("Loading model: {}", self.model_path)
        try:
            session = ort.InferenceSession(self.model_path, providers=providers)
        except Exception as exc:
            logger.error("Failed to load model: {}", exc)
            message = f"Cannot initialise inference backend for {self.model_path}"
            raise BackendUnavailableError(message) from exc

        model_input = session.get_inputs()[0]
        self._input_name = model_input.name
        # symbolic ("batch") and negative dims are dynamic
        self.input_shape = tuple(
            dim if isinstance(dim, int) and dim >= 0 else None
            for dim in model_input.shape
        )
        self._session = session
        logger.success("Model loaded using: {}", session.get_providers()[0])
        logger.debug("Model input: {}, shape: {}", model_input.name, model_input.shape)

    def unload(self) -> None:
        if self._session is not None:
            self._session = None
            logger.info("Inference backend released")

    def run(self, tensor: np.ndarray) -> Sequence[np.ndarray]:
        if self._session is None:
            message = "Inference backend is not loaded"
            raise BackendUnavailableError(message)
        return self._session.run(None, {self._input_name: tensor})


def _squeeze_batch(arr: np.ndarray) -> np.ndarray:
    data = np.asarray(arr)
    if data.ndim == 3 and data.shape[0] == 1:
        data = data[0]
    return data


def decode_outputs(outputs: Sequence[np.ndarray]) -> RawDetectionBatch:
    """Copy the boxes/scores/classes triplet into plain detections."""
    if outputs is None or len(outputs) < 3:
        count = 0 if outputs is None else len(outputs)
        message = f"Expected boxes, scores and classes outputs, got {count}"
        raise InferenceError(message)

    boxes = _squeeze_batch(outputs[0])
    scores = np.asarray(outputs[1]).reshape(-1)
    classes = np.asarray(outputs[2]).reshape(-1)

    if boxes.ndim != 2 or boxes.shape[-1] != 4:
        message = f"Unexpected box output shape: {boxes.shape}"
        raise InferenceError(message)
    if not (len(boxes) == len(scores) == len(classes)):
        message = (
            f"Output lengths disagree: boxes={len(boxes)} "
            f"scores={len(scores)} classes={len(classes)}"
        )
        raise InferenceError(message)

    return tuple(
        RawDetection(
            box=(float(box[0]), float(box[1]), float(box[2]), float(box[3])),
            score=float(score),
            class_index=int(class_index),
        )
        for box, score, class_index in zip(boxes, scores, classes, strict=True)
    )


def _shape_matches(declared: Sequence[int | None], actual: Sequence[int]) -> bool:
    if len(declared) != len(actual):
        return False
    return all(
        dim is None or not isinstance(dim, int) or dim < 0 or dim == got
        for dim, got in zip(declared, actual, strict=True)
    )


class InferenceInvoker:
    """Call the detection model for one tick and hand back plain detections.

    The invoker owns the backend context between :meth:`acquire` and
    :meth:`release`; the loop controller brackets a camera session with them.
    """

    def __init__(self, model: DetectionModel) -> None:
        self.model = model
        self._lock = threading.Lock()
        self._acquired = False

    @property
    def class_names(self) -> tuple[str, ...]:
        return tuple(self.model.class_names)

    @property
    def is_acquired(self) -> bool:
        return self._acquired

    def acquire(self) -> None:
        """Initialise the compute backend once per camera session."""
        with self._lock:
            if self._acquired:
                return
            try:
                self.model.load()
            except PipelineError:
                raise
            except Exception as exc:
                message = "Detection backend failed to initialise"
                raise BackendUnavailableError(message) from exc
            self._acquired = True

    def release(self) -> None:
        """Drop the compute backend; idempotent."""
        with self._lock:
            if not self._acquired:
                return
            self._acquired = False
            self.model.unload()

    def declared_input_size(self) -> tuple[int, int] | None:
        """(height, width) the model declares, or ``None`` if it is dynamic."""
        self.acquire()
        return static_input_size(self.model.input_shape)

    def validate(self, input_size: tuple[int, int], layout: str = "nhwc") -> None:
        """Raise :class:`ShapeMismatchError` if preprocessing and model disagree."""
        self.acquire()
        expected = expected_tensor_shape(input_size, layout)
        if not _shape_matches(self.model.input_shape, expected):
            raise ShapeMismatchError(tuple(self.model.input_shape), expected)

    def infer(
        self, tensor: np.ndarray, scope: TensorScope | None = None
    ) -> RawDetectionBatch:
        """Run the model on ``tensor``; outputs are released with ``scope``."""
        self.acquire()
        if not _shape_matches(self.model.input_shape, tensor.shape):
            raise ShapeMismatchError(tuple(self.model.input_shape), tensor.shape)

        try:
            outputs = self.model.run(tensor)
        except PipelineError:
            raise
        except Exception as exc:
            message = f"Model execution failed: {exc}"
            raise InferenceError(message) from exc

        if scope is not None:
            outputs = scope.adopt_all(list(outputs))
        return decode_outputs(outputs)
