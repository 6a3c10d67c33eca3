"""Dry/wet waste classifier on top of the loaded ONNX session."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from wastesort.errors import InferenceError
from wastesort.labels import NUM_CLASSES, ClassLabel

if TYPE_CHECKING:
    from collections.abc import Iterator

    from numpy.typing import NDArray

    from wastesort.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PredictionResult:
    """A single classification with the raw score vector it came from."""

    label: ClassLabel
    scores: tuple[float, ...]

    @property
    def confidence(self) -> float:
        return self.scores[list(ClassLabel).index(self.label)]


class TensorArena:
    """Holds every intermediate array of one inference call.

    Arrays are registered with ``track`` and all references are dropped when
    the owning ``tensor_scope`` exits.
    """

    def __init__(self) -> None:
        self._buffers: list[NDArray[np.generic]] = []

    def track(self, array: NDArray[np.generic]) -> NDArray[np.generic]:
        self._buffers.append(array)
        return array

    def __len__(self) -> int:
        return len(self._buffers)

    def release(self) -> None:
        self._buffers.clear()


@contextmanager
def tensor_scope() -> Iterator[TensorArena]:
    arena = TensorArena()
    try:
        yield arena
    finally:
        arena.release()


def first_argmax(scores: NDArray[np.floating]) -> int:
    """Index of the highest score; ties go to the lowest index."""
    return int(np.argmax(scores))


class WasteClassifier:
    """Runs the binary dry/wet model over one preprocessed tensor at a time.

    Not safe for concurrent calls; callers serialize through the inference pool.
    """

    def __init__(self, model_manager: ModelManager, input_size: int) -> None:
        self._model_manager = model_manager
        self._input_size = input_size

    def classify(self, tensor: NDArray[np.float32]) -> PredictionResult:
        """Classify a preprocessed image.

        Args:
            tensor: (input_size, input_size, 3) float32 array in [0, 1].

        Raises:
            ModelNotReadyError: If the model is not loaded.
            InferenceError: If the tensor or the model output is malformed,
                or the runtime call fails.
        """
        session = self._model_manager.get_session()

        expected = (self._input_size, self._input_size, 3)
        if tensor.shape != expected:
            raise InferenceError(f"Expected tensor of shape {expected}, got {tensor.shape}")

        with tensor_scope() as arena:
            arena.track(tensor)
            batch = arena.track(np.expand_dims(tensor.astype(np.float32, copy=False), axis=0))
            input_name = session.get_inputs()[0].name
            try:
                outputs = session.run(None, {input_name: batch})
            except Exception as exc:
                raise InferenceError(f"Model invocation failed: {exc}") from exc

            if not outputs:
                raise InferenceError("Model returned no outputs")
            raw = arena.track(np.asarray(outputs[0], dtype=np.float64).reshape(-1))
            del outputs

            if raw.shape[0] != NUM_CLASSES:
                raise InferenceError(f"Expected {NUM_CLASSES} scores, got {raw.shape[0]}")
            if not np.all(np.isfinite(raw)):
                raise InferenceError(f"Model returned non-finite scores: {raw.tolist()}")

            label = ClassLabel.from_index(first_argmax(raw))
            scores = tuple(float(s) for s in raw)

        logger.debug("Classified as %s (scores=%s)", label, scores)
        return PredictionResult(label=label, scores=scores)
