"""Run the frozen emergency-sound classifier on mel feature tensors."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

import numpy as np

from soundsos.utils.constants import MODEL

logger = logging.getLogger(__name__)


class ScoringError(RuntimeError):
    """The model could not produce a usable confidence for a tensor."""


class Scorer(Protocol):
    def score(self, tensor: np.ndarray) -> float:
        """Return the emergency confidence in [0, 1] for one feature tensor."""
        ...


def _import_tensorflow():
    try:  # Lazy guard to provide helpful error when TF missing.
        import tensorflow as tf
    except ImportError as exc:  # pragma: no cover - import guard
        raise ImportError(
            "tensorflow is required for soundsos.model.infer. Install soundsos[model]."
        ) from exc
    return tf


def as_confidence(raw: np.ndarray | float) -> float:
    values = np.asarray(raw, dtype=np.float32).reshape(-1)
    if values.size != 1:
        raise ScoringError(f"Expected a single confidence, model produced {values.size} values")
    confidence = float(values[0])
    if not np.isfinite(confidence) or not 0.0 <= confidence <= 1.0:
        raise ScoringError(f"Confidence out of range: {confidence}")
    return confidence


class TFLiteScorer:
    def __init__(self, model_path: str | Path = MODEL.model_path) -> None:
        tf = _import_tensorflow()
        self.model_path = str(model_path)
        self.interpreter = tf.lite.Interpreter(model_path=self.model_path)
        self.interpreter.allocate_tensors()
        self.input_detail = self.interpreter.get_input_details()[0]
        self.output_detail = self.interpreter.get_output_details()[0]
        logger.info(
            "Loaded TFLite model %s (input %s %s)",
            self.model_path,
            list(self.input_detail["shape"]),
            np.dtype(self.input_detail["dtype"]).name,
        )

    def _quantize(self, tensor: np.ndarray) -> np.ndarray:
        if self.input_detail["dtype"] == np.float32:
            return tensor.astype(np.float32)
        scale, zero_point = self.input_detail["quantization"]
        return (tensor / scale + zero_point).astype(self.input_detail["dtype"])

    def _dequantize(self, tensor: np.ndarray) -> np.ndarray:
        if self.output_detail["dtype"] == np.float32:
            return tensor.astype(np.float32)
        scale, zero_point = self.output_detail["quantization"]
        return (tensor.astype(np.float32) - zero_point) * scale

    def score(self, tensor: np.ndarray) -> float:
        expected = tuple(int(d) for d in self.input_detail["shape"])
        if tuple(tensor.shape) != expected:
            raise ScoringError(f"Bad tensor shape {tuple(tensor.shape)}, model expects {expected}")
        self.interpreter.set_tensor(self.input_detail["index"], self._quantize(tensor))
        self.interpreter.invoke()
        output = self.interpreter.get_tensor(self.output_detail["index"])
        return as_confidence(self._dequantize(output))


class KerasScorer:
    def __init__(self, model_path: str | Path) -> None:
        tf = _import_tensorflow()
        self.model_path = str(model_path)
        self.model = tf.keras.models.load_model(self.model_path)
        logger.info("Loaded Keras model %s", self.model_path)

    def score(self, tensor: np.ndarray) -> float:
        output = self.model.predict(tensor.astype(np.float32), verbose=0)
        return as_confidence(output)


def load_scorer(model_path: str | Path = MODEL.model_path) -> Scorer:
    """Prefer TFLite; fall back to Keras for saved Keras models."""
    model_path = Path(model_path)
    if model_path.suffix in {".keras", ".h5"}:
        return KerasScorer(model_path)
    try:
        return TFLiteScorer(model_path)
    except (OSError, ValueError) as exc:
        logger.warning("TFLite load failed (%s); trying Keras: %s", exc, model_path)
        return KerasScorer(model_path)
