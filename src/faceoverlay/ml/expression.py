"""Facial expression classifier (MobileFaceNet FER, ONNX)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from faceoverlay.ml.preprocessing import align_face, to_expression_tensor

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

EXPRESSION_LABELS: tuple[str, ...] = (
    "angry",
    "disgusted",
    "fearful",
    "happy",
    "neutral",
    "sad",
    "surprised",
)


def softmax(logits: NDArray[np.float32]) -> NDArray[np.float32]:
    shifted = logits - np.max(logits)
    exp = np.exp(shifted)
    return exp / np.sum(exp)


class ExpressionClassifier:
    """Scores the seven basic expressions for an aligned face."""

    def __init__(self, session: InferenceSession) -> None:
        self._session = session
        self._input_name = session.get_inputs()[0].name

    def classify(self, image: NDArray[np.uint8], landmarks: NDArray[np.float32]) -> dict[str, float]:
        """Return a probability per label for the face described by ``landmarks``."""
        tensor = to_expression_tensor(align_face(image, landmarks))
        (output,) = self._session.run(None, {self._input_name: tensor})
        scores = np.asarray(output, dtype=np.float32).reshape(-1)[: len(EXPRESSION_LABELS)]
        if scores.min() < 0.0 or not np.isclose(scores.sum(), 1.0, atol=1e-3):
            scores = softmax(scores)
        return {label: float(p) for label, p in zip(EXPRESSION_LABELS, scores, strict=True)}
