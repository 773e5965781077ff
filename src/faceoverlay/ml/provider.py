"""Face analysis provider: YuNet faces with landmarks and expressions.

Implements the detection loop's provider contract on top of the model manager
and the inference pool. Model loading is asynchronous; ``ready`` stays False
until both models are usable, which is what gates capture start.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from faceoverlay.core.geometry import Detection, Point, Region
from faceoverlay.ml.expression import ExpressionClassifier
from faceoverlay.ml.face_detector import YuNetFaceDetector

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from faceoverlay.capture.camera import Frame
    from faceoverlay.config import Settings
    from faceoverlay.ml.inference import InferencePool
    from faceoverlay.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


class FaceAnalysisProvider:
    """Detects faces and classifies their expressions off the event loop."""

    def __init__(self, settings: Settings, model_manager: ModelManager, pool: InferencePool) -> None:
        self._settings = settings
        self._model_manager = model_manager
        self._pool = pool
        self._detector: YuNetFaceDetector | None = None
        self._classifier: ExpressionClassifier | None = None

    @property
    def ready(self) -> bool:
        return self._detector is not None and self._classifier is not None

    async def load(self) -> bool:
        """Download and initialize both models. Returns the resulting readiness."""
        try:
            await self._pool.run(self._load)
        except Exception:
            logger.exception("Model loading failed")
            return False
        logger.info(
            "Models ready (detection=%s, expression=%s)",
            self._settings.face_detection_model,
            self._settings.expression_model,
        )
        return True

    async def detect(self, frame: Frame) -> list[Detection]:
        detector, classifier = self._detector, self._classifier
        if detector is None or classifier is None:
            raise RuntimeError("Detection models are not loaded")
        return await self._pool.run(_analyze, detector, classifier, frame.image)

    # -- Internal -----------------------------------------------------------

    def _load(self) -> None:
        detector_path = self._model_manager.ensure_downloaded(self._settings.face_detection_model)
        session = self._model_manager.get_session(self._settings.expression_model)
        self._classifier = ExpressionClassifier(session)
        self._detector = YuNetFaceDetector(detector_path, score_threshold=self._settings.score_threshold)


def _analyze(
    detector: YuNetFaceDetector,
    classifier: ExpressionClassifier,
    image: NDArray[np.uint8],
) -> list[Detection]:
    detections: list[Detection] = []
    for raw in detector.detect(image):
        x, y, w, h = (float(v) for v in raw.bbox)
        try:
            expressions: dict[str, float] | None = classifier.classify(image, raw.landmarks)
        except ValueError:
            logger.debug("Skipping expressions for unalignable face at (%.0f, %.0f)", x, y)
            expressions = None
        detections.append(
            Detection(
                region=Region(x=x, y=y, width=w, height=h),
                score=raw.score,
                landmarks=tuple(Point(x=float(px), y=float(py)) for px, py in raw.landmarks),
                expressions=expressions,
            )
        )
    return detections
