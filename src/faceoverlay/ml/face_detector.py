"""YuNet face detector (OpenCV ``FaceDetectorYN``)."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

import cv2
import numpy as np

if TYPE_CHECKING:
    from pathlib import Path

    from numpy.typing import NDArray


@dataclass(frozen=True)
class RawDetection:
    """Raw face detection in pixel space of the input frame."""

    bbox: NDArray[np.float32]  # (x, y, w, h)
    score: float
    landmarks: NDArray[np.float32]  # 5x2


class YuNetFaceDetector:
    """Thread-safe wrapper around a single ``cv2.FaceDetectorYN`` instance.

    YuNet needs its input size set per frame, so calls are serialized.
    """

    def __init__(
        self,
        model_path: Path,
        score_threshold: float = 0.5,
        nms_threshold: float = 0.3,
        top_k: int = 5000,
    ) -> None:
        self._detector = cv2.FaceDetectorYN.create(
            str(model_path),
            "",
            (320, 320),
            score_threshold=score_threshold,
            nms_threshold=nms_threshold,
            top_k=top_k,
        )
        self._lock = threading.Lock()
        self.model_name = model_path.stem

    def detect(self, image: NDArray[np.uint8]) -> list[RawDetection]:
        """Detect faces in an HxWx3 BGR frame."""
        height, width = image.shape[:2]
        with self._lock:
            self._detector.setInputSize((width, height))
            _, faces = self._detector.detect(image)
        return parse_yunet_output(faces)


def parse_yunet_output(faces: NDArray[np.float32] | None) -> list[RawDetection]:
    """Split YuNet's Nx15 rows into box, landmarks and score."""
    if faces is None:
        return []
    results: list[RawDetection] = []
    for row in np.asarray(faces, dtype=np.float32):
        results.append(
            RawDetection(
                bbox=row[0:4].copy(),
                score=float(row[14]),
                landmarks=row[4:14].reshape(5, 2).copy(),
            )
        )
    return results
