"""Face crop alignment and tensor conversion for the expression model."""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2
import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

ALIGNED_SIZE: int = 112

# Reference positions of (eye, eye, nose tip, mouth corner, mouth corner) in a
# 112x112 aligned crop.
REFERENCE_LANDMARKS = np.array(
    [
        [38.2946, 51.6963],
        [73.5318, 51.5014],
        [56.0252, 71.7366],
        [41.5493, 92.3655],
        [70.7299, 92.2041],
    ],
    dtype=np.float32,
)


def align_face(image: NDArray[np.uint8], landmarks: NDArray[np.float32]) -> NDArray[np.uint8]:
    """Warp a face to the canonical 112x112 crop using its five landmarks.

    Args:
        image: HxWx3 BGR uint8 frame.
        landmarks: 5x2 float32 landmark coordinates in ``image`` pixels.

    Returns:
        112x112x3 BGR uint8 crop.

    Raises:
        ValueError: If no similarity transform fits the landmarks.
    """
    matrix, _inliers = cv2.estimateAffinePartial2D(
        landmarks.astype(np.float32), REFERENCE_LANDMARKS, method=cv2.LMEDS
    )
    if matrix is None:
        raise ValueError("Could not estimate alignment transform from landmarks")
    return cv2.warpAffine(image, matrix, (ALIGNED_SIZE, ALIGNED_SIZE), borderValue=0.0)


def to_expression_tensor(face: NDArray[np.uint8]) -> NDArray[np.float32]:
    """Convert an aligned BGR crop to a 1x3x112x112 RGB tensor in [-1, 1]."""
    rgb = cv2.cvtColor(face, cv2.COLOR_BGR2RGB).astype(np.float32)
    normalized = (rgb / 255.0 - 0.5) / 0.5
    return np.ascontiguousarray(normalized.transpose(2, 0, 1)[np.newaxis])
