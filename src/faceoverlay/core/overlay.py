"""Transparent overlay surface and annotation drawing.

The surface is a BGRA ``uint8`` array (OpenCV channel order) whose alpha
channel is zero everywhere nothing has been drawn.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import cv2
import numpy as np

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from faceoverlay.core.geometry import Detection, Size

logger = logging.getLogger(__name__)

BOX_COLOR = (255, 0, 0, 255)
LANDMARK_COLOR = (255, 0, 255, 255)
TEXT_COLOR = (255, 255, 255, 255)
TEXT_BACKGROUND = (0, 0, 0, 128)
FONT = cv2.FONT_HERSHEY_SIMPLEX
FONT_SCALE = 0.45
LINE_HEIGHT = 16


class OverlaySink(Protocol):
    """What the detection loop needs from a renderer."""

    def ensure_surface(self, display_size: Size) -> None:
        """Create or resize the surface to exactly ``display_size``."""
        ...

    def draw(self, detections: Sequence[Detection]) -> None:
        """Replace the surface content with ``detections``."""
        ...


class OverlayRenderer:
    """Owns the overlay surface; only ``ensure_surface`` and ``draw`` mutate it."""

    def __init__(self, min_confidence: float = 0.1) -> None:
        self._min_confidence = min_confidence
        self._surface: NDArray[np.uint8] | None = None
        self._size: Size | None = None

    @property
    def size(self) -> Size | None:
        return self._size

    @property
    def has_surface(self) -> bool:
        return self._surface is not None

    def ensure_surface(self, display_size: Size) -> None:
        if self._surface is not None and self._size == display_size:
            return
        self._surface = np.zeros((display_size.height, display_size.width, 4), dtype=np.uint8)
        self._size = display_size
        logger.info("Overlay surface sized to %dx%d", display_size.width, display_size.height)

    def draw(self, detections: Sequence[Detection]) -> None:
        surface = self._require_surface()
        surface.fill(0)
        for detection in detections:
            self._draw_region(surface, detection)
            if detection.landmarks is not None:
                self._draw_landmarks(surface, detection)
            if detection.expressions is not None:
                self._draw_expressions(surface, detection)

    def clear(self) -> None:
        if self._surface is not None:
            self._surface.fill(0)

    def snapshot(self) -> NDArray[np.uint8]:
        """Return a copy of the current BGRA surface."""
        return self._require_surface().copy()

    def compose(self, frame: NDArray[np.uint8]) -> NDArray[np.uint8]:
        """Scale a BGR frame to the display size and blend the overlay on top."""
        surface = self._require_surface()
        height, width = surface.shape[:2]
        if frame.shape[:2] != (height, width):
            frame = cv2.resize(frame, (width, height), interpolation=cv2.INTER_LINEAR)
        alpha = surface[:, :, 3:4].astype(np.float32) / 255.0
        blended = frame.astype(np.float32) * (1.0 - alpha) + surface[:, :, :3].astype(np.float32) * alpha
        return blended.astype(np.uint8)

    # -- Internal -----------------------------------------------------------

    def _require_surface(self) -> NDArray[np.uint8]:
        if self._surface is None:
            raise RuntimeError("ensure_surface() must be called before drawing")
        return self._surface

    @staticmethod
    def _draw_region(surface: NDArray[np.uint8], detection: Detection) -> None:
        region = detection.region
        top_left = (round(region.x), round(region.y))
        bottom_right = (round(region.x + region.width), round(region.y + region.height))
        cv2.rectangle(surface, top_left, bottom_right, BOX_COLOR, 2)
        _draw_label(surface, f"{detection.score:.2f}", (top_left[0], top_left[1] - 4), BOX_COLOR)

    @staticmethod
    def _draw_landmarks(surface: NDArray[np.uint8], detection: Detection) -> None:
        for point in detection.landmarks or ():
            cv2.circle(surface, (round(point.x), round(point.y)), 2, LANDMARK_COLOR, -1)

    def _draw_expressions(self, surface: NDArray[np.uint8], detection: Detection) -> None:
        region = detection.region
        x = round(region.x)
        y = round(region.y + region.height) + LINE_HEIGHT
        shown = sorted(
            ((label, p) for label, p in (detection.expressions or {}).items() if p >= self._min_confidence),
            key=lambda item: item[1],
            reverse=True,
        )
        for label, probability in shown:
            _draw_label(surface, f"{label} ({probability:.2f})", (x, y), TEXT_BACKGROUND)
            y += LINE_HEIGHT


def _draw_label(
    surface: NDArray[np.uint8],
    text: str,
    origin: tuple[int, int],
    background: tuple[int, int, int, int],
) -> None:
    (text_w, text_h), baseline = cv2.getTextSize(text, FONT, FONT_SCALE, 1)
    x, y = origin
    cv2.rectangle(surface, (x, y - text_h - baseline), (x + text_w, y + baseline), background, -1)
    cv2.putText(surface, text, (x, y), FONT, FONT_SCALE, TEXT_COLOR, 1, cv2.LINE_AA)
