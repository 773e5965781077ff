"""Camera frame source backed by OpenCV ``VideoCapture``.

Decoding runs in the default executor so the event loop stays free; the
latest decoded frame is published back on the loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import cv2

from faceoverlay.core.errors import DeviceUnavailable, PermissionDenied
from faceoverlay.core.geometry import Size

if TYPE_CHECKING:
    from collections.abc import Callable

    import numpy as np
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Frame:
    """One decoded video frame (HxWx3 BGR)."""

    image: NDArray[np.uint8]
    index: int
    captured_at: float

    @property
    def size(self) -> Size:
        height, width = self.image.shape[:2]
        return Size(width=width, height=height)


@dataclass(frozen=True)
class CaptureConstraints:
    """Requested camera parameters. ``None`` leaves the driver default."""

    device: int | str = 0
    width: int | None = 300
    height: int | None = None


class FrameSource(Protocol):
    """Protocol for live frame sources."""

    @property
    def is_active(self) -> bool:
        """Whether a device is currently held."""
        ...

    async def start(
        self,
        constraints: CaptureConstraints,
        on_playing: Callable[[], None] | None = None,
        on_ended: Callable[[BaseException | None], None] | None = None,
    ) -> None:
        """Acquire the camera and begin decoding frames."""
        ...

    def current_frame(self) -> Frame | None:
        """Return the most recently decoded frame, if any."""
        ...

    def stop(self) -> None:
        """Release the device and abandon any open still in progress. Idempotent."""
        ...


def _device_node(device: int | str) -> Path | None:
    if isinstance(device, int) and sys.platform.startswith("linux"):
        return Path(f"/dev/video{device}")
    return None


def _check_access(device: int | str) -> None:
    node = _device_node(device)
    if node is not None and node.exists() and not os.access(node, os.R_OK | os.W_OK):
        raise PermissionDenied(f"No permission to open {node}")


class CameraFrameSource:
    """Holds at most one open ``VideoCapture`` and the latest frame it produced.

    Opens are serialized, and every ``stop()`` bumps a generation counter. An
    open or reader belonging to an older generation releases its own device and
    never touches the current one. The device is released by the reader task
    once no ``read()`` is in flight on the executor.
    """

    def __init__(self, open_capture: Callable[[int | str], Any] = cv2.VideoCapture) -> None:
        self._open_capture = open_capture
        self._open_lock = asyncio.Lock()
        self._generation = 0
        self._capture: Any = None
        self._reader: asyncio.Task[None] | None = None
        self._latest: Frame | None = None

    @property
    def is_active(self) -> bool:
        return self._capture is not None

    async def start(
        self,
        constraints: CaptureConstraints,
        on_playing: Callable[[], None] | None = None,
        on_ended: Callable[[BaseException | None], None] | None = None,
    ) -> None:
        async with self._open_lock:
            if self._capture is not None:
                logger.warning("Camera already active; ignoring start request")
                return

            generation = self._generation
            loop = asyncio.get_running_loop()
            capture = await loop.run_in_executor(None, self._open, constraints)
            if generation != self._generation:
                capture.release()
                logger.info("Camera %s opened after stop, released", constraints.device)
                return

            self._capture = capture
            self._reader = asyncio.create_task(
                self._read_frames(capture, generation, on_playing, on_ended),
                name="faceoverlay-camera-reader",
            )
            logger.info("Camera %s opened", constraints.device)

    def current_frame(self) -> Frame | None:
        return self._latest

    def stop(self) -> None:
        self._generation += 1
        capture, self._capture = self._capture, None
        reader, self._reader = self._reader, None
        self._latest = None
        if capture is not None and reader is None:
            capture.release()
            logger.info("Camera released")

    # -- Internal -----------------------------------------------------------

    def _open(self, constraints: CaptureConstraints) -> Any:
        _check_access(constraints.device)
        capture = self._open_capture(constraints.device)
        if not capture.isOpened():
            capture.release()
            raise DeviceUnavailable(f"Could not open camera {constraints.device}")
        if constraints.width is not None:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        if constraints.height is not None:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)
        return capture

    async def _read_frames(
        self,
        capture: Any,
        generation: int,
        on_playing: Callable[[], None] | None,
        on_ended: Callable[[BaseException | None], None] | None,
    ) -> None:
        loop = asyncio.get_running_loop()
        index = 0
        error: BaseException | None = None
        try:
            while generation == self._generation:
                ok, image = await loop.run_in_executor(None, capture.read)
                if generation != self._generation:
                    break
                if not ok or image is None:
                    error = DeviceUnavailable("Camera stopped delivering frames")
                    break
                self._latest = Frame(image=image, index=index, captured_at=time.monotonic())
                if index == 0 and on_playing is not None:
                    on_playing()
                index += 1
        except Exception as exc:
            error = exc
        finally:
            capture.release()
            logger.info("Camera released")

        if generation == self._generation:
            logger.warning("Camera stream ended: %s", error)
            self._generation += 1
            self._capture = None
            self._reader = None
            self._latest = None
            if on_ended is not None:
                on_ended(error)
