"""Exception hierarchy for capture, detection and session handling."""

from __future__ import annotations


class FaceOverlayError(Exception):
    """Base class for all FaceOverlay errors."""


class CaptureError(FaceOverlayError):
    """The camera stream could not be acquired."""


class PermissionDenied(CaptureError):
    """Access to the camera device was refused by the operating system."""


class DeviceUnavailable(CaptureError):
    """No usable camera device could be opened."""


class ModelsNotReady(FaceOverlayError):
    """Capture was requested while detection models are still loading."""


class InvalidSessionTransition(FaceOverlayError):
    """A session was asked to move between two states that are not connected."""


class DetectionFailure(FaceOverlayError):
    """A single cycle's provider call raised.

    The loop recovers from this by treating the cycle as having zero detections.
    """

    def __init__(self, cycle: int, cause: BaseException) -> None:
        super().__init__(f"Detection failed for cycle {cycle}: {cause!r}")
        self.cycle = cycle
        self.cause = cause


class StaleResultDiscarded(FaceOverlayError):
    """A cycle's result arrived after a newer cycle had already been drawn."""

    def __init__(self, cycle: int, last_drawn: int) -> None:
        super().__init__(f"Cycle {cycle} resolved after cycle {last_drawn} was drawn")
        self.cycle = cycle
        self.last_drawn = last_drawn
