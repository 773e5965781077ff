"""Pydantic request/response schemas for the FaceOverlay API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from faceoverlay.capture.controller import CaptureStatus
    from faceoverlay.core.geometry import Detection


class PointModel(BaseModel):
    x: float
    y: float


class DetectedFace(BaseModel):
    """A single face in display coordinates."""

    x: float = Field(description="Bounding box left edge (display pixels)")
    y: float = Field(description="Bounding box top edge (display pixels)")
    width: float = Field(description="Bounding box width (display pixels)")
    height: float = Field(description="Bounding box height (display pixels)")
    score: float = Field(description="Detection confidence (0.0-1.0)")
    landmarks: list[PointModel] | None = None
    expressions: dict[str, float] | None = None

    @classmethod
    def from_detection(cls, detection: Detection) -> DetectedFace:
        region = detection.region
        landmarks = None
        if detection.landmarks is not None:
            landmarks = [PointModel(x=p.x, y=p.y) for p in detection.landmarks]
        return cls(
            x=region.x,
            y=region.y,
            width=region.width,
            height=region.height,
            score=detection.score,
            landmarks=landmarks,
            expressions=dict(detection.expressions) if detection.expressions is not None else None,
        )


class DetectionsResponse(BaseModel):
    """The batch currently drawn on the overlay."""

    cycle: int = Field(description="Cycle number of the drawn batch (0 = nothing drawn yet)")
    faces: list[DetectedFace]


class CaptureStatusResponse(BaseModel):
    """Capture session status."""

    state: str = Field(description="Session state: 'idle', 'requesting', 'active' or 'stopped'")
    models_ready: bool
    display_width: int
    display_height: int
    last_drawn_cycle: int
    in_flight: int
    cycles_issued: int
    cycles_skipped: int
    results_discarded: int
    detection_failures: int

    @classmethod
    def from_status(cls, status: CaptureStatus) -> CaptureStatusResponse:
        return cls(
            state=status.state.value,
            models_ready=status.models_ready,
            display_width=status.display_size.width,
            display_height=status.display_size.height,
            last_drawn_cycle=status.last_drawn,
            in_flight=status.in_flight,
            cycles_issued=status.stats.cycles_issued,
            cycles_skipped=status.stats.cycles_skipped,
            results_discarded=status.stats.results_discarded,
            detection_failures=status.stats.detection_failures,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    models_ready: bool
    models_loaded: list[str]
    capture_state: str
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    task: str = Field(description="Model task: 'face_detection' or 'facial_expression'")
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
