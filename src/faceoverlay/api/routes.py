"""API route definitions."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import cv2
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse

from faceoverlay.api.middleware import verify_api_key
from faceoverlay.api.schemas import (
    CaptureStatusResponse,
    DetectedFace,
    DetectionsResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
)
from faceoverlay.core.errors import DeviceUnavailable, ModelsNotReady, PermissionDenied
from faceoverlay.core.session import SessionState
from faceoverlay.ml.model_manager import MODEL_REGISTRY

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from faceoverlay.capture.controller import CaptureController
    from faceoverlay.config import Settings
    from faceoverlay.ml.inference import InferencePool
    from faceoverlay.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

MJPEG_BOUNDARY = "frame"


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_model_manager(request: Request) -> ModelManager:
    manager: ModelManager = request.app.state.model_manager
    return manager


def _get_capture(request: Request) -> CaptureController:
    capture: CaptureController = request.app.state.capture
    return capture


@router.post(
    "/capture/start",
    response_model=CaptureStatusResponse,
    responses={
        status.HTTP_403_FORBIDDEN: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Open the webcam",
)
async def start_capture(request: Request) -> CaptureStatusResponse:
    """Open the camera. Detection starts as soon as the first frame is decoded."""
    capture = _get_capture(request)
    try:
        capture_status = await capture.start_capture()
    except ModelsNotReady as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except PermissionDenied as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except DeviceUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return CaptureStatusResponse.from_status(capture_status)


@router.post(
    "/capture/stop",
    response_model=CaptureStatusResponse,
    summary="Close the webcam",
)
async def stop_capture(request: Request) -> CaptureStatusResponse:
    """Release the camera and halt detection."""
    return CaptureStatusResponse.from_status(_get_capture(request).stop_capture())


@router.get(
    "/capture",
    response_model=CaptureStatusResponse,
    summary="Capture status",
)
async def capture_status(request: Request) -> CaptureStatusResponse:
    """Return the current session state and loop counters."""
    return CaptureStatusResponse.from_status(_get_capture(request).status())


@router.get(
    "/detections",
    response_model=DetectionsResponse,
    summary="Detections currently on the overlay",
)
async def detections(request: Request) -> DetectionsResponse:
    """Return the last drawn batch in display coordinates."""
    capture = _get_capture(request)
    return DetectionsResponse(
        cycle=capture.status().last_drawn,
        faces=[DetectedFace.from_detection(d) for d in capture.last_batch],
    )


@router.get(
    "/overlay.png",
    response_class=Response,
    responses={
        status.HTTP_200_OK: {"content": {"image/png": {}}},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    },
    summary="Transparent overlay image",
)
async def overlay_png(request: Request) -> Response:
    """Return the overlay surface as an RGBA PNG sized to the display."""
    renderer = _get_capture(request).renderer
    if not renderer.has_surface:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Overlay has not been drawn yet")
    ok, encoded = cv2.imencode(".png", renderer.snapshot())
    if not ok:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="PNG encoding failed")
    return Response(content=encoded.tobytes(), media_type="image/png")


@router.get(
    "/stream",
    response_class=StreamingResponse,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
    summary="MJPEG stream of video with overlay",
)
async def stream(request: Request) -> StreamingResponse:
    """Stream composited frames while the capture is open."""
    capture = _get_capture(request)
    if capture.session.state not in (SessionState.REQUESTING, SessionState.ACTIVE):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Capture is not open")
    period = 1.0 / _get_settings(request).stream_fps
    return StreamingResponse(
        _mjpeg_frames(request, capture, period),
        media_type=f"multipart/x-mixed-replace; boundary={MJPEG_BOUNDARY}",
    )


async def _mjpeg_frames(request: Request, capture: CaptureController, period: float) -> AsyncIterator[bytes]:
    session = capture.session
    while session.state in (SessionState.REQUESTING, SessionState.ACTIVE):
        if await request.is_disconnected():
            break
        frame = capture.frame_source.current_frame()
        if frame is not None and capture.renderer.has_surface:
            ok, encoded = cv2.imencode(".jpg", capture.renderer.compose(frame.image))
            if ok:
                yield (
                    f"--{MJPEG_BOUNDARY}\r\nContent-Type: image/jpeg\r\n"
                    f"Content-Length: {len(encoded)}\r\n\r\n"
                ).encode() + encoded.tobytes() + b"\r\n"
        await asyncio.sleep(period)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    capture = _get_capture(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        models_ready=capture.status().models_ready,
        models_loaded=_get_model_manager(request).get_loaded_models(),
        capture_state=capture.session.state.value,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return registered models and whether the current configuration uses them."""
    settings = _get_settings(request)
    active_models = {settings.face_detection_model, settings.expression_model}

    models = [
        ModelInfo(
            name=spec.name,
            task=spec.task.value,
            status="active" if spec.name in active_models else "available",
            license=spec.license,
        )
        for spec in MODEL_REGISTRY.values()
    ]
    return ModelsResponse(models=models)
