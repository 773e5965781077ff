"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from faceoverlay.api.page import page_router
from faceoverlay.api.routes import router
from faceoverlay.capture.camera import CameraFrameSource, CaptureConstraints
from faceoverlay.capture.controller import CaptureController
from faceoverlay.config import Settings, get_settings
from faceoverlay.core.overlay import OverlayRenderer
from faceoverlay.ml.inference import InferencePool
from faceoverlay.ml.model_manager import OnnxModelManager
from faceoverlay.ml.provider import FaceAnalysisProvider

logger = logging.getLogger(__name__)


def build_capture(settings: Settings, provider: FaceAnalysisProvider) -> CaptureController:
    """Wire camera, overlay and detection loop for the configured display."""
    return CaptureController(
        CameraFrameSource(),
        provider,
        OverlayRenderer(min_confidence=settings.expression_min_confidence),
        settings.display_size,
        CaptureConstraints(
            device=settings.camera_device,
            width=settings.capture_width,
            height=settings.capture_height,
        ),
        models_ready=lambda: provider.ready,
        interval=settings.detection_interval,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting FaceOverlay (device=%s, display=%dx%d, interval=%dms, detection=%s, expression=%s)",
        settings.device,
        settings.display_width,
        settings.display_height,
        settings.detection_interval_ms,
        settings.face_detection_model,
        settings.expression_model,
    )

    inference_pool = InferencePool(settings.max_concurrent)
    model_manager = OnnxModelManager(settings)
    provider = FaceAnalysisProvider(settings, model_manager, inference_pool)
    app.state.inference_pool = inference_pool
    app.state.model_manager = model_manager
    app.state.provider = provider
    app.state.capture = build_capture(settings, provider)

    # Capture start stays gated until this finishes.
    loader = asyncio.create_task(provider.load(), name="faceoverlay-model-loader")

    logger.info("FaceOverlay ready")
    yield

    logger.info("Shutting down FaceOverlay")
    app.state.capture.stop_capture()
    loader.cancel()
    inference_pool.shutdown()
    model_manager.shutdown()
    logger.info("FaceOverlay shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="FaceOverlay",
        description="Live webcam face detection with a transparent annotation overlay",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    application.include_router(page_router)
    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run("faceoverlay.main:app", host=settings.host, port=settings.port)
