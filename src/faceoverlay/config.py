"""Environment-based configuration for FaceOverlay."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from faceoverlay.core.geometry import Size


class Settings(BaseSettings):
    """Application settings loaded from FACEOVERLAY_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FACEOVERLAY_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # Display surface shared by the video and the overlay
    display_width: int = Field(default=640, ge=1)
    display_height: int = Field(default=480, ge=1)

    # Capture
    camera_device: int = Field(default=0, ge=0)
    capture_width: int | None = Field(default=300, ge=1)
    capture_height: int | None = Field(default=None, ge=1)
    detection_interval_ms: int = Field(default=100, ge=1)
    stream_fps: int = Field(default=15, ge=1, le=60)

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model selection
    face_detection_model: str = "yunet_2023mar"
    expression_model: str = "fer_mobilefacenet"
    models_dir: str = "models"

    # Detection thresholds
    score_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    expression_min_confidence: float = Field(default=0.1, ge=0.0, le=1.0)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # CUDA arena cap
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    @property
    def display_size(self) -> Size:
        return Size(width=self.display_width, height=self.display_height)

    @property
    def detection_interval(self) -> float:
        """Cycle cadence in seconds."""
        return self.detection_interval_ms / 1000.0


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
