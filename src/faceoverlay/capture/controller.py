"""Open/close webcam glue: owns the session and wires camera, loop and overlay."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from faceoverlay.core.errors import CaptureError, ModelsNotReady
from faceoverlay.core.loop import DetectionLoop, LoopStats
from faceoverlay.core.session import Session, SessionState

if TYPE_CHECKING:
    from collections.abc import Callable

    from faceoverlay.capture.camera import CaptureConstraints, FrameSource
    from faceoverlay.core.geometry import Detection, Size
    from faceoverlay.core.loop import DetectionProvider
    from faceoverlay.core.overlay import OverlayRenderer
    from faceoverlay.core.scheduler import Scheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureStatus:
    state: SessionState
    models_ready: bool
    display_size: Size
    last_drawn: int = 0
    in_flight: int = 0
    stats: LoopStats = field(default_factory=LoopStats)


class CaptureController:
    """Handles the "open webcam" / "close webcam" actions."""

    def __init__(
        self,
        frame_source: FrameSource,
        provider: DetectionProvider,
        renderer: OverlayRenderer,
        display_size: Size,
        constraints: CaptureConstraints,
        *,
        models_ready: Callable[[], bool],
        interval: float = 0.1,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._frame_source = frame_source
        self._provider = provider
        self._renderer = renderer
        self._display_size = display_size
        self._constraints = constraints
        self._models_ready = models_ready
        self._interval = interval
        self._scheduler = scheduler

        self._session = Session()
        self._loop: DetectionLoop | None = None

    @property
    def session(self) -> Session:
        return self._session

    @property
    def detection_loop(self) -> DetectionLoop | None:
        return self._loop

    @property
    def renderer(self) -> OverlayRenderer:
        return self._renderer

    @property
    def frame_source(self) -> FrameSource:
        return self._frame_source

    @property
    def last_batch(self) -> list[Detection]:
        return self._loop.last_batch if self._loop is not None else []

    async def start_capture(self) -> CaptureStatus:
        """Open the camera; detection begins once the first frame decodes.

        Raises:
            ModelsNotReady: While detection models are still loading.
            PermissionDenied: If the OS refuses camera access.
            DeviceUnavailable: If no camera could be opened.
        """
        if not self._models_ready():
            raise ModelsNotReady("Detection models are still loading")
        if self._session.state in (SessionState.REQUESTING, SessionState.ACTIVE):
            logger.info("Capture already %s", self._session.state)
            return self.status()

        session = Session()
        session.request()
        loop = DetectionLoop(
            session,
            self._frame_source,
            self._provider,
            self._renderer,
            self._display_size,
            interval=self._interval,
            scheduler=self._scheduler,
        )
        self._session = session
        self._loop = loop

        def on_playing() -> None:
            if session.state is not SessionState.REQUESTING:
                return
            session.activate()
            loop.on_playback_started()
            logger.info("Playback started, capture active")

        def on_ended(error: BaseException | None) -> None:
            if session is self._session:
                logger.warning("Capture ended by stream: %s", error)
                self._halt(session, loop)

        try:
            await self._frame_source.start(self._constraints, on_playing=on_playing, on_ended=on_ended)
        except CaptureError:
            if session.state is SessionState.REQUESTING:
                session.abort()
            raise
        return self.status()

    def stop_capture(self) -> CaptureStatus:
        """Close the camera and halt detection. Idempotent."""
        if self._loop is not None:
            self._halt(self._session, self._loop)
        else:
            self._frame_source.stop()
            self._session.stop()
        return self.status()

    def status(self) -> CaptureStatus:
        loop = self._loop
        return CaptureStatus(
            state=self._session.state,
            models_ready=self._models_ready(),
            display_size=self._display_size,
            last_drawn=loop.last_drawn if loop is not None else 0,
            in_flight=loop.in_flight if loop is not None else 0,
            stats=loop.stats if loop is not None else LoopStats(),
        )

    def _halt(self, session: Session, loop: DetectionLoop) -> None:
        if session.state is SessionState.STOPPED:
            return
        self._frame_source.stop()
        loop.stop()
        session.stop()
        self._renderer.clear()
        logger.info("Capture stopped")
