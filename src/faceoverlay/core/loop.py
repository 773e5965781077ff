"""Periodic detection cycle: frame -> provider -> rescale -> overlay.

Every tick runs on the event loop thread. Ticks are not serialized against
provider calls, so several calls may be in flight at once; a result is drawn
only if its cycle was issued after the last one drawn and the session is still
active when it resolves.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from faceoverlay.core.errors import DetectionFailure, StaleResultDiscarded
from faceoverlay.core.geometry import rescale_detections
from faceoverlay.core.scheduler import AsyncioScheduler

if TYPE_CHECKING:
    from faceoverlay.capture.camera import Frame, FrameSource
    from faceoverlay.core.geometry import Detection, Size
    from faceoverlay.core.overlay import OverlaySink
    from faceoverlay.core.scheduler import Scheduler, ScheduleTicket
    from faceoverlay.core.session import Session

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS: float = 0.1


class DetectionProvider(Protocol):
    """Opaque face detection capability."""

    async def detect(self, frame: Frame) -> list[Detection]:
        """Return detections for ``frame`` in its native pixel coordinates."""
        ...


class CycleSequencer:
    """Issues increasing cycle numbers and admits only results newer than the last drawn."""

    def __init__(self) -> None:
        self._issued = 0
        self._last_drawn = 0

    @property
    def issued(self) -> int:
        return self._issued

    @property
    def last_drawn(self) -> int:
        return self._last_drawn

    def issue(self) -> int:
        self._issued += 1
        return self._issued

    def admit(self, cycle: int) -> None:
        """Mark ``cycle`` as drawn, or raise if a newer cycle already was."""
        if cycle <= self._last_drawn:
            raise StaleResultDiscarded(cycle, self._last_drawn)
        self._last_drawn = cycle


@dataclass
class LoopStats:
    cycles_issued: int = 0
    cycles_skipped: int = 0
    results_discarded: int = 0
    detection_failures: int = 0


class DetectionLoop:
    """Drives detection cycles for one capture session."""

    def __init__(
        self,
        session: Session,
        frame_source: FrameSource,
        provider: DetectionProvider,
        renderer: OverlaySink,
        display_size: Size,
        *,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._session = session
        self._frame_source = frame_source
        self._provider = provider
        self._renderer = renderer
        self._display_size = display_size
        self._interval = interval
        self._scheduler = scheduler or AsyncioScheduler()

        self._sequencer = CycleSequencer()
        self._ticket: ScheduleTicket | None = None
        self._stopped = False
        self._in_flight: set[asyncio.Task[None]] = set()
        self.stats = LoopStats()
        self.last_batch: list[Detection] = []

    @property
    def running(self) -> bool:
        return self._ticket is not None and not self._stopped

    @property
    def last_drawn(self) -> int:
        """Cycle number of the batch currently on the overlay (0 = none yet)."""
        return self._sequencer.last_drawn

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def on_playback_started(self) -> None:
        """Arm the repeating cycle. Repeated calls and calls after ``stop`` are ignored."""
        if self._stopped or self._ticket is not None:
            return
        self._renderer.ensure_surface(self._display_size)
        self._ticket = self._scheduler.call_every(self._interval, self.tick)
        logger.info("Detection loop started (interval=%.3fs)", self._interval)

    def stop(self) -> None:
        """Cancel the schedule. In-flight provider calls finish but are never drawn."""
        if self._stopped:
            return
        self._stopped = True
        if self._ticket is not None:
            self._ticket.cancel()
        logger.info(
            "Detection loop stopped (issued=%d, drawn=%d, in_flight=%d)",
            self.stats.cycles_issued,
            self._sequencer.last_drawn,
            len(self._in_flight),
        )

    def tick(self) -> None:
        """Run one cycle: sample a frame and hand it to the provider."""
        if self._stopped or not self._session.is_active:
            return
        frame = self._frame_source.current_frame()
        if frame is None:
            self.stats.cycles_skipped += 1
            logger.debug("No frame available, skipping cycle")
            return

        cycle = self._sequencer.issue()
        self.stats.cycles_issued += 1
        task = asyncio.create_task(self._run_cycle(cycle, frame), name=f"detection-cycle-{cycle}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def drain(self) -> None:
        """Wait for every in-flight cycle to finish."""
        while self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    # -- Internal -----------------------------------------------------------

    async def _run_cycle(self, cycle: int, frame: Frame) -> None:
        try:
            detections = await self._detect(cycle, frame)
        except DetectionFailure as failure:
            self.stats.detection_failures += 1
            logger.warning("%s; drawing no detections", failure)
            detections = []

        if self._stopped or not self._session.is_active:
            self.stats.results_discarded += 1
            logger.debug("Cycle %d resolved after stop, dropping result", cycle)
            return

        try:
            self._sequencer.admit(cycle)
        except StaleResultDiscarded as stale:
            self.stats.results_discarded += 1
            logger.debug("%s", stale)
            return

        batch = rescale_detections(detections, frame.size, self._display_size)
        self._renderer.draw(batch)
        self.last_batch = batch

    async def _detect(self, cycle: int, frame: Frame) -> list[Detection]:
        try:
            return await self._provider.detect(frame)
        except Exception as exc:
            raise DetectionFailure(cycle, exc) from exc
