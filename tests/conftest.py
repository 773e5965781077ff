"""Shared fakes: virtual clock scheduler, scripted provider, in-memory camera."""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING

import numpy as np
import pytest

from faceoverlay.capture import camera
from faceoverlay.capture.camera import CaptureConstraints, Frame
from faceoverlay.core.geometry import Detection, Region, Size

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


# ---------------------------------------------------------------------------
# Virtual clock
# ---------------------------------------------------------------------------


class ManualTicket:
    def __init__(self, scheduler: ManualScheduler, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.next_due = scheduler.now + interval
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class ManualScheduler:
    """Scheduler whose clock only moves when a test calls ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.tickets: list[ManualTicket] = []

    def call_every(self, interval: float, callback: Callable[[], None]) -> ManualTicket:
        ticket = ManualTicket(self, interval, callback)
        self.tickets.append(ticket)
        return ticket

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.tickets if not t.cancelled and t.next_due <= target + 1e-9]
            if not due:
                break
            ticket = min(due, key=lambda t: t.next_due)
            self.now = ticket.next_due
            ticket.next_due += ticket.interval
            ticket.callback()
        self.now = target


# ---------------------------------------------------------------------------
# Provider / renderer / frame source fakes
# ---------------------------------------------------------------------------


class ScriptedProvider:
    """Provider whose calls stay pending until the test resolves them."""

    def __init__(self) -> None:
        self.calls: list[Frame] = []
        self.pending: list[asyncio.Future[list[Detection]]] = []

    async def detect(self, frame: Frame) -> list[Detection]:
        future: asyncio.Future[list[Detection]] = asyncio.get_running_loop().create_future()
        self.calls.append(frame)
        self.pending.append(future)
        return await future

    def resolve(self, index: int, detections: list[Detection]) -> None:
        self.pending[index].set_result(detections)

    def fail(self, index: int, error: BaseException) -> None:
        self.pending[index].set_exception(error)


class RecordingRenderer:
    def __init__(self) -> None:
        self.surfaces: list[Size] = []
        self.draws: list[list[Detection]] = []

    def ensure_surface(self, display_size: Size) -> None:
        self.surfaces.append(display_size)

    def draw(self, detections: Sequence[Detection]) -> None:
        self.draws.append(list(detections))

    def clear(self) -> None:
        self.draws.append([])


class FakeFrameSource:
    """Frame source that never touches a device."""

    def __init__(self, frame: Frame | None = None, error: BaseException | None = None) -> None:
        self.frame = frame
        self.error = error
        self.start_calls = 0
        self.stop_calls = 0
        self.on_playing: Callable[[], None] | None = None
        self.on_ended: Callable[[BaseException | None], None] | None = None
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    async def start(
        self,
        constraints: CaptureConstraints,
        on_playing: Callable[[], None] | None = None,
        on_ended: Callable[[BaseException | None], None] | None = None,
    ) -> None:
        self.start_calls += 1
        if self.error is not None:
            raise self.error
        self._active = True
        self.on_playing = on_playing
        self.on_ended = on_ended

    def current_frame(self) -> Frame | None:
        return self.frame if self._active else None

    def stop(self) -> None:
        self.stop_calls += 1
        self._active = False

    def play(self) -> None:
        assert self.on_playing is not None
        self.on_playing()


# ---------------------------------------------------------------------------
# OpenCV capture fake
# ---------------------------------------------------------------------------


class FakeCapture:
    """Stand-in for ``cv2.VideoCapture``.

    With a ``read_gate`` each ``read()`` blocks until the gate is set, which
    keeps a read in flight on the executor thread.
    """

    def __init__(
        self,
        opened: bool = True,
        frames: int | None = None,
        read_gate: threading.Event | None = None,
    ) -> None:
        self.opened = opened
        self.frames = frames
        self.read_gate = read_gate
        self.reads = 0
        self.reading = False
        self.released = False
        self.released_during_read = False
        self.props: dict[int, float] = {}

    def isOpened(self) -> bool:  # noqa: N802
        return self.opened

    def set(self, prop: int, value: float) -> bool:
        self.props[prop] = value
        return True

    def read(self) -> tuple[bool, np.ndarray | None]:
        self.reading = True
        try:
            if self.read_gate is not None:
                self.read_gate.wait(timeout=2.0)
            if self.released or (self.frames is not None and self.reads >= self.frames):
                return False, None
            self.reads += 1
            return True, np.full((240, 320, 3), self.reads % 255, dtype=np.uint8)
        finally:
            self.reading = False

    def release(self) -> None:
        if self.reading:
            self.released_during_read = True
        self.released = True


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_frame(width: int = 1280, height: int = 960, index: int = 0) -> Frame:
    return Frame(image=np.zeros((height, width, 3), dtype=np.uint8), index=index, captured_at=0.0)


def face(x: float, y: float, w: float, h: float) -> Detection:
    return Detection(region=Region(x=x, y=y, width=w, height=h), score=0.9)


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks and task steps run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until ``predicate`` holds; executor work needs real time to finish."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture()
def no_device_node(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(camera, "_device_node", lambda device: None)


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture()
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture()
def constraints() -> CaptureConstraints:
    return CaptureConstraints(device=0, width=300)
