"""Capture session lifecycle."""

from __future__ import annotations

import logging
from enum import StrEnum

from faceoverlay.core.errors import InvalidSessionTransition

logger = logging.getLogger(__name__)


class SessionState(StrEnum):
    IDLE = "idle"
    REQUESTING = "requesting"
    ACTIVE = "active"
    STOPPED = "stopped"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.REQUESTING, SessionState.STOPPED}),
    SessionState.REQUESTING: frozenset({SessionState.IDLE, SessionState.ACTIVE, SessionState.STOPPED}),
    SessionState.ACTIVE: frozenset({SessionState.STOPPED}),
    SessionState.STOPPED: frozenset(),
}


class Session:
    """On/off lifecycle of one capture attempt.

    Owned by the capture controller; everything else only reads ``is_active``.
    ``stopped`` is terminal, a new capture gets a new session.
    """

    def __init__(self) -> None:
        self._state = SessionState.IDLE

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    def request(self) -> None:
        """Camera access has been asked for."""
        self._move(SessionState.REQUESTING)

    def activate(self) -> None:
        """The stream is attached and playback has begun."""
        self._move(SessionState.ACTIVE)

    def abort(self) -> None:
        """The camera request failed; fall back to idle."""
        self._move(SessionState.IDLE)

    def stop(self) -> None:
        """End the session. Idempotent."""
        if self._state is SessionState.STOPPED:
            return
        self._move(SessionState.STOPPED)

    def _move(self, target: SessionState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise InvalidSessionTransition(f"Cannot move session from {self._state} to {target}")
        logger.debug("Session %s -> %s", self._state, target)
        self._state = target

    def __repr__(self) -> str:
        return f"Session(state={self._state.value})"
