"""Bounded worker pool for blocking model inference.

Architecture:
    detection cycle (event loop) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> OpenCV / ONNX

Overlapping cycles queue on the semaphore; a cycle that cannot get a slot
within the timeout fails with ``TimeoutError`` and is recorded as a
detection failure by the loop.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEMAPHORE_TIMEOUT_SECONDS: float = 5.0


class InferencePool:
    """Runs synchronous inference calls off the event loop, at most N at a time."""

    def __init__(self, max_concurrent: int) -> None:
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent,
            thread_name_prefix="faceoverlay-inference",
        )
        self._active_count: int = 0
        self._queue_depth: int = 0

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Submit a synchronous function to the inference thread pool.

        Raises:
            TimeoutError: If no slot frees up within the timeout.
        """
        self._queue_depth += 1
        try:
            await asyncio.wait_for(
                self._semaphore.acquire(),
                timeout=SEMAPHORE_TIMEOUT_SECONDS,
            )
        finally:
            self._queue_depth -= 1

        self._active_count += 1
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)
        finally:
            self._semaphore.release()
            self._active_count -= 1

    @property
    def active_count(self) -> int:
        """Number of currently running inference tasks."""
        return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of calls waiting for a slot."""
        return self._queue_depth

    def shutdown(self) -> None:
        """Shut down the thread pool executor."""
        self._executor.shutdown(wait=True)
        logger.info("Inference pool shut down")
