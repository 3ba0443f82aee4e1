"""
Liveness and cancellable-task helpers.

``LivenessGuard`` is the flag every asynchronous callback checks before it
touches state; ``KeyedDebouncedTask`` runs at most one debounced coroutine per
owner and drops results whose key has been superseded.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class LivenessGuard:
    """Tracks whether the owning component is still mounted."""

    def __init__(self) -> None:
        self._alive = True
        self._on_close: list[Callable[[], None]] = []

    @property
    def alive(self) -> bool:
        return self._alive

    def on_close(self, callback: Callable[[], None]) -> None:
        self._on_close.append(callback)

    def close(self) -> None:
        if not self._alive:
            return
        self._alive = False
        callbacks, self._on_close = self._on_close, []
        for callback in callbacks:
            callback()


def snapshot_key(values: dict[str, Any]) -> str:
    """Stable hash for a mapping of dependency values."""
    serialized = json.dumps(values, sort_keys=True, default=str)
    return hashlib.sha1(serialized.encode("utf-8")).hexdigest()


class KeyedDebouncedTask:
    """
    Debounced coroutine runner with explicit "superseded" semantics.

    Scheduling a new key cancels the pending timer or in-flight coroutine of
    the previous one. A coroutine that still completes (for example because
    it ignored cancellation) only delivers its result when its key is still
    the latest one and the guard is alive.
    """

    def __init__(
        self,
        name: str,
        *,
        delay_ms: int,
        guard: Optional[LivenessGuard] = None,
    ) -> None:
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        self.name = name
        self._delay_s = delay_ms / 1000.0
        self._guard = guard or LivenessGuard()
        self._task: Optional[asyncio.Task] = None
        self._deferred: Optional[
            tuple[str, Callable[[], Awaitable[Any]], Callable[[Any], None]]
        ] = None
        self.latest_key: Optional[str] = None

    @property
    def pending(self) -> bool:
        if self._deferred is not None:
            return True
        return self._task is not None and not self._task.done()

    def is_current(self, key: Optional[str]) -> bool:
        return self._guard.alive and key is not None and key == self.latest_key

    def schedule(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        on_result: Callable[[Any], None],
    ) -> Optional[asyncio.Task]:
        """
        Schedule ``factory`` under ``key``, superseding earlier work.

        Args:
            key: Identity of the request; results of older keys are dropped
            factory: Zero-argument callable returning the coroutine to run
            on_result: Receives the coroutine result when still current

        Returns:
            The running task, or ``None`` when called outside an event loop.
            The work is then deferred until ``resume()`` or ``wait()`` runs
            inside a loop.
        """
        self.cancel()
        self.latest_key = key
        self._deferred = (key, factory, on_result)
        return self.resume()

    def resume(self) -> Optional[asyncio.Task]:
        """Start deferred work if an event loop is running."""
        if self._deferred is None:
            return self._task
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, deferring %s", self.name)
            return None
        key, factory, on_result = self._deferred
        self._deferred = None
        if not self.is_current(key):
            return None
        self._task = loop.create_task(self._run(key, factory, on_result))
        return self._task

    def supersede(self, key: Optional[str] = None) -> None:
        """Invalidate outstanding work without scheduling a replacement."""
        self.cancel()
        self.latest_key = key

    def cancel(self) -> None:
        self._deferred = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        task = self.resume()
        if task is None:
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def _run(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        on_result: Callable[[Any], None],
    ) -> None:
        if self._delay_s:
            await asyncio.sleep(self._delay_s)
        if not self.is_current(key):
            return
        try:
            result = await factory()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Debounced task %s failed", self.name)
            return
        if not self.is_current(key):
            logger.debug("Discarding superseded result for %s", self.name)
            return
        on_result(result)
