"""Periodic background eviction of expired sessions."""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime
from typing import Optional

from ..timekeeping import utc_now
from .registry import SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_INTERVAL = 300.0


class SessionCleanupService:
    """Runs the registry's retention sweep every ``interval`` seconds.

    The first sweep happens one full interval after :meth:`start`. The loop
    only rearms once a sweep has returned, so sweeps never overlap; a manual
    :meth:`run_once` that collides with a running sweep is skipped.
    """

    def __init__(self, registry: SessionRegistry, *, interval: float = DEFAULT_CLEANUP_INTERVAL) -> None:
        if interval <= 0:
            raise ValueError("Cleanup interval must be positive")
        self._registry = registry
        self._interval = interval
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._sweep_lock = threading.Lock()
        self.sweep_count = 0
        self.failure_count = 0
        self.last_removed: int | None = None
        self.last_run_at: datetime | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Session cleanup service starting",
            extra={"interval_seconds": self._interval},
        )

    async def stop(self) -> None:
        """Stop the background loop; a sweep already in progress is allowed to finish."""
        if self._task is None:
            self._running = False
            return
        logger.info("Session cleanup service stopping")
        self._running = False
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def run_once(self) -> int:
        """Run a single sweep, returning the number of sessions evicted."""

        if not self._sweep_lock.acquire(blocking=False):
            logger.debug("Skipping cleanup sweep; previous sweep still running")
            return 0
        try:
            removed = self._registry.cleanup_expired_sessions()
        except Exception:
            self.failure_count += 1
            logger.exception("Error during session cleanup")
            return 0
        finally:
            self._sweep_lock.release()

        self.sweep_count += 1
        self.last_removed = removed
        self.last_run_at = utc_now()
        active = self._registry.session_count
        if removed:
            logger.info(
                "Session cleanup completed",
                extra={"removed": removed, "active_sessions": active},
            )
        else:
            logger.debug(
                "Session cleanup completed with nothing to evict",
                extra={"active_sessions": active},
            )
        return removed

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break
            self.run_once()


__all__ = ["DEFAULT_CLEANUP_INTERVAL", "SessionCleanupService"]
