"""Periodic removal of expired cache entries."""

import asyncio
from typing import Optional

from core.cache.backends import CacheBackend
from core.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SWEEP_INTERVAL = 10 * 60  # seconds


class CacheSweeper:
    """Runs `cache.cleanup()` every `interval` seconds on the event loop.

    Reads already enforce expiration, so a stopped sweeper only lets expired
    entries linger in memory.
    """

    def __init__(self, cache: CacheBackend, interval: float = DEFAULT_SWEEP_INTERVAL):
        self.cache = cache
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        removed = await self.cache.cleanup()
        if removed:
            logger.debug(f"Cache sweep removed {removed} expired entries")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"Cache sweep failed: {e}")

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
