"""
Poller Registry

Keeps one SnapshotPoller per dashboard query and provides:
- lazy start on first access
- teardown of a single poller
- release of ended pollers once their final view has been served
- eviction of pollers nobody has read for ``DASHBOARD_IDLE_TTL_SECONDS``
- best-effort shutdown of everything on application exit
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from query_monitor.config import settings
from query_monitor.core.poller import HttpSnapshotFetcher, SnapshotFetcher, SnapshotPoller

logger = logging.getLogger(__name__)

PollerFactory = Callable[[str, SnapshotFetcher], SnapshotPoller]


class PollerRegistry:
    def __init__(
        self,
        fetcher: Optional[SnapshotFetcher] = None,
        poller_factory: PollerFactory = SnapshotPoller,
        *,
        idle_ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._poller_factory = poller_factory
        self._idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        self._pollers: dict[str, SnapshotPoller] = {}
        self._last_access: dict[str, float] = {}
        self._lock = asyncio.Lock()
        self._reaper_task: Optional[asyncio.Task] = None

    @property
    def idle_ttl_seconds(self) -> float:
        if self._idle_ttl_seconds is None:
            return settings.DASHBOARD_IDLE_TTL_SECONDS
        return self._idle_ttl_seconds

    def configure(
        self,
        *,
        fetcher: Optional[SnapshotFetcher] = None,
        poller_factory: Optional[PollerFactory] = None,
    ) -> None:
        """Swap the fetcher or poller factory used for pollers started from now on."""
        if fetcher is not None:
            self._fetcher = fetcher
        if poller_factory is not None:
            self._poller_factory = poller_factory

    def _get_fetcher(self) -> SnapshotFetcher:
        if self._fetcher is None:
            self._fetcher = HttpSnapshotFetcher()
        return self._fetcher

    async def get(self, query_id: str) -> Optional[SnapshotPoller]:
        async with self._lock:
            poller = self._pollers.get(query_id)
            if poller is not None:
                self._last_access[query_id] = self._clock()
            return poller

    async def get_or_start(self, query_id: str) -> SnapshotPoller:
        """Return the poller for ``query_id``, starting it (first tick included) if needed."""
        async with self._lock:
            self._last_access[query_id] = self._clock()
            poller = self._pollers.get(query_id)
            if poller is None or poller.closed:
                poller = self._poller_factory(query_id, self._get_fetcher())
                self._pollers[query_id] = poller
            self._ensure_reaper()
        await poller.start()
        return poller

    async def stop(self, query_id: str) -> bool:
        async with self._lock:
            poller = self._pollers.pop(query_id, None)
            self._last_access.pop(query_id, None)
        if poller is None:
            return False
        await poller.aclose()
        return True

    async def release_ended(self, query_id: str) -> bool:
        """
        Drop the poller of a query that reached its final state.

        Called once the final view has been served. Pollers that are still
        running or still streaming to a subscriber are kept.
        """
        async with self._lock:
            poller = self._pollers.get(query_id)
            if poller is None or not poller.ended or poller.subscriber_count:
                return False
            del self._pollers[query_id]
            self._last_access.pop(query_id, None)
        await poller.aclose()
        logger.debug("Released ended dashboard for %s", query_id)
        return True

    async def evict_idle(self) -> list[str]:
        """Close pollers without subscribers that nobody has read for the idle TTL."""
        now = self._clock()
        ttl = self.idle_ttl_seconds
        evicted: list[SnapshotPoller] = []
        async with self._lock:
            for query_id, poller in list(self._pollers.items()):
                if poller.subscriber_count and not poller.closed:
                    self._last_access[query_id] = now
                    continue
                last_access = self._last_access.get(query_id, now)
                if poller.closed or now - last_access >= ttl:
                    evicted.append(self._pollers.pop(query_id))
                    self._last_access.pop(query_id, None)

        for poller in evicted:
            await poller.aclose()
        if evicted:
            logger.info("Evicted %d idle dashboard(s)", len(evicted))
        return [poller.query_id for poller in evicted]

    def _ensure_reaper(self) -> None:
        if self._reaper_task is None or self._reaper_task.done():
            self._reaper_task = asyncio.create_task(self._reap())

    async def _reap(self) -> None:
        while True:
            await asyncio.sleep(max(self.idle_ttl_seconds / 2, 0.01))
            try:
                await self.evict_idle()
            except Exception as e:
                logger.warning("Idle dashboard eviction failed: %s", e, exc_info=True)

    async def query_ids(self) -> list[str]:
        async with self._lock:
            return list(self._pollers)

    async def shutdown(self, *, timeout_seconds: float = 5.0) -> None:
        """
        Stop every poller and release the HTTP client.

        In-flight fetches are awaited up to ``timeout_seconds``; their
        responses are discarded.
        """
        reaper = self._reaper_task
        self._reaper_task = None
        if reaper is not None and not reaper.done():
            reaper.cancel()
            await asyncio.gather(reaper, return_exceptions=True)

        async with self._lock:
            pollers = list(self._pollers.values())
            self._pollers.clear()
            self._last_access.clear()

        for poller in pollers:
            poller.close()

        try:
            await asyncio.wait_for(
                asyncio.gather(*(p.aclose() for p in pollers), return_exceptions=True),
                timeout=timeout_seconds,
            )
        except TimeoutError:
            logger.warning(
                "Registry shutdown timed out after %.1fs; forcing continuation",
                timeout_seconds,
            )

        fetcher = self._fetcher
        if isinstance(fetcher, HttpSnapshotFetcher):
            try:
                await fetcher.aclose()
            except Exception as e:
                logger.warning("Failed to close coordinator client: %s", e)
            self._fetcher = None


registry = PollerRegistry()
