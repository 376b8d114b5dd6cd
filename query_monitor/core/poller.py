"""
Snapshot Poller

Polls the coordinator for one query's status, keeps the latest snapshot and
derives rate metrics from its cumulative counters.

Scheduling model:
- a single-shot timer (``loop.call_later``) fires the next tick
- each tick disarms the timer first and re-arms it only after its fetch has
  completed, so two fetches are never outstanding at once
- the interval is measured from completion of the previous tick
- once a terminal snapshot is seen, no further tick is scheduled
- fetch failures are retried forever at the same cadence
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

import httpx

from query_monitor.config import settings
from query_monitor.core.errors import FetchError, MalformedSnapshotError
from query_monitor.core.rate_history import RateHistories, RateMetric
from query_monitor.core.units import data_size_or_zero, duration_or_zero
from query_monitor.models.snapshot import QueryStats, Snapshot, StageNode

logger = logging.getLogger(__name__)

UNDEFINED_QUERY_PATH = "/v1/query/undefined"
_DISALLOWED_ID_CHARS = re.compile(r"[^a-z0-9_]", re.IGNORECASE)

SnapshotFetcher = Callable[[str], Awaitable[Any]]


def query_path(query_id: Any) -> str:
    """
    Build the status endpoint path for a query id.

    Only ``[a-z0-9_]`` (any case) survives sanitisation; ids that sanitise to
    nothing map to ``/v1/query/undefined``.
    """
    if not isinstance(query_id, str) or not query_id:
        return UNDEFINED_QUERY_PATH
    sanitized = _DISALLOWED_ID_CHARS.sub("", query_id)
    if not sanitized:
        return UNDEFINED_QUERY_PATH
    return f"/v1/query/{quote(sanitized, safe='')}"


def _now_ms() -> float:
    return time.time() * 1000.0


class HttpSnapshotFetcher:
    """Fetches query snapshots from the coordinator over HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.COORDINATOR_URL,
            timeout=timeout_seconds or settings.FETCH_TIMEOUT_SECONDS,
            headers={"Accept": "application/json"},
        )

    async def __call__(self, path: str) -> Any:
        try:
            response = await self._client.get(path)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise FetchError(path, f"HTTP {status_code}", status_code=status_code) from e
        except httpx.HTTPError as e:
            raise FetchError(path, str(e) or type(e).__name__) from e

        try:
            return response.json()
        except ValueError as e:
            raise MalformedSnapshotError(f"Response from {path} is not valid JSON") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class PollerState(str, Enum):
    """Poller lifecycle state."""

    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    ENDED = "ended"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class CounterBaseline:
    """Last-seen cumulative counters (time in seconds, rows, bytes)."""

    scheduled_time_seconds: float = 0.0
    cpu_time_seconds: float = 0.0
    row_input: float = 0.0
    byte_input: float = 0.0

    @classmethod
    def from_stats(cls, stats: QueryStats) -> CounterBaseline:
        return cls(
            scheduled_time_seconds=duration_or_zero(stats.total_scheduled_time) / 1000.0,
            cpu_time_seconds=duration_or_zero(stats.total_cpu_time) / 1000.0,
            row_input=float(stats.processed_input_positions),
            byte_input=data_size_or_zero(stats.processed_input_data_size),
        )


def derive_rate(current: float, previous: float, elapsed_seconds: float) -> float:
    """
    Per-second rate of change of a cumulative counter.

    For time counters in seconds this is the parallelism: busy seconds per
    wall second.
    """
    return (current - previous) / elapsed_seconds


@dataclass(frozen=True)
class DashboardState:
    """Read-only copy of a poller's state, consumed by the view derivation."""

    query_id: str
    state: PollerState
    initialized: bool
    ended: bool
    snapshot: Optional[Snapshot]
    stage_root: Optional[StageNode]
    stage_refresh: bool
    rates: dict[str, tuple[float, ...]] = field(default_factory=dict)
    latest_rates: dict[str, float] = field(default_factory=dict)
    last_poll_failed: bool = False
    last_error: Optional[str] = None


class SnapshotPoller:
    """
    Timer-driven poller for a single query.

    All mutable state (snapshot, counters, rate histories, last refresh time)
    is owned here and only updated from a tick's completion.
    """

    def __init__(
        self,
        query_id: str,
        fetcher: SnapshotFetcher,
        *,
        interval_seconds: Optional[float] = None,
        history_capacity: Optional[int] = None,
        clock: Callable[[], float] = _now_ms,
    ):
        """
        Args:
            query_id: Query identifier (sanitised into the request path).
            fetcher: Async callable returning the decoded JSON for a path.
            interval_seconds: Delay between the end of one tick and the next.
            history_capacity: Samples kept per rate metric.
            clock: Wall clock in milliseconds.
        """
        self.query_id = query_id
        self.path = query_path(query_id)
        self.interval_seconds = (
            settings.POLL_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        )
        self._fetcher = fetcher
        self._clock = clock
        self._histories = RateHistories(history_capacity or settings.RATE_HISTORY_CAPACITY)

        self._snapshot: Optional[Snapshot] = None
        self._stage_root: Optional[StageNode] = None
        self._stage_refresh = True
        self._baseline = CounterBaseline()
        self._last_refresh_ms: Optional[float] = None
        self._initialized = False
        self._ended = False
        self._last_error: Optional[BaseException] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._first_tick: Optional[asyncio.Task] = None
        self._in_flight = False
        self._started = False
        self._closed = False
        self._subscribers: set[asyncio.Queue] = set()

        self.fetch_count = 0

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> PollerState:
        if self._closed:
            return PollerState.CLOSED
        if self._ended:
            return PollerState.ENDED
        if self._initialized:
            return PollerState.RUNNING
        return PollerState.UNINITIALIZED

    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self._snapshot

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def histories(self) -> RateHistories:
        return self._histories

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def dashboard_state(self) -> DashboardState:
        return DashboardState(
            query_id=self.query_id,
            state=self.state,
            initialized=self._initialized,
            ended=self._ended,
            snapshot=self._snapshot,
            stage_root=self._stage_root,
            stage_refresh=self._stage_refresh,
            rates=self._histories.as_dict(),
            latest_rates=self._histories.latest(),
            last_poll_failed=self._last_error is not None,
            last_error=str(self._last_error) if self._last_error is not None else None,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Run the first tick immediately and wait for it; later ticks are timer
        driven.

        The first tick runs as its own task, so cancelling the caller does not
        abandon it: it still completes and arms the timer.
        """
        if not self._started:
            self._started = True
            self._loop = asyncio.get_running_loop()
            logger.info("Polling %s every %.1fs", self.path, self.interval_seconds)
            self._first_tick = self._spawn_tick()
        first_tick = self._first_tick
        if first_tick is not None and not first_tick.done():
            await asyncio.shield(first_tick)

    def close(self) -> None:
        """Cancel the pending timer. A response still in flight will be ignored."""
        if self._closed:
            return
        self._closed = True
        self._disarm()
        for q in self._subscribers:
            try:
                q.put_nowait(None)
            except asyncio.QueueFull:
                pass
        self._subscribers.clear()
        logger.info("Stopped polling %s", self.path)

    async def aclose(self) -> None:
        self.close()
        task = self._tick_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    def set_stage_refresh(self, enabled: bool) -> None:
        """
        Toggle live updates of the stage tree.

        While disabled, the stage tree stays frozen at the snapshot current
        when it was disabled; counters and rates keep updating.
        """
        if not enabled and self._stage_refresh and self._snapshot is not None:
            self._stage_root = self._snapshot.output_stage
        self._stage_refresh = enabled

    def subscribe(self, maxsize: int = 10) -> asyncio.Queue:
        """Queue receiving a DashboardState after every tick (None on close)."""
        q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        if self._closed:
            q.put_nowait(None)
        else:
            self._subscribers.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        self._subscribers.discard(q)

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def _arm(self) -> None:
        if self._closed or self._ended or self._loop is None:
            return
        self._disarm()
        self._timer = self._loop.call_later(self.interval_seconds, self._fire)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        if self._closed or self._loop is None:
            return
        self._spawn_tick()

    def _spawn_tick(self) -> asyncio.Task:
        assert self._loop is not None
        task = self._loop.create_task(self._tick())
        task.add_done_callback(self._tick_done)
        self._tick_task = task
        return task

    def _tick_done(self, task: asyncio.Task) -> None:
        if self._tick_task is task:
            self._tick_task = None
        try:
            exc = task.exception()
        except asyncio.CancelledError:
            return
        if exc is not None:
            logger.error("Poll tick for %s crashed: %s", self.path, exc, exc_info=exc)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def _tick(self) -> None:
        self._disarm()
        if self._closed or self._ended or self._in_flight:
            return

        self._in_flight = True
        self.fetch_count += 1
        try:
            try:
                payload = await self._fetcher(self.path)
                snapshot = Snapshot.from_payload(payload)
            except (FetchError, MalformedSnapshotError) as e:
                if self._closed:
                    return
                logger.warning("Poll of %s failed: %s", self.path, e)
                self._record_failure(e)
            except Exception as e:
                if self._closed:
                    return
                logger.warning("Unexpected error polling %s: %s", self.path, e, exc_info=True)
                self._record_failure(e)
            else:
                if self._closed:
                    logger.debug("Ignoring response for %s received after close", self.path)
                    return
                self._apply_snapshot(snapshot, self._clock())
        finally:
            self._in_flight = False

        self._notify()
        self._arm()

    def _record_failure(self, error: BaseException) -> None:
        # Stop showing "loading"; keep whatever snapshot we already have.
        self._initialized = True
        self._last_error = error

    def _apply_snapshot(self, snapshot: Snapshot, now_ms: float) -> None:
        stats = snapshot.query_stats
        last_refresh = self._last_refresh_ms
        previous = self._baseline
        already_ended = self._ended
        current = CounterBaseline.from_stats(stats)

        self._snapshot = snapshot
        if self._stage_refresh:
            self._stage_root = snapshot.output_stage
        self._baseline = current
        self._initialized = True
        self._ended = snapshot.final_query_info
        self._last_refresh_ms = now_ms
        self._last_error = None

        if self._ended and not already_ended:
            logger.info("Query %s reached final state %s", snapshot.query_id, snapshot.state)

        # No sparkline update once ended, or without a previous measurement
        # of a query that is still running.
        if already_ended or (last_refresh is None and snapshot.state == "RUNNING"):
            return

        if last_refresh is None:
            last_refresh = now_ms - duration_or_zero(stats.elapsed_time)

        elapsed_seconds = (now_ms - last_refresh) / 1000.0
        if elapsed_seconds <= 0:
            logger.debug(
                "Skipping rate derivation for %s: non-positive elapsed time %.3fs",
                self.path,
                elapsed_seconds,
            )
            return

        self._histories.push(
            RateMetric.SCHEDULED_TIME,
            derive_rate(
                current.scheduled_time_seconds, previous.scheduled_time_seconds, elapsed_seconds
            ),
        )
        self._histories.push(
            RateMetric.CPU_TIME,
            derive_rate(current.cpu_time_seconds, previous.cpu_time_seconds, elapsed_seconds),
        )
        self._histories.push(
            RateMetric.ROW_INPUT,
            derive_rate(current.row_input, previous.row_input, elapsed_seconds),
        )
        self._histories.push(
            RateMetric.BYTE_INPUT,
            derive_rate(current.byte_input, previous.byte_input, elapsed_seconds),
        )
        self._histories.push(
            RateMetric.RESERVED_MEMORY, data_size_or_zero(stats.user_memory_reservation)
        )

    def _notify(self) -> None:
        if not self._subscribers:
            return
        state = self.dashboard_state()
        for q in list(self._subscribers):
            try:
                q.put_nowait(state)
            except asyncio.QueueFull:
                # Slow consumer; it will pick up a later state.
                pass
