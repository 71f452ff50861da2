"""Expiry/refresh scheduler for time-limited challenges.

A challenge is valid for a fixed window after it was obtained. The
scheduler keeps one reference point, ``last_refresh_at``, and runs two
periodic tasks against it:

- a tick, once per ``tick_interval``, that recomputes the countdown for
  observers and has no other side effect;
- a poll, once per ``window``, that unconditionally triggers a refresh.

Both tasks are started and canceled together.

Overlapping refreshes (a poll firing while a manual refresh is in flight)
race by default: the refresh that resolves last wins and sets
``last_refresh_at``. With ``single_flight=True`` concurrent callers share
the in-flight refresh instead.
"""

import asyncio
import math
import time
from typing import Awaitable, Callable, Generic, List, Optional, Set, TypeVar

from src.config.logger import logger

FIXED_WINDOW_SECONDS = 7.0
TICK_INTERVAL_SECONDS = 1.0

T = TypeVar("T")


class RefreshScheduler(Generic[T]):
    """Tracks challenge freshness and refreshes it on a fixed period."""

    def __init__(
        self,
        refresh: Callable[[], Awaitable[T]],
        window: float = FIXED_WINDOW_SECONDS,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        single_flight: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the scheduler.

        Args:
            refresh: Coroutine function that obtains a fresh challenge.
            window: Challenge lifetime and poll period, in seconds.
            tick_interval: Countdown observation period, in seconds.
            single_flight: Share one in-flight refresh between callers.
            clock: Monotonic clock returning seconds.
        """
        self._refresh = refresh
        self.window = window
        self.tick_interval = tick_interval
        self.single_flight = single_flight
        self._clock = clock

        self.last_refresh_at: float = clock()
        self.countdown: int = int(window)
        self.refresh_count: int = 0
        self.last_error: Optional[str] = None

        self._tick_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Future] = None
        self._refreshes: Set[asyncio.Task] = set()
        self._tick_listeners: List[Callable[[float], None]] = []
        self.logger = logger.bind(component="refresh_scheduler")

    @property
    def running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def time_remaining(self) -> float:
        """Seconds until the current challenge expires, never negative."""
        elapsed = self._clock() - self.last_refresh_at
        return max(0.0, self.window - elapsed)

    def is_expired(self) -> bool:
        return self.time_remaining() <= 0.0

    def mark_refreshed(self, at: Optional[float] = None) -> None:
        """Reset the countdown to the full window.

        Args:
            at: Clock reading of the refresh completion, now if omitted.
        """
        self.last_refresh_at = self._clock() if at is None else at
        self.countdown = int(self.window)

    def add_tick_listener(self, listener: Callable[[float], None]) -> None:
        """Call ``listener(time_remaining)`` on every tick."""
        self._tick_listeners.append(listener)

    def tick(self) -> float:
        """Recompute the countdown and notify listeners."""
        remaining = self.time_remaining()
        elapsed_whole = math.floor(self._clock() - self.last_refresh_at)
        self.countdown = max(0, int(self.window) - elapsed_whole)
        for listener in self._tick_listeners:
            listener(remaining)
        return remaining

    async def refresh_now(self) -> T:
        """Run one refresh and reset the countdown on success.

        Raises:
            Exception: Whatever the refresh callable raises; the countdown is
                left unchanged in that case.
        """
        if not self.single_flight:
            return await self._run_refresh()

        if self._in_flight is not None:
            self.logger.debug("refresh_joined_in_flight")
        else:
            self._in_flight = asyncio.ensure_future(self._run_refresh())
            self._in_flight.add_done_callback(self._clear_in_flight)
        return await asyncio.shield(self._in_flight)

    def _clear_in_flight(self, future: asyncio.Future) -> None:
        if self._in_flight is future:
            self._in_flight = None
        if not future.cancelled():
            # Marks the exception retrieved; shielded awaiters still receive it
            future.exception()

    async def _run_refresh(self) -> T:
        try:
            result = await self._refresh()
        except Exception as e:
            self.last_error = str(e)
            raise
        # Last writer wins: a slower overlapping refresh overwrites this one
        self.mark_refreshed()
        self.refresh_count += 1
        self.last_error = None
        self.logger.debug("refresh_completed", refresh_count=self.refresh_count)
        return result

    def start(self) -> None:
        """Start the tick and poll tasks.

        Must be called from a running event loop. Starting twice is a no-op.
        """
        if self.running:
            return
        self.mark_refreshed()
        self._tick_task = asyncio.create_task(self._tick_loop())
        self._poll_task = asyncio.create_task(self._poll_loop())
        self.logger.info("scheduler_started", window=self.window, tick_interval=self.tick_interval)

    async def cancel(self) -> None:
        """Cancel both periodic tasks and wait for them to finish.

        In-flight refreshes are not canceled; only the periodic tasks are.
        """
        tasks = [t for t in (self._tick_task, self._poll_task) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tick_task = None
        self._poll_task = None
        if tasks:
            self.logger.info("scheduler_cancelled")

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.tick()

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.window)
            # Polls never skip, even with a refresh still in flight. Each
            # refresh runs as its own task so cancel() cannot abort it.
            task = asyncio.create_task(self._scheduled_refresh())
            self._refreshes.add(task)
            task.add_done_callback(self._refreshes.discard)

    async def _scheduled_refresh(self) -> None:
        try:
            await self.refresh_now()
        except Exception as e:
            self.logger.warning("scheduled_refresh_failed", error=str(e))

    async def wait_for_refreshes(self) -> None:
        """Wait until every scheduled refresh still in flight has finished."""
        if self._refreshes:
            await asyncio.gather(*self._refreshes, return_exceptions=True)
