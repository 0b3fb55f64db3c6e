"""Serial poll scheduling with jitter and exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

from etatrack._constants import (
    BACKOFF_BASE_MS,
    MAX_BACKOFF_COUNT,
    MAX_BACKOFF_DELAY_MS,
    MAX_JITTER_MS,
    MAX_POLL_INTERVAL_MS,
    MIN_POLL_INTERVAL_MS,
)
from etatrack.models.telemetry import PollCycleOutcome

_logger = logging.getLogger(__name__)

Cycle = Callable[[], Awaitable[PollCycleOutcome]]


def clamp_interval_ms(interval_ms: float) -> float:
    return min(max(interval_ms, MIN_POLL_INTERVAL_MS), MAX_POLL_INTERVAL_MS)


def backoff_delay_ms(backoff_count: int) -> float:
    """Delay after the *backoff_count*-th consecutive failure."""
    return float(min(MAX_BACKOFF_DELAY_MS, BACKOFF_BASE_MS * 2**backoff_count))


class PollScheduler:
    """Drive poll cycles one at a time on the running event loop.

    The next cycle is armed only after the previous one (including every
    awaited call inside it) has settled, so at most one cycle is ever in
    flight. ``stop()`` cancels a pending delay but never an in-flight cycle.

    Parameters
    ----------
    cycle : callable
        Coroutine function running one poll cycle. A raised exception is
        treated like an unsuccessful outcome.
    interval_ms : float
        Base interval, clamped to ``[1000, 30000]``; up to 400 ms of jitter
        is added per cycle.
    rng : callable
        Returns a float in ``[0, 1)``; injectable for tests.
    sleep : callable
        Coroutine function sleeping for the given seconds; injectable for tests.
    """

    def __init__(
        self,
        cycle: Cycle,
        *,
        interval_ms: float = 5000,
        rng: Callable[[], float] = random.random,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        name: str = "eta-poll",
    ) -> None:
        self._cycle = cycle
        self._interval_ms = interval_ms
        self._rng = rng
        self._sleep = sleep
        self._name = name
        self._active = False
        self._backoff_count = 0
        self._task: asyncio.Task[None] | None = None
        self._sleeping_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def backoff_count(self) -> int:
        return self._backoff_count

    @property
    def interval_ms(self) -> float:
        return self._interval_ms

    @interval_ms.setter
    def interval_ms(self, value: float) -> None:
        self._interval_ms = value

    def base_delay_ms(self) -> float:
        """Clamped interval plus random jitter."""
        return clamp_interval_ms(self._interval_ms) + self._rng() * MAX_JITTER_MS

    def next_delay_ms(self, success: bool) -> float:
        """Record a cycle result and return the delay before the next cycle."""
        if success:
            self._backoff_count = 0
            return self.base_delay_ms()
        self._backoff_count = min(MAX_BACKOFF_COUNT, self._backoff_count + 1)
        return backoff_delay_ms(self._backoff_count)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Begin cycling if inactive; the first cycle runs immediately.

        Returns whether a new run was started. Must be called from within a
        running event loop.
        """
        if self._active:
            return False
        self._active = True
        previous = self._task
        self._task = asyncio.get_running_loop().create_task(self._run(previous), name=self._name)
        _logger.debug("Scheduler %s started interval_ms=%s", self._name, self._interval_ms)
        return True

    def stop(self) -> None:
        """Stop scheduling further cycles. Idempotent.

        A pending delay is cancelled; a cycle already in flight runs to
        completion.
        """
        if not self._active:
            return
        self._active = False
        sleeping = self._sleeping_task
        if sleeping is not None and not sleeping.done():
            sleeping.cancel()
        _logger.debug("Scheduler %s stopped", self._name)

    async def wait_closed(self) -> None:
        """Wait until the current run (if any) has fully exited."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task})

    def _is_current(self) -> bool:
        return self._active and self._task is asyncio.current_task()

    async def _run(self, previous: asyncio.Task[None] | None) -> None:
        if previous is not None and not previous.done():
            # A stop/start pair while a cycle was in flight: keep cycles serial.
            await asyncio.wait({previous})

        delay_ms = 0.0
        while self._is_current():
            if delay_ms > 0:
                self._sleeping_task = asyncio.current_task()
                try:
                    await self._sleep(delay_ms / 1000)
                finally:
                    self._sleeping_task = None
            if not self._is_current():
                break
            delay_ms = self.next_delay_ms(await self._run_cycle())

    async def _run_cycle(self) -> bool:
        try:
            outcome = await self._cycle()
        except Exception:
            _logger.warning("Poll cycle %s raised", self._name, exc_info=True)
            return False
        if not outcome.success:
            _logger.debug("Poll cycle %s failed: %s", self._name, outcome.error)
        return outcome.success
