"""Position sources: watch a device position and publish it for the session.

A :class:`PositionSource` consumes an async stream of
:class:`~etatrack.models.position.PositionSample` from a
:class:`PositionWatch`, keeps the latest fix locally and publishes a
throttled subset through a :class:`PositionPublisher`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol

from etatrack.exceptions import LocationPermissionError, LocationUnavailableError
from etatrack.models.geo import LatLng
from etatrack.models.position import PermissionState, PositionRecord, PositionSample

_logger = logging.getLogger(__name__)

PositionListener = Callable[[str, PositionSample], None]


class PositionWatch(Protocol):
    """Platform position capability.

    ``watch()`` yields samples until cancelled. It raises
    :class:`LocationPermissionError` when access is refused and
    :class:`LocationUnavailableError` when a fix cannot be obtained.
    """

    def watch(self) -> AsyncIterator[PositionSample]: ...


class PositionPublisher(Protocol):
    async def publish(self, session_id: str, record: PositionRecord) -> None: ...


class InMemoryPositionPublisher:
    """Keyed position collection held in memory: ``session -> entity -> record``."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, PositionRecord]] = {}

    async def publish(self, session_id: str, record: PositionRecord) -> None:
        self._records.setdefault(session_id, {})[record.id] = record

    def get(self, session_id: str, entity_id: str) -> PositionRecord | None:
        return self._records.get(session_id, {}).get(entity_id)

    def records(self, session_id: str) -> dict[str, PositionRecord]:
        return dict(self._records.get(session_id, {}))


class SimulatedPositionWatch:
    """Random-walk watch for demos and tests.

    Every *interval* seconds both coordinates move by up to
    ``step_degrees / 2`` in either direction.
    """

    def __init__(
        self,
        origin: LatLng,
        *,
        step_degrees: float = 0.0008,
        interval: float = 3.0,
        limit: int | None = None,
        rng: Callable[[], float] = random.random,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._origin = origin
        self._step_degrees = step_degrees
        self._interval = interval
        self._limit = limit
        self._rng = rng
        self._sleep = sleep

    async def watch(self) -> AsyncIterator[PositionSample]:
        lat, lng = self._origin.lat, self._origin.lng
        emitted = 0
        while self._limit is None or emitted < self._limit:
            await self._sleep(self._interval)
            lat = min(90.0, max(-90.0, lat + (self._rng() - 0.5) * self._step_degrees))
            lng = min(180.0, max(-180.0, lng + (self._rng() - 0.5) * self._step_degrees))
            emitted += 1
            yield PositionSample(lat=lat, lng=lng)


class PositionSource:
    """Track one entity's position and publish it to its session.

    Parameters
    ----------
    session_id : str
        Session the published records belong to.
    entity_id : str
        Identifier the records are keyed by.
    watch : PositionWatch
        Source of position samples.
    publisher : PositionPublisher
        Destination of throttled position records.
    name : str or None
        Display name carried on published records.
    watch_interval_ms : float
        Minimum spacing between two publishes. Samples arriving sooner only
        update :attr:`last_position`.
    retry_delay : float
        Seconds to wait before reopening the watch after a transient failure.
    """

    def __init__(
        self,
        session_id: str,
        entity_id: str,
        watch: PositionWatch,
        publisher: PositionPublisher,
        *,
        name: str | None = None,
        watch_interval_ms: float = 5000,
        retry_delay: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if not entity_id:
            raise ValueError("entity_id must be non-empty")
        self._session_id = session_id
        self._entity_id = entity_id
        self._watch = watch
        self._publisher = publisher
        self._name = name
        self._watch_interval_ms = watch_interval_ms
        self._retry_delay = retry_delay
        self._clock = clock
        self._sleep = sleep

        self._permission = PermissionState.PROMPT
        self._last_position: PositionSample | None = None
        self._last_error: Exception | None = None
        self._last_published_at: float | None = None
        self._task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._listeners: list[PositionListener] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def entity_id(self) -> str:
        return self._entity_id

    @property
    def permission(self) -> PermissionState:
        return self._permission

    @property
    def last_position(self) -> PositionSample | None:
        return self._last_position

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: PositionListener) -> Callable[[], None]:
        """Call *listener* with ``(entity_id, sample)`` for every sample."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Open the watch. No-op once permission was denied or while running."""
        if self._permission is PermissionState.DENIED:
            _logger.debug("Position permission denied for entity=%s; not starting", self._entity_id)
            return False
        if self.is_running:
            return False
        self._task = asyncio.get_running_loop().create_task(
            self._run(),
            name=f"position-{self._entity_id}",
        )
        return True

    async def stop(self) -> None:
        """Tear down the watch and wait for pending publishes. Idempotent."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        if self._pending:
            await asyncio.wait(set(self._pending))

    async def _run(self) -> None:
        while True:
            try:
                async for sample in self._watch.watch():
                    self._handle_sample(sample)
                _logger.debug("Position watch ended for entity=%s", self._entity_id)
                return
            except LocationPermissionError as exc:
                self._last_error = exc
                self._permission = PermissionState.DENIED
                _logger.warning("Position permission denied for entity=%s: %s", self._entity_id, exc)
                return
            except LocationUnavailableError as exc:
                self._last_error = exc
                _logger.debug(
                    "Position unavailable for entity=%s: %s; retrying in %ss",
                    self._entity_id,
                    exc,
                    self._retry_delay,
                )
                await self._sleep(self._retry_delay)

    def _handle_sample(self, sample: PositionSample) -> None:
        self._last_position = sample
        self._permission = PermissionState.GRANTED
        for listener in list(self._listeners):
            try:
                listener(self._entity_id, sample)
            except Exception:
                _logger.debug("Position listener failed for entity=%s", self._entity_id, exc_info=True)

        now = self._clock()
        last = self._last_published_at
        if last is not None and (now - last) * 1000 < self._watch_interval_ms:
            return
        self._last_published_at = now
        record = PositionRecord.from_sample(self._entity_id, sample, name=self._name)
        task = asyncio.get_running_loop().create_task(self._publish(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _publish(self, record: PositionRecord) -> None:
        try:
            await self._publisher.publish(self._session_id, record)
        except Exception:
            _logger.warning(
                "Failed publishing position for entity=%s; continuing with local updates",
                self._entity_id,
                exc_info=True,
            )
