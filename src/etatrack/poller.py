"""Live ETA poll cycle.

One cycle: batched estimate -> sequential fallback for unresolved entities
-> blend per entity -> smoothing store. The cycle outcome drives the
scheduler's backoff and is reported to the telemetry sink.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime

from etatrack._constants import DEFAULT_ASSUMED_SPEED_KMPH
from etatrack.estimation.batch import BatchEstimator
from etatrack.estimation.blend import blend, synthesize_eta
from etatrack.estimation.fallback import FallbackResolver
from etatrack.ingestion.normalize import round_half_up
from etatrack.models._base import utcnow
from etatrack.models.estimate import RawEstimate, SmoothedEstimate
from etatrack.models.geo import LatLng, TrackedEntity
from etatrack.models.telemetry import PollCycleOutcome, TelemetryRecord
from etatrack.scheduler import PollScheduler
from etatrack.state.store import SmoothingStore
from etatrack.telemetry import TelemetrySink

_logger = logging.getLogger(__name__)


class EtaPoller:
    """Periodically refresh the smoothed ETA of every tracked entity.

    Parameters
    ----------
    store : SmoothingStore
        Store owned by the tracking session; the only place results land.
    batch : BatchEstimator
        Issues the single batched request of each cycle.
    fallback : FallbackResolver
        Resolves distances for entities the batch call left unresolved.
    assumed_speed_kmph : float
        Speed used to synthesize a distance-based ETA for blending.
    interval_ms : float
        Base poll interval handed to the scheduler.
    apply_results_after_stop : bool
        When ``False``, a cycle that completes after ``stop()`` discards
        its results instead of writing them into the store.
    telemetry : TelemetrySink or None
        Receives one record per completed cycle.
    """

    def __init__(
        self,
        store: SmoothingStore,
        batch: BatchEstimator,
        fallback: FallbackResolver,
        *,
        assumed_speed_kmph: float = DEFAULT_ASSUMED_SPEED_KMPH,
        interval_ms: float = 5000,
        apply_results_after_stop: bool = False,
        telemetry: TelemetrySink | None = None,
        rng: Callable[[], float] = random.random,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        name: str = "eta-poll",
    ) -> None:
        self._store = store
        self._batch = batch
        self._fallback = fallback
        self._assumed_speed_kmph = assumed_speed_kmph
        self._apply_results_after_stop = apply_results_after_stop
        self._telemetry = telemetry
        self._entities: tuple[TrackedEntity, ...] = ()
        self._destination: LatLng | None = None
        self._stop_generation = 0
        self._last_poll: datetime | None = None
        self._last_outcome: PollCycleOutcome | None = None
        self._scheduler = PollScheduler(self.run_cycle, interval_ms=interval_ms, rng=rng, sleep=sleep, name=name)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    @property
    def entities(self) -> tuple[TrackedEntity, ...]:
        return self._entities

    @property
    def destination(self) -> LatLng | None:
        return self._destination

    def set_entities(self, entities: Iterable[TrackedEntity]) -> None:
        """Replace the tracked entity set; read afresh by each cycle.

        Ids are unique; a repeated id keeps its first slot and its last
        position. Emptying the set stops polling.
        """
        by_id: dict[str, TrackedEntity] = {}
        for entity in entities:
            by_id[entity.id] = entity
        self._entities = tuple(by_id.values())
        if not self._entities and self.is_active:
            _logger.debug("Entity set emptied; stopping poller")
            self.stop()

    def set_destination(self, destination: LatLng | None) -> None:
        """Replace the shared destination. Clearing it stops polling."""
        self._destination = destination
        if destination is None and self.is_active:
            _logger.debug("Destination cleared; stopping poller")
            self.stop()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def store(self) -> SmoothingStore:
        return self._store

    @property
    def scheduler(self) -> PollScheduler:
        return self._scheduler

    @property
    def is_active(self) -> bool:
        return self._scheduler.is_active

    @property
    def last_poll(self) -> datetime | None:
        """Time of the last batch call that returned."""
        return self._last_poll

    @property
    def last_outcome(self) -> PollCycleOutcome | None:
        return self._last_outcome

    def start(self) -> bool:
        """Start polling if there is at least one entity and a destination."""
        if self._destination is None or not self._entities:
            _logger.debug(
                "Poller not started: destination=%s entities=%d",
                self._destination is not None,
                len(self._entities),
            )
            return False
        return self._scheduler.start()

    def stop(self) -> None:
        """Stop polling. Idempotent; in-flight calls are not aborted."""
        if self._scheduler.is_active:
            self._stop_generation += 1
        self._scheduler.stop()

    async def wait_closed(self) -> None:
        await self._scheduler.wait_closed()

    def get_smoothed(self, entity_id: str) -> SmoothedEstimate | None:
        return self._store.get_smoothed(entity_id)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> PollCycleOutcome:
        """Run one poll cycle against the current entities and destination."""
        entities = self._entities
        destination = self._destination
        if destination is None or not entities:
            return PollCycleOutcome(success=True)

        generation = self._stop_generation
        started = time.monotonic()

        try:
            estimates = await self._batch.estimate(destination, entities)
        except Exception as exc:
            _logger.warning("Batch ETA request failed for %d entities: %s", len(entities), exc)
            _logger.debug("Batch ETA failure details", exc_info=True)
            return self._finish(
                PollCycleOutcome(
                    success=False,
                    duration_ms=_elapsed_ms(started),
                    entity_count=len(entities),
                    error=str(exc) or type(exc).__name__,
                )
            )

        self._last_poll = utcnow()
        resolved_count = sum(1 for estimate in estimates if estimate is not None)
        estimates = await self._fallback.resolve(destination, entities, estimates)

        if not self._apply_results_after_stop and generation != self._stop_generation:
            _logger.debug("Poller stopped during cycle; discarding results for %d entities", len(entities))
            return self._finish(
                PollCycleOutcome(
                    success=True,
                    duration_ms=_elapsed_ms(started),
                    entity_count=len(entities),
                    resolved_count=resolved_count,
                    discarded=True,
                )
            )

        applied = 0
        tracked = {entity.id for entity in self._entities}
        for entity, estimate in zip(entities, estimates, strict=True):
            if estimate is None:
                continue
            if entity.id not in tracked:
                _logger.debug("Entity=%s removed during cycle; result dropped", entity.id)
                continue
            synthesized = synthesize_eta(estimate.distance_meters, self._assumed_speed_kmph)
            blended = blend(estimate.eta_seconds, synthesized)
            if blended is None:
                _logger.debug("No estimate for entity=%s this cycle", entity.id)
                continue
            update = RawEstimate(eta_seconds=round_half_up(blended), distance_meters=estimate.distance_meters)
            if self._store.update_raw(entity.id, update) is not None:
                applied += 1

        return self._finish(
            PollCycleOutcome(
                success=True,
                duration_ms=_elapsed_ms(started),
                entity_count=len(entities),
                resolved_count=resolved_count,
                applied_count=applied,
            )
        )

    def _finish(self, outcome: PollCycleOutcome) -> PollCycleOutcome:
        self._last_outcome = outcome
        if self._telemetry is not None:
            try:
                self._telemetry.emit(TelemetryRecord.from_outcome(outcome))
            except Exception:
                _logger.debug("Telemetry emit failed", exc_info=True)
        return outcome


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000
