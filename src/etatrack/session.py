"""Tracking session: one destination, its entities and their estimates."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from etatrack.exceptions import EtaError
from etatrack.models.estimate import SmoothedEstimate
from etatrack.models.geo import LatLng, TrackedEntity
from etatrack.models.position import PositionSample
from etatrack.poller import EtaPoller
from etatrack.position import PositionPublisher, PositionSource, PositionWatch
from etatrack.state.store import EstimateListener, SmoothingStore

_logger = logging.getLogger(__name__)


class TrackingSession:
    """Bundle the store, poller and position sources of one session.

    Sessions are independent of each other: each owns its own
    :class:`SmoothingStore` and poll loop. Position samples from attached
    sources update the entity set the poller reads on its next cycle.
    """

    def __init__(
        self,
        session_id: str,
        poller: EtaPoller,
        publisher: PositionPublisher,
        *,
        watch_interval_ms: float = 5000,
    ) -> None:
        if not session_id:
            raise ValueError("session_id must be non-empty")
        self._session_id = session_id
        self._poller = poller
        self._publisher = publisher
        self._watch_interval_ms = watch_interval_ms
        self._sources: dict[str, PositionSource] = {}
        self._unsubscribers: list[Callable[[], None]] = []
        self._started = False
        self._closed = False

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def store(self) -> SmoothingStore:
        return self._poller.store

    @property
    def poller(self) -> EtaPoller:
        return self._poller

    @property
    def sources(self) -> dict[str, PositionSource]:
        return dict(self._sources)

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def set_destination(self, destination: LatLng | None) -> None:
        self._poller.set_destination(destination)
        self._maybe_start_poller()

    def set_entities(self, entities: Iterable[TrackedEntity]) -> None:
        self._poller.set_entities(entities)
        self._maybe_start_poller()

    def update_entity_position(self, entity_id: str, lat: float, lng: float) -> None:
        """Move (or add) one entity in the set the next cycle polls for."""
        moved = TrackedEntity(id=entity_id, lat=lat, lng=lng)
        entities = [moved if entity.id == entity_id else entity for entity in self._poller.entities]
        if not any(entity.id == entity_id for entity in self._poller.entities):
            entities.append(moved)
        self.set_entities(entities)

    def remove_entity(self, entity_id: str) -> None:
        """Stop tracking *entity_id* and forget its estimate."""
        self.set_entities(entity for entity in self._poller.entities if entity.id != entity_id)
        self.store.discard(entity_id)

    # ------------------------------------------------------------------
    # Position sources
    # ------------------------------------------------------------------

    def add_position_source(
        self,
        entity_id: str,
        watch: PositionWatch,
        *,
        name: str | None = None,
        retry_delay: float = 1.0,
    ) -> PositionSource:
        """Attach a watch for *entity_id*; started now if the session runs."""
        self._require_open()
        if entity_id in self._sources:
            raise EtaError(f"Position source already attached for entity {entity_id!r}")
        source = PositionSource(
            self._session_id,
            entity_id,
            watch,
            self._publisher,
            name=name,
            watch_interval_ms=self._watch_interval_ms,
            retry_delay=retry_delay,
        )
        self._unsubscribers.append(source.subscribe(self._on_sample))
        self._sources[entity_id] = source
        if self._started:
            source.start()
        return source

    def _on_sample(self, entity_id: str, sample: PositionSample) -> None:
        self.update_entity_position(entity_id, sample.lat, sample.lng)

    # ------------------------------------------------------------------
    # Estimates
    # ------------------------------------------------------------------

    def get_smoothed(self, entity_id: str) -> SmoothedEstimate | None:
        return self.store.get_smoothed(entity_id)

    def subscribe(self, listener: EstimateListener) -> Callable[[], None]:
        return self.store.subscribe(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Start position sources and, once inputs allow it, polling.

        Returns whether the poller is running after the call.
        """
        self._require_open()
        self._started = True
        for source in self._sources.values():
            source.start()
        self._maybe_start_poller()
        return self._poller.is_active

    def stop(self) -> None:
        """Stop polling. Attached position sources keep running until ``aclose``."""
        self._started = False
        self._poller.stop()

    async def aclose(self) -> None:
        """Stop everything and wait for in-flight work to settle. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        for source in self._sources.values():
            await source.stop()
        await self._poller.wait_closed()
        _logger.debug("Tracking session %s closed", self._session_id)

    def _maybe_start_poller(self) -> None:
        if self._started and not self._closed and not self._poller.is_active:
            self._poller.start()

    def _require_open(self) -> None:
        if self._closed:
            raise EtaError(f"Tracking session {self._session_id!r} is closed")
