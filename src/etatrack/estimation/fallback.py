"""Per-entity distance fallback for slots the batch call left unresolved."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from etatrack.estimation.providers import EtaProvider
from etatrack.ingestion.route import extract_route_distance
from etatrack.models.estimate import RawEstimate
from etatrack.models.geo import LatLng, TrackedEntity
from etatrack.models.requests import RouteOptions, RouteRequest

_logger = logging.getLogger(__name__)


class FallbackResolver:
    """Resolve missing slots with one single-route request each.

    Requests are issued sequentially, never concurrently, to bound the load
    on the external service. Only the distance is taken from the response;
    travel time is left unset and synthesized downstream.
    """

    def __init__(self, provider: EtaProvider, *, options: RouteOptions | None = None) -> None:
        self._provider = provider
        self._options = options or RouteOptions()

    async def resolve_one(self, destination: LatLng, entity: TrackedEntity) -> RawEstimate:
        """Fetch the route distance for one entity.

        Never raises: a failed call yields an empty estimate.
        """
        request = RouteRequest(origin=entity.position, destination=destination, options=self._options)
        try:
            payload = await self._provider.route(request)
        except Exception:
            _logger.debug("Route fallback failed for entity=%s", entity.id, exc_info=True)
            return RawEstimate()
        return RawEstimate(distance_meters=extract_route_distance(payload))

    async def resolve(
        self,
        destination: LatLng,
        entities: Sequence[TrackedEntity],
        estimates: Sequence[RawEstimate | None],
    ) -> list[RawEstimate | None]:
        """Fill every ``None`` slot of *estimates*, returning a new list.

        Resolved slots are kept unchanged. Slots whose fallback failed hold
        an empty :class:`RawEstimate` rather than ``None``.
        """
        if len(estimates) != len(entities):
            raise ValueError("estimates must have one slot per entity")

        resolved: list[RawEstimate | None] = list(estimates)
        missing = [index for index, slot in enumerate(resolved) if slot is None]
        recovered = 0
        for index in missing:
            estimate = await self.resolve_one(destination, entities[index])
            resolved[index] = estimate
            if estimate.distance_meters is not None:
                recovered += 1
        if missing:
            _logger.debug("Fallback resolved distances for %d/%d missing entities", recovered, len(missing))
        return resolved
