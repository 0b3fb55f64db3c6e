"""Travel-time providers.

Estimators talk to an :class:`EtaProvider`. The HTTP provider proxies the
trip service's matrix and route endpoints; the haversine provider answers
locally with great-circle distances, for offline runs and demos.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Protocol

from etatrack._constants import EARTH_RADIUS_M, HAVERSINE_SPEED_MPS
from etatrack._transport import Transport
from etatrack.config import EtaConfig
from etatrack.ingestion.normalize import round_half_up
from etatrack.models.geo import LatLng
from etatrack.models.requests import BatchEtaRequest, RouteRequest

_logger = logging.getLogger(__name__)


class EtaProvider(Protocol):
    """Structural interface of a travel-time capability.

    Both calls return the decoded response body untouched; normalization
    happens in :mod:`etatrack.ingestion`.
    """

    async def batch_eta(self, request: BatchEtaRequest) -> Any: ...

    async def route(self, request: RouteRequest) -> Any: ...


class HttpEtaProvider:
    """Provider backed by the trip service's HTTP endpoints."""

    def __init__(self, config: EtaConfig, transport: Transport) -> None:
        self._config = config
        self._transport = transport

    async def batch_eta(self, request: BatchEtaRequest) -> Any:
        return await self._transport.post_json(self._config.batch_endpoint, request.to_wire())

    async def route(self, request: RouteRequest) -> Any:
        return await self._transport.post_json(self._config.route_endpoint, request.to_wire())


def haversine_meters(a: LatLng, b: LatLng) -> float:
    """Great-circle distance between two coordinates, in meters."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


class HaversineEtaProvider:
    """Local provider: straight-line distance at a fixed speed.

    Batch responses use the id-keyed ``{"etas": {...}}`` shape and route
    responses the flattened ``{"summary": {...}}`` shape.
    """

    def __init__(self, *, speed_mps: float = HAVERSINE_SPEED_MPS) -> None:
        if speed_mps <= 0:
            raise ValueError("speed_mps must be positive")
        self._speed_mps = speed_mps

    def _figures(self, origin: LatLng, destination: LatLng) -> dict[str, int]:
        distance = round_half_up(haversine_meters(origin, destination))
        return {"etaSeconds": round_half_up(distance / self._speed_mps), "distanceMeters": distance}

    async def batch_eta(self, request: BatchEtaRequest) -> Any:
        etas = {p.id: self._figures(p.position, request.destination) for p in request.participants}
        _logger.debug("Haversine batch computed for %d participants", len(etas))
        return {"etas": etas}

    async def route(self, request: RouteRequest) -> Any:
        figures = self._figures(request.origin, request.destination)
        return {
            "ok": True,
            "summary": {
                "distanceMeters": figures["distanceMeters"],
                "travelTimeSeconds": figures["etaSeconds"],
            },
        }
