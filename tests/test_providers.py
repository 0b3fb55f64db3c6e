from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest

from etatrack.config import EtaConfig
from etatrack.estimation.batch import BatchEstimator
from etatrack.estimation.fallback import FallbackResolver
from etatrack.estimation.providers import HaversineEtaProvider, HttpEtaProvider, haversine_meters
from etatrack.models.estimate import RawEstimate
from etatrack.models.geo import LatLng, TrackedEntity
from etatrack.models.requests import BatchEtaRequest, RouteOptions, RouteRequest

DESTINATION = LatLng(lat=0.0, lng=0.0)


@dataclass
class FakeTransport:
    reply: Any = None
    posts: list[tuple[str, Mapping[str, Any]]] = field(default_factory=list)

    async def post_json(self, endpoint: str, payload: Mapping[str, Any]) -> Any:
        self.posts.append((endpoint, payload))
        return self.reply


def test_haversine_one_degree_of_latitude() -> None:
    assert haversine_meters(LatLng(lat=0, lng=0), LatLng(lat=1, lng=0)) == pytest.approx(111_195, rel=1e-3)
    assert haversine_meters(DESTINATION, DESTINATION) == 0


@pytest.mark.asyncio
async def test_haversine_provider_feeds_batch_estimator() -> None:
    provider = HaversineEtaProvider(speed_mps=10)
    entities = [TrackedEntity(id="a", lat=0.01, lng=0), TrackedEntity(id="b", lat=0, lng=0)]

    estimates = await BatchEstimator(provider).estimate(DESTINATION, entities)

    first, second = estimates
    assert first is not None and second is not None
    assert first.distance_meters == pytest.approx(1112, abs=1)
    assert first.eta_seconds == pytest.approx(111, abs=1)
    assert second == RawEstimate(eta_seconds=0, distance_meters=0)


@pytest.mark.asyncio
async def test_haversine_route_feeds_fallback_resolver() -> None:
    provider = HaversineEtaProvider()
    entity = TrackedEntity(id="a", lat=0.01, lng=0)

    estimate = await FallbackResolver(provider).resolve_one(DESTINATION, entity)

    assert estimate.eta_seconds is None
    assert estimate.distance_meters == pytest.approx(1112, abs=1)


@pytest.mark.asyncio
async def test_http_provider_posts_wire_payloads() -> None:
    transport = FakeTransport(reply={"ok": True})
    provider = HttpEtaProvider(EtaConfig(), transport)
    origin = TrackedEntity(id="a", lat=1.5, lng=2.5)

    await provider.batch_eta(BatchEtaRequest(destination=DESTINATION, participants=(origin,)))
    await provider.route(
        RouteRequest(
            origin=origin.position,
            destination=DESTINATION,
            options=RouteOptions(travel_mode="bicycle"),
        )
    )

    (batch_endpoint, batch_body), (route_endpoint, route_body) = transport.posts
    assert batch_endpoint == "/api/matrix-eta"
    assert batch_body == {
        "destination": {"lat": 0.0, "lng": 0.0},
        "participants": [{"id": "a", "lat": 1.5, "lng": 2.5}],
    }
    assert route_endpoint == "/api/route"
    assert route_body["options"] == {"travelMode": "bicycle", "routeType": "fastest"}
    assert route_body["origin"] == {"lat": 1.5, "lng": 2.5}


@pytest.mark.asyncio
async def test_fallback_rejects_mismatched_slots() -> None:
    resolver = FallbackResolver(HaversineEtaProvider())

    with pytest.raises(ValueError):
        await resolver.resolve(DESTINATION, [TrackedEntity(id="a", lat=0, lng=0)], [])


def test_batch_request_rejects_duplicate_ids() -> None:
    entity = TrackedEntity(id="a", lat=0, lng=0)

    with pytest.raises(ValueError):
        BatchEtaRequest(destination=DESTINATION, participants=(entity, entity))
