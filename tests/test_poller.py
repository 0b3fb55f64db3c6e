from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from etatrack.estimation.batch import BatchEstimator
from etatrack.estimation.fallback import FallbackResolver
from etatrack.exceptions import EtaTransportError
from etatrack.models.estimate import SmoothedEstimate
from etatrack.models.geo import LatLng, TrackedEntity
from etatrack.models.requests import BatchEtaRequest, RouteRequest
from etatrack.models.telemetry import TelemetryEvent, TelemetryRecord
from etatrack.poller import EtaPoller
from etatrack.state.store import SmoothingStore

DESTINATION = LatLng(lat=52.37, lng=4.89)
ENTITIES = [
    TrackedEntity(id="a", lat=52.30, lng=4.80),
    TrackedEntity(id="b", lat=52.31, lng=4.81),
    TrackedEntity(id="c", lat=52.32, lng=4.82),
]

# Two resolved rows agreeing with their distance at 36 km/h, third row empty.
MATRIX_TWO_OF_THREE = {
    "matrix": [
        [{"travelTimeInSeconds": 100, "lengthInMeters": 1000}],
        [{"travelTimeInSeconds": 300, "lengthInMeters": 3000}],
        [],
    ]
}


@dataclass
class FakeProvider:
    """In-memory provider recording every request it receives."""

    batch_payload: Any = None
    batch_error: Exception | None = None
    route_payloads: dict[str, Any] = field(default_factory=dict)
    route_errors: dict[str, Exception] = field(default_factory=dict)
    gate: asyncio.Event | None = None
    batch_requests: list[BatchEtaRequest] = field(default_factory=list)
    route_requests: list[RouteRequest] = field(default_factory=list)

    def _origin_id(self, request: RouteRequest) -> str:
        for entity in ENTITIES:
            if entity.position == request.origin:
                return entity.id
        raise AssertionError(f"unexpected origin {request.origin}")

    async def batch_eta(self, request: BatchEtaRequest) -> Any:
        self.batch_requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.batch_error is not None:
            raise self.batch_error
        return self.batch_payload

    async def route(self, request: RouteRequest) -> Any:
        self.route_requests.append(request)
        entity_id = self._origin_id(request)
        if entity_id in self.route_errors:
            raise self.route_errors[entity_id]
        return self.route_payloads.get(entity_id, {})


@dataclass
class RecordingSink:
    records: list[TelemetryRecord] = field(default_factory=list)

    def emit(self, record: TelemetryRecord) -> None:
        self.records.append(record)


def _make_poller(
    provider: FakeProvider,
    *,
    apply_results_after_stop: bool = False,
    sink: RecordingSink | None = None,
) -> EtaPoller:
    poller = EtaPoller(
        SmoothingStore(assumed_speed_kmph=36),
        BatchEstimator(provider),
        FallbackResolver(provider),
        assumed_speed_kmph=36,
        interval_ms=1000,
        apply_results_after_stop=apply_results_after_stop,
        telemetry=sink,
        rng=lambda: 0.0,
    )
    poller.set_destination(DESTINATION)
    poller.set_entities(ENTITIES)
    return poller


@pytest.mark.asyncio
async def test_cycle_resolves_batch_and_fallback_entities() -> None:
    provider = FakeProvider(
        batch_payload=MATRIX_TWO_OF_THREE,
        route_payloads={"c": {"routes": [{"summary": {"lengthInMeters": 2000}}]}},
    )
    sink = RecordingSink()
    poller = _make_poller(provider, sink=sink)
    updates: list[tuple[str, SmoothedEstimate]] = []
    poller.store.subscribe(lambda entity_id, estimate: updates.append((entity_id, estimate)))

    outcome = await poller.run_cycle()

    assert outcome.success is True
    assert outcome.resolved_count == 2
    assert outcome.applied_count == 3
    assert poller.get_smoothed("a").eta_seconds == 100
    assert poller.get_smoothed("b").eta_seconds == 300
    assert poller.get_smoothed("c").eta_seconds == 200
    assert poller.get_smoothed("c").distance_meters == 2000
    assert [entity_id for entity_id, _ in updates] == ["a", "b", "c"]

    assert len(provider.batch_requests) == 1
    assert [p.id for p in provider.batch_requests[0].participants] == ["a", "b", "c"]
    assert len(provider.route_requests) == 1
    assert provider.route_requests[0].origin == ENTITIES[2].position

    assert [record.event for record in sink.records] == [TelemetryEvent.POLL_SUCCESS]
    assert sink.records[0].participant_count == 3


@pytest.mark.asyncio
async def test_failed_fallback_skips_entity_without_notification() -> None:
    provider = FakeProvider(
        batch_payload=MATRIX_TWO_OF_THREE,
        route_errors={"c": EtaTransportError("HTTP 502", status_code=502)},
    )
    poller = _make_poller(provider)
    updated: list[str] = []
    poller.store.subscribe(lambda entity_id, _estimate: updated.append(entity_id))

    outcome = await poller.run_cycle()

    assert outcome.success is True
    assert outcome.applied_count == 2
    assert updated == ["a", "b"]
    assert poller.get_smoothed("c") is None


@pytest.mark.asyncio
async def test_disagreeing_sources_are_blended() -> None:
    # 50 s reported over 1000 m (100 s at 36 km/h): 0.75 * 50 + 0.25 * 100 = 62.5.
    provider = FakeProvider(batch_payload={"summaries": [{"duration": 50, "distance": 1000}]})
    poller = _make_poller(provider)
    poller.set_entities(ENTITIES[:1])

    await poller.run_cycle()

    assert poller.get_smoothed("a").eta_seconds == 63


@pytest.mark.asyncio
async def test_batch_failure_aborts_cycle_and_reports_error() -> None:
    provider = FakeProvider(batch_error=EtaTransportError("timed out"))
    sink = RecordingSink()
    poller = _make_poller(provider, sink=sink)

    outcome = await poller.run_cycle()

    assert outcome.success is False
    assert outcome.error == "timed out"
    assert provider.route_requests == []
    assert len(poller.store) == 0
    assert [record.event for record in sink.records] == [TelemetryEvent.POLL_ERROR]
    assert sink.records[0].error == "timed out"


@pytest.mark.asyncio
async def test_smoothing_across_cycles() -> None:
    provider = FakeProvider(batch_payload={"etas": {"a": {"etaSeconds": 120}}})
    poller = _make_poller(provider)
    poller.set_entities(ENTITIES[:1])

    await poller.run_cycle()
    provider.batch_payload = {"etas": {"a": {"etaSeconds": 100}}}
    await poller.run_cycle()

    assert poller.get_smoothed("a").eta_seconds == 115


@pytest.mark.asyncio
@pytest.mark.parametrize(("apply_after_stop", "expected_len"), [(False, 0), (True, 3)])
async def test_results_landing_after_stop(apply_after_stop: bool, expected_len: int) -> None:
    gate = asyncio.Event()
    provider = FakeProvider(
        batch_payload=MATRIX_TWO_OF_THREE,
        route_payloads={"c": {"summary": {"distanceMeters": 2000}}},
        gate=gate,
    )
    poller = _make_poller(provider, apply_results_after_stop=apply_after_stop)

    assert poller.start() is True
    while not provider.batch_requests:
        await asyncio.sleep(0)

    poller.stop()
    assert poller.is_active is False
    gate.set()
    await asyncio.wait_for(poller.wait_closed(), timeout=1.0)

    assert len(poller.store) == expected_len
    assert poller.last_outcome is not None
    assert poller.last_outcome.discarded is not apply_after_stop


@pytest.mark.asyncio
async def test_start_requires_entities_and_destination() -> None:
    provider = FakeProvider(batch_payload={})
    poller = EtaPoller(SmoothingStore(), BatchEstimator(provider), FallbackResolver(provider))

    assert poller.start() is False
    poller.set_entities(ENTITIES)
    assert poller.start() is False
    poller.set_destination(DESTINATION)
    assert poller.start() is True

    poller.set_entities([])
    assert poller.is_active is False
    await asyncio.wait_for(poller.wait_closed(), timeout=1.0)


@pytest.mark.asyncio
async def test_entity_removed_mid_cycle_is_not_written_back() -> None:
    gate = asyncio.Event()
    provider = FakeProvider(
        batch_payload=MATRIX_TWO_OF_THREE,
        route_payloads={"c": {"summary": {"distanceMeters": 2000}}},
        gate=gate,
    )
    poller = _make_poller(provider)

    cycle = asyncio.create_task(poller.run_cycle())
    while not provider.batch_requests:
        await asyncio.sleep(0)

    poller.set_entities(ENTITIES[:2])
    poller.store.discard("c")
    gate.set()
    outcome = await asyncio.wait_for(cycle, timeout=1.0)

    assert outcome.applied_count == 2
    assert poller.get_smoothed("c") is None
    assert sorted(poller.store) == ["a", "b"]


@pytest.mark.asyncio
async def test_duplicate_entity_ids_keep_last_position() -> None:
    provider = FakeProvider(
        batch_payload={
            "matrix": [
                [{"travelTimeInSeconds": 100, "lengthInMeters": 1000}],
                [{"travelTimeInSeconds": 300, "lengthInMeters": 3000}],
            ]
        }
    )
    poller = _make_poller(provider)
    poller.set_entities(
        [
            TrackedEntity(id="a", lat=52.30, lng=4.80),
            TrackedEntity(id="b", lat=52.31, lng=4.81),
            TrackedEntity(id="a", lat=52.33, lng=4.83),
        ]
    )

    outcome = await poller.run_cycle()

    assert [entity.id for entity in poller.entities] == ["a", "b"]
    assert poller.entities[0].lat == 52.33
    assert outcome.success is True
    assert outcome.applied_count == 2
    assert provider.batch_requests[0].participants[0].lat == 52.33
    assert poller.get_smoothed("a").eta_seconds == 100
