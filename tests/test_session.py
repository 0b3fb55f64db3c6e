from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest

from etatrack.client import EtaClient
from etatrack.config import EtaConfig, MqttSettings
from etatrack.estimation.providers import HaversineEtaProvider
from etatrack.exceptions import EtaError
from etatrack.models.geo import LatLng, TrackedEntity
from etatrack.models.position import PositionRecord
from etatrack.models.telemetry import TelemetryEvent, TelemetryRecord
from etatrack.position import InMemoryPositionPublisher, SimulatedPositionWatch
from etatrack.session import TrackingSession

DESTINATION = LatLng(lat=52.3702, lng=4.8952)


@dataclass
class RecordingSink:
    records: list[TelemetryRecord] = field(default_factory=list)

    def emit(self, record: TelemetryRecord) -> None:
        self.records.append(record)


async def _no_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


async def _until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async def _wait() -> None:
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(_wait(), timeout=timeout)


def _client(sink: RecordingSink, publisher: InMemoryPositionPublisher | None = None) -> EtaClient:
    return EtaClient(
        EtaConfig(poll_interval_ms=30000, telemetry_enabled=False),
        provider=HaversineEtaProvider(),
        telemetry=sink,
        publisher=publisher or InMemoryPositionPublisher(),
    )


@pytest.mark.asyncio
async def test_session_polls_entities_into_its_store() -> None:
    sink = RecordingSink()
    async with _client(sink) as client:
        session = client.create_session(
            "trip-1",
            entities=[
                TrackedEntity(id="alice", lat=52.36, lng=4.88),
                TrackedEntity(id="bob", lat=52.35, lng=4.90),
            ],
            destination=DESTINATION,
        )
        updated: list[str] = []
        session.subscribe(lambda entity_id, _estimate: updated.append(entity_id))

        assert session.start() is True
        await _until(lambda: len(session.store) == 2)

        assert session.get_smoothed("alice") is not None
        assert session.get_smoothed("bob").eta_seconds > 0
        assert sorted(updated) == ["alice", "bob"]
        assert client.get_session("trip-1") is session

    assert session.is_closed
    assert client.sessions == {}
    assert sink.records[0].event is TelemetryEvent.POLL_SUCCESS


@pytest.mark.asyncio
async def test_sessions_do_not_share_state() -> None:
    async with _client(RecordingSink()) as client:
        first = client.create_session(
            "trip-1",
            entities=[TrackedEntity(id="alice", lat=52.36, lng=4.88)],
            destination=DESTINATION,
        )
        second = client.create_session("trip-2", destination=DESTINATION)

        first.start()
        await _until(lambda: "alice" in first.store)

        assert second.get_smoothed("alice") is None
        assert second.start() is False

        with pytest.raises(EtaError):
            client.create_session("trip-1")

        assert await client.close_session("trip-1") is True
        assert await client.close_session("trip-1") is False


@pytest.mark.asyncio
async def test_position_source_feeds_poller_and_publisher() -> None:
    publisher = InMemoryPositionPublisher()
    async with _client(RecordingSink(), publisher) as client:
        session = client.create_session("trip-1", destination=DESTINATION)
        assert session.start() is False

        session.add_position_source(
            "carol",
            SimulatedPositionWatch(LatLng(lat=52.36, lng=4.88), limit=1, sleep=_no_sleep),
            name="Carol",
        )
        await _until(lambda: "carol" in session.store)
        await _until(lambda: publisher.get("trip-1", "carol") is not None)

        assert session.poller.is_active is True
        assert [entity.id for entity in session.poller.entities] == ["carol"]
        record = publisher.get("trip-1", "carol")
        assert record is not None
        assert record.name == "Carol"

        with pytest.raises(EtaError):
            session.add_position_source("carol", SimulatedPositionWatch(DESTINATION))


@pytest.mark.asyncio
async def test_remove_entity_forgets_estimate() -> None:
    async with _client(RecordingSink()) as client:
        session = client.create_session(
            "trip-1",
            entities=[TrackedEntity(id="alice", lat=52.36, lng=4.88)],
            destination=DESTINATION,
        )
        session.start()
        await _until(lambda: "alice" in session.store)

        session.remove_entity("alice")

        assert session.get_smoothed("alice") is None
        assert session.poller.is_active is False


@pytest.mark.asyncio
async def test_create_session_requires_entered_client() -> None:
    client = _client(RecordingSink())

    with pytest.raises(EtaError, match="not initialized"):
        client.create_session("trip-1")


@pytest.mark.asyncio
async def test_closed_session_rejects_restart() -> None:
    async with _client(RecordingSink()) as client:
        session: TrackingSession = client.create_session("trip-1", destination=DESTINATION)
        await session.aclose()
        await session.aclose()

        with pytest.raises(EtaError, match="closed"):
            session.start()


@dataclass
class ThreadRecordingMqtt:
    settings: MqttSettings
    threads: dict[str, int] = field(default_factory=dict)

    def start(self) -> None:
        self.threads["start"] = threading.get_ident()

    def stop(self) -> None:
        self.threads["stop"] = threading.get_ident()

    async def publish(self, session_id: str, record: PositionRecord) -> None:
        return None


@pytest.mark.asyncio
async def test_mqtt_connect_and_disconnect_run_off_the_event_loop(monkeypatch: pytest.MonkeyPatch) -> None:
    created: list[ThreadRecordingMqtt] = []

    def _factory(settings: MqttSettings) -> ThreadRecordingMqtt:
        publisher = ThreadRecordingMqtt(settings)
        created.append(publisher)
        return publisher

    monkeypatch.setattr("etatrack.client.MqttPositionPublisher", _factory)
    loop_thread = threading.get_ident()

    async with EtaClient(
        EtaConfig(telemetry_enabled=False, mqtt=MqttSettings(host="broker.local")),
        provider=HaversineEtaProvider(),
        telemetry=RecordingSink(),
    ):
        assert created[0].threads["start"] != loop_thread

    assert created[0].threads["stop"] != loop_thread
