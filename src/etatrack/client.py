"""High-level async client for live ETA tracking."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

import aiohttp

from etatrack._mqtt import MqttPositionPublisher
from etatrack._transport import HttpTransport
from etatrack.config import EtaConfig
from etatrack.estimation.batch import BatchEstimator
from etatrack.estimation.fallback import FallbackResolver
from etatrack.estimation.providers import EtaProvider, HttpEtaProvider
from etatrack.exceptions import EtaError
from etatrack.models.geo import LatLng, TrackedEntity
from etatrack.models.requests import RouteOptions
from etatrack.poller import EtaPoller
from etatrack.position import InMemoryPositionPublisher, PositionPublisher
from etatrack.session import TrackingSession
from etatrack.state.store import SmoothingStore
from etatrack.telemetry import HttpTelemetrySink, LoggingTelemetrySink, TelemetrySink

_logger = logging.getLogger(__name__)


class EtaClient:
    """Async entry point owning the shared HTTP session and tracking sessions.

    Usage::

        async with EtaClient(EtaConfig.from_env()) as client:
            session = client.create_session("trip-1", destination=dest, entities=people)
            session.start()
            ...
            estimate = session.get_smoothed("alice")

    Parameters
    ----------
    config : EtaConfig
        Tracker configuration.
    session : aiohttp.ClientSession or None
        Borrowed HTTP session; one is created (and closed) when omitted.
    provider : EtaProvider or None
        Travel-time provider; defaults to :class:`HttpEtaProvider`.
    telemetry : TelemetrySink or None
        Poll telemetry sink; defaults to HTTP when ``telemetry_enabled``,
        otherwise logging only.
    publisher : PositionPublisher or None
        Position publisher; defaults to MQTT when a broker host is
        configured, otherwise an in-memory collection.
    """

    def __init__(
        self,
        config: EtaConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        provider: EtaProvider | None = None,
        telemetry: TelemetrySink | None = None,
        publisher: PositionPublisher | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: HttpTransport | None = None
        self._provider = provider
        self._telemetry = telemetry
        self._publisher = publisher
        self._mqtt: MqttPositionPublisher | None = None
        self._sessions: dict[str, TrackingSession] = {}
        self._entered = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> EtaClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = HttpTransport(self._config, self._http_session)
        if self._provider is None:
            self._provider = HttpEtaProvider(self._config, self._transport)
        if self._telemetry is None:
            if self._config.telemetry_enabled:
                self._telemetry = HttpTelemetrySink(self._transport, self._config.telemetry_endpoint)
            else:
                self._telemetry = LoggingTelemetrySink()
        if self._publisher is None:
            if self._config.mqtt.host:
                self._mqtt = MqttPositionPublisher(self._config.mqtt)
                await asyncio.get_running_loop().run_in_executor(None, self._mqtt.start)
                self._publisher = self._mqtt
            else:
                self._publisher = InMemoryPositionPublisher()
        self._entered = True
        return self

    async def __aexit__(self, *exc: Any) -> None:
        for session_id in list(self._sessions):
            await self.close_session(session_id)
        if isinstance(self._telemetry, HttpTelemetrySink):
            await self._telemetry.aclose()
        if self._mqtt is not None:
            await asyncio.get_running_loop().run_in_executor(None, self._mqtt.stop)
            self._publisher = None
            self._mqtt = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None
        self._entered = False

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @property
    def config(self) -> EtaConfig:
        return self._config

    @property
    def sessions(self) -> dict[str, TrackingSession]:
        return dict(self._sessions)

    def create_session(
        self,
        session_id: str,
        *,
        entities: Iterable[TrackedEntity] = (),
        destination: LatLng | None = None,
    ) -> TrackingSession:
        """Create an independent tracking session keyed by *session_id*."""
        if not self._entered or self._provider is None or self._publisher is None:
            raise EtaError("Client not initialized. Use 'async with EtaClient(...) as client:'")
        if session_id in self._sessions:
            raise EtaError(f"Tracking session {session_id!r} already exists")

        config = self._config
        store = SmoothingStore(alpha=config.smoothing_alpha, assumed_speed_kmph=config.assumed_speed_kmph)
        poller = EtaPoller(
            store,
            BatchEstimator(self._provider, permissive_search=config.permissive_search),
            FallbackResolver(
                self._provider,
                options=RouteOptions(travel_mode=config.travel_mode, route_type=config.route_type),
            ),
            assumed_speed_kmph=config.assumed_speed_kmph,
            interval_ms=config.poll_interval_ms,
            apply_results_after_stop=config.apply_results_after_stop,
            telemetry=self._telemetry,
            name=f"eta-poll-{session_id}",
        )
        session = TrackingSession(
            session_id,
            poller,
            self._publisher,
            watch_interval_ms=config.watch_interval_ms,
        )
        session.set_entities(entities)
        session.set_destination(destination)
        self._sessions[session_id] = session
        _logger.debug("Tracking session %s created entities=%d", session_id, len(poller.entities))
        return session

    def get_session(self, session_id: str) -> TrackingSession | None:
        return self._sessions.get(session_id)

    async def close_session(self, session_id: str) -> bool:
        """Stop and forget a session. Returns whether it existed."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.aclose()
        return True
