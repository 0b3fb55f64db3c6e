"""Fire-and-forget telemetry sinks for poll outcomes.

Sinks never block the poll loop and never raise: records are handed off,
delivery failures are logged at DEBUG and dropped. There is no retry and
no backpressure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from etatrack._transport import Transport
from etatrack.models.telemetry import TelemetryRecord

_logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    def emit(self, record: TelemetryRecord) -> None: ...


class LoggingTelemetrySink:
    """Sink that only logs; used when no telemetry endpoint is configured."""

    def __init__(self, logger: logging.Logger | None = None, *, level: int = logging.INFO) -> None:
        self._logger = logger or _logger
        self._level = level

    def emit(self, record: TelemetryRecord) -> None:
        self._logger.log(self._level, "[ETA-TELEMETRY] %s", record.to_wire())


class HttpTelemetrySink:
    """POST each record to the telemetry endpoint on a background task."""

    def __init__(self, transport: Transport, endpoint: str) -> None:
        self._transport = transport
        self._endpoint = endpoint
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def emit(self, record: TelemetryRecord) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _logger.debug("No running loop; telemetry record dropped event=%s", record.event)
            return
        task = loop.create_task(self._send(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, record: TelemetryRecord) -> None:
        try:
            await self._transport.post_json(self._endpoint, record.to_wire())
        except Exception:
            _logger.debug("Telemetry delivery failed event=%s", record.event, exc_info=True)

    async def aclose(self) -> None:
        """Wait for in-flight deliveries to settle."""
        if self._pending:
            await asyncio.wait(set(self._pending))
