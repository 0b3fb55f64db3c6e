"""Poll cycle outcomes and telemetry records."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import Field

from etatrack.models._base import EpochDatetime, EtaBaseModel, utcnow


class TelemetryEvent(StrEnum):
    POLL_SUCCESS = "poll_success"
    POLL_ERROR = "poll_error"


class PollCycleOutcome(EtaBaseModel):
    """Result of one poll cycle, consumed by the scheduler and telemetry only.

    ``applied_count`` stays ``0`` when results were discarded because the
    poller had been stopped while the cycle was in flight.
    """

    success: bool
    duration_ms: float = 0.0
    entity_count: int = 0
    resolved_count: int = 0
    applied_count: int = 0
    discarded: bool = False
    error: str | None = None


class TelemetryRecord(EtaBaseModel):
    """Fire-and-forget record describing a poll outcome."""

    event: TelemetryEvent
    participant_count: int | None = None
    duration_ms: float | None = None
    error: str | None = None
    timestamp: EpochDatetime = Field(default_factory=utcnow)

    @classmethod
    def from_outcome(cls, outcome: PollCycleOutcome, *, at: datetime | None = None) -> TelemetryRecord:
        if outcome.success:
            return cls(
                event=TelemetryEvent.POLL_SUCCESS,
                participant_count=outcome.entity_count,
                duration_ms=outcome.duration_ms,
                timestamp=at or utcnow(),
            )
        return cls(
            event=TelemetryEvent.POLL_ERROR,
            error=outcome.error,
            timestamp=at or utcnow(),
        )
