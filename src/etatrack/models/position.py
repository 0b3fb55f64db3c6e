"""Position samples and published position records."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field, field_validator

from etatrack.ingestion.normalize import safe_float
from etatrack.models._base import EpochDatetime, EtaBaseModel, utcnow


class PermissionState(StrEnum):
    """Location permission as seen by a position source.

    ``PROMPT -> GRANTED | DENIED``; ``DENIED`` is terminal for the session.
    """

    PROMPT = "prompt"
    GRANTED = "granted"
    DENIED = "denied"


class PositionSample(EtaBaseModel):
    """One raw fix delivered by a position watch.

    Optional numeric fields are ``None`` when the platform did not report them.
    """

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy: float | None = None
    heading: float | None = None
    speed: float | None = None
    timestamp: EpochDatetime = Field(default_factory=utcnow)

    @field_validator("accuracy", "heading", "speed", mode="before")
    @classmethod
    def _coerce_optional(cls, value: object) -> float | None:
        return safe_float(value)


class PositionRecord(EtaBaseModel):
    """Record written to the per-session keyed position collection."""

    id: str
    name: str | None = None
    lat: float
    lng: float
    accuracy: float | None = None
    heading: float | None = None
    speed: float | None = None
    server_timestamp: EpochDatetime = Field(default_factory=utcnow)
    client_timestamp: EpochDatetime

    @classmethod
    def from_sample(cls, entity_id: str, sample: PositionSample, *, name: str | None = None) -> PositionRecord:
        return cls(
            id=entity_id,
            name=name,
            lat=sample.lat,
            lng=sample.lng,
            accuracy=sample.accuracy,
            heading=sample.heading,
            speed=sample.speed,
            client_timestamp=sample.timestamp,
        )
