"""Raw and smoothed travel-time estimates."""

from __future__ import annotations

from pydantic import Field, field_validator

from etatrack.ingestion.normalize import non_negative
from etatrack.models._base import EpochDatetime, EtaBaseModel


class RawEstimate(EtaBaseModel):
    """A possibly-partial estimate for one entity.

    Produced by the batch estimator or the fallback resolver. Either field
    may be absent; values that are negative or non-finite are dropped.

    Parameters
    ----------
    eta_seconds : float or None
        Travel time reported by the provider.
    distance_meters : float or None
        Route distance reported by the provider.
    """

    eta_seconds: float | None = None
    distance_meters: float | None = None

    @field_validator("eta_seconds", "distance_meters", mode="before")
    @classmethod
    def _coerce_non_negative(cls, value: object) -> float | None:
        return non_negative(value)

    @property
    def is_empty(self) -> bool:
        return self.eta_seconds is None and self.distance_meters is None


class SmoothedEstimate(EtaBaseModel):
    """Jitter-free ETA shown to consumers."""

    eta_seconds: int = Field(..., ge=0)
    distance_meters: float | None = None
    last_updated: EpochDatetime
