"""Pydantic request models for provider calls.

These models provide a consistent "validate → normalize → execute" flow.
They are used internally by the estimators and the HTTP provider.
"""

from __future__ import annotations

from pydantic import Field, model_validator

from etatrack.models._base import EtaBaseModel
from etatrack.models.geo import LatLng, TrackedEntity


class BatchEtaRequest(EtaBaseModel):
    """Many origins against one shared destination."""

    destination: LatLng
    participants: tuple[TrackedEntity, ...] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _unique_ids(self) -> BatchEtaRequest:
        ids = [p.id for p in self.participants]
        if len(set(ids)) != len(ids):
            raise ValueError("participant ids must be unique")
        return self


class RouteOptions(EtaBaseModel):
    travel_mode: str = "car"
    route_type: str = "fastest"


class RouteRequest(EtaBaseModel):
    """One origin against the shared destination."""

    origin: LatLng
    destination: LatLng
    options: RouteOptions = Field(default_factory=RouteOptions)
