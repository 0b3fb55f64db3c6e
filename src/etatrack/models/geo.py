"""Coordinates and tracked entities."""

from __future__ import annotations

from pydantic import Field, field_validator

from etatrack.models._base import EtaBaseModel


class LatLng(EtaBaseModel):
    """A WGS84 coordinate. Also used as the shared destination of a cycle."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


Destination = LatLng


class TrackedEntity(LatLng):
    """Current known position of one participant.

    Supplied by the owner every cycle; the tracker never mutates it.
    """

    id: str

    @field_validator("id")
    @classmethod
    def _id_non_empty(cls, value: str) -> str:
        entity_id = value.strip()
        if not entity_id:
            raise ValueError("id must be non-empty")
        return entity_id

    @property
    def position(self) -> LatLng:
        return LatLng(lat=self.lat, lng=self.lng)
