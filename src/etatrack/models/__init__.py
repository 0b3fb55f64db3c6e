"""Data models for etatrack."""

from etatrack.models._base import EpochDatetime, EtaBaseModel, parse_epoch
from etatrack.models.estimate import RawEstimate, SmoothedEstimate
from etatrack.models.geo import Destination, LatLng, TrackedEntity
from etatrack.models.position import PermissionState, PositionRecord, PositionSample
from etatrack.models.requests import BatchEtaRequest, RouteOptions, RouteRequest
from etatrack.models.telemetry import PollCycleOutcome, TelemetryEvent, TelemetryRecord

__all__ = [
    "BatchEtaRequest",
    "Destination",
    "EpochDatetime",
    "EtaBaseModel",
    "LatLng",
    "PermissionState",
    "PollCycleOutcome",
    "PositionRecord",
    "PositionSample",
    "RawEstimate",
    "RouteOptions",
    "RouteRequest",
    "SmoothedEstimate",
    "TelemetryEvent",
    "TelemetryRecord",
    "TrackedEntity",
    "parse_epoch",
]
