"""etatrack - Async live ETA estimation and tracking for shared trips."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("etatrack")
except PackageNotFoundError:
    __version__ = "0+local"
from etatrack.client import EtaClient
from etatrack.config import EtaConfig, MqttSettings
from etatrack.estimation import (
    BatchEstimator,
    EtaProvider,
    FallbackResolver,
    HaversineEtaProvider,
    HttpEtaProvider,
    blend,
    synthesize_eta,
)
from etatrack.exceptions import (
    EtaConfigError,
    EtaError,
    EtaProviderError,
    EtaPublishError,
    EtaTransportError,
    LocationError,
    LocationPermissionError,
    LocationUnavailableError,
)
from etatrack.models import (
    Destination,
    LatLng,
    PermissionState,
    PollCycleOutcome,
    PositionRecord,
    PositionSample,
    RawEstimate,
    SmoothedEstimate,
    TelemetryEvent,
    TelemetryRecord,
    TrackedEntity,
)
from etatrack.poller import EtaPoller
from etatrack.position import (
    InMemoryPositionPublisher,
    PositionPublisher,
    PositionSource,
    PositionWatch,
    SimulatedPositionWatch,
)
from etatrack.scheduler import PollScheduler
from etatrack.session import TrackingSession
from etatrack.state import SmoothingStore
from etatrack.telemetry import HttpTelemetrySink, LoggingTelemetrySink, TelemetrySink

__all__ = [
    "__version__",
    "BatchEstimator",
    "Destination",
    "EtaClient",
    "EtaConfig",
    "EtaConfigError",
    "EtaError",
    "EtaPoller",
    "EtaProvider",
    "EtaProviderError",
    "EtaPublishError",
    "EtaTransportError",
    "FallbackResolver",
    "HaversineEtaProvider",
    "HttpEtaProvider",
    "HttpTelemetrySink",
    "InMemoryPositionPublisher",
    "LatLng",
    "LocationError",
    "LocationPermissionError",
    "LocationUnavailableError",
    "LoggingTelemetrySink",
    "MqttSettings",
    "PermissionState",
    "PollCycleOutcome",
    "PollScheduler",
    "PositionPublisher",
    "PositionRecord",
    "PositionSample",
    "PositionSource",
    "PositionWatch",
    "RawEstimate",
    "SimulatedPositionWatch",
    "SmoothedEstimate",
    "SmoothingStore",
    "TelemetryEvent",
    "TelemetryRecord",
    "TelemetrySink",
    "TrackedEntity",
    "TrackingSession",
    "blend",
    "synthesize_eta",
]
