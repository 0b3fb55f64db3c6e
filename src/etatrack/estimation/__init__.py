"""Estimation layer: providers, batch and fallback estimators, blending."""

from etatrack.estimation.batch import BatchEstimator
from etatrack.estimation.blend import blend, synthesize_eta
from etatrack.estimation.fallback import FallbackResolver
from etatrack.estimation.providers import (
    EtaProvider,
    HaversineEtaProvider,
    HttpEtaProvider,
    haversine_meters,
)

__all__ = [
    "BatchEstimator",
    "EtaProvider",
    "FallbackResolver",
    "HaversineEtaProvider",
    "HttpEtaProvider",
    "blend",
    "haversine_meters",
    "synthesize_eta",
]
