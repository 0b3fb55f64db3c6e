"""Deterministic smoothing and acceptance policy.

This module intentionally contains *no* payload parsing. The ingestion
boundary is responsible for producing normalized estimates.
"""

from __future__ import annotations

from datetime import datetime

from etatrack.estimation.blend import synthesize_eta
from etatrack.ingestion.normalize import round_half_up
from etatrack.models.estimate import RawEstimate


def compose_eta(raw: RawEstimate, assumed_speed_kmph: float) -> float | None:
    """Prefer the reported travel time, else synthesize one from distance."""
    if raw.eta_seconds is not None:
        return raw.eta_seconds
    return synthesize_eta(raw.distance_meters, assumed_speed_kmph)


def smooth(previous: int, observed: float, alpha: float) -> int:
    """Exponential smoothing: ``alpha * observed + (1 - alpha) * previous``."""
    return max(0, round_half_up(alpha * observed + (1 - alpha) * previous))


def should_accept_update(*, cached_at: datetime | None, incoming_at: datetime) -> bool:
    """Reject observations older than what the store already holds.

    Equal timestamps are accepted so that several updates computed in the
    same instant still apply in call order.
    """
    if cached_at is None:
        return True
    return incoming_at >= cached_at
