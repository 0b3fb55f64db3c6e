"""Confidence-weighted blending of ETA sources.

Pure numeric functions; no I/O.
"""

from __future__ import annotations

from etatrack._constants import (
    AGREEMENT_RATIO,
    MIN_SPEED_MPS,
    MIN_SYNTHESIZED_ETA_S,
    PRIMARY_WEIGHT,
)
from etatrack.ingestion.normalize import non_negative, round_half_up


def speed_kmph_to_mps(speed_kmph: float) -> float:
    return speed_kmph * 1000 / 3600


def synthesize_eta(distance_meters: float | None, speed_kmph: float) -> int | None:
    """ETA in seconds from a distance and an assumed speed.

    The speed is floored at 0.5 m/s and the result at 1 second.
    Returns ``None`` when no usable distance is given.
    """
    distance = non_negative(distance_meters)
    if distance is None:
        return None
    speed_mps = max(speed_kmph_to_mps(speed_kmph), MIN_SPEED_MPS)
    return max(MIN_SYNTHESIZED_ETA_S, round_half_up(distance / speed_mps))


def blend(matrix_eta: float | None, distance_eta: float | None) -> float | None:
    """Combine a batch-sourced ETA with a distance-synthesized one.

    When both are present and within 20% of each other the batch value is
    returned unchanged; otherwise the result is biased 3:1 toward the batch
    value. A single present source is returned as is. ``None`` means the
    caller must skip the entity for this cycle.

    Negative or non-finite inputs count as absent.
    """
    primary = non_negative(matrix_eta)
    secondary = non_negative(distance_eta)

    if primary is not None and secondary is not None:
        diff_ratio = abs(primary - secondary) / max(primary, secondary, 1)
        if diff_ratio < AGREEMENT_RATIO:
            return primary
        return round_half_up(PRIMARY_WEIGHT * primary + (1 - PRIMARY_WEIGHT) * secondary)
    if primary is not None:
        return primary
    if secondary is not None:
        return secondary
    return None
