"""Per-session in-memory store of smoothed estimates.

This is the only component allowed to mutate smoothed estimates, and the
sole read path for consumers.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterator
from datetime import datetime

from etatrack._constants import DEFAULT_ASSUMED_SPEED_KMPH, DEFAULT_SMOOTHING_ALPHA
from etatrack.ingestion.normalize import round_half_up
from etatrack.models._base import utcnow
from etatrack.models.estimate import RawEstimate, SmoothedEstimate
from etatrack.state.policy import compose_eta, should_accept_update, smooth

_logger = logging.getLogger(__name__)

EstimateListener = Callable[[str, SmoothedEstimate | None], None]


class SmoothingStore:
    """Holds one smoothed estimate per entity id.

    Instances are owned by a tracking session and passed by reference to
    every consumer of that session; there is no process-wide store.

    Parameters
    ----------
    alpha : float
        Weight of the newest observation, ``(0, 1]``.
    assumed_speed_kmph : float
        Speed used when an update carries only a distance.
    clock : callable
        Returns the current tz-aware time; injectable for tests.
    """

    def __init__(
        self,
        *,
        alpha: float = DEFAULT_SMOOTHING_ALPHA,
        assumed_speed_kmph: float = DEFAULT_ASSUMED_SPEED_KMPH,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not 0 < alpha <= 1:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self._alpha = alpha
        self._assumed_speed_kmph = assumed_speed_kmph
        self._clock = clock
        self._estimates: dict[str, SmoothedEstimate] = {}
        self._listeners: list[EstimateListener] = []

    @property
    def alpha(self) -> float:
        return self._alpha

    def update_raw(
        self,
        entity_id: str,
        raw: RawEstimate,
        *,
        observed_at: datetime | None = None,
    ) -> SmoothedEstimate | None:
        """Fold a raw observation into the entity's smoothed estimate.

        Returns the new snapshot, or ``None`` when the update was dropped
        (empty id, nothing to compose an ETA from, or an observation older
        than the stored one). Dropped updates do not notify listeners.
        """
        if not entity_id:
            return None
        composed = compose_eta(raw, self._assumed_speed_kmph)
        if composed is None:
            _logger.debug("No ETA composable for entity=%s; update dropped", entity_id)
            return None

        previous = self._estimates.get(entity_id)
        if observed_at is not None and not should_accept_update(
            cached_at=previous.last_updated if previous is not None else None,
            incoming_at=observed_at,
        ):
            _logger.debug("Stale update for entity=%s observed_at=%s ignored", entity_id, observed_at)
            return None
        now = observed_at or self._clock()

        if previous is None:
            estimate = SmoothedEstimate(
                eta_seconds=max(0, round_half_up(composed)),
                distance_meters=raw.distance_meters,
                last_updated=now,
            )
        else:
            distance = raw.distance_meters if raw.distance_meters is not None else previous.distance_meters
            estimate = SmoothedEstimate(
                eta_seconds=smooth(previous.eta_seconds, composed, self._alpha),
                distance_meters=distance,
                last_updated=now,
            )

        self._estimates[entity_id] = estimate
        self._notify(entity_id, estimate)
        return estimate

    def get_smoothed(self, entity_id: str) -> SmoothedEstimate | None:
        """Read-only snapshot for *entity_id*, or ``None`` if never observed."""
        return self._estimates.get(entity_id)

    def snapshot(self) -> dict[str, SmoothedEstimate]:
        """All current estimates keyed by entity id."""
        return dict(self._estimates)

    def discard(self, entity_id: str) -> bool:
        """Forget one entity. Returns whether it was present.

        Listeners are told with a ``None`` estimate.
        """
        if self._estimates.pop(entity_id, None) is None:
            return False
        self._notify(entity_id, None)
        return True

    def reset(self) -> None:
        """Forget every entity, notifying listeners once per cleared id."""
        cleared = list(self._estimates)
        self._estimates.clear()
        for entity_id in cleared:
            self._notify(entity_id, None)

    def subscribe(self, listener: EstimateListener) -> Callable[[], None]:
        """Register *listener* for every successful update.

        Listeners are called synchronously with ``(entity_id, estimate)``
        regardless of which entity changed; ``estimate`` is ``None`` when the
        entity was discarded or the store reset. Returns an unsubscribe callable.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, entity_id: str, estimate: SmoothedEstimate | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(entity_id, estimate)
            except Exception:
                _logger.debug("Estimate listener failed for entity=%s", entity_id, exc_info=True)

    def __len__(self) -> int:
        return len(self._estimates)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._estimates

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._estimates))
