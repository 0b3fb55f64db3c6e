"""Batched travel-time estimation."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from etatrack.estimation.providers import EtaProvider
from etatrack.ingestion.matrix import (
    DEFAULT_STRATEGIES,
    STRICT_STRATEGIES,
    ParseStrategy,
    normalize_batch_response,
)
from etatrack.models.estimate import RawEstimate
from etatrack.models.geo import LatLng, TrackedEntity
from etatrack.models.requests import BatchEtaRequest

_logger = logging.getLogger(__name__)


class BatchEstimator:
    """Issue one batched request for all entities against a shared destination.

    Parameters
    ----------
    provider : EtaProvider
        Travel-time capability.
    permissive_search : bool
        Keep the recursive search as a last-resort parse strategy.
    """

    def __init__(self, provider: EtaProvider, *, permissive_search: bool = True) -> None:
        self._provider = provider
        self._strategies: tuple[ParseStrategy, ...] = DEFAULT_STRATEGIES if permissive_search else STRICT_STRATEGIES

    async def estimate(
        self,
        destination: LatLng,
        entities: Sequence[TrackedEntity],
    ) -> list[RawEstimate | None]:
        """Return one slot per entity, in input order.

        Provider errors propagate: a failed batch call fails the whole cycle.
        Malformed responses do not; they yield ``None`` slots.
        """
        if not entities:
            return []
        request = BatchEtaRequest(destination=destination, participants=tuple(entities))
        payload = await self._provider.batch_eta(request)
        slots = normalize_batch_response(
            payload,
            [entity.id for entity in entities],
            strategies=self._strategies,
        )
        _logger.debug(
            "Batch estimate resolved %d/%d entities",
            sum(1 for slot in slots if slot is not None),
            len(slots),
        )
        return slots
