"""Batch travel-time response normalization.

Providers do not agree on a response shape, so a batched response is run
through an ordered list of named strategies. Each strategy either declines
(returns ``None``) or produces one slot per requested entity, in request
order, holding a :class:`RawEstimate` or ``None`` for entities the provider
could not resolve.

Normalization never raises: a response no strategy understands is logged
as unparseable and yields all-``None`` slots.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from etatrack._redact import redact_for_log
from etatrack.ingestion.normalize import first_number, is_number, unwrap_data
from etatrack.models.estimate import RawEstimate

_logger = logging.getLogger(__name__)

Slots = list[RawEstimate | None]

_ETA_KEYS = ("travelTimeInSeconds", "time", "durationInSeconds", "duration", "etaSeconds")
_DISTANCE_KEYS = ("distanceInMeters", "distance", "lengthInMeters", "distanceMeters")


@dataclass(frozen=True)
class ParseStrategy:
    """A named parser for one known response shape."""

    name: str
    parse: Callable[[Any, Sequence[str]], Slots | None]


def _estimate_from_cell(cell: Any) -> RawEstimate | None:
    if not isinstance(cell, Mapping) or not cell:
        return None
    # TomTom matrix cells nest the figures under response.routeSummary.
    response = cell.get("response")
    if isinstance(response, Mapping):
        summary = response.get("routeSummary")
        if isinstance(summary, Mapping):
            cell = summary
    estimate = RawEstimate(
        eta_seconds=first_number(cell, *_ETA_KEYS),
        distance_meters=first_number(cell, *_DISTANCE_KEYS),
    )
    return None if estimate.is_empty else estimate


def _parse_matrix_rows(data: Any, entity_ids: Sequence[str]) -> Slots | None:
    """``{"matrix": [[cell, ...], ...]}``: one row per origin, first cell per row."""
    if not isinstance(data, Mapping):
        return None
    rows = data.get("matrix")
    if not isinstance(rows, list):
        return None
    slots: Slots = []
    for row in rows:
        if isinstance(row, list):
            cell = row[0] if row else None
        else:
            cell = row
        slots.append(_estimate_from_cell(cell))
    return slots


def _parse_flat_summaries(data: Any, entity_ids: Sequence[str]) -> Slots | None:
    """``{"summaries": [summary, ...]}``: one summary per origin."""
    if not isinstance(data, Mapping):
        return None
    summaries = data.get("summaries")
    if not isinstance(summaries, list):
        return None
    return [_estimate_from_cell(summary) for summary in summaries]


def _parse_keyed_etas(data: Any, entity_ids: Sequence[str]) -> Slots | None:
    """``{"etas": {"<id>": {"etaSeconds": .., "distanceMeters": ..}}}``."""
    if not isinstance(data, Mapping):
        return None
    etas = data.get("etas")
    if not isinstance(etas, Mapping):
        return None
    return [_estimate_from_cell(etas.get(entity_id)) for entity_id in entity_ids]


def _parse_recursive_search(data: Any, entity_ids: Sequence[str]) -> Slots | None:
    """Last resort: depth-first walk assigning travel-time-like objects to slots.

    Any object exposing a numeric ``travelTimeInSeconds`` or
    ``distanceInMeters`` fills the first unfilled slot, in traversal order.
    Matched objects are not descended into.
    """
    slots: Slots = [None] * len(entity_ids)
    found = 0

    def walk(node: Any) -> None:
        nonlocal found
        if found >= len(slots):
            return
        if isinstance(node, Mapping):
            if is_number(node.get("travelTimeInSeconds")) or is_number(node.get("distanceInMeters")):
                estimate = RawEstimate(
                    eta_seconds=node.get("travelTimeInSeconds"),
                    distance_meters=node.get("distanceInMeters"),
                )
                slots[found] = None if estimate.is_empty else estimate
                found += 1
                return
            for value in node.values():
                walk(value)
        elif isinstance(node, list):
            for item in node:
                walk(item)

    walk(data)
    if found == 0:
        return None
    return slots


MATRIX_ROWS = ParseStrategy("matrix_rows", _parse_matrix_rows)
FLAT_SUMMARIES = ParseStrategy("flat_summaries", _parse_flat_summaries)
KEYED_ETAS = ParseStrategy("keyed_etas", _parse_keyed_etas)
RECURSIVE_SEARCH = ParseStrategy("recursive_search", _parse_recursive_search)

STRICT_STRATEGIES: tuple[ParseStrategy, ...] = (MATRIX_ROWS, FLAT_SUMMARIES, KEYED_ETAS)
DEFAULT_STRATEGIES: tuple[ParseStrategy, ...] = (*STRICT_STRATEGIES, RECURSIVE_SEARCH)


def _fit(slots: Slots, expected: int) -> Slots:
    if len(slots) >= expected:
        return slots[:expected]
    return slots + [None] * (expected - len(slots))


def normalize_batch_response(
    payload: Any,
    entity_ids: Sequence[str],
    *,
    strategies: Sequence[ParseStrategy] = DEFAULT_STRATEGIES,
) -> Slots:
    """Normalize a batched response into one slot per entity, in input order.

    Parameters
    ----------
    payload
        Decoded JSON body from the provider. A ``{"data": ...}`` envelope is
        unwrapped first.
    entity_ids
        Ids of the requested entities, in request order.
    strategies
        Parse strategies to try, highest priority first.

    Returns
    -------
    list
        Exactly ``len(entity_ids)`` entries, ``None`` where unresolved.
    """
    expected = len(entity_ids)
    if expected == 0:
        return []
    data = unwrap_data(payload)
    if data is None:
        return [None] * expected

    for strategy in strategies:
        try:
            slots = strategy.parse(data, entity_ids)
        except Exception:
            _logger.debug("Strategy %s failed on batch response", strategy.name, exc_info=True)
            continue
        if slots is None:
            continue
        fitted = _fit(slots, expected)
        _logger.debug(
            "Batch response parsed by %s: %d/%d resolved",
            strategy.name,
            sum(1 for slot in fitted if slot is not None),
            expected,
        )
        return fitted

    _logger.debug("Unparseable batch response: %s", redact_for_log(data, max_string=200))
    return [None] * expected
