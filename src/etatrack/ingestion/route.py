"""Single-route response normalization.

Only the route distance is extracted; the fallback path always synthesizes
travel time from distance downstream.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from etatrack.ingestion.normalize import first_number, is_number, non_negative, unwrap_data

_logger = logging.getLogger(__name__)


def _first_route(data: Mapping[str, Any]) -> Mapping[str, Any] | None:
    routes = data.get("routes")
    if isinstance(routes, list) and routes and isinstance(routes[0], Mapping):
        return routes[0]
    return None


def _search_distance(node: Any, _depth: int = 0) -> float | None:
    if _depth > 20:
        return None
    if isinstance(node, Mapping):
        value = node.get("distanceInMeters")
        if is_number(value):
            found = non_negative(value)
            if found is not None:
                return found
        children = node.values()
    elif isinstance(node, list):
        children = node
    else:
        return None
    for child in children:
        found = _search_distance(child, _depth + 1)
        if found is not None:
            return found
    return None


def extract_route_distance(payload: Any) -> float | None:
    """Return the route length in meters, or ``None`` if it cannot be found.

    Structured shapes are tried first (TomTom ``routes[0].summary``, OSRM
    ``routes[0].distance``, the proxy's flattened ``summary.distanceMeters``)
    before a recursive search for ``distanceInMeters``.
    """
    data = unwrap_data(payload)
    if not isinstance(data, Mapping):
        return None

    route = _first_route(data)
    if route is not None:
        summary = route.get("summary")
        if isinstance(summary, Mapping):
            distance = first_number(summary, "lengthInMeters", "distanceInMeters")
            if distance is not None:
                return distance
        distance = first_number(route, "distanceInMeters", "distance")
        if distance is not None:
            return distance

    summary = data.get("summary")
    if isinstance(summary, Mapping):
        distance = first_number(summary, "distanceMeters", "lengthInMeters", "distanceInMeters")
        if distance is not None:
            return distance

    distance = _search_distance(route if route is not None else data)
    if distance is None:
        _logger.debug("No distance found in route response keys=%s", list(data.keys()))
    return distance
