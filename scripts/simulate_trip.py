#!/usr/bin/env python3
"""Simulate a shared trip and watch live ETAs converge.

Participants random-walk around their start positions while a tracking
session polls the local haversine provider and prints every smoothed
estimate as it lands. No travel-time service is needed.

Usage
-----
::

    python scripts/simulate_trip.py
    python scripts/simulate_trip.py --dest 52.3702,4.8952 \\
        --participant alice:52.3600,4.8800 --participant bob:52.3400,4.9100 \\
        --duration 30 --poll-interval-ms 2000

Broker settings are read from the ``ETA_MQTT_*`` environment variables;
without ``ETA_MQTT_HOST`` positions are kept in memory.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from etatrack import (  # noqa: E402
    EtaClient,
    EtaConfig,
    HaversineEtaProvider,
    LatLng,
    LoggingTelemetrySink,
    SimulatedPositionWatch,
    SmoothedEstimate,
)

_DEFAULT_DESTINATION = "52.3702,4.8952"
_DEFAULT_PARTICIPANTS = [
    "alice:52.3600,4.8800",
    "bob:52.3400,4.9100",
    "carol:52.3900,4.8400",
]


def _parse_point(value: str) -> LatLng:
    try:
        lat_text, lng_text = value.split(",", 1)
        return LatLng(lat=float(lat_text), lng=float(lng_text))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected LAT,LNG, got {value!r}") from exc


def _parse_participant(value: str) -> tuple[str, LatLng]:
    entity_id, sep, point = value.partition(":")
    if not sep or not entity_id:
        raise argparse.ArgumentTypeError(f"expected ID:LAT,LNG, got {value!r}")
    return entity_id, _parse_point(point)


def _format_estimate(entity_id: str, estimate: SmoothedEstimate | None) -> str:
    if estimate is None:
        return f"{entity_id:<10} removed"
    minutes, seconds = divmod(estimate.eta_seconds, 60)
    distance = f"{estimate.distance_meters:8.0f} m" if estimate.distance_meters is not None else "       - m"
    stamp = estimate.last_updated.astimezone(UTC).strftime("%H:%M:%S")
    return f"[{stamp}] {entity_id:<10} eta {minutes:3d}m{seconds:02d}s  {distance}"


async def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate a shared trip with live ETA tracking.")
    parser.add_argument("--dest", type=_parse_point, default=_parse_point(_DEFAULT_DESTINATION), help="LAT,LNG")
    parser.add_argument(
        "--participant",
        "-p",
        action="append",
        type=_parse_participant,
        help="ID:LAT,LNG (repeatable; default: three participants around Amsterdam)",
    )
    parser.add_argument("--duration", type=float, default=20.0, help="Seconds to run (default: 20)")
    parser.add_argument("--poll-interval-ms", type=int, default=2000, help="Base poll interval (default: 2000)")
    parser.add_argument("--step-interval", type=float, default=1.0, help="Seconds between simulated moves")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Print final estimates as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    participants = args.participant or [_parse_participant(value) for value in _DEFAULT_PARTICIPANTS]
    config = EtaConfig.from_env(poll_interval_ms=args.poll_interval_ms, telemetry_enabled=False)

    async with EtaClient(
        config,
        provider=HaversineEtaProvider(),
        telemetry=LoggingTelemetrySink(level=logging.DEBUG),
    ) as client:
        session = client.create_session("simulated-trip", destination=args.dest)
        if not args.json_mode:
            session.subscribe(lambda entity_id, estimate: print(_format_estimate(entity_id, estimate)))

        for entity_id, start in participants:
            session.add_position_source(
                entity_id,
                SimulatedPositionWatch(start, interval=args.step_interval),
                name=entity_id.title(),
            )
        session.start()
        await asyncio.sleep(args.duration)

        final = session.store.snapshot()

    if args.json_mode:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "destination": args.dest.to_wire(),
            "estimates": {entity_id: estimate.to_wire() for entity_id, estimate in final.items()},
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(130)
