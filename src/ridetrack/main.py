"""Replay a recorded track through the ride tracker."""

import sys
import csv
import logging
import argparse
from pathlib import Path
from typing import List

from .config import LOG_LEVEL, PROJECT_NAME
from .canvas import RecordingCanvas
from .fares import FareTable
from .models import Destination, PositionSample
from .position_source import PositionSource, ReplayBackend
from .ride import RideTracker
from .routing import RouteResolver

logger = logging.getLogger(__name__)


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # urllib3 logs every connection at DEBUG
    urllib3_level = getattr(logging, level.upper(), logging.INFO)
    if urllib3_level <= logging.INFO:
        urllib3_level = logging.WARNING
    logging.getLogger("urllib3").setLevel(urllib3_level)


def load_track(path: Path) -> List[PositionSample]:
    """
    Read ``latitude,longitude,timestamp`` rows. A header row is allowed;
    rows that do not parse are skipped.
    """
    samples = []
    with open(path, newline="") as f:
        for row_number, row in enumerate(csv.reader(f), start=1):
            if len(row) < 3:
                continue
            try:
                samples.append(PositionSample(float(row[0]), float(row[1]), float(row[2])))
            except ValueError:
                if row_number > 1:
                    logger.warning(f"Skipping line {row_number}: {row}")
    return samples


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ridetrack-replay",
        description=f"{PROJECT_NAME}: replay a recorded track as a live trip",
    )
    parser.add_argument("track", type=Path, help="CSV file with latitude,longitude,timestamp rows")
    parser.add_argument("--destination", default="", help="Destination address")
    parser.add_argument("--city", default="", help="Destination city")
    parser.add_argument("--dest-lat", type=float, help="Destination latitude (skips geocoding)")
    parser.add_argument("--dest-lon", type=float, help="Destination longitude (skips geocoding)")
    parser.add_argument("--no-route", action="store_true", help="Do not contact routing servers")
    parser.add_argument("--driver", help="Driver name shown on the car marker")
    parser.add_argument("--log-level", default=LOG_LEVEL)
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    if not args.track.exists():
        logger.error(f"Track file not found: {args.track}")
        return 1

    samples = load_track(args.track)
    if not samples:
        logger.error("Track has no usable samples")
        return 1

    backend = ReplayBackend(samples)
    backend_clock = [samples[0].timestamp]
    source = PositionSource(backend)
    resolver = RouteResolver(providers=[] if args.no_route else None)
    tracker = RideTracker(
        source,
        route_resolver=resolver,
        canvas=RecordingCanvas(),
        fare_table=FareTable(),
        driver_name=args.driver,
        clock=lambda: backend_clock[0],
    )

    destination = None
    if args.destination or args.dest_lat is not None:
        coords = None
        if args.dest_lat is not None and args.dest_lon is not None:
            coords = (args.dest_lat, args.dest_lon)
        destination = Destination(args.destination, args.city, coords)

    tracker.start(destination=destination, start_location=samples[0].coords)
    while backend.pending:
        backend_clock[0] = max(backend_clock[0], backend.pending[0].timestamp)
        backend.pump(1)
    summary = tracker.finish()

    route = tracker.route_geometry
    print(f"Distance: {summary.distance_km:.2f} km")
    print(f"Heading: {tracker.heading:.0f}°")
    print(f"Route points: {len(route) if route else 0}")
    print(f"Elapsed: {summary.elapsed_seconds:.0f} s")
    if summary.fare is not None:
        print(f"Fare: R$ {summary.fare:.2f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
