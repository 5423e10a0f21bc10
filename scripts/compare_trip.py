import argparse
import json
import logging
import sys

from domain.errors import IncompleteInput
from domain.trip import Coordinate, ParkingFee, RoutePoints, Vehicle
from services.pipeline.trip_pipeline import TripPipeline
from services.settings import Settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="WayWise - drive vs rideshare cost for one trip")
    parser.add_argument("--year", type=int, required=True)
    parser.add_argument("--make", type=str, required=True)
    parser.add_argument("--model", type=str, required=True)
    parser.add_argument("--origin-place-id", type=str, required=True)
    parser.add_argument("--origin-lat", type=float, required=True)
    parser.add_argument("--origin-lng", type=float, required=True)
    parser.add_argument("--dest-place-id", type=str, required=True)
    parser.add_argument("--dest-lat", type=float, required=True)
    parser.add_argument("--dest-lng", type=float, required=True)
    parser.add_argument("--parking", type=str, default=None, help="parking fee in dollars (default from settings)")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = Settings.from_env()
    try:
        vehicle = Vehicle(args.year, args.make, args.model)
        parking = ParkingFee.parse(args.parking, default=settings.default_parking)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    route = RoutePoints(
        origin_place_id=args.origin_place_id,
        origin_coordinate=Coordinate(args.origin_lat, args.origin_lng),
        destination_place_id=args.dest_place_id,
        destination_coordinate=Coordinate(args.dest_lat, args.dest_lng),
    )

    with TripPipeline(settings) as pipeline:
        try:
            result = pipeline.compute_trip(vehicle, route, parking)
        except IncompleteInput as e:
            print(f"error: {e}", file=sys.stderr)
            return 2

    print(json.dumps(result.as_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
