"""Plan a collection route from a file of bin snapshots."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from binroute.analytics.predictions import OverflowPredictor
from binroute.analytics.routing import RouteEngine, route_distance_km
from binroute.config import ConfigError, load_policies
from binroute.models.schemas import BinSnapshot, GeoPoint

LOGGER = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a single-vehicle bin collection route.")
    parser.add_argument("bins_file", type=str, help="YAML or JSON file with bin snapshots")
    parser.add_argument("--config-dir", type=str, default=None, help="Directory containing policy.yaml")
    parser.add_argument("--lat", type=float, default=None, help="Driver start latitude")
    parser.add_argument("--lon", type=float, default=None, help="Driver start longitude")
    parser.add_argument("--indent", type=int, default=2)
    parser.add_argument("--verbose", action="store_true", help="Log triage decisions")
    args = parser.parse_args(argv)
    if (args.lat is None) != (args.lon is None):
        parser.error("--lat and --lon must be given together")
    return args


def load_bins_file(path: Path) -> tuple[list[BinSnapshot], dict[str, Any] | None]:
    """Load snapshots from `path`.

    The file holds either a list of bins, or a mapping with a `bins` list and
    an optional `start` location.
    """
    if not path.exists():
        raise FileNotFoundError(f"Bins file not found: {path}")

    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)

    start = None
    if isinstance(data, dict):
        start = data.get("start")
        data = data.get("bins", [])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of bins in {path}")

    return [BinSnapshot.model_validate(item) for item in data], start


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    try:
        prediction_policy, route_policy = load_policies(Path(args.config_dir) if args.config_dir else None)
        bins, file_start = load_bins_file(Path(args.bins_file))
        if args.lat is not None and args.lon is not None:
            start = GeoPoint(latitude=args.lat, longitude=args.lon)
        elif file_start is not None:
            start = GeoPoint.model_validate(file_start)
        elif bins:
            start = GeoPoint(latitude=bins[0].latitude, longitude=bins[0].longitude)
        else:
            raise ValueError("No start location given and no bins to start from")
    except (ConfigError, FileNotFoundError, ValueError, ValidationError, yaml.YAMLError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    engine = RouteEngine(route_policy, OverflowPredictor(prediction_policy))
    route = engine.generate_route(start, bins)

    print(json.dumps(route.model_dump(mode="json"), indent=args.indent))
    print(
        f"{route.meta.bins_collected} bins collected, {route.meta.bins_skipped} skipped, "
        f"{route_distance_km(route):.2f} km",
        file=sys.stderr,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
