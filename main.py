#!/usr/bin/env python3
"""
Command line entry point: render trip, charging and parking maps.

    python main.py trip trip.csv trip.png --width 800 --height 600
    python main.py charging 48.05 11.05 charge.png --dark
    python main.py parking 48.05 11.05 park.png
"""

import argparse
import csv
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from map_models import GeoPoint, MapMode, MapProviderConfig
from map_renderer import OSMMapProvider
from rich_console import (
    create_tile_progress,
    print_error,
    print_render_summary,
    setup_rich_logging,
)

logger = logging.getLogger(__name__)

MAP_KINDS = ("trip", "charging", "parking")
_LAT_COLUMNS = ("lat", "latitude", "latitude_deg")
_LNG_COLUMNS = ("lng", "lon", "longitude", "longitude_deg")


class RenderRequest(BaseModel):
    kind: str
    output_file: str
    width: int = Field(default=800, gt=0)
    height: int = Field(default=600, gt=0)
    dark: bool = False
    points: List[GeoPoint] = Field(default_factory=list)


def _is_number(value: str) -> bool:
    try:
        float(value)
        return True
    except ValueError:
        return False


def _find_column(header: List[str], names: Sequence[str]) -> int:
    for name in names:
        if name in header:
            return header.index(name)
    raise ValueError(f"CSV header needs one of the columns {', '.join(names)}")


def read_trip_csv(path: str) -> List[GeoPoint]:
    """
    Read trip points from a CSV file.

    Accepts either a header row naming the latitude/longitude columns
    (lat/latitude, lng/lon/longitude) or plain ``lat,lng`` rows. Blank lines
    and lines starting with '#' are skipped.
    """
    points = []
    lat_idx, lng_idx = 0, 1
    seen_data = False
    with open(path, newline="") as f:
        reader = csv.reader(f)
        for row in reader:
            if not row or not row[0].strip() or row[0].lstrip().startswith("#"):
                continue
            if not seen_data and not _is_number(row[0]):
                header = [c.strip().lower() for c in row]
                lat_idx = _find_column(header, _LAT_COLUMNS)
                lng_idx = _find_column(header, _LNG_COLUMNS)
                seen_data = True
                continue
            seen_data = True
            if len(row) <= max(lat_idx, lng_idx):
                raise ValueError(f"{path}:{reader.line_num}: expected at least "
                                 f"{max(lat_idx, lng_idx) + 1} columns, got {len(row)}")
            points.append(GeoPoint.of(float(row[lat_idx]), float(row[lng_idx])))
    return points


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Render static OpenStreetMap images for trips, "
                                                 "charging stops and parking locations.")
    subparsers = parser.add_subparsers(dest="kind", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--width", type=int, default=800, help="Image width in pixels")
    common.add_argument("--height", type=int, default=600, help="Image height in pixels")
    common.add_argument("--dark", action="store_true", help="Render the dark map style")
    common.add_argument("--cache-dir", help="Tile cache directory")
    common.add_argument("--max-tile-age-days", type=float,
                        help="Re-download cached tiles older than this many days")
    common.add_argument("--workers", type=int, help="Parallel tile downloads per render")
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    trip = subparsers.add_parser("trip", parents=[common], help="Render a trip from a CSV of points")
    trip.add_argument("points_csv", help="CSV file with lat,lng rows")
    trip.add_argument("output_file", help="Output image path (format from extension)")

    for kind in ("charging", "parking"):
        sub = subparsers.add_parser(kind, parents=[common], help=f"Render a {kind} location map")
        sub.add_argument("lat", type=float, help="Latitude in degrees")
        sub.add_argument("lng", type=float, help="Longitude in degrees")
        sub.add_argument("output_file", help="Output image path (format from extension)")

    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> Tuple[RenderRequest, MapProviderConfig, bool]:
    """Parse the command line into a render request and provider config.

    Raises:
        ValueError: invalid coordinates, sizes or CSV contents
    """
    args = build_parser().parse_args(argv)

    if args.kind == "trip":
        points = read_trip_csv(args.points_csv)
    else:
        points = [GeoPoint.of(args.lat, args.lng)]

    request = RenderRequest(
        kind=args.kind,
        output_file=args.output_file,
        width=args.width,
        height=args.height,
        dark=args.dark,
        points=points,
    )
    config = MapProviderConfig.from_env(
        cache_dir=Path(args.cache_dir) if args.cache_dir else None,
        max_tile_age=timedelta(days=args.max_tile_age_days) if args.max_tile_age_days is not None else None,
        max_workers=args.workers,
    )
    return request, config, args.verbose


def run(request: RenderRequest, provider: OSMMapProvider) -> None:
    """Render the requested map and print a summary."""
    mode = MapMode.DARK if request.dark else MapMode.NORMAL

    with create_tile_progress() as progress:
        task = progress.add_task("Fetching tiles", total=None)
        provider.on_tile = lambda _tile: progress.advance(task)
        if request.kind == "trip":
            provider.create_trip_map(request.points, request.width, request.height,
                                     mode, None, request.output_file)
        elif request.kind == "charging":
            p = request.points[0]
            provider.create_charging_map(p.latitude, p.longitude, request.width, request.height,
                                         mode, None, request.output_file)
        else:
            p = request.points[0]
            provider.create_parking_map(p.latitude, p.longitude, request.width, request.height,
                                        mode, None, request.output_file)

    stats = provider.tile_cache.stats
    print_render_summary(
        kind=request.kind,
        output_file=request.output_file,
        width=request.width,
        height=request.height,
        dark=request.dark,
        points=len(request.points) if request.kind == "trip" else None,
        tiles_cached=stats.cached,
        tiles_downloaded=stats.downloaded,
        tiles_missing=stats.placeholders,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        request, config, verbose = parse_args(argv)
    except (ValueError, OSError) as e:
        print_error(str(e), hint="Check the coordinates, image size and input file")
        return 1

    setup_rich_logging(verbose)
    logger.debug(f"Tile cache: {config.cache_dir} (max age {config.max_tile_age})")

    try:
        run(request, OSMMapProvider(config))
    except (ValueError, OSError) as e:
        print_error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
