"""
Static map renderer for trips, charging stops and parking locations.

Provides the StaticMapProvider interface and its OpenStreetMap implementation.
A render runs start to finish in one call:

- pick zoom and center (fit the trip extent, or fixed zoom 19 for a point)
- stitch the covering 256px tiles into a canvas, wrapping tile indices
  across the ±180° meridian
- optionally run the dark-mode color matrix chain
- draw attribution, route and markers, anti-aliased
- hand the finished image to the exporter
"""

import logging
import math
import random
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

import requests
from PIL import Image

from color_grading import apply_dark_mode
from constants import MIN_REQUEST_INTERVAL_MS, POINT_MAP_ZOOM, TILE_SIZE
from map_models import (
    GeoPoint, MapIcon, MapMode, MapProviderConfig, PointLike, TileCoordinate, TripPath,
    as_geo_points,
)
from overlays import AttributionOverlay, MarkerOverlay, OverlayRegistry, RouteOverlay
from projection import MapView, calculate_zoom, determine_extent, pixel_from_tile
from tile_cache import TileCache, TileDownloader

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
TileSource = Callable[[TileCoordinate], Image.Image]
Exporter = Callable[[Image.Image, PathLike], None]

# Formats that cannot store an alpha channel
_OPAQUE_EXTENSIONS = {".jpg", ".jpeg", ".bmp"}


def save_image(image: Image.Image, path: PathLike) -> None:
    """Write ``image`` to ``path``; the format follows the file extension."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in _OPAQUE_EXTENSIONS:
        image = image.convert("RGB")
    image.save(path)
    logger.debug(f"Saved map image {path}")


def tile_range(center: float, canvas_dim: int) -> range:
    """Raw tile indices covering a canvas axis centered on ``center``."""
    lo = math.floor(center - 0.5 * canvas_dim / TILE_SIZE)
    hi = math.ceil(center + 0.5 * canvas_dim / TILE_SIZE)
    return range(lo, hi)


def plan_tiles(view: MapView) -> List[Tuple[int, int, TileCoordinate]]:
    """List (raw_x, raw_y, wrapped tile) for every tile visible in ``view``.

    Placement uses the raw indices so neighbouring tiles stay contiguous
    across the date line; lookup uses the wrapped tile.
    """
    return [
        (x, y, TileCoordinate.wrapped(view.zoom, x, y))
        for x in tile_range(view.x_center, view.width)
        for y in tile_range(view.y_center, view.height)
    ]


def compose_tiles(view: MapView, tile_source: TileSource, max_workers: int = 1,
                  on_tile: Optional[Callable[[TileCoordinate], None]] = None) -> Image.Image:
    """
    Stitch map tiles into a new RGBA canvas of the view's size.

    Args:
        view: Zoom, tile-space center and canvas size
        tile_source: Returns the 256x256 image for a wrapped tile
        max_workers: Fetch tiles on a thread pool when > 1. Tiles are still
            pasted in plan order, so the output does not depend on which
            fetch finishes first.
        on_tile: Called after each tile is fetched (progress reporting)

    Returns:
        Composed canvas
    """
    canvas = Image.new("RGBA", (view.width, view.height), (0, 0, 0, 0))
    plan = plan_tiles(view)
    logger.debug(f"Composing {len(plan)} tiles at zoom {view.zoom}")

    def fetch(tile: TileCoordinate) -> Image.Image:
        img = tile_source(tile)
        if on_tile is not None:
            on_tile(tile)
        return img

    tiles = [t for _, _, t in plan]
    if max_workers > 1 and len(tiles) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            images = list(pool.map(fetch, tiles))
    else:
        images = [fetch(t) for t in tiles]

    for (x, y, _), img in zip(plan, images):
        box = (pixel_from_tile(x, view.x_center, view.width),
               pixel_from_tile(y, view.y_center, view.height))
        canvas.paste(img, box)

    return canvas


def _validate_size(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise ValueError(f"Canvas size must be positive, got {width}x{height}")


class StaticMapProvider(ABC):
    """
    Source of static map images.

    Subclasses implement trip and point-of-interest rendering plus the rate
    limit callers must respect between requests.
    """

    @abstractmethod
    def create_trip_map(self, points: Iterable[PointLike], width: int, height: int,
                        mode: MapMode = MapMode.NORMAL, special: Any = None,
                        output_path: Optional[PathLike] = None) -> Image.Image:
        """Render a trip polyline with start and end markers."""
        pass

    @abstractmethod
    def create_point_map(self, lat: float, lng: float, icon: MapIcon, width: int, height: int,
                         mode: MapMode = MapMode.NORMAL, special: Any = None,
                         output_path: Optional[PathLike] = None) -> Image.Image:
        """Render a single marker centered on the map."""
        pass

    @abstractmethod
    def get_minimum_request_interval_ms(self) -> int:
        """Minimum delay between successive renders against this provider."""
        pass

    def create_charging_map(self, lat: float, lng: float, width: int, height: int,
                            mode: MapMode = MapMode.NORMAL, special: Any = None,
                            output_path: Optional[PathLike] = None) -> Image.Image:
        return self.create_point_map(lat, lng, MapIcon.CHARGE, width, height, mode, special, output_path)

    def create_parking_map(self, lat: float, lng: float, width: int, height: int,
                           mode: MapMode = MapMode.NORMAL, special: Any = None,
                           output_path: Optional[PathLike] = None) -> Image.Image:
        return self.create_point_map(lat, lng, MapIcon.PARK, width, height, mode, special, output_path)


class OSMMapProvider(StaticMapProvider):
    """Static maps from OpenStreetMap raster tiles.

    Args:
        config: Provider configuration (defaults to ``MapProviderConfig()``)
        random_source: Random generator for mirror selection (seed it for
            reproducible downloads)
        session: requests session for tile downloads
        exporter: Called with (image, path) to persist a finished map
        tile_cache: Pre-built tile cache (overrides config/random/session)

    The ``special`` argument of the render methods is accepted for interface
    compatibility and ignored.
    """

    def __init__(self, config: Optional[MapProviderConfig] = None,
                 random_source: Optional[random.Random] = None,
                 session: Optional[requests.Session] = None,
                 exporter: Exporter = save_image,
                 tile_cache: Optional[TileCache] = None):
        self.config = config if config is not None else MapProviderConfig()
        if tile_cache is None:
            downloader = TileDownloader(self.config, random_source=random_source, session=session)
            tile_cache = TileCache(self.config, downloader=downloader)
        self.tile_cache = tile_cache
        self.exporter = exporter
        self.on_tile: Optional[Callable[[TileCoordinate], None]] = None

    def get_minimum_request_interval_ms(self) -> int:
        return MIN_REQUEST_INTERVAL_MS

    def create_trip_map(self, points: Iterable[PointLike], width: int, height: int,
                        mode: MapMode = MapMode.NORMAL, special: Any = None,
                        output_path: Optional[PathLike] = None) -> Image.Image:
        """
        Render a trip map.

        The zoom is the most detailed level at which the whole trip fits the
        canvas; the map is centered on the middle of the trip extent.

        Raises:
            ValueError: empty trip or non-positive canvas size
        """
        path: TripPath = as_geo_points(points)
        if not path:
            raise ValueError("Trip path must contain at least one point")
        _validate_size(width, height)

        extent = determine_extent(path)
        zoom = calculate_zoom(extent, width, height)
        lat_center, lng_center = extent.center
        view = MapView.centered_on(lat_center, lng_center, zoom, width, height)

        registry = self._base_overlays()
        registry.register("route", RouteOverlay(path))
        registry.register("start", MarkerOverlay(path[0], MapIcon.START))
        registry.register("end", MarkerOverlay(path[-1], MapIcon.END))

        image = registry.compose_all(self._draw_map(view, mode), view)
        logger.info(f"Rendered trip map: {len(path)} points, zoom {zoom}, "
                    f"{width}x{height}, {MapMode(mode).name.lower()}")
        self._export(image, output_path)
        return image

    def create_point_map(self, lat: float, lng: float, icon: MapIcon, width: int, height: int,
                         mode: MapMode = MapMode.NORMAL, special: Any = None,
                         output_path: Optional[PathLike] = None) -> Image.Image:
        """Render a single marker at fixed zoom 19, centered on the point."""
        point = GeoPoint.of(lat, lng)
        _validate_size(width, height)

        view = MapView.centered_on(point.latitude, point.longitude, POINT_MAP_ZOOM, width, height)
        registry = self._base_overlays()
        registry.register("marker", MarkerOverlay(point, icon))

        image = registry.compose_all(self._draw_map(view, mode), view)
        logger.info(f"Rendered {MapIcon(icon).name.lower()} map at ({lat:.5f}, {lng:.5f}), "
                    f"{width}x{height}, {MapMode(mode).name.lower()}")
        self._export(image, output_path)
        return image

    def _draw_map(self, view: MapView, mode: MapMode) -> Image.Image:
        """Tile background, dark-mode filtered when requested."""
        canvas = compose_tiles(view, self.tile_cache.get_tile,
                               max_workers=self.config.max_workers, on_tile=self.on_tile)
        if mode == MapMode.DARK:
            canvas = apply_dark_mode(canvas)
        return canvas

    @staticmethod
    def _base_overlays() -> OverlayRegistry:
        registry = OverlayRegistry()
        registry.register("attribution", AttributionOverlay())
        return registry

    def _export(self, image: Image.Image, output_path: Optional[PathLike]) -> None:
        if output_path is not None:
            self.exporter(image, output_path)
