"""
Web Mercator projection and zoom selection.

Converts geographic coordinates to continuous tile-space coordinates, tile
coordinates to pixel offsets on a canvas, and picks the most detailed zoom
level at which a trip extent still fits the canvas.
"""

import logging
import math
from dataclasses import dataclass

from constants import MAP_PADDING_X, MAP_PADDING_Y, MAX_FIT_ZOOM, TILE_SIZE
from map_models import Extent, GeoPoint, PixelCoordinate, TripPath

logger = logging.getLogger(__name__)


def lon_to_tile_x(lon: float, zoom: int) -> float:
    """Transform longitude to a fractional tile X index."""
    return ((lon + 180.0) / 360.0) * 2.0 ** zoom


def lat_to_tile_y(lat: float, zoom: int) -> float:
    """Transform latitude to a fractional tile Y index (grows southwards)."""
    lat_rad = lat * math.pi / 180.0
    return (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * 2.0 ** zoom


def pixel_from_tile(coord: float, center: float, canvas_dim: int, tile_size: int = TILE_SIZE) -> int:
    """Transform a tile-space coordinate to a pixel on the canvas.

    Used for both axes: ``center`` is the tile coordinate that lands in the
    middle of a canvas ``canvas_dim`` pixels wide (or high).
    """
    return int(round((coord - center) * tile_size + canvas_dim / 2.0))


def project(point: GeoPoint, zoom: int, x_center: float, y_center: float,
            width: int, height: int) -> PixelCoordinate:
    """Project a GeoPoint to its pixel on a canvas centered at (x_center, y_center)."""
    return PixelCoordinate(
        pixel_from_tile(lon_to_tile_x(point.longitude, zoom), x_center, width),
        pixel_from_tile(lat_to_tile_y(point.latitude, zoom), y_center, height),
    )


@dataclass(frozen=True)
class MapView:
    """Zoom level and tile-space center of a canvas of a given size."""
    zoom: int
    x_center: float
    y_center: float
    width: int
    height: int

    @classmethod
    def centered_on(cls, lat: float, lng: float, zoom: int, width: int, height: int) -> "MapView":
        return cls(zoom, lon_to_tile_x(lng, zoom), lat_to_tile_y(lat, zoom), width, height)

    def to_pixel(self, point: GeoPoint) -> PixelCoordinate:
        return project(point, self.zoom, self.x_center, self.y_center, self.width, self.height)


def determine_extent(points: TripPath) -> Extent:
    """Bounding rectangle over the given points.

    Raises:
        ValueError: if ``points`` is empty
    """
    if not points:
        raise ValueError("Cannot determine the extent of an empty trip path")
    lats = [p.latitude for p in points]
    lngs = [p.longitude for p in points]
    return Extent(min_lat=min(lats), min_lng=min(lngs), max_lat=max(lats), max_lng=max(lngs))


def calculate_zoom(extent: Extent, width: int, height: int,
                   padding_x: int = MAP_PADDING_X, padding_y: int = MAP_PADDING_Y) -> int:
    """Pick the highest zoom level at which the whole extent fits the canvas.

    Iterates from the most detailed level down, so ties favor detail. A
    degenerate (zero-area) extent fits everywhere and gets the top level.
    Returns 0 when nothing down to zoom 1 fits.
    """
    for zoom in range(MAX_FIT_ZOOM, 0, -1):
        extent_width = (lon_to_tile_x(extent.max_lng, zoom) - lon_to_tile_x(extent.min_lng, zoom)) * TILE_SIZE
        if extent_width > width - padding_x * 2:
            continue

        extent_height = (lat_to_tile_y(extent.min_lat, zoom) - lat_to_tile_y(extent.max_lat, zoom)) * TILE_SIZE
        if extent_height > height - padding_y * 2:
            continue

        logger.debug(f"Zoom {zoom} fits extent {extent_width:.0f}x{extent_height:.0f}px "
                     f"in {width}x{height} canvas")
        return zoom
    return 0
