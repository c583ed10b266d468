"""
Data models for the static OSM map renderer.

Pydantic models for geographic points, extents and tile coordinates, the
icon/mode enums that select marker styling and dark mode, tile cache entries
and the provider configuration.
"""

import os
from datetime import datetime, timedelta
from enum import IntEnum
from pathlib import Path
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from constants import (
    MAX_LATITUDE, MAX_ZOOM, MIN_ZOOM,
    TILE_CACHE_DIR, TILE_MAX_AGE_DAYS, TILE_MAX_RETRIES,
    TILE_REQUEST_TIMEOUT, TILE_RETRY_DELAY, TILE_SUBDOMAINS,
    TILE_URL_TEMPLATE, TILE_USER_AGENT,
)


class MapIcon(IntEnum):
    """Marker variants drawn on the map."""
    START = 0
    END = 1
    CHARGE = 2
    PARK = 3


class MapMode(IntEnum):
    """Map rendering mode; DARK runs the dark-mode color filter chain."""
    NORMAL = 0
    DARK = 1


class GeoPoint(BaseModel):
    """WGS84 position in degrees."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-MAX_LATITUDE, le=MAX_LATITUDE,
                            description="Latitude in degrees, within the Web Mercator range")
    longitude: float = Field(ge=-180.0, le=180.0, description="Longitude in degrees")

    @classmethod
    def of(cls, lat: float, lng: float) -> "GeoPoint":
        """Positional shorthand: GeoPoint.of(48.1, 11.5)."""
        return cls(latitude=lat, longitude=lng)


PointLike = Union[GeoPoint, Tuple[float, float]]

# Ordered GPS track; the first point gets the start marker, the last the end marker
TripPath = Sequence[GeoPoint]


def as_geo_points(points: Iterable[PointLike]) -> List[GeoPoint]:
    """Normalize a sequence of GeoPoints or (lat, lng) pairs to GeoPoints."""
    result = []
    for p in points:
        if isinstance(p, GeoPoint):
            result.append(p)
        else:
            lat, lng = p[0], p[1]
            result.append(GeoPoint.of(float(lat), float(lng)))
    return result


class Extent(BaseModel):
    """Bounding rectangle over a set of GeoPoints."""
    model_config = ConfigDict(frozen=True)

    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    @model_validator(mode="after")
    def _check_order(self) -> "Extent":
        if self.min_lat > self.max_lat or self.min_lng > self.max_lng:
            raise ValueError(
                f"Extent minimum must not exceed maximum: "
                f"({self.min_lat}, {self.min_lng}) > ({self.max_lat}, {self.max_lng})"
            )
        return self

    @property
    def center(self) -> Tuple[float, float]:
        """Arithmetic center as (lat, lng)."""
        return (self.min_lat + self.max_lat) / 2, (self.min_lng + self.max_lng) / 2

    @property
    def is_degenerate(self) -> bool:
        """True for a zero-area extent (e.g. a single-point trip)."""
        return self.min_lat == self.max_lat and self.min_lng == self.max_lng


class TileCoordinate(BaseModel):
    """Wrapped tile index at a zoom level."""
    model_config = ConfigDict(frozen=True)

    zoom: int = Field(ge=MIN_ZOOM, le=MAX_ZOOM)
    x: int = Field(ge=0)
    y: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_range(self) -> "TileCoordinate":
        n = 2 ** self.zoom
        if self.x >= n or self.y >= n:
            raise ValueError(f"Tile ({self.x}, {self.y}) out of range for zoom {self.zoom}")
        return self

    @classmethod
    def wrapped(cls, zoom: int, raw_x: int, raw_y: int) -> "TileCoordinate":
        """Wrap raw (possibly negative or overflowing) indices into the grid.

        This is what lets a canvas straddling the ±180° meridian fetch the
        tiles from the other side of the world.
        """
        n = 2 ** zoom
        return cls(zoom=zoom, x=(raw_x + n) % n, y=(raw_y + n) % n)

    @property
    def filename(self) -> str:
        return f"{self.zoom}_{self.x}_{self.y}.png"


class PixelCoordinate(NamedTuple):
    """Integer position on the output canvas."""
    x: int
    y: int


class CacheEntry(BaseModel):
    """A tile file on disk and its last write time."""
    model_config = ConfigDict(frozen=True)

    path: Path
    last_write_time: datetime

    @classmethod
    def from_path(cls, path: Path) -> Optional["CacheEntry"]:
        """Stat a cache file, or None if it does not exist."""
        try:
            mtime = os.path.getmtime(path)
        except OSError:
            return None
        return cls(path=path, last_write_time=datetime.fromtimestamp(mtime))

    def age(self, now: Optional[datetime] = None) -> timedelta:
        return (now or datetime.now()) - self.last_write_time

    def is_fresh(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        return self.age(now) <= max_age


class MapProviderConfig(BaseModel):
    """Runtime settings for the OSM map provider."""

    cache_dir: Path = Field(default=Path(TILE_CACHE_DIR),
                            description="Directory holding cached tiles")
    max_tile_age: timedelta = Field(default=timedelta(days=TILE_MAX_AGE_DAYS),
                                    description="Cached tiles older than this are re-downloaded")
    max_retries: int = Field(default=TILE_MAX_RETRIES, ge=1,
                             description="Download attempts per tile")
    retry_delay_seconds: float = Field(default=TILE_RETRY_DELAY, ge=0.0,
                                       description="Pause between download attempts")
    request_timeout_seconds: float = Field(default=TILE_REQUEST_TIMEOUT, gt=0.0)
    user_agent: str = Field(default=TILE_USER_AGENT, min_length=1)
    tile_url_template: str = Field(default=TILE_URL_TEMPLATE)
    subdomains: Tuple[str, ...] = Field(default=TILE_SUBDOMAINS, min_length=1)
    max_workers: int = Field(default=1, ge=1,
                             description="Parallel tile fetches per render (1 = sequential)")

    @classmethod
    def from_env(cls, **overrides) -> "MapProviderConfig":
        """Build a config from STATICMAP_* environment variables plus overrides."""
        values = {}
        if os.environ.get("STATICMAP_CACHE_DIR"):
            values["cache_dir"] = Path(os.environ["STATICMAP_CACHE_DIR"])
        if os.environ.get("STATICMAP_MAX_TILE_AGE_DAYS"):
            values["max_tile_age"] = timedelta(days=float(os.environ["STATICMAP_MAX_TILE_AGE_DAYS"]))
        if os.environ.get("STATICMAP_MAX_WORKERS"):
            values["max_workers"] = int(os.environ["STATICMAP_MAX_WORKERS"])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

