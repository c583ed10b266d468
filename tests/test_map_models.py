"""
Tests for the static map data models.

Tests coordinate validation, tile index wraparound, cache entry freshness
and provider configuration.
"""

import pytest
from datetime import datetime, timedelta
from pathlib import Path

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pydantic import ValidationError

from constants import MAX_LATITUDE, TILE_MAX_RETRIES, TILE_SUBDOMAINS
from map_models import (
    CacheEntry,
    Extent,
    GeoPoint,
    MapIcon,
    MapMode,
    MapProviderConfig,
    TileCoordinate,
    as_geo_points,
)
from projection import lat_to_tile_y


class TestGeoPoint:
    """Tests for GeoPoint."""

    def test_of_shorthand(self):
        p = GeoPoint.of(48.1, 11.5)
        assert p.latitude == 48.1
        assert p.longitude == 11.5

    def test_frozen(self):
        """GeoPoints cannot be mutated after creation."""
        p = GeoPoint.of(48.1, 11.5)
        with pytest.raises(ValidationError):
            p.latitude = 50.0

    @pytest.mark.parametrize("lat,lng", [
        (91.0, 0.0), (-90.5, 0.0), (90.0, 0.0), (-90.0, 0.0), (85.06, 0.0),
        (0.0, 180.5), (0.0, -181.0),
    ])
    def test_out_of_range_rejected(self, lat, lng):
        with pytest.raises(ValueError):
            GeoPoint.of(lat, lng)

    @pytest.mark.parametrize("lat", [MAX_LATITUDE, -MAX_LATITUDE, 85.0, -85.0])
    def test_mercator_range_accepted(self, lat):
        """Latitudes up to the Web Mercator cutoff project to a finite tile row."""
        p = GeoPoint.of(lat, 0.0)
        y = lat_to_tile_y(p.latitude, 19)
        assert -1.0 <= y <= 2 ** 19 + 1.0

    def test_as_geo_points_accepts_tuples(self):
        points = as_geo_points([(48.0, 11.0), GeoPoint.of(48.1, 11.1)])
        assert points == [GeoPoint.of(48.0, 11.0), GeoPoint.of(48.1, 11.1)]


class TestExtent:
    """Tests for Extent validation."""

    def test_min_greater_than_max_rejected(self):
        with pytest.raises(ValueError, match="minimum"):
            Extent(min_lat=49.0, min_lng=11.0, max_lat=48.0, max_lng=12.0)

    def test_degenerate_allowed(self):
        extent = Extent(min_lat=48.0, min_lng=11.0, max_lat=48.0, max_lng=11.0)
        assert extent.is_degenerate
        assert extent.center == (48.0, 11.0)


class TestTileCoordinate:
    """Tests for tile coordinates and wraparound."""

    @pytest.mark.parametrize("zoom", [1, 3, 10, 19])
    def test_minus_one_wraps_to_last(self, zoom):
        """Raw index -1 wraps to 2^zoom - 1."""
        tile = TileCoordinate.wrapped(zoom, -1, -1)
        assert tile.x == 2 ** zoom - 1
        assert tile.y == 2 ** zoom - 1

    @pytest.mark.parametrize("zoom", [1, 3, 10, 19])
    def test_overflow_wraps_to_zero(self, zoom):
        """Raw index 2^zoom wraps to 0."""
        tile = TileCoordinate.wrapped(zoom, 2 ** zoom, 2 ** zoom)
        assert (tile.x, tile.y) == (0, 0)

    def test_in_range_unchanged(self):
        tile = TileCoordinate.wrapped(5, 7, 12)
        assert (tile.zoom, tile.x, tile.y) == (5, 7, 12)

    def test_zoom_zero_single_tile(self):
        """At zoom 0 every raw index resolves to the one world tile."""
        for raw in (-2, -1, 0, 1, 2):
            tile = TileCoordinate.wrapped(0, raw, raw)
            assert (tile.x, tile.y) == (0, 0)

    def test_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            TileCoordinate(zoom=2, x=4, y=0)

    def test_zoom_above_max_rejected(self):
        with pytest.raises(ValueError):
            TileCoordinate(zoom=20, x=0, y=0)

    def test_filename(self):
        assert TileCoordinate(zoom=12, x=2178, y=1421).filename == "12_2178_1421.png"


class TestCacheEntry:
    """Tests for CacheEntry."""

    def test_missing_file_returns_none(self, tmp_path):
        assert CacheEntry.from_path(tmp_path / "nope.png") is None

    def test_from_existing_file(self, tmp_path):
        path = tmp_path / "1_0_0.png"
        path.write_bytes(b"x")
        entry = CacheEntry.from_path(path)
        assert entry.path == path
        assert entry.age() < timedelta(minutes=1)

    def test_freshness(self, tmp_path):
        written = datetime(2024, 1, 1, 12, 0, 0)
        entry = CacheEntry(path=tmp_path / "t.png", last_write_time=written)
        max_age = timedelta(days=8)
        assert entry.is_fresh(max_age, now=written + timedelta(days=7))
        assert not entry.is_fresh(max_age, now=written + timedelta(days=9))


class TestEnums:
    def test_icons(self):
        assert {i.name for i in MapIcon} == {"START", "END", "CHARGE", "PARK"}

    def test_modes(self):
        assert MapMode(1) is MapMode.DARK


class TestMapProviderConfig:
    """Tests for provider configuration."""

    def test_defaults(self):
        config = MapProviderConfig()
        assert config.max_retries == TILE_MAX_RETRIES == 10
        assert config.max_tile_age == timedelta(days=8)
        assert config.subdomains == TILE_SUBDOMAINS == ("a", "b", "c")
        assert config.retry_delay_seconds == 0.0
        assert config.max_workers == 1

    def test_invalid_retries_rejected(self):
        with pytest.raises(ValueError):
            MapProviderConfig(max_retries=0)

    def test_empty_subdomains_rejected(self):
        with pytest.raises(ValueError):
            MapProviderConfig(subdomains=())

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("STATICMAP_CACHE_DIR", str(tmp_path))
        monkeypatch.setenv("STATICMAP_MAX_TILE_AGE_DAYS", "2")
        monkeypatch.setenv("STATICMAP_MAX_WORKERS", "4")
        config = MapProviderConfig.from_env()
        assert config.cache_dir == Path(tmp_path)
        assert config.max_tile_age == timedelta(days=2)
        assert config.max_workers == 4

    def test_from_env_overrides_win(self, monkeypatch):
        monkeypatch.setenv("STATICMAP_MAX_WORKERS", "4")
        config = MapProviderConfig.from_env(max_workers=2, cache_dir=None)
        assert config.max_workers == 2
