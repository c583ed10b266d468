"""
Pytest configuration and fixtures for static map renderer tests.

Provides provider configs pointing at a temporary tile cache, fake HTTP
sessions, solid-color tile sources and sample trip paths. No test touches
the network.
"""

import pytest
from datetime import timedelta
from unittest.mock import MagicMock

import requests
from PIL import Image

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from constants import TILE_SIZE
from map_models import GeoPoint, MapProviderConfig


def png_bytes(color=(10, 120, 200, 255), size=TILE_SIZE) -> bytes:
    """Encode a solid-color PNG tile."""
    from io import BytesIO
    buf = BytesIO()
    Image.new("RGBA", (size, size), color).save(buf, format="PNG")
    return buf.getvalue()


def ok_response(content: bytes) -> MagicMock:
    """Mock requests response with a 200 status."""
    resp = MagicMock()
    resp.content = content
    resp.raise_for_status.return_value = None
    return resp


def error_response(status: int = 503) -> MagicMock:
    """Mock requests response whose raise_for_status raises an HTTPError."""
    resp = MagicMock()
    resp.content = b""
    resp.raise_for_status.side_effect = requests.HTTPError(f"{status} Server Error")
    return resp


@pytest.fixture
def cache_dir(tmp_path):
    """Fixture providing an empty tile cache directory."""
    path = tmp_path / "mapcache"
    path.mkdir()
    return path


@pytest.fixture
def provider_config(cache_dir):
    """Fixture providing a provider config using the temporary cache."""
    return MapProviderConfig(cache_dir=cache_dir, max_tile_age=timedelta(days=8))


@pytest.fixture
def mock_session():
    """Fixture providing a mock requests session that serves a blue tile."""
    session = MagicMock()
    session.get.return_value = ok_response(png_bytes())
    return session


@pytest.fixture
def failing_session():
    """Fixture providing a mock session whose every request fails."""
    session = MagicMock()
    session.get.side_effect = requests.ConnectionError("connection refused")
    return session


@pytest.fixture
def solid_tile_source():
    """Fixture providing a tile source that returns a light grey tile and records requests."""
    requested = []

    def source(tile):
        requested.append(tile)
        return Image.new("RGBA", (TILE_SIZE, TILE_SIZE), (200, 200, 200, 255))

    source.requested = requested
    return source


@pytest.fixture
def sample_trip():
    """Fixture providing a short trip heading north-east."""
    return [
        GeoPoint.of(48.000, 11.000),
        GeoPoint.of(48.050, 11.100),
        GeoPoint.of(48.100, 11.200),
    ]
