"""
Tests for map overlays and the OverlayRegistry.

Most drawing assertions use supersample=1 so pixel values are exact; the
default supersampled path is checked for placement only.
"""

import pytest
from PIL import Image, ImageDraw

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from constants import COLORS
from map_models import GeoPoint, MapIcon, PixelCoordinate
from overlays import (
    MARKER_STYLES,
    AttributionOverlay,
    MarkerOverlay,
    Overlay,
    OverlayRegistry,
    RouteOverlay,
    compose_overlays,
    route_segments,
)
from projection import MapView

CENTER = GeoPoint.of(48.1, 11.5)


@pytest.fixture
def view():
    """200x200 view centered on CENTER at zoom 14."""
    return MapView.centered_on(CENTER.latitude, CENTER.longitude, 14, 200, 200)


@pytest.fixture
def white_canvas():
    return Image.new("RGBA", (200, 200), (255, 255, 255, 255))


@pytest.fixture
def grey_canvas():
    return Image.new("RGBA", (200, 200), (100, 100, 100, 255))


class FillOverlay(Overlay):
    """Overlay that floods the whole layer with one color."""

    def __init__(self, color):
        self.color = color

    def draw(self, draw, view, ss):
        draw.rectangle([0, 0, view.width * ss, view.height * ss], fill=self.color)


class TestRouteSegments:
    """Tests for segment extraction."""

    def test_consecutive_pairs(self):
        pts = [PixelCoordinate(0, 0), PixelCoordinate(10, 0), PixelCoordinate(10, 10)]
        assert route_segments(pts) == [(pts[0], pts[1]), (pts[1], pts[2])]

    def test_zero_length_segments_skipped(self):
        pts = [PixelCoordinate(5, 5), PixelCoordinate(5, 5), PixelCoordinate(8, 5)]
        assert route_segments(pts) == [(pts[1], pts[2])]

    def test_single_point_has_no_segments(self):
        assert route_segments([PixelCoordinate(1, 2)]) == []


class TestOverlay:
    """Tests for the Overlay base class."""

    def test_abstract(self):
        with pytest.raises(TypeError):
            Overlay()

    def test_compose_returns_new_image(self, white_canvas, view):
        result = FillOverlay((255, 0, 0, 255)).compose(white_canvas, view, supersample=1)
        assert result is not white_canvas
        assert white_canvas.getpixel((10, 10)) == (255, 255, 255, 255)
        assert result.getpixel((10, 10)) == (255, 0, 0, 255)

    def test_supersampled_layer_downsampled(self, white_canvas, view):
        result = FillOverlay((0, 0, 255, 255)).compose(white_canvas, view)
        assert result.size == white_canvas.size
        r, g, b, a = result.getpixel((100, 100))
        assert b > 240 and r < 15


class TestRouteOverlay:
    """Tests for the trip polyline."""

    def _horizontal_route(self):
        return RouteOverlay([GeoPoint.of(48.1, 11.49), GeoPoint.of(48.1, 11.51)])

    def test_blue_line_over_white_halo(self, grey_canvas, view):
        result = compose_overlays(grey_canvas, [self._horizontal_route()], view, supersample=1)
        column = [result.getpixel((100, y)) for y in range(94, 107)]
        assert (0, 0, 255, 255) in column
        assert (255, 255, 255, 255) in column
        assert result.getpixel((100, 90)) == (100, 100, 100, 255)

    def test_degenerate_route_draws_nothing(self, grey_canvas, view):
        route = RouteOverlay([CENTER, CENTER, CENTER])
        result = compose_overlays(grey_canvas, [route], view, supersample=1)
        assert result.tobytes() == grey_canvas.tobytes()

    def test_supersampled_line_is_blue(self, grey_canvas, view):
        result = compose_overlays(grey_canvas, [self._horizontal_route()], view)
        column = [result.getpixel((100, y)) for y in range(94, 107)]
        assert any(b > 180 and r < 120 for r, g, b, a in column)


class TestMarkerOverlay:
    """Tests for map pins."""

    def test_styles(self):
        assert MARKER_STYLES[MapIcon.START][0] == COLORS.MARKER_START == (255, 0, 0, 255)
        assert MARKER_STYLES[MapIcon.END][0] == COLORS.MARKER_END == (0, 128, 0, 255)
        assert MARKER_STYLES[MapIcon.CHARGE][1] == 3
        assert MARKER_STYLES[MapIcon.PARK][2] == "P"
        assert MARKER_STYLES[MapIcon.START][2] is None

    def test_start_pin_sits_above_point(self, white_canvas, view):
        """The pin tip touches the point and the body extends upwards."""
        result = compose_overlays(white_canvas, [MarkerOverlay(CENTER, MapIcon.START)], view, supersample=1)
        assert result.getpixel((100, 96)) == COLORS.MARKER_START
        assert result.getpixel((100, 92)) == COLORS.MARKER_START
        assert result.getpixel((100, 104)) == (255, 255, 255, 255)

    def test_end_pin_color(self, white_canvas, view):
        result = compose_overlays(white_canvas, [MarkerOverlay(CENTER, MapIcon.END)], view, supersample=1)
        assert result.getpixel((100, 96)) == COLORS.MARKER_END

    def test_park_pin_is_large(self, white_canvas, view):
        result = compose_overlays(white_canvas, [MarkerOverlay(CENTER, MapIcon.PARK)], view, supersample=1)
        assert result.getpixel((110, 80)) == COLORS.MARKER_PARK

    def test_park_pin_has_label(self, white_canvas, view):
        """The glyph leaves white pixels inside the blue head."""
        result = compose_overlays(white_canvas, [MarkerOverlay(CENTER, MapIcon.PARK)], view, supersample=1)
        head = [result.getpixel((x, y)) for x in range(94, 107) for y in range(76, 89)]
        assert COLORS.MARKER_PARK in head
        assert (255, 255, 255, 255) in head

    def test_charge_pin_color(self, white_canvas, view):
        result = compose_overlays(white_canvas, [MarkerOverlay(CENTER, MapIcon.CHARGE)], view, supersample=1)
        assert result.getpixel((90, 80)) == COLORS.MARKER_CHARGE

    def test_supersampled_pin_is_red(self, white_canvas, view):
        result = MarkerOverlay(CENTER, MapIcon.START).compose(white_canvas, view)
        region = [result.getpixel((x, y)) for x in range(96, 105) for y in range(88, 100)]
        assert any(r > 200 and g < 100 and b < 100 for r, g, b, a in region)


class TestAttributionOverlay:
    """Tests for the attribution box."""

    def test_box_in_bottom_right(self, white_canvas, view):
        result = compose_overlays(white_canvas, [AttributionOverlay()], view, supersample=1)
        r, g, b, a = result.getpixel((190, 198))
        assert r == g == b
        assert 180 < r < 200
        assert result.getpixel((5, 5)) == (255, 255, 255, 255)
        assert result.getpixel((5, 198)) == (255, 255, 255, 255)

    def test_text_is_dark(self, white_canvas, view):
        result = compose_overlays(white_canvas, [AttributionOverlay()], view, supersample=1)
        region = [result.getpixel((x, y)) for x in range(100, 200) for y in range(175, 200)]
        assert any(r < 80 for r, g, b, a in region)


class TestOverlayRegistry:
    """Tests for OverlayRegistry."""

    def test_register(self):
        registry = OverlayRegistry()
        overlay = AttributionOverlay()
        registry.register("attribution", overlay)
        assert dict(registry) == {"attribution": overlay}
        assert len(registry) == 1

    def test_iteration_order(self):
        registry = OverlayRegistry()
        for name in ("attribution", "route", "start", "end"):
            registry.register(name, FillOverlay((0, 0, 0, 255)))
        assert [name for name, _ in registry] == ["attribution", "route", "start", "end"]

    def test_reregister_keeps_position(self):
        registry = OverlayRegistry()
        registry.register("a", FillOverlay((0, 0, 0, 255)))
        registry.register("b", FillOverlay((0, 0, 0, 255)))
        replacement = FillOverlay((1, 1, 1, 255))
        registry.register("a", replacement)
        assert [name for name, _ in registry] == ["a", "b"]
        assert dict(registry)["a"] is replacement
        assert len(registry) == 2

    def test_compose_all_draws_in_order(self, white_canvas, view):
        """Later overlays are drawn over earlier ones."""
        registry = OverlayRegistry()
        registry.register("red", FillOverlay((255, 0, 0, 255)))
        registry.register("green", FillOverlay((0, 255, 0, 255)))
        result = registry.compose_all(white_canvas, view, supersample=1)
        assert result.getpixel((50, 50)) == (0, 255, 0, 255)

    def test_empty_registry_leaves_canvas(self, white_canvas, view):
        result = OverlayRegistry().compose_all(white_canvas, view)
        assert result.tobytes() == white_canvas.tobytes()
