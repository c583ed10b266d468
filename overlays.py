"""
Overlay layer for the static OSM map renderer.

Overlays (route polyline, markers, attribution) are drawn onto a transparent
layer at MAP_SUPERSAMPLE times the canvas resolution. The layer is then
downsampled with LANCZOS and alpha-composited over the map, which gives
anti-aliased lines, arcs and polygons without a vector backend.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from constants import (
    ATTRIBUTION_FONT_SIZE, ATTRIBUTION_PADDING, ATTRIBUTION_RADIUS, ATTRIBUTION_TEXT,
    BOLD_FONT_CANDIDATES, COLORS, FONT_CANDIDATES,
    MAP_SUPERSAMPLE,
    MARKER_HALF_WIDTH, MARKER_HEAD_SIZE, MARKER_HEAD_TOP, MARKER_TIP_HEIGHT,
    MARKER_LABEL_CHARGE, MARKER_LABEL_PARK, MARKER_LABEL_SIZE,
    MARKER_OUTLINE_WIDTH, ROUTE_LINE_WIDTH, ROUTE_OUTLINE_WIDTH,
)
from map_models import GeoPoint, MapIcon, PixelCoordinate, TripPath
from projection import MapView

logger = logging.getLogger(__name__)


# Font cache (key: (size, bold))
_font_cache: dict = {}


def _get_font(size: float = 12, bold: bool = False) -> ImageFont.ImageFont:
    """Get a cached font instance, falling back to Pillow's default font."""
    int_size = max(1, int(size))
    key = (int_size, bold)
    if key in _font_cache:
        return _font_cache[key]

    font = None
    for font_name in (BOLD_FONT_CANDIDATES if bold else FONT_CANDIDATES):
        try:
            font = ImageFont.truetype(font_name, int_size)
            break
        except (OSError, IOError):
            continue

    if font is None:
        try:
            font = ImageFont.load_default(size=int_size)
        except TypeError:
            # Pillow < 10.1 has no sized default font
            font = ImageFont.load_default()

    _font_cache[key] = font
    return font


# Marker styling: icon -> (fill color, size scale, label glyph)
MARKER_STYLES: Dict[MapIcon, Tuple[Tuple[int, int, int, int], int, Optional[str]]] = {
    MapIcon.START: (COLORS.MARKER_START, 1, None),
    MapIcon.END: (COLORS.MARKER_END, 1, None),
    MapIcon.CHARGE: (COLORS.MARKER_CHARGE, 3, MARKER_LABEL_CHARGE),
    MapIcon.PARK: (COLORS.MARKER_PARK, 3, MARKER_LABEL_PARK),
}


def route_segments(pixels: Sequence[PixelCoordinate]) -> List[Tuple[PixelCoordinate, PixelCoordinate]]:
    """Consecutive pixel pairs, skipping segments whose ends are the same pixel."""
    segments = []
    for i in range(1, len(pixels)):
        p1, p2 = pixels[i - 1], pixels[i]
        if p1 != p2:
            segments.append((p1, p2))
    return segments


class Overlay(ABC):
    """
    Abstract base class for everything drawn on top of the map tiles.

    Subclasses draw onto the supersampled layer: pixel coordinates obtained
    from the MapView must be multiplied by ``ss`` and line widths scaled by it.

    Example:
        class DotOverlay(Overlay):
            def draw(self, draw, view, ss):
                x, y = view.to_pixel(self.point)
                draw.ellipse([x * ss - 4, y * ss - 4, x * ss + 4, y * ss + 4], fill=(255, 0, 0, 255))

        canvas = DotOverlay().compose(canvas, view)
    """

    @abstractmethod
    def draw(self, draw: ImageDraw.ImageDraw, view: MapView, ss: int) -> None:
        """Draw the overlay onto the supersampled layer."""
        pass

    def compose(self, canvas: Image.Image, view: MapView,
                supersample: int = MAP_SUPERSAMPLE) -> Image.Image:
        """Render this overlay alone and composite it over ``canvas``."""
        return compose_overlays(canvas, [self], view, supersample)


def compose_overlays(canvas: Image.Image, overlays: Sequence[Overlay], view: MapView,
                     supersample: int = MAP_SUPERSAMPLE) -> Image.Image:
    """
    Draw overlays in order on one supersampled layer and composite it.

    Args:
        canvas: RGBA map image (not modified)
        overlays: Overlays to draw, bottom first
        view: Map view used to project geographic points
        supersample: Layer resolution multiple

    Returns:
        New RGBA image with the overlays applied
    """
    ss = max(1, int(supersample))
    layer = Image.new("RGBA", (canvas.width * ss, canvas.height * ss), (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    for overlay in overlays:
        overlay.draw(draw, view, ss)

    if ss > 1:
        layer = layer.resize(canvas.size, Image.Resampling.LANCZOS)
    return Image.alpha_composite(canvas.convert("RGBA"), layer)


class RouteOverlay(Overlay):
    """Trip polyline: white halo under a blue line."""

    def __init__(self, points: TripPath):
        self.points = list(points)

    def draw(self, draw: ImageDraw.ImageDraw, view: MapView, ss: int) -> None:
        segments = route_segments([view.to_pixel(p) for p in self.points])
        if not segments:
            return

        # Full outline pass first so the blue line sits on top at joints
        for color, width in ((COLORS.ROUTE_OUTLINE, ROUTE_OUTLINE_WIDTH),
                             (COLORS.ROUTE_LINE, ROUTE_LINE_WIDTH)):
            for p1, p2 in segments:
                draw.line([(p1.x * ss, p1.y * ss), (p2.x * ss, p2.y * ss)],
                          fill=color, width=width * ss)


class MarkerOverlay(Overlay):
    """
    Map pin: filled half-disc head above a downward-pointing tip.

    The tip touches the marked point. Charge and park pins are three times
    larger and carry a white glyph over the pin.
    """

    def __init__(self, point: GeoPoint, icon: MapIcon):
        self.point = point
        self.icon = icon

    @property
    def style(self) -> Tuple[Tuple[int, int, int, int], int, Optional[str]]:
        return MARKER_STYLES[self.icon]

    def draw(self, draw: ImageDraw.ImageDraw, view: MapView, ss: int) -> None:
        color, scale, label = self.style
        px = view.to_pixel(self.point)
        x, y = px.x * ss, px.y * ss
        s = scale * ss

        head = [x - MARKER_HALF_WIDTH * s, y - MARKER_HEAD_TOP * s,
                x - MARKER_HALF_WIDTH * s + MARKER_HEAD_SIZE * s,
                y - MARKER_HEAD_TOP * s + MARKER_HEAD_SIZE * s]
        tip = [(x - MARKER_HALF_WIDTH * s, y - MARKER_TIP_HEIGHT * s),
               (x, y),
               (x + MARKER_HALF_WIDTH * s, y - MARKER_TIP_HEIGHT * s)]

        # Upper half of the head circle (Pillow angles run clockwise from 3 o'clock)
        draw.pieslice(head, 180, 360, fill=color)
        draw.polygon(tip, fill=color)

        outline = MARKER_OUTLINE_WIDTH * ss
        draw.arc(head, 180, 360, fill=COLORS.MARKER_OUTLINE, width=outline)
        draw.line([tip[0], tip[1]], fill=COLORS.MARKER_OUTLINE, width=outline)
        draw.line([tip[1], tip[2]], fill=COLORS.MARKER_OUTLINE, width=outline)

        if label:
            font = _get_font(MARKER_LABEL_SIZE * ss, bold=True)
            bbox = draw.textbbox((0, 0), label, font=font)
            w = bbox[2] - bbox[0]
            h = bbox[3] - bbox[1]
            cx, cy = x, y - MARKER_TIP_HEIGHT * s
            draw.text((cx - w / 2 - bbox[0], cy - h / 2 - bbox[1]), label,
                      fill=COLORS.MARKER_LABEL, font=font)


class AttributionOverlay(Overlay):
    """Translucent '(C) OpenStreetMap' box anchored to the bottom-right corner."""

    def __init__(self, text: str = ATTRIBUTION_TEXT):
        self.text = text

    def draw(self, draw: ImageDraw.ImageDraw, view: MapView, ss: int) -> None:
        font = _get_font(ATTRIBUTION_FONT_SIZE * ss)
        bbox = draw.textbbox((0, 0), self.text, font=font)
        text_w = bbox[2] - bbox[0]
        text_h = bbox[3] - bbox[1]
        pad = ATTRIBUTION_PADDING * ss
        width, height = view.width * ss, view.height * ss

        left = width - text_w - 2 * pad
        top = height - text_h - 2 * pad
        draw.rounded_rectangle([left, top, width - 1, height - 1],
                               radius=ATTRIBUTION_RADIUS * ss, fill=COLORS.ATTRIBUTION_BOX)
        draw.text((left + pad - bbox[0], top + pad - bbox[1]), self.text,
                  fill=COLORS.ATTRIBUTION_TEXT, font=font)


class OverlayRegistry:
    """
    Ordered collection of named overlays composited in one pass.

    Example:
        registry = OverlayRegistry()
        registry.register('route', RouteOverlay(points))
        registry.register('start', MarkerOverlay(points[0], MapIcon.START))

        canvas = registry.compose_all(canvas, view)
    """

    def __init__(self):
        self._overlays: dict[str, Overlay] = {}
        self._order: list[str] = []

    def register(self, name: str, overlay: Overlay) -> None:
        """Register an overlay under a unique name (re-registering replaces it in place)."""
        if name not in self._overlays:
            self._order.append(name)
        self._overlays[name] = overlay

    def compose_all(self, canvas: Image.Image, view: MapView,
                    supersample: int = MAP_SUPERSAMPLE) -> Image.Image:
        """Draw all overlays in registration order; returns a new image."""
        return compose_overlays(canvas, [self._overlays[n] for n in self._order], view, supersample)

    def __len__(self) -> int:
        return len(self._overlays)

    def __iter__(self):
        for name in self._order:
            yield name, self._overlays[name]
