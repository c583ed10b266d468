"""
Constants for the static OSM map renderer.

Centralized definitions for tile geometry, download behaviour, dark-mode
filter parameters, marker styling and overlay settings.
"""

from typing import Tuple
from dataclasses import dataclass


# =============================================================================
# Tile Geometry
# =============================================================================

TILE_SIZE = 256          # Standard web map tile size (pixels)
MIN_ZOOM = 0
MAX_ZOOM = 19            # OSM serves up to 19; point maps render at 19
MAX_FIT_ZOOM = 18        # Highest zoom the zoom selector will pick for trips
POINT_MAP_ZOOM = 19      # Fixed zoom for charging/parking maps
MAX_LATITUDE = 85.0511287798  # Web Mercator cutoff; lat_to_tile_y is undefined at the poles

# Padding kept free around a trip extent when choosing the zoom level
MAP_PADDING_X = 12
MAP_PADDING_Y = 12


# =============================================================================
# Tile Download & Cache
# =============================================================================

TILE_URL_TEMPLATE = "http://{shard}.tile.openstreetmap.org/{zoom}/{x}/{y}.png"
TILE_SUBDOMAINS = ("a", "b", "c")
TILE_USER_AGENT = "TeslaStaticMap.OSMMapProvider/1.0"
TILE_MAX_RETRIES = 10              # Attempts per tile before giving up
TILE_REQUEST_TIMEOUT = 10.0        # Seconds per HTTP request
TILE_RETRY_DELAY = 0.0             # Seconds between attempts (0 = no backoff)
TILE_MAX_AGE_DAYS = 8              # Cached tiles older than this are re-fetched
TILE_CACHE_DIR = "mapcache"

# Rate-limit contract for callers (not enforced internally)
MIN_REQUEST_INTERVAL_MS = 500


# =============================================================================
# Colors (RGBA format for Pillow)
# =============================================================================

@dataclass(frozen=True)
class Colors:
    """Colors used on the static map in RGBA format."""
    WHITE: Tuple[int, int, int, int] = (255, 255, 255, 255)
    BLACK: Tuple[int, int, int, int] = (0, 0, 0, 255)

    # Route line (white halo under a blue core)
    ROUTE_OUTLINE: Tuple[int, int, int, int] = (255, 255, 255, 255)
    ROUTE_LINE: Tuple[int, int, int, int] = (0, 0, 255, 255)

    # Marker fills
    MARKER_START: Tuple[int, int, int, int] = (255, 0, 0, 255)      # Red
    MARKER_END: Tuple[int, int, int, int] = (0, 128, 0, 255)        # Green
    MARKER_CHARGE: Tuple[int, int, int, int] = (255, 69, 0, 255)    # Orange-red
    MARKER_PARK: Tuple[int, int, int, int] = (0, 0, 255, 255)       # Blue
    MARKER_OUTLINE: Tuple[int, int, int, int] = (255, 255, 255, 255)
    MARKER_LABEL: Tuple[int, int, int, int] = (255, 255, 255, 255)

    # Attribution watermark
    ATTRIBUTION_BOX: Tuple[int, int, int, int] = (128, 128, 128, 128)  # Translucent grey
    ATTRIBUTION_TEXT: Tuple[int, int, int, int] = (0, 0, 0, 255)

    # Substituted when a tile cannot be obtained
    PLACEHOLDER: Tuple[int, int, int, int] = (224, 224, 224, 255)


COLORS = Colors()


# =============================================================================
# Marker Settings
# =============================================================================

# Pin geometry in pixels at scale 1 (multiplied by the icon scale)
MARKER_HALF_WIDTH = 4      # Half width of the pin head and tip
MARKER_HEAD_TOP = 10       # Distance from the point up to the top of the head
MARKER_HEAD_SIZE = 8       # Diameter of the head circle
MARKER_TIP_HEIGHT = 6      # Height of the downward-pointing tip
MARKER_LABEL_SIZE = 16     # Label glyph font size (pixels)

MARKER_LABEL_PARK = "P"
MARKER_LABEL_CHARGE = "⚡"  # High voltage sign


# =============================================================================
# Overlay Settings
# =============================================================================

ROUTE_OUTLINE_WIDTH = 4
ROUTE_LINE_WIDTH = 2
MARKER_OUTLINE_WIDTH = 1

ATTRIBUTION_TEXT = "(C) OpenStreetMap"
ATTRIBUTION_FONT_SIZE = 11
ATTRIBUTION_PADDING = 3
ATTRIBUTION_RADIUS = 3

# Overlays are drawn at this multiple of the canvas size and downsampled,
# which anti-aliases lines, arcs and polygons
MAP_SUPERSAMPLE = 4

# Font candidates, tried in order
FONT_CANDIDATES = ("DejaVuSans.ttf", "Arial.ttf", "Helvetica.ttf",
                   "/System/Library/Fonts/Helvetica.ttc")
BOLD_FONT_CANDIDATES = ("DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf",
                        "/System/Library/Fonts/Helvetica.ttc")


# =============================================================================
# Dark Mode Filter Chain
# =============================================================================

# Ordered (operation, parameter) steps; the order and values are fixed
DARK_MODE_CHAIN = (
    ("brightness", 0.6),
    ("invert", None),
    ("contrast", 1.3),
    ("hue_rotate", -170.0),
    ("saturation", 0.3),
    ("brightness", 0.7),
    ("contrast", 1.3),
)

# Translation term added by the contrast matrix (normalized channel units)
CONTRAST_OFFSET = 0.001

# Perceptual luma weights used by the saturation matrix
LUMA_WEIGHT_R = 0.3086
LUMA_WEIGHT_G = 0.6094
LUMA_WEIGHT_B = 0.0820

# Blue channel scale in the hue rotation matrix
HUE_ROTATE_BLUE_SCALE = 2.0
