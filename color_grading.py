"""
Color-matrix grading for the static OSM map renderer.

Every adjustment is a 5x5 color matrix applied to RGBA pixels treated as the
row vector [r, g, b, a, 1] with channels normalized to 0-1. Each step clips
and re-quantizes to uint8, so a chain of steps behaves like repeatedly
redrawing an 8-bit bitmap through a color matrix. The dark map style is a
fixed chain of seven such steps.
"""

import logging
import math
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from constants import (
    CONTRAST_OFFSET,
    DARK_MODE_CHAIN,
    HUE_ROTATE_BLUE_SCALE,
    LUMA_WEIGHT_B, LUMA_WEIGHT_G, LUMA_WEIGHT_R,
)

logger = logging.getLogger(__name__)

# Matrix cache (key: (operation, parameter))
_matrix_cache: Dict[tuple, np.ndarray] = {}


def brightness_matrix(brightness: float) -> np.ndarray:
    """Scale R, G and B uniformly."""
    return np.diag([brightness, brightness, brightness, 1.0, 1.0])


def invert_matrix() -> np.ndarray:
    """Negate R, G and B (c -> 1 - c); alpha is preserved."""
    m = np.diag([-1.0, -1.0, -1.0, 1.0, 1.0])
    m[4, :3] = 1.0
    return m


def contrast_matrix(contrast: float) -> np.ndarray:
    """Scale R, G and B with a small constant offset."""
    m = np.diag([contrast, contrast, contrast, 1.0, 1.0])
    m[4, :3] = CONTRAST_OFFSET
    return m


def hue_rotate_matrix(degrees: float) -> np.ndarray:
    """Rotate in the (R, G) plane; blue gets a fixed compensating scale."""
    r = degrees * math.pi / 180.0
    cos_r, sin_r = math.cos(r), math.sin(r)
    return np.array([
        [cos_r, sin_r, 0.0, 0.0, 0.0],
        [-sin_r, -cos_r, 0.0, 0.0, 0.0],
        [0.0, 0.0, HUE_ROTATE_BLUE_SCALE, 0.0, 0.0],
        [0.0, 0.0, 0.0, 1.0, 0.0],
        [0.0, 0.0, 0.0, 0.0, 1.0],
    ])


def saturation_matrix(saturation: float) -> np.ndarray:
    """
    Blend each channel toward luma.

    Row i holds the contribution of input channel i to every output channel:
    ``diag(s) + (1 - s) * luma_weight_i`` replicated across R, G and B.
    """
    compl = 1.0 - saturation
    weights = (LUMA_WEIGHT_R * compl, LUMA_WEIGHT_G * compl, LUMA_WEIGHT_B * compl)
    m = np.eye(5)
    for i, w in enumerate(weights):
        m[i, :3] = w
        m[i, i] = w + saturation
    return m


_MATRIX_BUILDERS = {
    "brightness": brightness_matrix,
    "invert": lambda _param: invert_matrix(),
    "contrast": contrast_matrix,
    "hue_rotate": hue_rotate_matrix,
    "saturation": saturation_matrix,
}


def get_matrix(operation: str, param: Optional[float] = None) -> np.ndarray:
    """Get or build the color matrix for one grading step."""
    key = (operation, None if param is None else round(float(param), 6))
    if key in _matrix_cache:
        return _matrix_cache[key]

    builder = _MATRIX_BUILDERS.get(operation)
    if builder is None:
        raise ValueError(f"Unknown color operation '{operation}'")
    m = builder(param)
    m.setflags(write=False)
    _matrix_cache[key] = m
    return m


def apply_color_matrix(frame: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """
    Apply a 5x5 color matrix to an image array.

    Args:
        frame: RGBA (or RGB) uint8 numpy array of shape (H, W, 4|3)
        matrix: 5x5 matrix in row-vector form ([r g b a 1] @ matrix)

    Returns:
        New uint8 array with the same shape as ``frame``
    """
    channels = frame.shape[2]
    data = frame.astype(np.float64) / 255.0
    if channels == 3:
        alpha = np.ones(frame.shape[:2] + (1,), dtype=np.float64)
        data = np.concatenate([data, alpha], axis=2)

    h, w, _ = data.shape
    vec = np.concatenate([data, np.ones((h, w, 1), dtype=np.float64)], axis=2)
    out = vec.reshape(-1, 5) @ matrix[:, :4]
    out = np.clip(out, 0.0, 1.0).reshape(h, w, 4)
    result = np.rint(out * 255.0).astype(np.uint8)

    return result[:, :, :channels] if channels == 3 else result


def apply_brightness(frame: np.ndarray, brightness: float) -> np.ndarray:
    """Multiply R, G, B by ``brightness`` (1.0 = no change)."""
    return apply_color_matrix(frame, get_matrix("brightness", brightness))


def apply_invert(frame: np.ndarray) -> np.ndarray:
    """Negative image, alpha untouched."""
    return apply_color_matrix(frame, get_matrix("invert"))


def apply_contrast(frame: np.ndarray, contrast: float) -> np.ndarray:
    """Scale R, G, B by ``contrast`` plus the fixed offset term."""
    return apply_color_matrix(frame, get_matrix("contrast", contrast))


def apply_hue_rotate(frame: np.ndarray, degrees: float) -> np.ndarray:
    return apply_color_matrix(frame, get_matrix("hue_rotate", degrees))


def apply_saturation(frame: np.ndarray, saturation: float) -> np.ndarray:
    """Blend toward luma; 0.0 = grayscale, 1.0 = no change."""
    return apply_color_matrix(frame, get_matrix("saturation", saturation))


class ColorMatrixChain:
    """
    Ordered sequence of color-matrix steps.

    Usage:
        chain = ColorMatrixChain([("brightness", 0.6), ("invert", None)])
        image = chain.grade_image(image)
    """

    def __init__(self, steps: Sequence[Tuple[str, Optional[float]]]):
        # Validate and warm the matrix cache up front
        self.steps = tuple(steps)
        self._matrices = [get_matrix(op, param) for op, param in self.steps]

    @property
    def is_active(self) -> bool:
        return bool(self.steps)

    def grade(self, frame: np.ndarray) -> np.ndarray:
        """Apply every step in order; returns a new array."""
        result = frame
        for matrix in self._matrices:
            result = apply_color_matrix(result, matrix)
        return result

    def grade_image(self, image: Image.Image) -> Image.Image:
        """Apply the chain to a PIL image; returns a new RGBA image."""
        frame = np.asarray(image.convert("RGBA"))
        return Image.fromarray(self.grade(frame), "RGBA")


DARK_MODE = ColorMatrixChain(DARK_MODE_CHAIN)


def apply_dark_mode(image: Image.Image) -> Image.Image:
    """Return the dark-mode rendering of ``image`` (input is not modified)."""
    logger.debug(f"Applying dark mode to {image.width}x{image.height} canvas")
    return DARK_MODE.grade_image(image)
