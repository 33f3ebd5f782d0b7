"""
==============================================================================
Enhancement Primitives Module
==============================================================================

Stateless pixel transforms shared by the ROI extractor, the enhancement
pipeline and the decode orchestrator.

Buffers:
--------
- Grayscale: numpy array of shape (height, width), float32, domain 0-255
- RGBA: numpy array of shape (height, width, 4), uint8

Every function returns a new array and leaves its input untouched, except
the three in-place operations whose names end in ``_inplace``:
``deglare_inplace``, ``binarize_inplace`` and ``invert_inplace``. Those must
be applied before a buffer is handed to anyone else.

==============================================================================
"""

from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np


# Module logger
logger = logging.getLogger(__name__)


LUMA_WEIGHTS = (0.299, 0.587, 0.114)

# Glare detection (near-white, low saturation)
GLARE_LUMA_MIN = 228
GLARE_SATURATION_MAX = 35
GLARE_BLUR_RADIUS = 7
GLARE_TARGET_OFFSET = 10

# Returned when the histogram offers no split (single intensity)
OTSU_DEFAULT_THRESHOLD = 127


# =============================================================================
# CONVERSIONS
# =============================================================================

def to_grayscale(rgba: np.ndarray) -> np.ndarray:
    """
    Convert an RGBA buffer to grayscale luma.

    Args:
        rgba: (H, W, 4) uint8 buffer (a 2-D buffer is returned as float copy)

    Returns:
        (H, W) float32 buffer, luma = 0.299R + 0.587G + 0.114B
    """
    if rgba.ndim == 2:
        return rgba.astype(np.float32, copy=True)

    channels = rgba[..., :3].astype(np.float32)
    r, g, b = LUMA_WEIGHTS
    return channels[..., 0] * r + channels[..., 1] * g + channels[..., 2] * b


def to_uint8(buffer: np.ndarray) -> np.ndarray:
    """Round and clamp a float buffer into uint8 (half-up rounding)."""
    if buffer.dtype == np.uint8:
        return buffer.copy()
    return np.clip(np.floor(buffer + 0.5), 0, 255).astype(np.uint8)


def gray_to_rgba(gray: np.ndarray) -> np.ndarray:
    """Render a grayscale buffer as an opaque RGBA buffer."""
    value = to_uint8(gray)
    alpha = np.full_like(value, 255)
    return np.dstack([value, value, value, alpha])


def rgba_from_bgr(frame: np.ndarray) -> np.ndarray:
    """
    Convert an OpenCV frame (BGR, BGRA or single channel) to RGBA.

    Args:
        frame: Image as returned by cv2.imdecode / cv2.imread

    Returns:
        (H, W, 4) uint8 RGBA buffer
    """
    if frame.ndim == 2:
        return cv2.cvtColor(to_uint8(frame), cv2.COLOR_GRAY2RGBA)
    if frame.shape[2] == 4:
        return cv2.cvtColor(frame, cv2.COLOR_BGRA2RGBA)
    return cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)


def _histogram(gray: np.ndarray) -> np.ndarray:
    bins = np.clip(np.floor(gray + 0.5), 0, 255).astype(np.intp)
    return np.bincount(bins.ravel(), minlength=256)


def _first_reaching(cumulative: np.ndarray, target: float, default: int) -> int:
    reached = np.flatnonzero(cumulative >= target)
    return int(reached[0]) if reached.size else default


# =============================================================================
# FILTERS
# =============================================================================

def _running_mean(values: np.ndarray, radius: int, axis: int) -> np.ndarray:
    # Sliding window over an edge-replicated copy: one cumulative sum per
    # axis, so the cost does not depend on the radius.
    window = 2 * radius + 1
    size = values.shape[axis]

    pad = [(0, 0), (0, 0)]
    pad[axis] = (radius, radius)
    padded = np.pad(values.astype(np.float64), pad, mode="edge")

    csum = np.cumsum(padded, axis=axis)
    csum = np.insert(csum, 0, 0.0, axis=axis)

    upper = np.take(csum, np.arange(window, window + size), axis=axis)
    lower = np.take(csum, np.arange(0, size), axis=axis)
    return (upper - lower) / window


def box_blur(gray: np.ndarray, radius: int) -> np.ndarray:
    """
    Separable mean filter with edge replication.

    Args:
        gray: Grayscale buffer
        radius: Half window size; ``radius <= 0`` returns an identical copy

    Returns:
        Blurred grayscale buffer
    """
    if radius <= 0:
        return gray.astype(np.float32, copy=True)

    horizontal = _running_mean(gray, radius, axis=1)
    return _running_mean(horizontal, radius, axis=0).astype(np.float32)


def median3x3(gray: np.ndarray) -> np.ndarray:
    """3x3 median (5th of 9 sorted samples), borders replicated."""
    height, width = gray.shape
    padded = np.pad(gray.astype(np.float32), 1, mode="edge")

    neighbours = np.stack([
        padded[dy:dy + height, dx:dx + width]
        for dy in range(3)
        for dx in range(3)
    ])
    return np.partition(neighbours, 4, axis=0)[4]


def unsharp_mask(gray: np.ndarray, radius: int, amount: float) -> np.ndarray:
    """out = clamp(gray + (gray - blur(gray, radius)) * amount)."""
    blurred = box_blur(gray, radius)
    sharpened = gray + (gray - blurred) * amount
    return np.clip(sharpened, 0, 255).astype(np.float32)


def sobel_magnitude_x(gray: np.ndarray) -> np.ndarray:
    """
    Absolute horizontal Sobel response.

    The outer ring of pixels is left at zero.
    """
    out = np.zeros(gray.shape, dtype=np.float32)
    height, width = gray.shape
    if height < 3 or width < 3:
        return out

    g = gray.astype(np.float32)
    right = g[:-2, 2:] + 2 * g[1:-1, 2:] + g[2:, 2:]
    left = g[:-2, :-2] + 2 * g[1:-1, :-2] + g[2:, :-2]
    out[1:-1, 1:-1] = np.abs(right - left)
    return out


def directional_sharpen_vertical(gray: np.ndarray, strength: float) -> np.ndarray:
    """
    Emphasize vertical edges (1-D barcode bars).

    out = clamp(center * (1 + 2s) - (left + right) * s), with the
    horizontal neighbours clamped at the borders.
    """
    padded = np.pad(gray.astype(np.float32), ((0, 0), (1, 1)), mode="edge")
    left = padded[:, :-2]
    right = padded[:, 2:]
    out = gray * (1 + 2 * strength) - (left + right) * strength
    return np.clip(out, 0, 255).astype(np.float32)


# =============================================================================
# HISTOGRAM OPERATIONS
# =============================================================================

def histogram_stretch(gray: np.ndarray, low_pct: float, high_pct: float) -> np.ndarray:
    """
    Linear contrast stretch between two histogram percentiles.

    Finds the smallest intensity ``a`` whose cumulative count reaches
    ``low_pct`` of all pixels and the smallest ``b`` reaching ``high_pct``,
    then remaps ``[a, b]`` onto ``[0, 255]``.

    Args:
        gray: Grayscale buffer
        low_pct: Lower cutoff as a fraction (e.g. 0.02)
        high_pct: Upper cutoff as a fraction (e.g. 0.98)

    Returns:
        Stretched grayscale buffer, clamped to [0, 255]
    """
    total = gray.size
    if total == 0:
        return gray.astype(np.float32, copy=True)

    cumulative = np.cumsum(_histogram(gray))
    a = _first_reaching(cumulative, total * low_pct, 0)
    b = _first_reaching(cumulative, total * high_pct, 255)

    den = max(1, b - a)
    out = (gray - a) / den * 255.0
    return np.clip(out, 0, 255).astype(np.float32)


def histogram_equalize(gray: np.ndarray) -> np.ndarray:
    """
    CDF-based histogram equalization.

    ``cdfMin`` is the first nonzero cumulative bin; the denominator falls
    back to 1 on images where every pixel shares one intensity.
    """
    total = gray.size
    if total == 0:
        return gray.astype(np.float32, copy=True)

    cdf = np.cumsum(_histogram(gray)).astype(np.float64)
    nonzero = cdf[cdf > 0]
    cdf_min = nonzero[0] if nonzero.size else 0.0
    den = (total - cdf_min) or 1.0

    bins = np.clip(np.floor(gray + 0.5), 0, 255).astype(np.intp)
    out = (cdf[bins] - cdf_min) / den * 255.0
    return np.clip(out, 0, 255).astype(np.float32)


def otsu_threshold(gray: np.ndarray) -> int:
    """
    Otsu threshold over the 256-bin histogram.

    The returned value is the lowest intensity of the bright class, so
    ``pixel >= threshold`` selects the foreground. Ties keep the first
    maximum found scanning ascending.

    Args:
        gray: Grayscale buffer

    Returns:
        Threshold in 1..255, or 127 when no split exists
    """
    hist = _histogram(gray).astype(np.float64)
    total = float(gray.size)
    levels = np.arange(256, dtype=np.float64)

    weight_bg = np.cumsum(hist)
    sum_bg = np.cumsum(levels * hist)
    weight_fg = total - weight_bg
    valid = (weight_bg > 0) & (weight_fg > 0)

    with np.errstate(divide="ignore", invalid="ignore"):
        mean_bg = sum_bg / weight_bg
        mean_fg = (sum_bg[-1] - sum_bg) / weight_fg
        between = weight_bg * weight_fg * (mean_bg - mean_fg) ** 2
    between = np.where(valid, between, 0.0)

    best = int(np.argmax(between))
    if between[best] <= 0:
        return OTSU_DEFAULT_THRESHOLD
    return best + 1


# =============================================================================
# IN-PLACE OPERATIONS
# =============================================================================

def deglare_inplace(rgba: np.ndarray) -> np.ndarray:
    """
    Suppress specular glare on an RGBA buffer, in place.

    Near-white, low-saturation pixels are pulled down toward a heavily
    blurred luma reference plus a small offset. Brightness never increases.

    Args:
        rgba: (H, W, 4) uint8 buffer, modified in place

    Returns:
        The same buffer
    """
    gray = to_grayscale(rgba)
    smooth = box_blur(gray, GLARE_BLUR_RADIUS)

    rgb = rgba[..., :3].astype(np.int16)
    saturation = rgb.max(axis=2) - rgb.min(axis=2)
    mask = (gray > GLARE_LUMA_MIN) & (saturation < GLARE_SATURATION_MAX)
    if not mask.any():
        return rgba

    target = np.clip(smooth + GLARE_TARGET_OFFSET, 0, 255)
    pulled = np.minimum(rgb[mask].astype(np.float32), target[mask][:, None])
    rgba[..., :3][mask] = np.rint(pulled).astype(np.uint8)

    logger.debug(f"Deglare touched {int(mask.sum())} pixels")
    return rgba


def binarize_inplace(gray: np.ndarray, threshold: Optional[int] = None) -> int:
    """
    Threshold a grayscale buffer to pure 0/255, in place.

    Args:
        gray: Float grayscale buffer, modified in place
        threshold: Cutoff; Otsu's threshold when omitted

    Returns:
        The threshold that was applied
    """
    if threshold is None:
        threshold = otsu_threshold(gray)
    gray[...] = np.where(gray >= threshold, 255.0, 0.0)
    return threshold


def binarized(gray: np.ndarray, threshold: Optional[int] = None) -> np.ndarray:
    """Non-mutating counterpart of ``binarize_inplace``."""
    out = gray.astype(np.float32, copy=True)
    binarize_inplace(out, threshold)
    return out


def invert_inplace(buffer: np.ndarray) -> np.ndarray:
    """255 - value on the color channels (alpha untouched), in place."""
    if buffer.ndim == 3:
        buffer[..., :3] = 255 - buffer[..., :3]
    else:
        buffer[...] = 255 - buffer
    return buffer


# =============================================================================
# GEOMETRY
# =============================================================================

def rotate(buffer: np.ndarray, angle_degrees: float, fill_value: float = 255) -> np.ndarray:
    """
    Rotate about the image center without resizing the canvas.

    Positive angles turn the image clockwise as displayed (y axis down).
    Exposed corners are filled with ``fill_value`` (opaque for RGBA).

    Args:
        buffer: Grayscale or RGBA buffer
        angle_degrees: Rotation angle
        fill_value: Background intensity for exposed areas

    Returns:
        Rotated buffer with the same shape and dtype
    """
    height, width = buffer.shape[:2]
    if angle_degrees == 0:
        return buffer.copy()

    # OpenCV measures positive angles counter-clockwise
    matrix = cv2.getRotationMatrix2D((width / 2.0, height / 2.0), -angle_degrees, 1.0)

    if buffer.ndim == 3:
        border = (fill_value, fill_value, fill_value, 255)[:buffer.shape[2]]
    else:
        border = (fill_value,)

    return cv2.warpAffine(
        buffer,
        matrix,
        (width, height),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=border,
    )
