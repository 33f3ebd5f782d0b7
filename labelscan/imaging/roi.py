"""
==============================================================================
ROI Extractor Module
==============================================================================

Locates the printed label inside a photo and estimates its in-plane skew.

Label location:
--------------
Horizontal Sobel energy is summed per row and per column on a downsampled
copy. Walking inward from each border while the energy stays under a
fraction of that axis' peak finds the densest band of edge activity, which
is padded and mapped back onto the full-resolution source.

Skew estimation:
---------------
Brute-force search over a small set of angles. Straight vertical bars give
a high column-to-column variance of edge energy; skewed or blurred bars
spread it evenly.

==============================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Sequence, Tuple

import cv2
import numpy as np

from .primitives import rotate, sobel_magnitude_x, to_grayscale


# Module logger
logger = logging.getLogger(__name__)


MAX_ANALYSIS_SIDE = 360
ROW_ENERGY_FRACTION = 0.45
COLUMN_ENERGY_FRACTION = 0.35
PAD_X_FRACTION = 0.08
PAD_Y_FRACTION = 0.18
MIN_CROP_SIDE = 8

DEFAULT_SKEW_ANGLES: Tuple[int, ...] = tuple(range(-12, 13, 2))


@dataclass(frozen=True)
class Rectangle:
    """
    Axis-aligned box in source-image pixel coordinates.

    Attributes:
        x: Left edge
        y: Top edge
        width: Box width in pixels
        height: Box height in pixels
    """

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def clamped(self, source_width: int, source_height: int) -> "Rectangle":
        """Clamp the box into [0, source_width) x [0, source_height)."""
        x = min(max(0, self.x), max(0, source_width - 1))
        y = min(max(0, self.y), max(0, source_height - 1))
        right = min(max(self.right, x + 1), source_width)
        bottom = min(max(self.bottom, y + 1), source_height)
        return Rectangle(x, y, max(1, right - x), max(1, bottom - y))

    def expanded(self, left: int = 0, top: int = 0, right: int = 0, bottom: int = 0) -> "Rectangle":
        """Grow the box by the given margins (not clamped)."""
        return Rectangle(
            self.x - left,
            self.y - top,
            self.width + left + right,
            self.height + top + bottom,
        )

    @classmethod
    def from_points(cls, points: Iterable[Tuple[float, float]]) -> "Rectangle":
        """Bounding box of a polygon (e.g. decoder corner points)."""
        pts = np.asarray(list(points), dtype=np.float64)
        if pts.size == 0:
            raise ValueError("Cannot build a rectangle from zero points")
        x0, y0 = np.floor(pts.min(axis=0)).astype(int)
        x1, y1 = np.ceil(pts.max(axis=0)).astype(int)
        return cls(int(x0), int(y0), max(1, int(x1 - x0)), max(1, int(y1 - y0)))

    def as_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


def crop(buffer: np.ndarray, rect: Rectangle) -> np.ndarray:
    """Copy the (clamped) rectangle out of a grayscale or RGBA buffer."""
    height, width = buffer.shape[:2]
    box = rect.clamped(width, height)
    return buffer[box.y:box.bottom, box.x:box.right].copy()


def _as_gray(image: np.ndarray) -> np.ndarray:
    return to_grayscale(image) if image.ndim == 3 else image.astype(np.float32, copy=False)


def _inward_bounds(profile: np.ndarray, fraction: float) -> Tuple[int, int]:
    # First and last index whose energy reaches fraction * peak
    peak = float(profile.max()) if profile.size else 0.0
    hits = np.flatnonzero(profile >= peak * fraction)
    if hits.size == 0:
        return 0, len(profile) - 1
    return int(hits[0]), int(hits[-1])


# =============================================================================
# LABEL LOCATION
# =============================================================================

def locate_label(image: np.ndarray) -> Rectangle:
    """
    Find the label region in an image.

    Args:
        image: Grayscale or RGBA buffer at full resolution

    Returns:
        Rectangle in full-resolution coordinates, clamped to the image
    """
    src_h, src_w = image.shape[:2]
    scale = min(1.0, MAX_ANALYSIS_SIDE / max(src_w, src_h))
    w = max(1, int(round(src_w * scale)))
    h = max(1, int(round(src_h * scale)))

    small = image
    if (w, h) != (src_w, src_h):
        small = cv2.resize(image, (w, h), interpolation=cv2.INTER_AREA)

    edge = sobel_magnitude_x(_as_gray(small))
    rows = edge.sum(axis=1)
    cols = edge.sum(axis=0)

    y0, y1 = _inward_bounds(rows, ROW_ENERGY_FRACTION)
    x0, x1 = _inward_bounds(cols, COLUMN_ENERGY_FRACTION)

    pad_x = int((x1 - x0 + 1) * PAD_X_FRACTION)
    pad_y = int((y1 - y0 + 1) * PAD_Y_FRACTION)
    x0 = min(max(x0 - pad_x, 0), w - 1)
    y0 = min(max(y0 - pad_y, 0), h - 1)
    x1 = min(max(x1 + pad_x, 0), w - 1)
    y1 = min(max(y1 + pad_y, 0), h - 1)

    sx = int(x0 / w * src_w)
    sy = int(y0 / h * src_h)
    sw = max(MIN_CROP_SIDE, int((x1 - x0 + 1) / w * src_w))
    sh = max(MIN_CROP_SIDE, int((y1 - y0 + 1) / h * src_h))

    rect = Rectangle(sx, sy, sw, sh).clamped(src_w, src_h)
    logger.debug(f"Label located at {rect.as_dict()} in {src_w}x{src_h}")
    return rect


def auto_crop_label(image: np.ndarray) -> np.ndarray:
    """Crop the located label out of the original (full-resolution) image."""
    return crop(image, locate_label(image))


# =============================================================================
# SKEW
# =============================================================================

def _common_valid_mask(shape: Tuple[int, int], angles: Sequence[float]) -> np.ndarray:
    # Pixels that keep real image data at every candidate angle, shrunk by
    # one pixel for the Sobel neighbourhood
    solid = np.full(shape, 255.0, dtype=np.float32)
    mask = np.ones(shape, dtype=bool)
    for angle in angles:
        mask &= rotate(solid, angle, fill_value=0) >= 254.5
    eroded = cv2.erode(mask.astype(np.uint8), np.ones((3, 3), np.uint8))
    return eroded.astype(bool)


def estimate_best_skew_angle(
    image: np.ndarray,
    angles: Sequence[float] = DEFAULT_SKEW_ANGLES,
) -> float:
    """
    Estimate the rotation that best straightens vertical bars.

    Each candidate rotation is scored by the variance of per-column
    Sobel-X sums, taken only over the area that stays inside the source
    at every candidate angle so the filled corners never score. The
    highest score wins; ties keep the first candidate. An image with no
    horizontal gradient at all needs no correction and returns 0.

    Args:
        image: Grayscale or RGBA crop
        angles: Candidate angles in degrees, searched in order

    Returns:
        The angle to pass to ``rotate`` to straighten the image
    """
    gray = _as_gray(image)
    if not sobel_magnitude_x(gray).any():
        return 0.0

    mask = _common_valid_mask(gray.shape, angles)
    if not mask.any():
        mask = np.ones(gray.shape, dtype=bool)

    best_angle = 0.0
    best_score = -np.inf

    for angle in angles:
        edges = sobel_magnitude_x(rotate(gray, angle, fill_value=255))
        columns = np.where(mask, edges, 0.0).sum(axis=0, dtype=np.float64)
        score = float(np.var(columns)) if columns.size else 0.0
        if score > best_score:
            best_score = score
            best_angle = float(angle)

    return best_angle


def deskew(
    image: np.ndarray,
    angles: Sequence[float] = DEFAULT_SKEW_ANGLES,
) -> Tuple[np.ndarray, float]:
    """
    Straighten an image with the estimated skew correction.

    Returns:
        Tuple of (straightened buffer, applied angle)
    """
    angle = estimate_best_skew_angle(image, angles)
    return rotate(image, angle, fill_value=255), angle
