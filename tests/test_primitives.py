"""
==============================================================================
Enhancement Primitive Tests
==============================================================================

Tests for the stateless pixel transforms.

==============================================================================
"""

import numpy as np
import pytest

from labelscan.imaging.primitives import (
    OTSU_DEFAULT_THRESHOLD,
    binarize_inplace,
    binarized,
    box_blur,
    deglare_inplace,
    directional_sharpen_vertical,
    gray_to_rgba,
    histogram_equalize,
    histogram_stretch,
    invert_inplace,
    median3x3,
    otsu_threshold,
    rotate,
    sobel_magnitude_x,
    to_grayscale,
    to_uint8,
    unsharp_mask,
)


def two_level(low: float, high: float, shape=(20, 20)) -> np.ndarray:
    """Left half ``low``, right half ``high``."""
    image = np.full(shape, high, dtype=np.float32)
    image[:, : shape[1] // 2] = low
    return image


class TestConversions:
    """Tests for grayscale and uint8 conversions."""

    def test_luma_weights(self):
        """Test grayscale uses 0.299R + 0.587G + 0.114B."""
        rgba = np.zeros((1, 1, 4), dtype=np.uint8)
        rgba[0, 0] = (10, 20, 30, 255)
        gray = to_grayscale(rgba)
        assert gray.shape == (1, 1)
        assert gray[0, 0] == pytest.approx(18.15, abs=1e-3)

    def test_grayscale_input_copied(self):
        """Test a 2-D buffer is returned as an independent float copy."""
        gray = np.full((4, 4), 7, dtype=np.uint8)
        out = to_grayscale(gray)
        out[0, 0] = 99
        assert out.dtype == np.float32
        assert gray[0, 0] == 7

    def test_to_uint8_rounds_half_up_and_clamps(self):
        """Test rounding and clamping into 0..255."""
        values = np.array([[2.5, 3.49, -4.0, 300.0]], dtype=np.float32)
        assert to_uint8(values).tolist() == [[3, 3, 0, 255]]

    def test_gray_to_rgba_opaque(self):
        """Test gray renders as opaque RGBA."""
        rgba = gray_to_rgba(np.full((2, 3), 80.0, dtype=np.float32))
        assert rgba.shape == (2, 3, 4)
        assert np.all(rgba[..., 3] == 255)
        assert np.all(rgba[..., :3] == 80)


class TestFilters:
    """Tests for blur, median, sharpening and edge filters."""

    def test_box_blur_radius_zero_is_identity(self):
        """Test radius 0 returns an identical copy."""
        gray = np.random.default_rng(1).uniform(0, 255, (12, 9)).astype(np.float32)
        out = box_blur(gray, 0)
        assert np.array_equal(out, gray)
        assert out is not gray

    def test_box_blur_keeps_constant_image(self):
        """Test a flat image is unchanged by blurring."""
        gray = np.full((10, 10), 42.0, dtype=np.float32)
        assert np.allclose(box_blur(gray, 3), 42.0)

    def test_box_blur_mean(self):
        """Test the window mean away from the borders."""
        gray = np.zeros((7, 7), dtype=np.float32)
        gray[3, 3] = 90.0
        out = box_blur(gray, 1)
        assert out[3, 3] == pytest.approx(10.0)
        assert out[0, 0] == pytest.approx(0.0)

    def test_median_removes_impulse(self):
        """Test a single bright pixel is removed."""
        gray = np.zeros((5, 5), dtype=np.float32)
        gray[2, 2] = 255.0
        assert np.all(median3x3(gray) == 0)

    def test_unsharp_and_directional_keep_flat_regions(self):
        """Test sharpening leaves flat images alone."""
        gray = np.full((6, 6), 120.0, dtype=np.float32)
        assert np.allclose(unsharp_mask(gray, 2, 1.8), 120.0)
        assert np.allclose(directional_sharpen_vertical(gray, 1.2), 120.0)

    def test_unsharp_clamps(self):
        """Test sharpened values stay within 0..255."""
        out = unsharp_mask(two_level(0.0, 255.0), 2, 3.0)
        assert out.min() >= 0 and out.max() <= 255

    def test_sobel_x_border_zero_and_vertical_edge(self):
        """Test Sobel-X responds to vertical edges and leaves the border at 0."""
        edges = sobel_magnitude_x(two_level(0.0, 100.0, (8, 8)))
        assert np.all(edges[0, :] == 0) and np.all(edges[:, -1] == 0)
        assert edges[4, 3] == pytest.approx(400.0)
        assert edges[4, 1] == 0


class TestHistogramOperations:
    """Tests for stretch, equalization and Otsu threshold."""

    def test_stretch_maps_percentiles_to_full_range(self):
        """Test a low-contrast image is stretched to 0..255."""
        out = histogram_stretch(two_level(100.0, 150.0), 0.05, 0.95)
        assert set(np.unique(out).tolist()) == {0.0, 255.0}

    def test_stretch_flat_image_does_not_divide_by_zero(self):
        """Test a single-intensity image stays finite."""
        out = histogram_stretch(np.full((5, 5), 60.0, dtype=np.float32), 0.02, 0.98)
        assert np.all(np.isfinite(out))

    def test_equalize_is_monotone(self):
        """Test equalization preserves intensity order."""
        ramp = np.tile(np.arange(256, dtype=np.float32), (4, 1))
        out = histogram_equalize(ramp)
        assert np.all(np.diff(out[0]) >= 0)
        assert out[0, 0] == 0
        assert out[0, -1] == pytest.approx(255.0)

    def test_equalize_flat_image(self):
        """Test a single-intensity image does not blow up."""
        out = histogram_equalize(np.full((5, 5), 77.0, dtype=np.float32))
        assert np.all(np.isfinite(out))

    def test_otsu_splits_two_levels(self):
        """Test the threshold separates a bimodal image."""
        threshold = otsu_threshold(two_level(20.0, 220.0))
        assert 20 < threshold <= 220

    def test_otsu_single_intensity_default(self):
        """Test the default threshold when no split exists."""
        assert otsu_threshold(np.full((5, 5), 90.0)) == OTSU_DEFAULT_THRESHOLD


class TestInPlaceOperations:
    """Tests for the three mutating operations."""

    def test_binarize_inplace(self):
        """Test binarization yields only 0 and 255 on the same buffer."""
        gray = two_level(40.0, 200.0)
        original_id = id(gray)
        threshold = binarize_inplace(gray)
        assert id(gray) == original_id
        assert 40 < threshold <= 200
        assert set(np.unique(gray).tolist()) == {0.0, 255.0}

    def test_binarize_explicit_threshold(self):
        """Test pixels at the threshold become foreground."""
        gray = np.array([[99.0, 100.0, 101.0]], dtype=np.float32)
        binarize_inplace(gray, 100)
        assert gray.tolist() == [[0.0, 255.0, 255.0]]

    def test_binarized_leaves_input(self):
        """Test the non-mutating variant."""
        gray = two_level(40.0, 200.0)
        before = gray.copy()
        binarized(gray)
        assert np.array_equal(gray, before)

    def test_invert_rgba_keeps_alpha(self):
        """Test inversion touches only color channels."""
        rgba = np.zeros((2, 2, 4), dtype=np.uint8)
        rgba[..., 3] = 128
        invert_inplace(rgba)
        assert np.all(rgba[..., :3] == 255)
        assert np.all(rgba[..., 3] == 128)

    def test_invert_twice_is_identity(self):
        """Test double inversion restores a gray buffer."""
        gray = np.random.default_rng(2).uniform(0, 255, (6, 6)).astype(np.float32)
        before = gray.copy()
        invert_inplace(invert_inplace(gray))
        assert np.allclose(gray, before)

    def test_deglare_never_brightens(self):
        """Test glare suppression only darkens, and leaves alpha alone."""
        rgba = np.full((40, 40, 4), 250, dtype=np.uint8)
        rgba[10:30, 10:30, :3] = 60
        before = rgba.copy()
        deglare_inplace(rgba)
        assert np.all(rgba[..., :3] <= before[..., :3])
        assert np.array_equal(rgba[..., 3], before[..., 3])
        assert (rgba[..., :3] < before[..., :3]).any()


class TestRotate:
    """Tests for rotation about the image center."""

    def test_zero_angle_copy(self):
        """Test angle 0 returns an equal copy."""
        gray = np.random.default_rng(3).uniform(0, 255, (9, 9)).astype(np.float32)
        out = rotate(gray, 0)
        assert np.array_equal(out, gray)
        assert out is not gray

    def test_shape_preserved(self):
        """Test the canvas size is kept."""
        rgba = np.zeros((30, 50, 4), dtype=np.uint8)
        assert rotate(rgba, 17).shape == rgba.shape

    def test_positive_angle_is_clockwise(self):
        """Test a mark at the top moves to the right for +90."""
        gray = np.full((101, 101), 255.0, dtype=np.float32)
        gray[5:15, 40:60] = 0.0
        out = rotate(gray, 90)
        ys, xs = np.nonzero(out < 128)
        assert xs.mean() > 75
        assert 35 < ys.mean() < 65

    def test_exposed_corners_filled(self):
        """Test exposed corners take the fill value."""
        gray = np.zeros((40, 40), dtype=np.float32)
        out = rotate(gray, 45, fill_value=255)
        assert out[0, 0] == 255
