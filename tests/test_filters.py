"""
Unit tests for the image filter pipeline.
"""

import sys
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stamp_generator.buffer import PixelBuffer
from stamp_generator.errors import InvalidDimensions
from stamp_generator.filters import (
    FilterPipeline, apply_filters, apply_tone_curve, cubic_bezier_y, gaussian_blur,
    gaussian_blur_array, gaussian_kernel, grayscale, invert, is_monotonic_lut,
    tone_curve_lut, uniform_blur
)
from stamp_generator.settings import FilterSettings, IDENTITY_CURVE


def random_buffer(width=17, height=11, seed=0) -> PixelBuffer:
    rng = np.random.default_rng(seed)
    return PixelBuffer.from_array(rng.integers(0, 256, (height, width, 4), dtype=np.uint8))


def gray_buffer(values) -> PixelBuffer:
    return PixelBuffer.from_array(np.asarray(values, dtype=np.uint8))


class TestGrayscaleInvert(unittest.TestCase):
    """Tests for the point-wise stages."""

    def test_luma_weights(self):
        """Test luma conversion."""
        rgba = np.array([[[255, 0, 0, 255], [0, 255, 0, 255], [0, 0, 255, 255]]], dtype=np.uint8)
        result = grayscale(PixelBuffer.from_array(rgba))
        assert list(result.gray[0]) == [76, 150, 29]
        # R == G == B afterwards
        assert np.all(result.rgb == result.gray[:, :, np.newaxis])

    def test_grayscale_idempotent(self):
        """Test grayscale on gray input."""
        once = grayscale(random_buffer())
        assert grayscale(once) == once

    def test_invert_self_inverse(self):
        """Test double inversion."""
        buffer = random_buffer()
        assert invert(invert(buffer)) == buffer

    def test_invert_values(self):
        """Test inversion."""
        result = invert(gray_buffer([[0, 100, 255]]))
        assert list(result.gray[0]) == [255, 155, 0]

    def test_alpha_untouched(self):
        """Test alpha preservation."""
        buffer = random_buffer()
        assert np.array_equal(grayscale(buffer).alpha, buffer.alpha)
        assert np.array_equal(invert(buffer).alpha, buffer.alpha)


class TestBlur(unittest.TestCase):
    """Tests for the Gaussian and disc blurs."""

    def test_gaussian_kernel(self):
        """Test Gaussian kernel."""
        kernel = gaussian_kernel(1.5)
        assert len(kernel) % 2 == 1
        assert np.isclose(kernel.sum(), 1.0)
        assert np.allclose(kernel, kernel[::-1])
        assert kernel.argmax() == len(kernel) // 2

        with self.assertRaises(ValueError):
            gaussian_kernel(0)

    def test_gaussian_spreads_impulse_symmetrically(self):
        """Test Gaussian blur of an impulse."""
        values = np.zeros((9, 9), dtype=np.uint8)
        values[4, 4] = 255
        result = gaussian_blur(gray_buffer(values), 1.0).gray

        assert result[4, 4] < 255
        assert result[4, 5] > 0 and result[5, 4] > 0
        assert np.array_equal(result, result.T)
        assert np.array_equal(result, result[::-1, ::-1])

    def test_gaussian_constant_image(self):
        """Test Gaussian blur of a constant image."""
        buffer = gray_buffer(np.full((6, 8), 120))
        assert gaussian_blur(buffer, 3.0) == buffer

    def test_gaussian_zero_radius(self):
        """Test zero Gaussian radius."""
        buffer = random_buffer()
        assert gaussian_blur(buffer, 0) == buffer

    def test_gaussian_2d_and_3d_agree(self):
        """Test Gaussian blur on 2D and 3D arrays."""
        image = np.random.default_rng(1).random((12, 10)) * 255
        flat = gaussian_blur_array(image, 2.0)
        stacked = gaussian_blur_array(image[:, :, np.newaxis], 2.0)
        assert flat.shape == (12, 10)
        assert np.allclose(flat, stacked[:, :, 0])

    def test_uniform_zero_radius_identity(self):
        """Test zero disc radius."""
        buffer = random_buffer()
        assert uniform_blur(buffer, 0) == buffer

    def test_uniform_border_divisor(self):
        """Test disc blur at the border."""
        # Radius 1 disc: left/right neighbours only on a single row
        result = uniform_blur(gray_buffer([[0, 0, 90]]), 1.0)
        assert list(result.gray[0]) == [0, 30, 45]

    def test_uniform_constant_image(self):
        """Test disc blur of a constant image."""
        buffer = gray_buffer(np.full((7, 7), 77))
        assert uniform_blur(buffer, 2.5) == buffer

    def test_blur_keeps_alpha(self):
        """Test blur alpha preservation."""
        buffer = random_buffer()
        assert np.array_equal(gaussian_blur(buffer, 2.0).alpha, buffer.alpha)
        assert np.array_equal(uniform_blur(buffer, 2.0).alpha, buffer.alpha)


class TestToneCurve(unittest.TestCase):
    """Tests for the Bezier tone curve LUT."""

    def test_identity_lut(self):
        """Test identity lookup table."""
        lut = tone_curve_lut(IDENTITY_CURVE)
        assert np.array_equal(lut, np.arange(256))

    def test_identity_bypass(self):
        """Test identity curve bypass."""
        buffer = random_buffer()
        assert apply_tone_curve(buffer, (0, 0, 1, 1)) == buffer

    def test_identity_polynomial_is_smoothstep(self):
        """Test the identity curve bypasses a non-linear polynomial."""
        t = np.linspace(0.0, 1.0, 11)
        assert np.allclose(cubic_bezier_y(t, 0.0, 1.0), 3 * t ** 2 - 2 * t ** 3)
        assert tone_curve_lut(IDENTITY_CURVE)[64] == 64

    def test_endpoints_fixed(self):
        """Test curve endpoints."""
        lut = tone_curve_lut((0.3, 0.9, 0.7, 0.1))
        assert lut[0] == 0
        assert lut[255] == 255

    def test_x_control_points_ignored(self):
        """Test x control points."""
        a = tone_curve_lut((0.1, 0.2, 0.9, 0.8))
        b = tone_curve_lut((0.5, 0.2, 0.5, 0.8))
        assert np.array_equal(a, b)

    def test_monotonic_for_ordered_control_points(self):
        """Test monotonic curves."""
        steps = np.linspace(0, 1, 5)
        for y1 in steps:
            for y2 in steps:
                if y1 <= y2:
                    assert is_monotonic_lut(tone_curve_lut((0.25, y1, 0.75, y2))), (y1, y2)

    def test_monotonic_for_crossed_control_points_in_range(self):
        """Test crossed control points."""
        assert is_monotonic_lut(tone_curve_lut((0.0, 1.0, 1.0, 0.0)))
        assert is_monotonic_lut(tone_curve_lut((0.0, 0.9, 1.0, 0.2)))

    def test_overshooting_control_points_not_monotonic(self):
        """Test overshooting control points."""
        lut = tone_curve_lut((0.0, 1.5, 1.0, -0.5))
        assert not is_monotonic_lut(lut)
        assert lut[64] > lut[128]

    def test_contrast_curve(self):
        """Test an S-shaped contrast curve."""
        # S-curve darkens shadows and brightens highlights
        lut = tone_curve_lut((0.25, 0.0, 0.75, 1.0))
        assert lut[64] < 64
        assert lut[192] > 192


class TestFilterPipeline(unittest.TestCase):
    """Tests for the full pipeline."""

    def test_passthrough_equals_grayscale(self):
        """Test default pipeline."""
        buffer = random_buffer()
        assert apply_filters(buffer, FilterSettings()) == grayscale(buffer)

    def test_source_not_mutated(self):
        """Test the source is not modified."""
        buffer = random_buffer()
        before = buffer.copy()
        settings = FilterSettings(
            invert=True, gaussian_blur_radius=1.5, uniform_blur_radius=2,
            tone_curve=(0.2, 0.1, 0.8, 0.9)
        )
        result = apply_filters(buffer, settings)
        assert buffer == before
        assert result.size == buffer.size
        assert np.array_equal(result.alpha, buffer.alpha)

    def test_stage_order(self):
        """Test stage order."""
        # Invert runs before the tone curve
        buffer = gray_buffer([[0, 255]])
        settings = FilterSettings(invert=True, tone_curve=(0.0, 0.0, 1.0, 0.0))
        expected = apply_tone_curve(invert(grayscale(buffer)), settings.tone_curve)
        assert apply_filters(buffer, settings) == expected

    def test_intermediates(self):
        """Test stage outputs."""
        pipeline = FilterPipeline(
            FilterSettings(invert=True, gaussian_blur_radius=1.0),
            keep_intermediates=True
        )
        result = pipeline.run(random_buffer())
        stages = pipeline.intermediates
        assert list(stages) == ["grayscale", "invert", "gaussian_blur"]
        assert stages["gaussian_blur"] == result

    def test_unknown_backend(self):
        """Test unknown backend."""
        with self.assertRaises(ValueError):
            FilterPipeline(backend="opencl")
        with self.assertRaises(ValueError):
            gaussian_blur_array(np.zeros((4, 4)), 1.0, backend="opencl")

    def test_stage_must_keep_size(self):
        """Test a stage that resizes its input is rejected."""
        pipeline = FilterPipeline()
        buffer = random_buffer()
        with self.assertRaises(InvalidDimensions):
            pipeline._stage("crop", lambda b: PixelBuffer(b.width - 1, b.height), buffer)
        assert pipeline._stage("copy", lambda b: b.copy(), buffer) == buffer


class TestNumbaBackend(unittest.TestCase):
    """The JIT kernels must agree with the reference implementation."""

    def test_gaussian_agreement(self):
        """Test Gaussian backends agree."""
        image = np.random.default_rng(2).random((15, 21, 3)) * 255
        reference = gaussian_blur_array(image, 2.5, backend="reference")
        jit = gaussian_blur_array(image, 2.5, backend="numba")
        assert np.allclose(reference, jit)

    def test_uniform_agreement(self):
        """Test disc blur backends agree."""
        buffer = random_buffer(23, 13)
        reference = uniform_blur(buffer, 3.0, backend="reference")
        jit = uniform_blur(buffer, 3.0, backend="numba")
        assert np.abs(reference.data.astype(int) - jit.data.astype(int)).max() <= 1

    def test_pipeline_agreement(self):
        """Test pipeline backends agree."""
        buffer = random_buffer(19, 9)
        settings = FilterSettings(invert=True, gaussian_blur_radius=1.0, uniform_blur_radius=1.5)
        reference = apply_filters(buffer, settings, backend="reference")
        jit = apply_filters(buffer, settings, backend="numba")
        assert np.abs(reference.data.astype(int) - jit.data.astype(int)).max() <= 1


if __name__ == "__main__":
    unittest.main(verbosity=2)
