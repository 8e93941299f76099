"""
Unit tests for binarization and disc dilation.
"""

import sys
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stamp_generator.buffer import PixelBuffer
from stamp_generator.morphology import (
    binarize, dilate, disc_footprint, disc_offsets, offset_radius_pixels, silhouette_mask
)


class TestDisc(unittest.TestCase):
    """Tests for the disc structuring element."""

    def test_footprint_radius_one(self):
        """Test radius one disc."""
        footprint = disc_footprint(1)
        expected = np.array([[0, 1, 0], [1, 1, 1], [0, 1, 0]], dtype=bool)
        assert np.array_equal(footprint, expected)

    def test_footprint_radius_two(self):
        """Test radius two disc."""
        # Center, 4 at distance 1, 4 at sqrt(2), 4 at distance 2
        assert disc_footprint(2).sum() == 13

    def test_offsets_match_footprint(self):
        """Test disc offsets."""
        offsets = disc_offsets(2.5)
        assert len(offsets) == disc_footprint(2.5).sum()
        assert np.all((offsets ** 2).sum(axis=1) <= 2.5 ** 2)


class TestBinarize(unittest.TestCase):
    """Tests for thresholding."""

    def test_strict_threshold(self):
        """Test strict thresholding."""
        buffer = PixelBuffer.from_array(np.array([[126, 127, 128]], dtype=np.uint8))
        assert list(binarize(buffer, 127)[0]) == [False, False, True]

    def test_accepts_arrays(self):
        """Test plain array input."""
        mask = binarize(np.array([[0, 255]]), 0)
        assert list(mask[0]) == [False, True]


class TestDilate(unittest.TestCase):
    """Tests for disc dilation."""

    def test_radius_zero_is_copy(self):
        """Test zero radius."""
        bitmap = np.zeros((5, 5), dtype=bool)
        bitmap[2, 2] = True
        result = dilate(bitmap, 0)
        assert np.array_equal(result, bitmap)
        assert result is not bitmap

    def test_single_pixel_grows_to_disc(self):
        """Test dilation of a single pixel."""
        bitmap = np.zeros((7, 7), dtype=bool)
        bitmap[3, 3] = True
        result = dilate(bitmap, 2)
        assert np.array_equal(result[1:6, 1:6], disc_footprint(2))
        assert result.sum() == 13

    def test_dilation_is_extensive(self):
        """Test dilation only adds pixels."""
        rng = np.random.default_rng(3)
        bitmap = rng.random((20, 20)) > 0.9
        result = dilate(bitmap, 1.5)
        assert np.all(result[bitmap])
        assert result.sum() >= bitmap.sum()

    def test_clipped_at_border(self):
        """Test dilation at the border."""
        bitmap = np.zeros((4, 4), dtype=bool)
        bitmap[0, 0] = True
        result = dilate(bitmap, 1)
        assert result.shape == (4, 4)
        assert result.sum() == 3

    def test_numba_agreement(self):
        """Test dilation backends agree."""
        rng = np.random.default_rng(4)
        bitmap = rng.random((31, 17)) > 0.95
        for radius in (1, 2.5, 4):
            reference = dilate(bitmap, radius, backend="reference")
            jit = dilate(bitmap, radius, backend="numba")
            assert np.array_equal(reference, jit), radius

    def test_unknown_backend(self):
        """Test unknown backend."""
        with self.assertRaises(ValueError):
            dilate(np.ones((3, 3), dtype=bool), 2, backend="opencl")


class TestSilhouette(unittest.TestCase):
    """Tests for the combined silhouette mask."""

    def test_offset_radius(self):
        """Test offset radius."""
        assert offset_radius_pixels(50, 200, 10) == 20.0
        assert offset_radius_pixels(50, 200, 0) == 0.0

    def test_offset_grows_mask(self):
        """Test silhouette offset."""
        values = np.zeros((10, 10), dtype=np.uint8)
        values[5, 5] = 255
        buffer = PixelBuffer.from_array(values)

        plain = silhouette_mask(buffer, 127, 0)
        grown = silhouette_mask(buffer, 127, 20)  # radius 2 pixels

        assert plain.sum() == 1
        assert grown.sum() == 13
        assert np.all(grown[plain])


if __name__ == "__main__":
    unittest.main(verbosity=2)
