"""
Morphological Pre-processing for the Outline Path

Turns the filtered grayscale signal into a binary silhouette and grows it
outward with a disc-shaped structuring element, so the contour mesh gets a
margin around the detected shape.
"""

import math
from typing import Union
import numpy as np
from scipy import ndimage

from .buffer import PixelBuffer


def disc_footprint(radius: float) -> np.ndarray:
    """
    Boolean disc mask of all offsets with Euclidean distance <= radius.

    Args:
        radius: Disc radius in pixels (may be fractional)

    Returns:
        Square (2k+1, 2k+1) boolean array with k = ceil(radius)
    """
    if radius < 0:
        raise ValueError(f"Radius must be >= 0, got {radius}")
    k = int(math.ceil(radius))
    dy, dx = np.mgrid[-k:k + 1, -k:k + 1]
    return (dx * dx + dy * dy) <= radius * radius


def disc_offsets(radius: float) -> np.ndarray:
    """
    Disc footprint as an (N, 2) int array of (dy, dx) offsets.

    Used by the numba kernels, which iterate offsets instead of a mask.
    """
    footprint = disc_footprint(radius)
    k = footprint.shape[0] // 2
    return (np.argwhere(footprint) - k).astype(np.int64)


def binarize(buffer: Union[PixelBuffer, np.ndarray], threshold: float) -> np.ndarray:
    """
    Threshold the grayscale signal.

    Args:
        buffer: Filtered PixelBuffer (or a 2D intensity array)
        threshold: Pixels strictly above this value are set

    Returns:
        Boolean (H, W) bitmap
    """
    gray = buffer.gray if isinstance(buffer, PixelBuffer) else np.asarray(buffer)
    return gray > threshold


def dilate(bitmap: np.ndarray, radius_pixels: float, backend: str = "reference") -> np.ndarray:
    """
    Grow a bitmap with a disc structuring element.

    Every set pixel sets all pixels within Euclidean distance radius_pixels.
    A radius below one pixel cannot reach a neighbour, so it returns a copy.

    Args:
        bitmap: Boolean (H, W) array
        radius_pixels: Disc radius in pixels
        backend: "reference" (scipy) or "numba"

    Returns:
        New boolean (H, W) array
    """
    bitmap = np.asarray(bitmap, dtype=bool)
    if radius_pixels < 1:
        return bitmap.copy()

    if backend == "reference":
        return ndimage.binary_dilation(bitmap, structure=disc_footprint(radius_pixels))
    if backend == "numba":
        from .kernels import disc_dilate
        return disc_dilate(bitmap, disc_offsets(radius_pixels))
    raise ValueError(f"Unknown backend: {backend}")


def silhouette_mask(
    buffer: PixelBuffer,
    threshold: float,
    offset_percent: float = 0.0,
    backend: str = "reference"
) -> np.ndarray:
    """
    Binarize and dilate in one step.

    The dilation radius is offset_percent of the longer image side.

    Args:
        buffer: Filtered grayscale PixelBuffer
        threshold: Binarization threshold (0-255)
        offset_percent: Margin as a percentage of max(width, height)
        backend: Dilation backend

    Returns:
        Boolean (H, W) silhouette mask
    """
    radius = offset_radius_pixels(buffer.width, buffer.height, offset_percent)
    return dilate(binarize(buffer, threshold), radius, backend=backend)


def offset_radius_pixels(width: int, height: int, offset_percent: float) -> float:
    """Convert a percentage of the longer side to pixels."""
    return offset_percent * max(width, height) / 100.0
