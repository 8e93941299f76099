"""
Grid Sizing and Nearest-Sample Lookup

Shared by both mesh generators so that a given image and resolution always
produce the same lattice.
"""

from typing import Tuple
import math
import numpy as np

# Hard cap on segments per axis
MAX_SEGMENTS = 1024


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def grid_segments(image_width: int, image_height: int, resolution: int) -> Tuple[int, int]:
    """
    Number of grid cells along X and Y.

    The shorter image side gets `resolution` segments; the longer side is
    scaled by the aspect ratio. Each axis is capped by its pixel count and
    by MAX_SEGMENTS.

    Returns:
        (segments_x, segments_y), both >= 1
    """
    aspect = image_width / image_height

    if image_width < image_height:
        segments_x = min(resolution, image_width)
        segments_y = min(_round_half_up(resolution / aspect), image_height)
    else:
        segments_y = min(resolution, image_height)
        segments_x = min(_round_half_up(resolution * aspect), image_width)

    segments_x = max(1, min(segments_x, MAX_SEGMENTS))
    segments_y = max(1, min(segments_y, MAX_SEGMENTS))
    return segments_x, segments_y


def sample_indices(segments: int, pixels: int) -> np.ndarray:
    """
    Pixel index for each of the segments + 1 lattice lines.

    Lattice line i samples pixel floor(i / segments * (pixels - 1)).
    """
    i = np.arange(segments + 1, dtype=np.float64)
    return np.floor(i / segments * (pixels - 1)).astype(np.int64)


def sample_grid(channel: np.ndarray, segments_x: int, segments_y: int) -> np.ndarray:
    """
    Nearest-sample a 2D (or (H, W, C)) array onto the lattice.

    Returns:
        Array of shape (segments_y + 1, segments_x + 1[, C])
    """
    height, width = channel.shape[:2]
    rows = sample_indices(segments_y, height)
    cols = sample_indices(segments_x, width)
    return channel[rows[:, np.newaxis], cols[np.newaxis, :]]


def pixel_index(coord, pixels: int):
    """
    Nearest-sample pixel index for normalized coordinates in [0, 1].

    Same rule as the lattice: floor(coord * (pixels - 1)), clamped.
    Accepts a scalar or an array of coordinates.
    """
    index = np.floor(np.asarray(coord, dtype=np.float64) * (pixels - 1)).astype(np.int64)
    return np.clip(index, 0, pixels - 1)


def sample_points(channel: np.ndarray, uv: np.ndarray) -> np.ndarray:
    """
    Nearest-sample a 2D (or (H, W, C)) array at normalized (u, v) points.

    Returns:
        Array of shape (N[, C])
    """
    height, width = channel.shape[:2]
    return channel[pixel_index(uv[:, 1], height), pixel_index(uv[:, 0], width)]
