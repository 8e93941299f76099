"""
Heightfield Mesh Generator

Extrudes the full image rectangle into a closed relief solid:

1. Top surface: regular grid, z = base + gray / 255 * extrusion
2. Bottom surface: the same grid flattened to z = 0, reversed winding
3. Side walls: one strip per rectangle edge joining top and bottom borders

The walls reuse the border vertices of the two grids, so the solid has
exactly 2 * (sx + 1) * (sy + 1) vertices and
4 * sx * sy + 4 * (sx + sy) triangles.
"""

from typing import Optional
import logging
import numpy as np

from .buffer import PixelBuffer
from .errors import InvalidDimensions
from .grid import grid_segments, sample_grid
from .mesh import StampMesh, wall_faces
from .settings import MeshSettings

logger = logging.getLogger(__name__)

# Vertex color of the flat underside
BASE_COLOR = (0.3, 0.3, 0.3)


def check_mesh_inputs(grayscale, color_source):
    """Reject missing or malformed buffers before any work is done."""
    if not isinstance(grayscale, PixelBuffer):
        raise InvalidDimensions(f"Expected a PixelBuffer, got {type(grayscale).__name__}")
    if grayscale.data.shape != (grayscale.height, grayscale.width, 4):
        raise InvalidDimensions("Grayscale buffer shape does not match its size")
    if color_source is not None:
        if not isinstance(color_source, PixelBuffer):
            raise InvalidDimensions(
                f"Expected a PixelBuffer color source, got {type(color_source).__name__}"
            )
        if color_source.data.shape != (color_source.height, color_source.width, 4):
            raise InvalidDimensions("Color source shape does not match its size")


def sample_colors(
    gray_values: np.ndarray,
    color_source: Optional[PixelBuffer],
    segments_x: int,
    segments_y: int
) -> np.ndarray:
    """
    Per-vertex top colors for the lattice.

    Args:
        gray_values: Lattice gray values normalized to [0, 1]
        color_source: Original image, sampled with its own dimensions
        segments_x, segments_y: Grid size

    Returns:
        (N, 3) float32 colors in [0, 1]
    """
    if color_source is None:
        flat = gray_values.reshape(-1, 1)
        return np.repeat(flat, 3, axis=1).astype(np.float32)
    rgb = sample_grid(color_source.rgb, segments_x, segments_y)
    return (rgb.reshape(-1, 3) / 255.0).astype(np.float32)


class HeightfieldMesher:
    """
    Regular-grid relief mesher.

    Deterministic: identical inputs always give identical meshes.
    """

    def __init__(self, settings: Optional[MeshSettings] = None):
        """
        Initialize the mesher.

        Args:
            settings: Grid resolution, heights and physical size
        """
        self.settings = settings or MeshSettings()

    def mesh(
        self,
        grayscale: PixelBuffer,
        color_source: Optional[PixelBuffer] = None
    ) -> StampMesh:
        """
        Generate the relief solid.

        Args:
            grayscale: Filtered grayscale buffer (height signal)
            color_source: Optional original image for vertex colors

        Returns:
            Closed StampMesh
        """
        check_mesh_inputs(grayscale, color_source)
        s = self.settings

        sx, sy = grid_segments(grayscale.width, grayscale.height, s.resolution)
        gray = sample_grid(grayscale.gray, sx, sy).astype(np.float64) / 255.0

        xs = (np.arange(sx + 1) / sx - 0.5) * s.width
        ys = (np.arange(sy + 1) / sy - 0.5) * s.height
        grid_x, grid_y = np.meshgrid(xs, ys)
        grid_z = s.base_height + gray * s.extrusion_height

        top = np.stack([grid_x, grid_y, grid_z], axis=-1).reshape(-1, 3)
        bottom = np.stack([grid_x, grid_y, np.zeros_like(grid_z)], axis=-1).reshape(-1, 3)
        n = len(top)

        top_colors = sample_colors(gray, color_source, sx, sy)
        bottom_colors = np.tile(np.array(BASE_COLOR, dtype=np.float32), (n, 1))

        # Vertex index of every lattice point, shape (sy + 1, sx + 1)
        idx = np.arange(n, dtype=np.int64).reshape(sy + 1, sx + 1)
        a = idx[:-1, :-1]
        b = idx[:-1, 1:]
        c = idx[1:, 1:]
        d = idx[1:, :-1]

        top_faces = np.stack([a, b, c, a, c, d], axis=-1).reshape(-1, 3)
        bottom_faces = np.stack([a, c, b, a, d, c], axis=-1).reshape(-1, 3) + n

        # Border walked counter-clockwise seen from +Z: solid on the left
        front = idx[0, :]
        right = idx[:, sx]
        back = idx[sy, ::-1]
        left = idx[::-1, 0]
        walls = []
        for border in (front, right, back, left):
            top_a, top_b = border[:-1], border[1:]
            walls.append(wall_faces(top_a, top_b, top_a + n, top_b + n))

        faces = np.concatenate([top_faces, bottom_faces] + walls)

        logger.debug(
            "Heightfield %dx%d segments: %d vertices, %d triangles",
            sx, sy, 2 * n, len(faces)
        )

        return StampMesh(
            vertices=np.concatenate([top, bottom]).astype(np.float32),
            colors=np.concatenate([top_colors, bottom_colors]),
            indices=faces.reshape(-1).astype(np.uint32)
        )


def generate_heightfield_mesh(
    grayscale: PixelBuffer,
    color_source: Optional[PixelBuffer] = None,
    settings: Optional[MeshSettings] = None
) -> StampMesh:
    """Functional wrapper around HeightfieldMesher."""
    return HeightfieldMesher(settings).mesh(grayscale, color_source)
