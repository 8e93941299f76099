"""
Contour Mesh Generator (Marching Squares)

Builds a stamp whose outline follows the image silhouette instead of the
full rectangle.

Algorithm Overview:
1. Silhouette: binarize the grayscale signal and dilate it by the offset
2. Smoothing: Gaussian-blur the 0/255 mask by half a grid cell so the
   iso-line is anti-aliased instead of following pixel steps
3. Sampling: nearest-sample the smoothed mask onto the mesh lattice
4. Marching squares: every cell with at least one corner above the
   threshold yields a convex polygon (corners above + edge crossings)
5. Merge: each polygon is fanned into top triangles (relief height) and
   bottom triangles (z = 0, reversed) through two coordinate-keyed vertex
   tables
6. Walls: an edge used by exactly one polygon lies on the silhouette and
   gets a vertical quad; edges used twice are interior

Closure of the outline is never traced explicitly: it follows from the
edge-usage parity rule, since a grid edge is shared by at most two cells.

Vertex keys quantize normalized [0, 1] coordinates to integers at
1 / KEY_SCALE, so points computed in neighbouring cells collapse reliably.
"""

from typing import Dict, List, Optional, Tuple
import logging
import time

import numpy as np

from .buffer import PixelBuffer
from .filters import gaussian_blur_array
from .grid import grid_segments, sample_grid, sample_points
from .heightfield import BASE_COLOR, check_mesh_inputs
from .mesh import StampMesh, wall_faces
from .morphology import silhouette_mask
from .settings import MeshSettings

logger = logging.getLogger(__name__)

# Quantization of normalized coordinates for vertex and edge keys
KEY_SCALE = 1_000_000

# Corner values closer than this are treated as equal (crossing at midpoint)
FLAT_EPSILON = 1e-6

# Corner bits of the marching squares case index
TOP_LEFT, TOP_RIGHT, BOTTOM_RIGHT, BOTTOM_LEFT = 8, 4, 2, 1

Key = Tuple[int, int]
Point = Tuple[float, float]


def point_key(u: float, v: float) -> Key:
    """Quantized lookup key for a normalized point."""
    return (int(round(u * KEY_SCALE)), int(round(v * KEY_SCALE)))


def cell_cases(field: np.ndarray, threshold: float) -> np.ndarray:
    """
    Marching squares case index (0-15) of every cell.

    Args:
        field: Lattice values, shape (sy + 1, sx + 1)
        threshold: Iso level; a corner is "above" if value > threshold

    Returns:
        uint8 array of shape (sy, sx)
    """
    above = (field > threshold).astype(np.uint8)
    return (
        above[:-1, :-1] * TOP_LEFT
        | above[:-1, 1:] * TOP_RIGHT
        | above[1:, 1:] * BOTTOM_RIGHT
        | above[1:, :-1] * BOTTOM_LEFT
    ).astype(np.uint8)


def crossing(va: float, vb: float, threshold: float) -> float:
    """
    Interpolation parameter of the threshold crossing from corner a to b.

    Returns 0.5 when the two values are (nearly) equal.
    """
    diff = vb - va
    if abs(diff) < FLAT_EPSILON:
        return 0.5
    t = (threshold - va) / diff
    return min(max(t, 0.0), 1.0)


def cell_polygon(
    field: np.ndarray,
    gx: int,
    gy: int,
    threshold: float,
    segments_x: int,
    segments_y: int
) -> List[Point]:
    """
    Polygon of one marching squares cell in normalized image space.

    Walks TL, top crossing, TR, right crossing, BR, bottom crossing, BL,
    left crossing, keeping corners that are above the threshold and
    crossings of edges that change state. Crossings are always
    interpolated left to right or top to bottom, so both cells sharing an
    edge compute bit-identical points.

    Returns:
        List of (u, v) points; empty for case 0
    """
    tl = float(field[gy, gx])
    tr = float(field[gy, gx + 1])
    br = float(field[gy + 1, gx + 1])
    bl = float(field[gy + 1, gx])

    a_tl, a_tr = tl > threshold, tr > threshold
    a_br, a_bl = br > threshold, bl > threshold

    x0, x1 = gx / segments_x, (gx + 1) / segments_x
    y0, y1 = gy / segments_y, (gy + 1) / segments_y

    points: List[Point] = []

    if a_tl:
        points.append((x0, y0))
    if a_tl != a_tr:
        points.append((x0 + crossing(tl, tr, threshold) * (x1 - x0), y0))
    if a_tr:
        points.append((x1, y0))
    if a_tr != a_br:
        points.append((x1, y0 + crossing(tr, br, threshold) * (y1 - y0)))
    if a_br:
        points.append((x1, y1))
    if a_br != a_bl:
        points.append((x0 + crossing(bl, br, threshold) * (x1 - x0), y1))
    if a_bl:
        points.append((x0, y1))
    if a_bl != a_tl:
        points.append((x0, y0 + crossing(tl, bl, threshold) * (y1 - y0)))

    return points


def keyed_polygon(points: List[Point]) -> List[Tuple[Key, Point]]:
    """
    Attach keys and collapse consecutive duplicates.

    A crossing clamped onto a corner produces the same key twice in a row.

    Returns:
        List of (key, point); shorter than 3 means the polygon is degenerate
    """
    keyed: List[Tuple[Key, Point]] = []
    for u, v in points:
        key = point_key(u, v)
        if keyed and keyed[-1][0] == key:
            continue
        keyed.append((key, (u, v)))
    while len(keyed) > 1 and keyed[-1][0] == keyed[0][0]:
        keyed.pop()
    return keyed


def march(field: np.ndarray, threshold: float) -> List[List[Tuple[Key, Point]]]:
    """
    Candidate generation pass: one keyed polygon per active cell.

    Cells are visited in row-major order and touch no shared state, so
    this pass could be split across workers; the merge pass below must
    then consume the polygons in the same order.
    """
    segments_y, segments_x = field.shape[0] - 1, field.shape[1] - 1
    cases = cell_cases(field, threshold)

    polygons = []
    for gy, gx in np.argwhere(cases != 0):
        keyed = keyed_polygon(
            cell_polygon(field, int(gx), int(gy), threshold, segments_x, segments_y)
        )
        if len(keyed) >= 3:
            polygons.append(keyed)
    return polygons


class VertexTable:
    """Coordinate-keyed vertex deduplication (insert-or-get)."""

    def __init__(self):
        self._index: Dict[Key, int] = {}
        self.points: List[Point] = []

    def index(self, key: Key, point: Point) -> int:
        """Index of the vertex at key, adding it on first use."""
        found = self._index.get(key)
        if found is None:
            found = len(self.points)
            self._index[key] = found
            self.points.append(point)
        return found

    def __getitem__(self, key: Key) -> int:
        return self._index[key]

    def __len__(self) -> int:
        return len(self.points)

    def uv(self) -> np.ndarray:
        """All vertex positions in normalized space, shape (N, 2)."""
        return np.array(self.points, dtype=np.float64).reshape(-1, 2)


class EdgeTable:
    """
    Usage counter of undirected polygon edges.

    Also remembers the direction in which an edge was first walked; for a
    boundary edge that is its only polygon's direction, with the solid on
    the left.
    """

    def __init__(self):
        self._edges: Dict[Tuple[Key, Key], list] = {}

    def add(self, a: Key, b: Key):
        pair = (a, b) if a <= b else (b, a)
        entry = self._edges.get(pair)
        if entry is None:
            self._edges[pair] = [1, a, b]
        else:
            entry[0] += 1

    def counts(self) -> Dict[Tuple[Key, Key], int]:
        """Usage count per undirected edge."""
        return {pair: entry[0] for pair, entry in self._edges.items()}

    def boundary_edges(self) -> List[Tuple[Key, Key]]:
        """Directed (a, b) of every edge used by exactly one polygon."""
        return [(a, b) for count, a, b in self._edges.values() if count == 1]

    def __len__(self) -> int:
        return len(self._edges)


class ContourMesher:
    """
    Silhouette-following stamp mesher.

    After each call, the intermediate results of the last run are kept for
    inspection: `mask` (dilated silhouette), `smoothed_mask`, `field`
    (lattice samples) and `edge_counts` (edge-usage table).
    """

    def __init__(
        self,
        settings: Optional[MeshSettings] = None,
        backend: str = "reference"
    ):
        """
        Initialize the mesher.

        Args:
            settings: Mesh parameters; outline_threshold and
                outline_offset_percent are the defaults for mesh()
            backend: Filter backend for dilation and smoothing
        """
        self.settings = settings or MeshSettings()
        self.backend = backend
        self.mask: Optional[np.ndarray] = None
        self.smoothed_mask: Optional[np.ndarray] = None
        self.field: Optional[np.ndarray] = None
        self.edge_counts: Dict[Tuple[Key, Key], int] = {}

    def mesh(
        self,
        grayscale: PixelBuffer,
        color_source: Optional[PixelBuffer] = None,
        threshold: Optional[float] = None,
        offset_percent: Optional[float] = None
    ) -> StampMesh:
        """
        Generate the outline-following stamp.

        Args:
            grayscale: Filtered grayscale buffer (height and silhouette)
            color_source: Optional original image for vertex colors
            threshold: Silhouette threshold (default: settings)
            offset_percent: Silhouette margin (default: settings)

        Returns:
            StampMesh; empty when nothing passes the threshold
        """
        check_mesh_inputs(grayscale, color_source)
        s = self.settings
        if threshold is None:
            threshold = s.outline_threshold
        if offset_percent is None:
            offset_percent = s.outline_offset_percent

        start = time.perf_counter()
        self.mask = self.smoothed_mask = self.field = None
        self.edge_counts = {}

        width, height = grayscale.size
        self.mask = silhouette_mask(grayscale, threshold, offset_percent, self.backend)
        if not self.mask.any():
            logger.warning("No pixels above threshold %s: empty silhouette", threshold)
            return StampMesh.empty()

        sx, sy = grid_segments(width, height, s.resolution)
        sigma = 0.5 * max(width, height) / max(sx, sy)
        self.smoothed_mask = gaussian_blur_array(
            self.mask.astype(np.float64) * 255.0, sigma, self.backend
        )
        self.field = sample_grid(self.smoothed_mask, sx, sy)

        polygons = march(self.field, threshold)
        if not polygons:
            logger.warning("Silhouette vanished after smoothing at threshold %s", threshold)
            return StampMesh.empty()

        mesh = self._merge(polygons, grayscale, color_source)

        logger.debug(
            "Contour %dx%d segments: %d polygons, %d vertices, %d triangles in %.1f ms",
            sx, sy, len(polygons), mesh.vertex_count, mesh.triangle_count,
            (time.perf_counter() - start) * 1000.0
        )
        return mesh

    def _merge(
        self,
        polygons: List[List[Tuple[Key, Point]]],
        grayscale: PixelBuffer,
        color_source: Optional[PixelBuffer]
    ) -> StampMesh:
        """Single-threaded merge: dedup vertices, fan polygons, add walls."""
        top = VertexTable()
        bottom = VertexTable()
        edges = EdgeTable()
        top_faces: List[Tuple[int, int, int]] = []
        bottom_faces: List[Tuple[int, int, int]] = []

        for polygon in polygons:
            top_ids = [top.index(key, point) for key, point in polygon]
            bottom_ids = [bottom.index(key, point) for key, point in polygon]

            for i in range(1, len(polygon) - 1):
                top_faces.append((top_ids[0], top_ids[i], top_ids[i + 1]))
                bottom_faces.append((bottom_ids[0], bottom_ids[i + 1], bottom_ids[i]))

            for i in range(len(polygon)):
                edges.add(polygon[i][0], polygon[(i + 1) % len(polygon)][0])

        self.edge_counts = edges.counts()

        boundary = edges.boundary_edges()

        n_top = len(top)
        walls = np.zeros((0, 3), dtype=np.int64)
        if boundary:
            walls = wall_faces(
                np.array([top[a] for a, _ in boundary], dtype=np.int64),
                np.array([top[b] for _, b in boundary], dtype=np.int64),
                np.array([bottom[a] for a, _ in boundary], dtype=np.int64) + n_top,
                np.array([bottom[b] for _, b in boundary], dtype=np.int64) + n_top,
            )

        top_vertices, top_colors = self._top_vertices(top.uv(), grayscale, color_source)
        bottom_vertices = self._place(bottom.uv(), np.zeros(len(bottom)))
        bottom_colors = np.tile(np.array(BASE_COLOR, dtype=np.float32), (len(bottom), 1))

        faces = np.concatenate([
            np.array(top_faces, dtype=np.int64).reshape(-1, 3),
            np.array(bottom_faces, dtype=np.int64).reshape(-1, 3) + n_top,
            walls,
        ])

        return StampMesh(
            vertices=np.concatenate([top_vertices, bottom_vertices]).astype(np.float32),
            colors=np.concatenate([top_colors, bottom_colors]).astype(np.float32),
            indices=faces.reshape(-1).astype(np.uint32)
        )

    def _place(self, uv: np.ndarray, z: np.ndarray) -> np.ndarray:
        """Normalized (u, v) plus z to physical positions, centered on the origin."""
        s = self.settings
        return np.column_stack([
            (uv[:, 0] - 0.5) * s.width,
            (uv[:, 1] - 0.5) * s.height,
            z,
        ])

    def _top_vertices(
        self,
        uv: np.ndarray,
        grayscale: PixelBuffer,
        color_source: Optional[PixelBuffer]
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Relief positions and colors for the top surface vertices."""
        s = self.settings
        gray = sample_points(grayscale.gray, uv).astype(np.float64) / 255.0
        positions = self._place(uv, s.base_height + gray * s.extrusion_height)

        if color_source is None:
            colors = np.repeat(gray[:, np.newaxis], 3, axis=1)
        else:
            colors = sample_points(color_source.rgb, uv) / 255.0
        return positions, colors.astype(np.float32)


def generate_contour_mesh(
    grayscale: PixelBuffer,
    color_source: Optional[PixelBuffer] = None,
    settings: Optional[MeshSettings] = None,
    threshold: Optional[float] = None,
    offset_percent: Optional[float] = None
) -> StampMesh:
    """Functional wrapper around ContourMesher."""
    return ContourMesher(settings).mesh(grayscale, color_source, threshold, offset_percent)
