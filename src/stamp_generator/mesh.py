"""
Stamp Mesh Data

Indexed triangle mesh produced by both mesh generators:
- vertices: (N, 3) float32 positions in output units (mm)
- colors:   (N, 3) float32 RGB in [0, 1], one per vertex
- indices:  (M,) uint32, three per triangle, every index < N

Also provides the checks used before export (structure, degenerate
triangles) and edge statistics used to verify manifold output.
"""

from typing import Dict, NamedTuple, Tuple
import numpy as np

from .errors import DegenerateGeometry, InvalidDimensions

# Triangles with area at or below this are reported as degenerate
DEFAULT_MIN_AREA = 1e-10


class StampMesh(NamedTuple):
    """Container for stamp geometry."""
    vertices: np.ndarray     # (N, 3) float32 positions
    colors: np.ndarray       # (N, 3) float32 RGB colors
    indices: np.ndarray      # (M,) uint32 triangle indices

    @classmethod
    def empty(cls) -> "StampMesh":
        """A mesh with no geometry (e.g. an empty silhouette)."""
        return cls(
            vertices=np.zeros((0, 3), dtype=np.float32),
            colors=np.zeros((0, 3), dtype=np.float32),
            indices=np.zeros((0,), dtype=np.uint32)
        )

    @classmethod
    def from_lists(cls, vertices, colors, indices) -> "StampMesh":
        """Build from Python sequences, normalizing dtypes and shapes."""
        if len(vertices) == 0:
            return cls.empty()
        return cls(
            vertices=np.asarray(vertices, dtype=np.float32).reshape(-1, 3),
            colors=np.asarray(colors, dtype=np.float32).reshape(-1, 3),
            indices=np.asarray(indices, dtype=np.uint32).reshape(-1)
        )

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    @property
    def is_empty(self) -> bool:
        """True when there is nothing to export."""
        return self.triangle_count == 0

    def faces(self) -> np.ndarray:
        """Triangle indices as a (T, 3) array."""
        return self.indices.reshape(-1, 3)

    def triangles(self) -> np.ndarray:
        """Triangle corner positions as a (T, 3, 3) float64 array."""
        return self.vertices.astype(np.float64)[self.faces()]

    def face_normals(self, normalize: bool = True) -> np.ndarray:
        """
        Per-triangle normals from the cross product of the two edges.

        Zero-area triangles get a zero normal.
        """
        tris = self.triangles()
        normals = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
        if normalize:
            lengths = np.linalg.norm(normals, axis=1, keepdims=True)
            normals = np.divide(
                normals, lengths, out=np.zeros_like(normals), where=lengths > 0
            )
        return normals

    def triangle_areas(self) -> np.ndarray:
        """Area of every triangle."""
        return 0.5 * np.linalg.norm(self.face_normals(normalize=False), axis=1)

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Axis-aligned bounds (min_xyz, max_xyz)."""
        if self.vertex_count == 0:
            zero = np.zeros(3, dtype=np.float32)
            return zero, zero.copy()
        return self.vertices.min(axis=0), self.vertices.max(axis=0)

    def check(self) -> "StampMesh":
        """
        Verify the structural invariants.

        Raises:
            InvalidDimensions: on shape mismatch or out-of-range indices

        Returns:
            self for chaining
        """
        if self.vertices.ndim != 2 or self.vertices.shape[1] != 3:
            raise InvalidDimensions(f"Vertices must be (N, 3), got {self.vertices.shape}")
        if self.colors.shape != self.vertices.shape:
            raise InvalidDimensions(
                f"Colors {self.colors.shape} do not match vertices {self.vertices.shape}"
            )
        if self.indices.ndim != 1 or len(self.indices) % 3 != 0:
            raise InvalidDimensions(
                f"Index count must be a multiple of 3, got {len(self.indices)}"
            )
        if len(self.indices) and int(self.indices.max()) >= self.vertex_count:
            raise InvalidDimensions("Triangle index out of range")
        return self


def wall_faces(top_a, top_b, bottom_a, bottom_b) -> np.ndarray:
    """
    Two triangles closing the side wall under a boundary edge A -> B.

    The edge must be directed with the solid on its left when viewed from
    +Z; the resulting normals then face outward. Accepts scalars or
    equal-length index arrays.

    Returns:
        (2 * n, 3) array of triangle indices
    """
    return np.stack(
        np.broadcast_arrays(top_a, bottom_a, top_b, top_b, bottom_a, bottom_b),
        axis=-1
    ).reshape(-1, 3)


def edge_usage(mesh: StampMesh) -> Dict[Tuple[int, int], int]:
    """
    Count how many triangles use each undirected edge.

    In a closed manifold mesh every edge is used exactly twice.
    """
    faces = mesh.faces().astype(np.int64)
    if len(faces) == 0:
        return {}
    edges = np.concatenate([faces[:, [0, 1]], faces[:, [1, 2]], faces[:, [2, 0]]])
    edges.sort(axis=1)
    unique, counts = np.unique(edges, axis=0, return_counts=True)
    return {(int(a), int(b)): int(n) for (a, b), n in zip(unique, counts)}


def is_watertight(mesh: StampMesh) -> bool:
    """True if the mesh is non-empty and every edge borders exactly two triangles."""
    usage = edge_usage(mesh)
    return bool(usage) and all(n == 2 for n in usage.values())


def signed_volume(mesh: StampMesh) -> float:
    """
    Signed enclosed volume (divergence theorem).

    Positive when the triangles wind with outward-facing normals.
    """
    tris = mesh.triangles()
    if len(tris) == 0:
        return 0.0
    return float(np.einsum("ij,ij->i", tris[:, 0], np.cross(tris[:, 1], tris[:, 2])).sum() / 6.0)


def find_degenerate_triangles(mesh: StampMesh, min_area: float = DEFAULT_MIN_AREA) -> np.ndarray:
    """Indices of triangles whose area is <= min_area."""
    return np.flatnonzero(mesh.triangle_areas() <= min_area)


def validate_mesh(mesh: StampMesh, min_area: float = DEFAULT_MIN_AREA) -> StampMesh:
    """
    Optional pre-export validation.

    Checks the structural invariants and rejects near-zero-area triangles.
    Nothing is repaired.

    Raises:
        InvalidDimensions: on structural problems
        DegenerateGeometry: if any triangle area is <= min_area
    """
    mesh.check()
    bad = find_degenerate_triangles(mesh, min_area)
    if len(bad):
        raise DegenerateGeometry(
            f"{len(bad)} of {mesh.triangle_count} triangles have area <= {min_area:g}",
            triangle_indices=bad
        )
    return mesh


def mesh_stats(mesh: StampMesh) -> dict:
    """
    Summary statistics for reporting.

    Returns:
        Dictionary with counts, bounds, size and watertightness
    """
    lo, hi = mesh.bounds()
    return {
        "vertices": mesh.vertex_count,
        "triangles": mesh.triangle_count,
        "bounds_min": tuple(float(v) for v in lo),
        "bounds_max": tuple(float(v) for v in hi),
        "size": tuple(float(v) for v in (hi - lo)),
        "watertight": is_watertight(mesh),
        "volume": abs(signed_volume(mesh)),
    }
