"""
ASCII STL Format Exporter

STL is the lingua franca of slicers for 3D printing. The ASCII variant is
plain text:

    solid stamp
      facet normal nx ny nz
        outer loop
          vertex x y z
          vertex x y z
          vertex x y z
        endloop
      endfacet
    endsolid stamp

Limitations:
- No colors, no shared vertices (every facet repeats its corners)
- Text format = larger file sizes than binary STL
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple, Union
import logging

import numpy as np

from ..mesh import StampMesh

logger = logging.getLogger(__name__)


def default_stl_filename(now: Optional[datetime] = None) -> str:
    """
    Timestamped output name, e.g. stamp_2024-05-01T12-30-00.stl.

    Args:
        now: Time to use (default: current UTC time)
    """
    now = now or datetime.now(timezone.utc)
    return f"stamp_{now.strftime('%Y-%m-%dT%H-%M-%S')}.stl"


class STLExporter:
    """
    Export StampMesh data to ASCII STL.

    Facets follow the index buffer order. Each facet normal is the
    normalized cross product (v2 - v1) x (v3 - v1); degenerate triangles get
    a zero normal.
    """

    def __init__(self, solid_name: str = "stamp", precision: int = 6):
        """
        Initialize the exporter.

        Args:
            solid_name: Name written after "solid" and "endsolid"
            precision: Digits after the decimal point in scientific notation
        """
        self.solid_name = solid_name
        self.precision = precision

    def _fmt(self, value: float) -> str:
        return f"{value:.{self.precision}e}"

    def serialize(self, mesh: StampMesh) -> str:
        """
        Render the mesh as ASCII STL text.

        Args:
            mesh: Mesh to write (may be empty)

        Returns:
            Complete STL document ending with a newline
        """
        mesh.check()
        normals = mesh.face_normals()
        triangles = mesh.triangles()

        fmt = self._fmt
        lines = [f"solid {self.solid_name}"]
        for normal, tri in zip(normals, triangles):
            lines.append(f"  facet normal {fmt(normal[0])} {fmt(normal[1])} {fmt(normal[2])}")
            lines.append("    outer loop")
            for v in tri:
                lines.append(f"      vertex {fmt(v[0])} {fmt(v[1])} {fmt(v[2])}")
            lines.append("    endloop")
            lines.append("  endfacet")
        lines.append(f"endsolid {self.solid_name}")

        return "\n".join(lines) + "\n"

    def export(self, mesh: StampMesh, output_path: Union[str, Path]) -> Path:
        """
        Export mesh to an STL file.

        Args:
            mesh: StampMesh from either mesh generator
            output_path: Output file path (.stl)

        Returns:
            Path of the written file
        """
        output_path = Path(output_path)

        if mesh.is_empty:
            raise ValueError("Cannot export empty mesh")

        text = self.serialize(mesh)
        with open(output_path, "w", encoding="ascii") as f:
            f.write(text)

        logger.info("Wrote %d facets to %s", mesh.triangle_count, output_path)
        return output_path


def parse_ascii_stl(text: str) -> Tuple[np.ndarray, np.ndarray]:
    """
    Read back an ASCII STL document.

    Args:
        text: STL file contents

    Returns:
        (normals, triangles): float64 arrays of shape (T, 3) and (T, 3, 3)

    Raises:
        ValueError: if the document is not well-formed ASCII STL
    """
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if not lines or not lines[0].startswith("solid"):
        raise ValueError("STL text must start with 'solid'")
    if not lines[-1].startswith("endsolid"):
        raise ValueError("STL text must end with 'endsolid'")

    normals: List[List[float]] = []
    triangles: List[List[List[float]]] = []
    corners: List[List[float]] = []

    for line in lines[1:-1]:
        parts = line.split()
        if parts[0] == "facet":
            if parts[1:2] != ["normal"] or len(parts) != 5:
                raise ValueError(f"Malformed facet line: {line!r}")
            normals.append([float(p) for p in parts[2:]])
            corners = []
        elif parts[0] == "vertex":
            if len(parts) != 4:
                raise ValueError(f"Malformed vertex line: {line!r}")
            corners.append([float(p) for p in parts[1:]])
        elif parts[0] == "endloop":
            if len(corners) != 3:
                raise ValueError(f"Facet with {len(corners)} vertices")
            triangles.append(corners)
        elif line not in ("outer loop", "endfacet"):
            raise ValueError(f"Unexpected STL line: {line!r}")

    if len(normals) != len(triangles):
        raise ValueError("Facet count does not match loop count")

    return (
        np.array(normals, dtype=np.float64).reshape(-1, 3),
        np.array(triangles, dtype=np.float64).reshape(-1, 3, 3),
    )
