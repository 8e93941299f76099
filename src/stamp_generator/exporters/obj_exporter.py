"""
Wavefront OBJ Format Exporter

OBJ is a universal text-based format supported by virtually all 3D software.
Unlike STL it shares vertices between faces and, with the widely supported
extended vertex syntax (v x y z r g b), keeps the stamp's vertex colors:
- Geometry-only export
- Extended format with vertex colors

Limitations:
- Text format = larger file sizes
- Extended vertex colors are not part of the OBJ standard
"""

from pathlib import Path
from typing import Union
import logging

import numpy as np

from ..mesh import StampMesh

logger = logging.getLogger(__name__)

VERTEX_COLOR_MODES = ("none", "extended")


class OBJExporter:
    """
    Export StampMesh data to Wavefront OBJ format.

    Supports:
    - Extended OBJ with vertex colors (v x y z r g b)
    - Flat per-face normals
    """

    def __init__(
        self,
        scale: float = 1.0,
        include_normals: bool = True,
        vertex_colors_mode: str = "extended"
    ):
        """
        Initialize the exporter.

        Args:
            scale: Scale factor for vertex positions
            include_normals: Whether to write per-face normals
            vertex_colors_mode: How to handle vertex colors
                - "none": No colors
                - "extended": v x y z r g b format
        """
        if vertex_colors_mode not in VERTEX_COLOR_MODES:
            raise ValueError(f"Unknown vertex colors mode: {vertex_colors_mode}")
        self.scale = scale
        self.include_normals = include_normals
        self.vertex_colors_mode = vertex_colors_mode

    def export(
        self,
        mesh: StampMesh,
        output_path: Union[str, Path],
        model_name: str = "stamp"
    ) -> Path:
        """
        Export mesh to OBJ file.

        Args:
            mesh: StampMesh from either mesh generator
            output_path: Output file path (.obj)
            model_name: Name for the model/object

        Returns:
            Path of the written OBJ file
        """
        output_path = Path(output_path)

        if mesh.is_empty:
            raise ValueError("Cannot export empty mesh")
        mesh.check()

        vertices = mesh.vertices.astype(np.float64) * self.scale
        faces = mesh.faces().astype(np.int64)

        lines = []
        lines.append("# Stamp Generator OBJ Export")
        lines.append(f"# Vertices: {len(vertices)}")
        lines.append(f"# Triangles: {len(faces)}")
        lines.append("")

        lines.append(f"o {model_name}")
        lines.append("")

        if self.vertex_colors_mode == "extended":
            for v, c in zip(vertices, mesh.colors):
                lines.append(f"v {v[0]:.6f} {v[1]:.6f} {v[2]:.6f} {c[0]:.4f} {c[1]:.4f} {c[2]:.4f}")
        else:
            for v in vertices:
                lines.append(f"v {v[0]:.6f} {v[1]:.6f} {v[2]:.6f}")
        lines.append("")

        # One normal index per face, shared between equal normals
        normal_ids = None
        if self.include_normals:
            unique_normals, normal_ids = np.unique(
                np.round(mesh.face_normals(), 6), axis=0, return_inverse=True
            )
            normal_ids = normal_ids.reshape(-1)
            for n in unique_normals:
                lines.append(f"vn {n[0]:.6f} {n[1]:.6f} {n[2]:.6f}")
            lines.append("")

        for fi, face in enumerate(faces):
            lines.append(self._face_line(face, normal_ids, fi))

        with open(output_path, "w") as f:
            f.write("\n".join(lines) + "\n")

        logger.info("Wrote %d faces to %s", len(faces), output_path)
        return output_path

    @staticmethod
    def _face_line(face: np.ndarray, normal_ids, face_index: int) -> str:
        i0, i1, i2 = (int(i) + 1 for i in face)
        if normal_ids is None:
            return f"f {i0} {i1} {i2}"
        ni = int(normal_ids[face_index]) + 1
        return f"f {i0}//{ni} {i1}//{ni} {i2}//{ni}"
