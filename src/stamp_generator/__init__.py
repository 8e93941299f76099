"""
Image to Stamp Generator
========================

A deterministic pipeline that turns a 2D image into a 3D-printable relief
stamp, exported as ASCII STL.

Pixel brightness becomes relief height over a solid base. The stamp either
covers the full image rectangle (heightfield mode) or follows the image
silhouette, traced with marching squares (contour mode).

Key Features:
- Filter pipeline: grayscale, invert, Gaussian and disc blur, Bezier tone curve
- Reference (numpy/scipy) and Numba JIT filter backends
- Closed, consistently wound meshes suitable for slicers
- Export to ASCII STL and Wavefront OBJ (with vertex colors)

Example Usage:
    from stamp_generator import StampGenerator

    generator = StampGenerator()
    generator.load_image("logo.png")
    generator.set_filter_settings(invert=True)
    generator.generate_mesh(mode="contour")
    generator.export_stl("logo.stl")
"""

__version__ = "1.0.0"
__author__ = "Stamp Generator Team"

from .buffer import PixelBuffer
from .settings import FilterSettings, MeshSettings
from .errors import StampError, DecodeError, InvalidDimensions, DegenerateGeometry
from .filters import FilterPipeline, apply_filters
from .heightfield import HeightfieldMesher, generate_heightfield_mesh
from .contour import ContourMesher, generate_contour_mesh
from .mesh import StampMesh, validate_mesh
from .generator import StampGenerator
from .worker import BackgroundGenerator

__all__ = [
    "StampGenerator",
    "BackgroundGenerator",
    "PixelBuffer",
    "FilterSettings",
    "MeshSettings",
    "FilterPipeline",
    "apply_filters",
    "HeightfieldMesher",
    "generate_heightfield_mesh",
    "ContourMesher",
    "generate_contour_mesh",
    "StampMesh",
    "validate_mesh",
    "StampError",
    "DecodeError",
    "InvalidDimensions",
    "DegenerateGeometry",
]
