"""
Export modules for 3D printing and interchange formats.

Supported formats:
- ASCII STL (.stl) - Input format of every slicer
- Wavefront (.obj) - Universal format, keeps vertex colors
"""

from .stl_exporter import STLExporter, default_stl_filename, parse_ascii_stl
from .obj_exporter import OBJExporter

__all__ = ["STLExporter", "OBJExporter", "default_stl_filename", "parse_ascii_stl"]
