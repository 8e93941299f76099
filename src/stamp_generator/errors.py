"""
Exception Types

All failures raised by the stamp pipeline derive from StampError so callers
can catch the whole family at once.

An empty silhouette is deliberately not an exception: the contour generator
returns an empty StampMesh in that case.
"""


class StampError(Exception):
    """Base class for stamp pipeline errors."""


class DecodeError(StampError):
    """The source image could not be read or decoded."""


class InvalidDimensions(StampError, ValueError):
    """A buffer is zero-sized, malformed, or does not match its partner."""


class DegenerateGeometry(StampError):
    """
    A mesh contains triangles with (near) zero area.

    Only raised by the optional validation step before export.
    """

    def __init__(self, message: str, triangle_indices=None):
        super().__init__(message)
        self.triangle_indices = triangle_indices
