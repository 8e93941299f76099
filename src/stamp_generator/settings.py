"""
Filter and Mesh Settings

Plain value objects handed to the pipeline by the caller. Both are frozen:
one pipeline run always sees one consistent set of parameters.

Defaults:
- Filters: no invert, no blur, linear tone curve
- Mesh: resolution 100, 10 mm relief on a 2 mm base, 100 x 100 mm
"""

from dataclasses import dataclass, asdict, replace, fields
from typing import Tuple
import math

MIN_RESOLUTION = 10
MAX_RESOLUTION = 1024

IDENTITY_CURVE = (0.0, 0.0, 1.0, 1.0)


@dataclass(frozen=True)
class FilterSettings:
    """
    Image filter parameters.

    Attributes:
        invert: Invert intensities after grayscale conversion
        gaussian_blur_radius: Gaussian sigma in pixels (0 disables)
        uniform_blur_radius: Disc blur radius in pixels (0 disables)
        tone_curve: Bezier control points (x1, y1, x2, y2); the curve is
            anchored at (0, 0) and (1, 1)
    """

    invert: bool = False
    gaussian_blur_radius: float = 0.0
    uniform_blur_radius: float = 0.0
    tone_curve: Tuple[float, float, float, float] = IDENTITY_CURVE

    def __post_init__(self):
        """Validate ranges."""
        for name in ("gaussian_blur_radius", "uniform_blur_radius"):
            radius = getattr(self, name)
            if not math.isfinite(radius) or radius < 0:
                raise ValueError(f"{name} must be a finite value >= 0, got {radius}")

        curve = tuple(float(c) for c in self.tone_curve)
        if len(curve) != 4 or not all(math.isfinite(c) for c in curve):
            raise ValueError(f"tone_curve must be 4 finite numbers, got {self.tone_curve}")
        x1, _, x2, _ = curve
        if not (0.0 <= x1 <= 1.0 and 0.0 <= x2 <= 1.0):
            raise ValueError(f"tone_curve x control points must lie in [0, 1], got {curve}")
        object.__setattr__(self, "tone_curve", curve)

    @property
    def has_identity_curve(self) -> bool:
        """True for the linear (0, 0, 1, 1) curve."""
        return self.tone_curve == IDENTITY_CURVE

    @property
    def is_passthrough(self) -> bool:
        """True when the pipeline reduces to grayscale conversion alone."""
        return (
            not self.invert
            and self.gaussian_blur_radius == 0
            and self.uniform_blur_radius == 0
            and self.has_identity_curve
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: dict) -> "FilterSettings":
        """Build from a dict, ignoring unknown keys."""
        return cls(**_known_fields(cls, values))


@dataclass(frozen=True)
class MeshSettings:
    """
    Mesh generation parameters.

    Attributes:
        resolution: Grid segments along the shorter image side (10-1024)
        extrusion_height: Relief height added for white pixels
        base_height: Solid base thickness under the relief
        width: Physical width in output units (mm)
        height: Physical height in output units (mm)
        outline_threshold: Silhouette threshold for the contour mesh (0-255)
        outline_offset_percent: Silhouette margin relative to the longer
            image side (0-100)
    """

    resolution: int = 100
    extrusion_height: float = 10.0
    base_height: float = 2.0
    width: float = 100.0
    height: float = 100.0
    outline_threshold: int = 127
    outline_offset_percent: float = 0.0

    def __post_init__(self):
        """Clamp resolution and validate the rest."""
        resolution = int(round(self.resolution))
        resolution = min(max(resolution, MIN_RESOLUTION), MAX_RESOLUTION)
        object.__setattr__(self, "resolution", resolution)

        for name in ("extrusion_height", "base_height", "width", "height"):
            if not math.isfinite(getattr(self, name)):
                raise ValueError(f"{name} must be finite, got {getattr(self, name)}")

        if self.extrusion_height < 0:
            raise ValueError(f"extrusion_height must be >= 0, got {self.extrusion_height}")
        if self.base_height < 0:
            raise ValueError(f"base_height must be >= 0, got {self.base_height}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Physical size must be positive, got {self.width} x {self.height}"
            )
        if not 0 <= self.outline_threshold <= 255:
            raise ValueError(
                f"outline_threshold must be in [0, 255], got {self.outline_threshold}"
            )
        if not 0 <= self.outline_offset_percent <= 100:
            raise ValueError(
                f"outline_offset_percent must be in [0, 100], got {self.outline_offset_percent}"
            )

    def fit_to_image(self, image_width: int, image_height: int) -> "MeshSettings":
        """
        Derive the physical height from the image aspect ratio.

        Args:
            image_width: Source image width in pixels
            image_height: Source image height in pixels

        Returns:
            Copy with height = width * image_height / image_width
        """
        _check_image_size(image_width, image_height)
        return replace(self, height=self.width * image_height / image_width)

    def fit_width(self, image_width: int, image_height: int) -> "MeshSettings":
        """Derive the physical width from the height: width = height * aspect."""
        _check_image_size(image_width, image_height)
        return replace(self, width=self.height * image_width / image_height)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: dict) -> "MeshSettings":
        """Build from a dict, ignoring unknown keys."""
        return cls(**_known_fields(cls, values))


def _known_fields(cls, values: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in values.items() if k in names}


def _check_image_size(image_width: int, image_height: int):
    if image_width <= 0 or image_height <= 0:
        raise ValueError("Image dimensions must be positive")
