"""
Image Filter Pipeline

Converts a source photo into the clean grayscale signal that drives the
relief height and the outline silhouette. Stages always run in this order:

1. Grayscale - ITU-R BT.601 luma: 0.299*R + 0.587*G + 0.114*B
2. Invert - 255 - v (optional)
3. Gaussian blur - separable two-pass convolution, sigma = radius
4. Uniform blur - equal-weight average over a disc of radius r
5. Tone curve - 256-entry LUT from a cubic Bezier through (0,0) and (1,1)

Every stage leaves alpha untouched and returns a new buffer, so the
pipeline is a pure function of (source, settings).

Backends:
- "reference": numpy + scipy.ndimage (correctness oracle)
- "numba": row-parallel JIT kernels from kernels.py
"""

from typing import Dict, Optional, Sequence
import logging
import time

import numpy as np
from scipy import ndimage

from .buffer import PixelBuffer
from .errors import InvalidDimensions
from .morphology import disc_footprint, disc_offsets
from .settings import FilterSettings, IDENTITY_CURVE

logger = logging.getLogger(__name__)

BACKENDS = ("reference", "numba")

# Gaussian kernels are cut off at this many standard deviations
GAUSSIAN_TRUNCATE = 4.0

# BT.601 luma weights
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def grayscale(buffer: PixelBuffer) -> PixelBuffer:
    """
    Replace RGB with luma, rounded to the nearest integer.

    Idempotent: a buffer with R == G == B maps to itself.
    """
    luma = buffer.rgb.astype(np.float64) @ LUMA_WEIGHTS
    return buffer.with_rgb(luma)


def invert(buffer: PixelBuffer) -> PixelBuffer:
    """Invert RGB intensities. Self-inverse."""
    return buffer.with_rgb(255 - buffer.rgb)


def gaussian_kernel(sigma: float) -> np.ndarray:
    """
    Normalized 1D Gaussian kernel.

    Args:
        sigma: Standard deviation in pixels (> 0)

    Returns:
        Odd-length float64 kernel summing to 1
    """
    if sigma <= 0:
        raise ValueError(f"sigma must be positive, got {sigma}")
    half = max(1, int(GAUSSIAN_TRUNCATE * sigma + 0.5))
    x = np.arange(-half, half + 1, dtype=np.float64)
    weights = np.exp(-0.5 * (x / sigma) ** 2)
    return weights / weights.sum()


def gaussian_blur_array(
    image: np.ndarray,
    sigma: float,
    backend: str = "reference"
) -> np.ndarray:
    """
    Separable Gaussian blur of a float (H, W) or (H, W, C) array.

    The horizontal pass completes over the whole image before the vertical
    pass starts. Out-of-range samples clamp to the nearest edge pixel.
    """
    if sigma <= 0:
        return np.array(image, dtype=np.float64)

    kernel = gaussian_kernel(sigma)
    image = np.asarray(image, dtype=np.float64)
    flat = image.ndim == 2
    if flat:
        image = image[:, :, np.newaxis]

    if backend == "reference":
        horizontal = ndimage.correlate1d(image, kernel, axis=1, mode="nearest")
        result = ndimage.correlate1d(horizontal, kernel, axis=0, mode="nearest")
    elif backend == "numba":
        from .kernels import convolve_rows, convolve_columns
        horizontal = convolve_rows(np.ascontiguousarray(image), kernel)
        result = convolve_columns(horizontal, kernel)
    else:
        raise ValueError(f"Unknown backend: {backend}")

    return result[:, :, 0] if flat else result


def gaussian_blur(buffer: PixelBuffer, radius: float, backend: str = "reference") -> PixelBuffer:
    """Gaussian blur of the color channels with sigma = radius pixels."""
    if radius <= 0:
        return buffer.copy()
    return buffer.with_rgb(gaussian_blur_array(buffer.rgb, radius, backend))


def uniform_blur(buffer: PixelBuffer, radius: float, backend: str = "reference") -> PixelBuffer:
    """
    Disc-shaped box blur.

    Each pixel becomes the plain average of all in-bounds pixels within
    Euclidean distance <= radius. Near the border fewer neighbours exist and
    the divisor shrinks accordingly. Radius 0 is the identity.
    """
    if radius <= 0:
        return buffer.copy()

    rgb = buffer.rgb.astype(np.float64)

    if backend == "reference":
        footprint = disc_footprint(radius).astype(np.float64)
        counts = ndimage.correlate(
            np.ones(rgb.shape[:2]), footprint, mode="constant", cval=0.0
        )
        sums = np.stack([
            ndimage.correlate(rgb[:, :, c], footprint, mode="constant", cval=0.0)
            for c in range(3)
        ], axis=-1)
        averaged = sums / counts[:, :, np.newaxis]
    elif backend == "numba":
        from .kernels import disc_blur
        averaged = disc_blur(np.ascontiguousarray(rgb), disc_offsets(radius))
    else:
        raise ValueError(f"Unknown backend: {backend}")

    return buffer.with_rgb(averaged)


def cubic_bezier_y(t: np.ndarray, y1: float, y2: float) -> np.ndarray:
    """
    Y coordinate of the tone curve at parameter t.

    B(t) = 3(1-t)^2 t y1 + 3(1-t) t^2 y2 + t^3

    Note: t is used directly as the input intensity; the curve is not
    solved for the t whose X coordinate equals the input, so x1 and x2 have
    no effect.
    """
    mt = 1.0 - t
    return 3.0 * mt * mt * t * y1 + 3.0 * mt * t * t * y2 + t * t * t


def tone_curve_lut(curve: Sequence[float]) -> np.ndarray:
    """
    Build the 256-entry tone curve lookup table.

    Args:
        curve: Control points (x1, y1, x2, y2)

    Returns:
        uint8 array of 256 output intensities. The (0, 0, 1, 1) curve is
        treated as linear and maps every intensity to itself, although the
        polynomial there is smoothstep, 3t^2 - 2t^3.
    """
    curve = tuple(float(c) for c in curve)
    if curve == IDENTITY_CURVE:
        return np.arange(256, dtype=np.uint8)

    _, y1, _, y2 = curve
    t = np.arange(256, dtype=np.float64) / 255.0
    y = np.clip(cubic_bezier_y(t, y1, y2), 0.0, 1.0)
    return np.floor(y * 255.0 + 0.5).astype(np.uint8)


def apply_tone_curve(buffer: PixelBuffer, curve: Sequence[float]) -> PixelBuffer:
    """Map R, G and B through the tone curve LUT."""
    if tuple(float(c) for c in curve) == IDENTITY_CURVE:
        return buffer.copy()
    lut = tone_curve_lut(curve)
    return buffer.with_rgb(lut[buffer.rgb])


class FilterPipeline:
    """
    Runs the five filter stages for one FilterSettings.

    With keep_intermediates=True the output of every stage that ran is
    kept in `intermediates`, keyed by stage name, for preview purposes.
    """

    STAGES = ("grayscale", "invert", "gaussian_blur", "uniform_blur", "tone_curve")

    def __init__(
        self,
        settings: Optional[FilterSettings] = None,
        backend: str = "reference",
        keep_intermediates: bool = False
    ):
        """
        Initialize the pipeline.

        Args:
            settings: Filter parameters (defaults to a passthrough)
            backend: "reference" or "numba"
            keep_intermediates: Record each stage's output buffer
        """
        if backend not in BACKENDS:
            raise ValueError(f"Unknown backend: {backend} (expected one of {BACKENDS})")

        self.settings = settings or FilterSettings()
        self.backend = backend
        self.keep_intermediates = keep_intermediates
        self._intermediates: Dict[str, PixelBuffer] = {}

    def run(self, source: PixelBuffer) -> PixelBuffer:
        """
        Filter a source buffer.

        The source is never modified.

        Args:
            source: Decoded RGBA PixelBuffer

        Returns:
            New grayscale PixelBuffer of identical size
        """
        self._intermediates = {}
        s = self.settings

        buffer = self._stage("grayscale", grayscale, source)

        if s.invert:
            buffer = self._stage("invert", invert, buffer)

        if s.gaussian_blur_radius > 0:
            buffer = self._stage(
                "gaussian_blur", gaussian_blur, buffer,
                s.gaussian_blur_radius, self.backend
            )

        if s.uniform_blur_radius > 0:
            buffer = self._stage(
                "uniform_blur", uniform_blur, buffer,
                s.uniform_blur_radius, self.backend
            )

        if not s.has_identity_curve:
            buffer = self._stage("tone_curve", apply_tone_curve, buffer, s.tone_curve)

        return buffer

    def _stage(self, name, func, buffer, *args) -> PixelBuffer:
        start = time.perf_counter()
        result = func(buffer, *args)
        if not result.same_shape(buffer):
            raise InvalidDimensions(
                f"Stage {name} resized {buffer.size} to {result.size}"
            )
        logger.debug(
            "%s on %dx%d took %.1f ms",
            name, result.width, result.height,
            (time.perf_counter() - start) * 1000.0
        )
        if self.keep_intermediates:
            self._intermediates[name] = result
        return result

    @property
    def intermediates(self) -> Dict[str, PixelBuffer]:
        """Stage outputs from the last run (empty unless kept)."""
        return dict(self._intermediates)


def apply_filters(
    source: PixelBuffer,
    settings: Optional[FilterSettings] = None,
    backend: str = "reference"
) -> PixelBuffer:
    """
    Run the full filter pipeline.

    Args:
        source: Decoded RGBA PixelBuffer
        settings: Filter parameters
        backend: "reference" or "numba"

    Returns:
        Filtered grayscale PixelBuffer
    """
    return FilterPipeline(settings, backend).run(source)


def is_monotonic_lut(lut: np.ndarray) -> bool:
    """True if the LUT never decreases."""
    return bool(np.all(np.diff(lut.astype(np.int16)) >= 0))
