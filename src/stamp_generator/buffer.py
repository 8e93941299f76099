"""
Pixel Buffer

The canonical in-memory image representation consumed and produced by every
stage of the pipeline: a row-major RGBA array with 8 bits per channel.

Memory layout: shape (height, width, 4), dtype uint8, C-contiguous, so the
flat byte view is exactly width * height * 4 long.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union
import numpy as np

from .errors import InvalidDimensions


@dataclass
class PixelBuffer:
    """
    Fixed-size RGBA image buffer.

    Filters never resize a buffer; each stage returns a new buffer of the
    same shape. The grayscale signal used for geometry is read from the red
    channel once the buffer has gone through grayscale conversion.
    """

    width: int
    height: int
    _data: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        """Allocate a transparent black buffer."""
        _check_size(self.width, self.height)
        self._data = np.zeros((self.height, self.width, 4), dtype=np.uint8)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """
        Build a buffer from a numpy array.

        Accepts (H, W, 4) RGBA, (H, W, 3) RGB or (H, W) grayscale arrays.
        RGB and grayscale input gets an opaque alpha channel.

        Args:
            array: Image array with values in 0-255

        Returns:
            New PixelBuffer owning a copy of the data
        """
        array = np.asarray(array)

        if array.ndim == 2:
            array = np.stack([array, array, array, np.full_like(array, 255)], axis=-1)
        elif array.ndim == 3 and array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=array.dtype)
            array = np.concatenate([array, alpha], axis=-1)

        if array.ndim != 3 or array.shape[2] != 4:
            raise InvalidDimensions(
                f"Image array must have shape (H, W, 4), got {array.shape}"
            )

        height, width = array.shape[:2]
        buffer = cls(width, height)
        buffer._data = np.ascontiguousarray(
            np.clip(array, 0, 255).astype(np.uint8)
        )
        return buffer

    @classmethod
    def from_bytes(
        cls,
        data: Union[bytes, bytearray, memoryview],
        width: int,
        height: int
    ) -> "PixelBuffer":
        """
        Build a buffer from raw row-major RGBA bytes.

        Raises:
            InvalidDimensions: if len(data) != width * height * 4
        """
        _check_size(width, height)
        expected = width * height * 4
        if len(data) != expected:
            raise InvalidDimensions(
                f"Expected {expected} bytes for {width}x{height} RGBA, got {len(data)}"
            )
        array = np.frombuffer(bytes(data), dtype=np.uint8).reshape(height, width, 4)
        return cls.from_array(array)

    @property
    def data(self) -> np.ndarray:
        """Get the raw (H, W, 4) RGBA array."""
        return self._data

    @property
    def size(self) -> Tuple[int, int]:
        """Get buffer size as (width, height)."""
        return (self.width, self.height)

    @property
    def rgb(self) -> np.ndarray:
        """View of the color channels, shape (H, W, 3)."""
        return self._data[:, :, :3]

    @property
    def alpha(self) -> np.ndarray:
        """View of the alpha channel, shape (H, W)."""
        return self._data[:, :, 3]

    @property
    def gray(self) -> np.ndarray:
        """
        The grayscale signal, read from the red channel.

        Only meaningful after grayscale conversion, when R == G == B.
        """
        return self._data[:, :, 0]

    def to_bytes(self) -> bytes:
        """Flatten to row-major RGBA bytes."""
        return self._data.tobytes()

    def copy(self) -> "PixelBuffer":
        """Deep copy of the buffer."""
        return PixelBuffer.from_array(self._data.copy())

    def with_rgb(self, rgb: np.ndarray) -> "PixelBuffer":
        """
        New buffer with replaced color channels and this buffer's alpha.

        Float input is rounded to nearest and clamped to 0-255.
        """
        if rgb.shape[:2] != self._data.shape[:2]:
            raise InvalidDimensions(
                f"RGB shape {rgb.shape[:2]} does not match buffer {self._data.shape[:2]}"
            )
        if rgb.ndim == 2:
            rgb = np.repeat(rgb[:, :, np.newaxis], 3, axis=2)
        if np.issubdtype(rgb.dtype, np.floating):
            rgb = np.rint(rgb)

        out = self._data.copy()
        out[:, :, :3] = np.clip(rgb, 0, 255).astype(np.uint8)
        return PixelBuffer.from_array(out)

    def same_shape(self, other: Optional["PixelBuffer"]) -> bool:
        """Check whether another buffer has identical dimensions."""
        return other is not None and self.size == other.size

    def __eq__(self, other) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return self.size == other.size and np.array_equal(self._data, other._data)


def _check_size(width, height):
    """Reject non-positive or non-integer dimensions."""
    for name, value in (("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
            raise InvalidDimensions(f"Buffer {name} must be an integer, got {value!r}")
        if value <= 0:
            raise InvalidDimensions(f"Buffer {name} must be positive, got {value}")
