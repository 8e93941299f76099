"""
Image Ingestion Module

This module handles:
- Decoding source images (PNG, JPEG, ...) with Pillow
- Normalizing every mode to 8-bit RGBA
- Mapping decode failures to DecodeError

Decoding is the only place the pipeline touches the filesystem on the way
in; everything downstream works on PixelBuffer.
"""

from io import BytesIO
from pathlib import Path
from typing import Optional, Tuple, Union
import logging

import numpy as np
from PIL import Image, UnidentifiedImageError

from .buffer import PixelBuffer
from .errors import DecodeError

logger = logging.getLogger(__name__)


class ImageLoader:
    """
    Source image loader.

    Keeps the decoded RGBA buffer, which later serves both as the filter
    input and as the vertex color source.
    """

    def __init__(self):
        self._buffer: Optional[PixelBuffer] = None
        self._source: Optional[str] = None

    def load(self, image_path: Union[str, Path]) -> "ImageLoader":
        """
        Decode an image file.

        Args:
            image_path: Path to the image file

        Returns:
            self for method chaining

        Raises:
            FileNotFoundError: if the path does not exist
            DecodeError: if the file is not a readable image
        """
        image_path = Path(image_path)
        if not image_path.exists():
            raise FileNotFoundError(f"Image not found: {image_path}")

        with open(image_path, "rb") as f:
            payload = f.read()

        self._buffer = decode_image(payload, source=str(image_path))
        self._source = str(image_path)
        return self

    def load_bytes(self, payload: bytes, source: str = "<bytes>") -> "ImageLoader":
        """
        Decode an encoded image held in memory.

        Returns:
            self for method chaining
        """
        self._buffer = decode_image(payload, source=source)
        self._source = source
        return self

    def load_from_array(self, array: np.ndarray) -> "ImageLoader":
        """
        Load already-decoded pixels.

        Args:
            array: (H, W, 4), (H, W, 3) or (H, W) array

        Returns:
            self for method chaining
        """
        self._buffer = PixelBuffer.from_array(array)
        self._source = "<array>"
        return self

    @property
    def buffer(self) -> PixelBuffer:
        """Get the decoded RGBA buffer."""
        if self._buffer is None:
            raise RuntimeError("No image loaded")
        return self._buffer

    @property
    def source(self) -> Optional[str]:
        """Where the current image came from."""
        return self._source

    @property
    def size(self) -> Tuple[int, int]:
        """Get image size as (width, height)."""
        return self.buffer.size

    @property
    def aspect_ratio(self) -> float:
        """Width divided by height."""
        width, height = self.size
        return width / height


def decode_image(payload: bytes, source: str = "<bytes>") -> PixelBuffer:
    """
    Decode encoded image bytes into an RGBA PixelBuffer.

    Args:
        payload: Encoded image (any format Pillow understands)
        source: Name used in log and error messages

    Returns:
        Decoded PixelBuffer

    Raises:
        DecodeError: if the payload is empty, truncated or not an image
    """
    if not payload:
        raise DecodeError(f"Empty image data: {source}")

    try:
        with Image.open(BytesIO(payload)) as img:
            img.load()
            if img.mode == "RGBA":
                array = np.array(img, dtype=np.uint8)
            else:
                with img.convert("RGBA") as rgba:
                    array = np.array(rgba, dtype=np.uint8)
    except (
        UnidentifiedImageError, Image.DecompressionBombError,
        OSError, ValueError, SyntaxError
    ) as e:
        raise DecodeError(f"Cannot decode image {source}: {e}") from e

    logger.debug("Decoded %s: %dx%d", source, array.shape[1], array.shape[0])
    return PixelBuffer.from_array(array)
