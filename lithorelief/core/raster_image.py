"""
Raster Image Module
디코딩된 RGBA 이미지 컨테이너

The pipeline works on already-decoded pixels. `load_image` is the decode
facility used by the CLI; library callers may build a RasterImage from any
numpy array or PIL image they already hold.
"""

from __future__ import annotations

from dataclasses import dataclass
import io
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import DecodeError, InvalidDimensionsError, LithoReliefError

ImageSource = Union[str, Path, bytes, "RasterImage", Image.Image, np.ndarray]


@dataclass(frozen=True, eq=False)
class RasterImage:
    """
    Decoded 8-bit RGBA image.

    Attributes:
        pixels: (H, W, 4) uint8 array, read-only once constructed
    """
    pixels: np.ndarray

    def __post_init__(self):
        arr = np.asarray(self.pixels)
        if arr.ndim != 3 or arr.shape[2] != 4:
            raise InvalidDimensionsError(f"Expected (H, W, 4) RGBA pixels, got shape {arr.shape}")
        if arr.shape[0] <= 0 or arr.shape[1] <= 0:
            raise InvalidDimensionsError(f"Invalid image size: {arr.shape[1]} x {arr.shape[0]}")
        # Copy so that the caller's buffer can never change our pixels afterwards.
        arr = np.array(arr, dtype=np.uint8, copy=True)
        arr.setflags(write=False)
        object.__setattr__(self, "pixels", arr)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[..., 3]

    def to_bytes(self) -> bytes:
        """Interleaved RGBA bytes, length width*height*4."""
        return self.pixels.tobytes()

    def to_pil_image(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.pixels))

    @classmethod
    def from_buffer(cls, data: bytes, width: int, height: int) -> "RasterImage":
        """Build from a flat interleaved RGBA buffer."""
        w = int(width)
        h = int(height)
        if w <= 0 or h <= 0:
            raise InvalidDimensionsError(f"Invalid image size: {w} x {h}")
        flat = np.frombuffer(bytes(data), dtype=np.uint8)
        if flat.size != w * h * 4:
            raise InvalidDimensionsError(
                f"RGBA buffer has {flat.size} bytes, expected {w * h * 4} for {w} x {h}"
            )
        return cls(pixels=flat.reshape(h, w, 4))

    @classmethod
    def from_array(cls, array: np.ndarray) -> "RasterImage":
        """
        Build from an HxW (gray), HxWx3 (RGB) or HxWx4 (RGBA) array.

        Missing alpha is treated as fully opaque.
        """
        arr = np.asarray(array)
        if arr.ndim == 2:
            arr = np.repeat(arr[..., None], 3, axis=2)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise InvalidDimensionsError(f"Unsupported image array shape: {arr.shape}")
        if arr.shape[0] <= 0 or arr.shape[1] <= 0:
            raise InvalidDimensionsError(f"Invalid image size: {arr.shape[1]} x {arr.shape[0]}")
        if arr.dtype != np.uint8:
            arr = np.clip(np.rint(arr.astype(np.float64)), 0, 255).astype(np.uint8)
        if arr.shape[2] == 3:
            opaque = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
            arr = np.concatenate([arr, opaque], axis=2)
        return cls(pixels=arr)

    @classmethod
    def from_pil(cls, image: Image.Image) -> "RasterImage":
        """
        Build from a PIL image of any mode.

        16-bit grayscale ("I;16*", and "I" as Pillow decodes 16-bit PNG/TIFF)
        is scaled down to 8 bits; Pillow's own convert() would clip it at 255.
        """
        if image.width <= 0 or image.height <= 0:
            raise InvalidDimensionsError(f"Invalid image size: {image.width} x {image.height}")
        if image.mode in _HIGH_BIT_GRAY_MODES:
            return cls.from_array(_gray16_to_u8(np.asarray(image)))
        return cls(pixels=np.asarray(image.convert("RGBA"), dtype=np.uint8))


_HIGH_BIT_GRAY_MODES = ("I;16", "I;16B", "I;16L", "I;16N", "I")


def _gray16_to_u8(values: np.ndarray) -> np.ndarray:
    wide = np.clip(values.astype(np.int64), 0, 65535)
    return (wide >> 8).astype(np.uint8)


def load_image(source: ImageSource) -> RasterImage:
    """
    Decode an image into RGBA pixels.

    Args:
        source: file path, encoded bytes, PIL image, numpy array or RasterImage

    Returns:
        RasterImage

    Raises:
        FileNotFoundError: path does not exist
        DecodeError: payload is not a decodable image
    """
    if isinstance(source, RasterImage):
        return source
    if isinstance(source, Image.Image):
        return RasterImage.from_pil(source)
    if isinstance(source, np.ndarray):
        return RasterImage.from_array(source)

    if isinstance(source, (bytes, bytearray)):
        stream = io.BytesIO(bytes(source))
        label = "<bytes>"
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        stream = io.BytesIO(path.read_bytes())
        label = str(path)

    try:
        with Image.open(stream) as img:
            img.load()
            return RasterImage.from_pil(img)
    except LithoReliefError:
        raise
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        SyntaxError,
        ValueError,
    ) as e:
        # ValueError covers modes Pillow cannot convert to RGBA.
        raise DecodeError(f"Cannot decode image {label}: {e}") from e
