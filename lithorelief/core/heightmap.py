"""
Heightmap extraction.

One normalized height per pixel: weighted luminance / 255. Nearly transparent
pixels (alpha < 10) are pinned to 0 so cut-out backgrounds stay flat instead
of rising with whatever color they happen to carry.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

from .errors import EmptyHeightmapError, InvalidDimensionsError
from .raster_image import RasterImage

ALPHA_THRESHOLD = 10

_LUMA = np.asarray([0.299, 0.587, 0.114], dtype=np.float64)


@dataclass(frozen=True, eq=False)
class Heightmap:
    """
    Normalized height field.

    Attributes:
        values: (H, W) float32 array in [0, 1], row-major, read-only
    """
    values: np.ndarray

    def __post_init__(self):
        arr = np.array(self.values, dtype=np.float32, copy=True)
        if arr.ndim != 2 or arr.shape[0] <= 0 or arr.shape[1] <= 0:
            raise InvalidDimensionsError(f"Heightmap must be a non-empty 2D array, got shape {arr.shape}")
        arr.setflags(write=False)
        object.__setattr__(self, "values", arr)

    @property
    def width(self) -> int:
        return int(self.values.shape[1])

    @property
    def height(self) -> int:
        return int(self.values.shape[0])

    def __len__(self) -> int:
        return int(self.values.size)

    @property
    def flat(self) -> np.ndarray:
        return self.values.reshape(-1)

    @classmethod
    def from_flat(cls, values, width: int, height: int) -> "Heightmap":
        w = int(width)
        h = int(height)
        if w <= 0 or h <= 0:
            raise InvalidDimensionsError(f"Invalid heightmap size: {w} x {h}")
        flat = np.asarray(values, dtype=np.float32).reshape(-1)
        if flat.size != w * h:
            raise EmptyHeightmapError(
                f"Heightmap has {flat.size} values, expected {w * h} for {w} x {h} pixels"
            )
        return cls(values=flat.reshape(h, w))

    def to_pil_image(self) -> Image.Image:
        """Grayscale preview (0 -> black, 1 -> white)."""
        img = np.rint(np.clip(self.values, 0.0, 1.0) * 255.0).astype(np.uint8)
        return Image.fromarray(img)

    def save_preview(self, filepath: Union[str, Path]) -> Path:
        out = Path(filepath)
        out.parent.mkdir(parents=True, exist_ok=True)
        self.to_pil_image().save(str(out))
        return out


def extract_heightmap(image: RasterImage) -> Heightmap:
    """
    Luminance heightmap of a (filtered) image.

    Args:
        image: RGBA image

    Returns:
        Heightmap with the same width/height as the image
    """
    pixels = image.pixels
    rgb = pixels[..., :3].astype(np.float64)
    lum = rgb @ _LUMA
    heights = np.clip(lum / 255.0, 0.0, 1.0)
    heights[pixels[..., 3] < ALPHA_THRESHOLD] = 0.0
    return Heightmap(values=heights)
