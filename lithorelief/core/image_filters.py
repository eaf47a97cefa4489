"""
Image Filter Module
이미지 필터 - 리토판 높이맵 생성을 위한 전처리

Filters are applied in a fixed order, each one finishing before the next:

    resize -> point ops -> median (noise reduction) -> sharpen -> gaussian blur

Point ops are evaluated in float64 and clamped once at the end, so e.g. a
brightness push followed by a contrast cut does not lose information between
the two steps. Neighborhood filters read from a snapshot of the previous
result, never from partially updated data.
"""

from __future__ import annotations

import logging
import math

import numpy as np
from PIL import Image, ImageFilter
from scipy import ndimage

from .errors import InvalidDimensionsError
from .logging_utils import log_duration, log_once
from .raster_image import RasterImage
from .runtime_defaults import DEFAULTS
from .settings import FilterSettings

_LOGGER = logging.getLogger(__name__)

LUMA_WEIGHTS = np.asarray([0.299, 0.587, 0.114], dtype=np.float64)


def fit_within(width: int, height: int, max_resolution: int) -> tuple[int, int]:
    """
    Scale (width, height) down so neither exceeds max_resolution.

    The aspect ratio is kept and results are floored; images that already fit
    are returned unchanged.
    """
    w = int(width)
    h = int(height)
    limit = int(max_resolution)
    if w <= 0 or h <= 0:
        raise InvalidDimensionsError(f"Invalid image size: {w} x {h}")
    if limit <= 0:
        raise InvalidDimensionsError(f"Invalid sampling resolution: {limit}")

    if w > limit or h > limit:
        ratio = min(limit / w, limit / h)
        # Extreme aspect ratios would floor the short side to 0.
        w = max(1, int(math.floor(w * ratio)))
        h = max(1, int(math.floor(h * ratio)))
    return w, h


def contrast_factor(contrast: float) -> float:
    c = float(contrast)
    return (259.0 * (c + 255.0)) / (255.0 * (259.0 - c))


def apply_point_operations(pixels: np.ndarray, settings: FilterSettings) -> np.ndarray:
    """
    Per-pixel grayscale / brightness / contrast / invert / gamma on RGB.

    Args:
        pixels: (H, W, 4) uint8 RGBA array (not modified)
        settings: filter settings

    Returns:
        New (H, W, 4) uint8 array; alpha is copied unchanged.
    """
    out = np.array(pixels, dtype=np.uint8, copy=True)
    rgb = out[..., :3].astype(np.float64)

    if settings.grayscale:
        lum = rgb @ LUMA_WEIGHTS
        rgb = np.repeat(lum[..., None], 3, axis=2)

    rgb += float(settings.brightness)

    factor = contrast_factor(settings.contrast)
    rgb = factor * (rgb - 128.0) + 128.0

    if settings.invert:
        rgb = 255.0 - rgb

    gamma = float(settings.gamma)
    if gamma != 1.0 and gamma > 0.0:
        # Negative intermediates have no real root; they end up black.
        with np.errstate(invalid="ignore"):
            rgb = 255.0 * np.power(rgb / 255.0, 1.0 / gamma)
        rgb = np.nan_to_num(rgb, nan=0.0)

    out[..., :3] = np.rint(np.clip(rgb, 0.0, 255.0)).astype(np.uint8)
    return out


def median_denoise(pixels: np.ndarray, strength: int) -> np.ndarray:
    """
    3x3 per-channel median, ceil(strength / 3) passes.

    The outermost pixel ring is left untouched. Two buffers are swapped per
    pass so each pass reads only the previous pass's complete output.
    """
    front = np.array(pixels, dtype=np.uint8, copy=True)
    if strength <= 0:
        return front
    h, w = front.shape[:2]
    if h < 3 or w < 3:
        return front

    back = front.copy()
    passes = int(math.ceil(strength / 3.0))
    for _ in range(passes):
        for c in range(3):
            filtered = ndimage.median_filter(front[..., c], size=3, mode="nearest")
            back[1:-1, 1:-1, c] = filtered[1:-1, 1:-1]
        front, back = back, front
    return front


def sharpen(pixels: np.ndarray, strength: int) -> np.ndarray:
    """
    5-point sharpen: center weight 1 + 4a, axis neighbours -a (a = strength / 10).

    Border pixels are copied unchanged.
    """
    out = np.array(pixels, dtype=np.uint8, copy=True)
    if strength <= 0:
        return out
    h, w = out.shape[:2]
    if h < 3 or w < 3:
        return out

    amount = float(strength) / 10.0
    w_center = 1.0 + 4.0 * amount
    w_neighbor = -amount

    src = np.asarray(pixels, dtype=np.float64)[..., :3]
    center = src[1:-1, 1:-1]
    neighbors = src[:-2, 1:-1] + src[2:, 1:-1] + src[1:-1, :-2] + src[1:-1, 2:]
    val = center * w_center + neighbors * w_neighbor

    out[1:-1, 1:-1, :3] = np.rint(np.clip(val, 0.0, 255.0)).astype(np.uint8)
    return out


def gaussian_blur(pixels: np.ndarray, radius: float) -> np.ndarray:
    """Gaussian blur of the given pixel radius, delegated to Pillow (all 4 channels)."""
    if radius <= 0:
        return np.array(pixels, dtype=np.uint8, copy=True)
    img = Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8))
    blurred = img.filter(ImageFilter.GaussianBlur(radius=float(radius)))
    return np.asarray(blurred, dtype=np.uint8).copy()


class ImageProcessor:
    """
    Raster filter stage.

    Stateless: one instance can serve any number of (concurrent) requests.
    """

    def __init__(self, hard_max_resolution: int | None = None):
        """
        Args:
            hard_max_resolution: upper bound applied on top of the requested
                sampling resolution (default: runtime DEFAULTS.max_resolution)
        """
        self.hard_max_resolution = int(hard_max_resolution or DEFAULTS.max_resolution)

    def resize(self, image: RasterImage, max_resolution: int) -> RasterImage:
        limit = int(max_resolution)
        if limit > self.hard_max_resolution:
            log_once(
                _LOGGER,
                f"resolution-cap:{limit}:{self.hard_max_resolution}",
                logging.WARNING,
                "Sampling resolution %d exceeds the hard limit; using %d",
                limit,
                self.hard_max_resolution,
            )
            limit = self.hard_max_resolution
        w, h = fit_within(image.width, image.height, limit)
        if (w, h) == image.size:
            return image
        _LOGGER.debug("Resizing %dx%d -> %dx%d", image.width, image.height, w, h)
        resized = image.to_pil_image().resize((w, h), Image.Resampling.BILINEAR)
        return RasterImage.from_pil(resized)

    def apply_filters(self, pixels: np.ndarray, settings: FilterSettings) -> np.ndarray:
        """Run the filter chain on an already-sized (H, W, 4) buffer."""
        out = apply_point_operations(pixels, settings)
        if settings.noise_reduction > 0:
            out = median_denoise(out, settings.noise_reduction)
        if settings.sharpen > 0:
            out = sharpen(out, settings.sharpen)
        if settings.blur > 0:
            out = gaussian_blur(out, settings.blur)
        return out

    def process_image(
        self,
        image: RasterImage,
        settings: FilterSettings,
        max_resolution: int | None = None,
    ) -> RasterImage:
        """
        Resize and filter an image.

        Args:
            image: decoded source image
            settings: filter settings
            max_resolution: bound on the larger output dimension
                (default: runtime DEFAULTS.sampling_resolution)

        Returns:
            New RasterImage; the source is never modified.

        Raises:
            InvalidDimensionsError: zero-size image or non-positive bound
        """
        if image.width <= 0 or image.height <= 0:
            raise InvalidDimensionsError(f"Invalid image size: {image.width} x {image.height}")
        limit = DEFAULTS.sampling_resolution if max_resolution is None else int(max_resolution)

        with log_duration(_LOGGER, "Image filtering"):
            sized = self.resize(image, limit)
            if settings.is_identity:
                return RasterImage(pixels=sized.pixels)
            filtered = self.apply_filters(sized.pixels, settings)
        return RasterImage(pixels=filtered)
