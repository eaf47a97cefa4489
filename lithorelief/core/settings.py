"""
Settings value objects for the filter stage and the mesh builder.

Both are frozen dataclasses: callers create a new instance (or use
`with_updates`) for every processing request instead of mutating shared state.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import math
from typing import Any

from .errors import InvalidDimensionsError


def _clamp_int(value: Any, lo: int, hi: int) -> int:
    return int(max(lo, min(hi, int(round(float(value))))))


def _clamp_float(value: Any, lo: float, hi: float, default: float) -> float:
    v = float(value)
    if not math.isfinite(v):
        return default
    return float(max(lo, min(hi, v)))


@dataclass(frozen=True)
class FilterSettings:
    """
    Raster filter parameters.

    Attributes:
        grayscale: replace RGB by weighted luminance
        invert: 255 - c after contrast
        brightness: additive offset (-100..100)
        contrast: contrast amount (-100..100)
        gamma: gamma exponent, applied as c^(1/gamma); <= 0 disables it
        blur: Gaussian blur radius in pixels (0..20)
        sharpen: sharpen strength (0..10)
        noise_reduction: median filter strength (0..10)
    """
    grayscale: bool = True
    invert: bool = False
    brightness: int = 0
    contrast: int = 0
    gamma: float = 1.0
    blur: float = 0.0
    sharpen: int = 0
    noise_reduction: int = 0

    def __post_init__(self):
        object.__setattr__(self, "grayscale", bool(self.grayscale))
        object.__setattr__(self, "invert", bool(self.invert))
        object.__setattr__(self, "brightness", _clamp_int(self.brightness, -100, 100))
        object.__setattr__(self, "contrast", _clamp_int(self.contrast, -100, 100))
        gamma = float(self.gamma)
        object.__setattr__(self, "gamma", gamma if math.isfinite(gamma) else 1.0)
        object.__setattr__(self, "blur", _clamp_float(self.blur, 0.0, 20.0, 0.0))
        object.__setattr__(self, "sharpen", _clamp_int(self.sharpen, 0, 10))
        object.__setattr__(self, "noise_reduction", _clamp_int(self.noise_reduction, 0, 10))

    @property
    def is_identity(self) -> bool:
        """True when every effect is disabled (output == resized input)."""
        return (
            not self.grayscale
            and not self.invert
            and self.brightness == 0
            and self.contrast == 0
            and (self.gamma == 1.0 or self.gamma <= 0.0)
            and self.blur == 0.0
            and self.sharpen == 0
            and self.noise_reduction == 0
        )

    def with_updates(self, **changes: Any) -> "FilterSettings":
        return replace(self, **changes)


@dataclass(frozen=True)
class ModelSettings:
    """
    Physical parameters of the relief solid (all lengths in mm).

    Range checks happen in the mesh builder so that a bad value surfaces as
    InvalidModelSettingsError at build time, not while editing settings.
    """
    width: float = 100.0
    height: float = 100.0
    depth: float = 5.0
    base_height: float = 2.0
    frame_width: float = 0.0
    frame_depth: float = 5.0
    curve_angle: float = 0.0
    smoothing: bool = False
    smoothing_iterations: int = 2
    sampling_resolution: int = 1024

    def __post_init__(self):
        for name in ("width", "height", "depth", "base_height", "frame_width", "frame_depth", "curve_angle"):
            object.__setattr__(self, name, float(getattr(self, name)))
        object.__setattr__(self, "smoothing", bool(self.smoothing))
        object.__setattr__(self, "smoothing_iterations", max(0, int(self.smoothing_iterations)))
        object.__setattr__(self, "sampling_resolution", int(self.sampling_resolution))

    @property
    def total_width(self) -> float:
        return self.width + 2.0 * self.frame_width

    @property
    def total_height(self) -> float:
        return self.height + 2.0 * self.frame_width

    @property
    def is_curved(self) -> bool:
        return self.curve_angle > 0.0

    def with_updates(self, **changes: Any) -> "ModelSettings":
        return replace(self, **changes)

    def fit_aspect(self, width_px: int, height_px: int) -> "ModelSettings":
        """Keep `width` and derive `height` from the image aspect ratio."""
        w = int(width_px)
        h = int(height_px)
        if w <= 0 or h <= 0:
            raise InvalidDimensionsError(f"Invalid image size: {w} x {h}")
        return replace(self, height=self.width * float(h) / float(w))
