"""
Relief Mesh Builder
높이맵 -> 닫힌 리토판 솔리드 메쉬

The solid is two vertex grids with identical (row, col) addressing:

    top    : index = row * cols + col            (relief surface)
    bottom : index = rows * cols + row * cols + col  (flat or cylindrical base)

Each grid cell emits 2 top + 2 bottom triangles; cells on the border also
emit 2 wall triangles per touched side. All faces are counter-clockwise seen
from outside the solid, so the result is a closed, consistently oriented
2-manifold for any grid with at least one cell per axis.

Grid layout (flat, seen from +Z):

    row 0  a --- b        a=(r, c)    b=(r, c+1)
           |   / |        d=(r+1, c)  e=(r+1, c+1)
    row 1  d --- e        top faces: (d, e, b), (d, b, a)
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Optional, Union

import numpy as np
from scipy import ndimage

from .errors import EmptyHeightmapError, InvalidModelSettingsError
from .heightmap import Heightmap
from .logging_utils import log_duration
from .mesh_geometry import MeshGeometry
from .settings import ModelSettings

_LOGGER = logging.getLogger(__name__)

_BOX_KERNEL = np.ones((3, 3), dtype=np.float64)


@dataclass(frozen=True)
class GridLayout:
    """Segment counts of the vertex grid (frame included)."""
    width_px: int
    height_px: int
    px_per_mm_x: float
    px_per_mm_y: float
    frame_segs_x: int
    frame_segs_y: int

    @property
    def segs_x(self) -> int:
        return self.width_px + 2 * self.frame_segs_x

    @property
    def segs_y(self) -> int:
        return self.height_px + 2 * self.frame_segs_y

    @property
    def cols(self) -> int:
        return self.segs_x + 1

    @property
    def rows(self) -> int:
        return self.segs_y + 1

    @property
    def n_cells(self) -> int:
        return self.segs_x * self.segs_y

    @property
    def n_faces(self) -> int:
        return 4 * self.n_cells + 4 * (self.segs_x + self.segs_y)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _require_finite(settings: ModelSettings, *names: str) -> None:
    for name in names:
        value = float(getattr(settings, name))
        if not math.isfinite(value):
            raise InvalidModelSettingsError(f"{name} must be finite, got {value!r}")


def validate_model_settings(settings: ModelSettings) -> None:
    _require_finite(
        settings, "width", "height", "depth", "base_height",
        "frame_width", "frame_depth", "curve_angle",
    )
    if settings.width <= 0 or settings.height <= 0:
        raise InvalidModelSettingsError(
            f"Model size must be positive, got {settings.width} x {settings.height} mm"
        )
    if settings.frame_width < 0:
        raise InvalidModelSettingsError(f"frame_width must be >= 0, got {settings.frame_width}")
    if settings.curve_angle < 0 or settings.curve_angle > 360:
        raise InvalidModelSettingsError(
            f"curve_angle must be within [0, 360] degrees, got {settings.curve_angle}"
        )


def compute_grid_layout(width_px: int, height_px: int, settings: ModelSettings) -> GridLayout:
    """
    px/mm per axis and the frame segment counts derived from it.

    Raises:
        InvalidModelSettingsError: non-positive size or a non-finite px/mm ratio
    """
    validate_model_settings(settings)
    w_px = int(width_px)
    h_px = int(height_px)
    if w_px <= 0 or h_px <= 0:
        raise InvalidModelSettingsError(f"Image has no pixels: {w_px} x {h_px}")

    px_per_mm_x = w_px / settings.width
    px_per_mm_y = h_px / settings.height
    if not (math.isfinite(px_per_mm_x) and math.isfinite(px_per_mm_y)):
        raise InvalidModelSettingsError(
            f"Pixel/mm ratio is not finite ({px_per_mm_x}, {px_per_mm_y})"
        )

    frame_x = 0
    frame_y = 0
    if settings.frame_width > 0:
        frame_x = max(1, _round_half_up(settings.frame_width * px_per_mm_x))
        frame_y = max(1, _round_half_up(settings.frame_width * px_per_mm_y))

    return GridLayout(
        width_px=w_px,
        height_px=h_px,
        px_per_mm_x=px_per_mm_x,
        px_per_mm_y=px_per_mm_y,
        frame_segs_x=frame_x,
        frame_segs_y=frame_y,
    )


def smooth_heightmap(values: np.ndarray, iterations: int) -> np.ndarray:
    """
    Repeated 3x3 box blur.

    Neighbours outside the image are left out of both the sum and the count,
    so edges are averaged over 4 or 6 samples instead of being darkened.
    Each pass reads the complete previous pass (two buffers, swapped).
    """
    front = np.array(values, dtype=np.float64, copy=True)
    if iterations <= 0:
        return front
    counts = ndimage.convolve(np.ones_like(front), _BOX_KERNEL, mode="constant", cval=0.0)
    back = np.empty_like(front)
    for _ in range(int(iterations)):
        ndimage.convolve(front, _BOX_KERNEL, output=back, mode="constant", cval=0.0)
        back /= counts
        front, back = back, front
    return front


def _vertex_heights(values: np.ndarray, layout: GridLayout, settings: ModelSettings) -> np.ndarray:
    """(rows, cols) top-surface heights; the image region includes its outer edge."""
    img_x = np.arange(layout.cols) - layout.frame_segs_x
    img_y = np.arange(layout.rows) - layout.frame_segs_y

    in_x = (img_x >= 0) & (img_x <= layout.width_px)
    in_y = (img_y >= 0) & (img_y <= layout.height_px)
    inside = in_y[:, None] & in_x[None, :]

    sx = np.clip(img_x, 0, layout.width_px - 1)
    sy = np.clip(img_y, 0, layout.height_px - 1)
    sampled = values[sy[:, None], sx[None, :]]

    relief = settings.base_height + sampled * settings.depth
    frame = settings.base_height + settings.frame_depth
    return np.where(inside, relief, frame)


def _place_vertices(z: np.ndarray, layout: GridLayout, settings: ModelSettings) -> np.ndarray:
    total_w = settings.total_width
    total_h = settings.total_height
    dx = total_w / layout.segs_x
    dy = total_h / layout.segs_y

    x_flat = -total_w / 2.0 + np.arange(layout.cols) * dx
    # Row 0 is the top edge of the sheet.
    y_flat = -total_h / 2.0 + (layout.segs_y - np.arange(layout.rows)) * dy
    xx, yy = np.meshgrid(x_flat, y_flat)

    n_grid = layout.rows * layout.cols
    vertices = np.empty((2 * n_grid, 3), dtype=np.float64)
    top = vertices[:n_grid]
    bottom = vertices[n_grid:]

    if settings.is_curved:
        theta = math.radians(settings.curve_angle)
        radius = total_w / theta
        angle = (xx / total_w * theta).reshape(-1)
        sin_a = np.sin(angle)
        cos_a = np.cos(angle)
        r_top = radius + z.reshape(-1)

        top[:, 0] = r_top * sin_a
        top[:, 1] = yy.reshape(-1)
        top[:, 2] = r_top * cos_a - radius
        bottom[:, 0] = radius * sin_a
        bottom[:, 1] = yy.reshape(-1)
        bottom[:, 2] = radius * cos_a - radius
    else:
        top[:, 0] = xx.reshape(-1)
        top[:, 1] = yy.reshape(-1)
        top[:, 2] = z.reshape(-1)
        bottom[:, 0] = xx.reshape(-1)
        bottom[:, 1] = yy.reshape(-1)
        bottom[:, 2] = 0.0
    return vertices


def _triangulate(layout: GridLayout) -> np.ndarray:
    rows, cols = layout.rows, layout.cols
    sx, sy = layout.segs_x, layout.segs_y
    g = rows * cols
    idx = np.arange(g, dtype=np.int64).reshape(rows, cols)

    a = idx[:-1, :-1].reshape(-1)
    b = idx[:-1, 1:].reshape(-1)
    d = idx[1:, :-1].reshape(-1)
    e = idx[1:, 1:].reshape(-1)
    n = a.size

    faces = np.empty((layout.n_faces, 3), dtype=np.int64)
    faces[0:n] = np.stack([d, e, b], axis=1)
    faces[n:2 * n] = np.stack([d, b, a], axis=1)
    faces[2 * n:3 * n] = np.stack([d, b, e], axis=1) + g
    faces[3 * n:4 * n] = np.stack([d, a, b], axis=1) + g
    k = 4 * n

    def _walls(p: np.ndarray, q: np.ndarray, start: int) -> int:
        # p -> q is a top-surface boundary edge in its top winding order.
        m = p.size
        faces[start:start + m] = np.stack([p + g, q + g, q], axis=1)
        faces[start + m:start + 2 * m] = np.stack([p + g, q, p], axis=1)
        return start + 2 * m

    k = _walls(idx[:-1, 0], idx[1:, 0], k)          # left   (a -> d)
    k = _walls(idx[1:, sx], idx[:-1, sx], k)        # right  (e -> b)
    k = _walls(idx[0, 1:], idx[0, :-1], k)          # top    (b -> a)
    k = _walls(idx[sy, :-1], idx[sy, 1:], k)        # bottom (d -> e)
    if k != layout.n_faces:
        raise RuntimeError(f"Triangulation produced {k} faces, expected {layout.n_faces}")
    return faces


class ReliefMeshBuilder:
    """
    Height field + ModelSettings -> closed MeshGeometry.

    Stateless; safe to share between threads.
    """

    def build(
        self,
        heightmap: Union[Heightmap, np.ndarray],
        settings: ModelSettings,
        *,
        width_px: Optional[int] = None,
        height_px: Optional[int] = None,
    ) -> MeshGeometry:
        """
        Build the relief solid.

        Args:
            heightmap: Heightmap, or flat/2D values in [0, 1]
            settings: physical model settings
            width_px, height_px: pixel size of the heightmap; required when a
                flat array is passed, otherwise taken from the heightmap

        Returns:
            MeshGeometry (top grid, bottom grid, faces)

        Raises:
            InvalidModelSettingsError: bad physical size or zero pixel size
            EmptyHeightmapError: value count != width_px * height_px
        """
        values, w_px, h_px = self._resolve_heightmap(heightmap, width_px, height_px)
        layout = compute_grid_layout(w_px, h_px, settings)

        with log_duration(_LOGGER, "Relief mesh build"):
            if settings.smoothing and settings.smoothing_iterations > 0:
                values = smooth_heightmap(values, settings.smoothing_iterations)
            z = _vertex_heights(values, layout, settings)
            vertices = _place_vertices(z, layout, settings)
            faces = _triangulate(layout)

        _LOGGER.info(
            "Built relief mesh: grid %dx%d segments (frame %d/%d), %d vertices, %d faces, curve %.1f deg",
            layout.segs_x, layout.segs_y, layout.frame_segs_x, layout.frame_segs_y,
            len(vertices), len(faces), settings.curve_angle,
        )
        return MeshGeometry(vertices=vertices, faces=faces, grid_shape=(layout.rows, layout.cols))

    @staticmethod
    def _resolve_heightmap(
        heightmap: Union[Heightmap, np.ndarray],
        width_px: Optional[int],
        height_px: Optional[int],
    ) -> tuple[np.ndarray, int, int]:
        if isinstance(heightmap, Heightmap):
            w_px = heightmap.width if width_px is None else int(width_px)
            h_px = heightmap.height if height_px is None else int(height_px)
            flat = heightmap.flat
        else:
            arr = np.asarray(heightmap, dtype=np.float64)
            if width_px is None or height_px is None:
                if arr.ndim != 2:
                    raise EmptyHeightmapError("width_px/height_px are required for a flat heightmap")
                h_px, w_px = int(arr.shape[0]), int(arr.shape[1])
            else:
                w_px, h_px = int(width_px), int(height_px)
            flat = arr.reshape(-1)

        if w_px <= 0 or h_px <= 0:
            raise InvalidModelSettingsError(f"Image has no pixels: {w_px} x {h_px}")
        if flat.size != w_px * h_px:
            raise EmptyHeightmapError(
                f"Heightmap has {flat.size} values, expected {w_px * h_px} for {w_px} x {h_px} pixels"
            )
        return np.asarray(flat, dtype=np.float64).reshape(h_px, w_px), w_px, h_px


def build_relief_mesh(heightmap: Heightmap, settings: ModelSettings) -> MeshGeometry:
    return ReliefMeshBuilder().build(heightmap, settings)
