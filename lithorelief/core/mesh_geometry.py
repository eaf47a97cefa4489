"""
Mesh Geometry Module
메쉬 데이터 구조 정의

Indexed triangle mesh produced by the relief builder and consumed by the STL
writer (and by preview collaborators through `to_trimesh`).
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

try:
    import trimesh
except ImportError:
    raise ImportError("trimesh is required. Install with: pip install trimesh")


def triangle_normals(triangles: np.ndarray) -> np.ndarray:
    """
    normalize((C - B) x (A - B)) for (M, 3, 3) corner arrays.

    Zero-area triangles get (0, 0, 0) instead of NaN.
    """
    tri = np.asarray(triangles, dtype=np.float64)
    a = tri[:, 0]
    b = tri[:, 1]
    c = tri[:, 2]
    cross = np.cross(c - b, a - b)
    length = np.linalg.norm(cross, axis=1, keepdims=True)
    normals = np.zeros_like(cross)
    np.divide(cross, length, out=normals, where=length > 0)
    return normals


@dataclass(eq=False)
class MeshGeometry:
    """
    3D 메쉬 데이터 컨테이너

    Attributes:
        vertices: (N, 3) vertex positions
        faces: (M, 3) triangle vertex indices, counter-clockwise seen from outside
        grid_shape: (rows, cols) of the top/bottom vertex grids, if built from a grid
        unit: coordinate unit
    """
    vertices: np.ndarray
    faces: np.ndarray
    grid_shape: Optional[tuple[int, int]] = None
    unit: str = 'mm'

    _bounds: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    @property
    def n_faces(self) -> int:
        return len(self.faces)

    @property
    def bounds(self) -> np.ndarray:
        """[[min_x, min_y, min_z], [max_x, max_y, max_z]]"""
        if self._bounds is None:
            self._bounds = np.array([
                self.vertices.min(axis=0),
                self.vertices.max(axis=0)
            ])
        return self._bounds

    @property
    def extents(self) -> np.ndarray:
        return self.bounds[1] - self.bounds[0]

    @property
    def grid_vertex_count(self) -> int:
        """Vertices per surface grid (top and bottom have the same count)."""
        if self.grid_shape is None:
            return 0
        return int(self.grid_shape[0]) * int(self.grid_shape[1])

    def top_vertices(self) -> np.ndarray:
        g = self.grid_vertex_count
        return self.vertices[:g]

    def bottom_vertices(self) -> np.ndarray:
        g = self.grid_vertex_count
        return self.vertices[g:2 * g]

    def triangles(self) -> np.ndarray:
        """(M, 3, 3) corner positions in winding order."""
        return self.vertices[self.faces]

    def face_normals(self) -> np.ndarray:
        return triangle_normals(self.triangles())

    def edge_use_counts(self) -> tuple[np.ndarray, np.ndarray]:
        """
        Undirected edges and how many faces use each.

        Returns:
            (edges (K, 2) sorted per row, counts (K,))
        """
        f = self.faces
        edges = np.concatenate([f[:, [0, 1]], f[:, [1, 2]], f[:, [2, 0]]], axis=0)
        edges = np.sort(edges, axis=1)
        uniq, counts = np.unique(edges, axis=0, return_counts=True)
        return uniq, counts

    def is_watertight(self) -> bool:
        """
        Every undirected edge is shared by exactly two faces, and every
        directed edge appears once (consistent orientation).
        """
        if self.n_faces == 0:
            return False
        _, counts = self.edge_use_counts()
        if not bool(np.all(counts == 2)):
            return False
        f = self.faces
        directed = np.concatenate([f[:, [0, 1]], f[:, [1, 2]], f[:, [2, 0]]], axis=0)
        _, dcounts = np.unique(directed, axis=0, return_counts=True)
        return bool(np.all(dcounts == 1))

    def to_trimesh(self) -> 'trimesh.Trimesh':
        """trimesh 객체로 변환"""
        return trimesh.Trimesh(
            vertices=self.vertices,
            faces=self.faces,
            process=False
        )
