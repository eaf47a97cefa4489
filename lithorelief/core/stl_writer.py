"""
Binary STL serialization.

Layout (little-endian throughout):

    80 bytes   header (ignored by readers)
    uint32     triangle count
    per triangle, 50 bytes:
        float32[3]    facet normal
        float32[3][3] vertices in winding order
        uint16        attribute byte count (always 0)

Shared vertices are flattened: every triangle carries its own three corners.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import struct
from typing import Optional, Union

import numpy as np

from .errors import EmptyMeshError
from .logging_utils import log_duration
from .mesh_geometry import MeshGeometry, triangle_normals
from .runtime_defaults import DEFAULTS

_LOGGER = logging.getLogger(__name__)

HEADER_SIZE = 80
COUNT_SIZE = 4
RECORD_SIZE = 50

STL_RECORD_DTYPE = np.dtype([
    ("normal", "<f4", (3,)),
    ("vertices", "<f4", (3, 3)),
    ("attribute", "<u2"),
])
assert STL_RECORD_DTYPE.itemsize == RECORD_SIZE


def make_header(text: Optional[Union[str, bytes]] = None) -> bytes:
    """80-byte header, NUL padded. Never starts with 'solid' (ASCII STL marker)."""
    if text is None:
        text = DEFAULTS.stl_header
    raw = text.encode("ascii", errors="replace") if isinstance(text, str) else bytes(text)
    if raw[:5].lower() == b"solid":
        raw = b"binary " + raw
    return raw[:HEADER_SIZE].ljust(HEADER_SIZE, b"\0")


def serialize_binary_stl(mesh: MeshGeometry, header: Optional[Union[str, bytes]] = None) -> bytes:
    """
    Flatten a mesh into a binary STL buffer.

    Args:
        mesh: indexed triangle mesh
        header: optional header text (default: runtime DEFAULTS.stl_header)

    Returns:
        bytes of length 84 + 50 * n_faces

    Raises:
        EmptyMeshError: mesh has no triangles
    """
    n_faces = int(mesh.n_faces)
    if n_faces == 0:
        raise EmptyMeshError("Mesh has no triangles to export")

    with log_duration(_LOGGER, "STL serialization"):
        # Normals are computed from the float32 positions that actually get written.
        tri32 = mesh.triangles().astype(np.float32)

        records = np.zeros(n_faces, dtype=STL_RECORD_DTYPE)
        records["normal"] = triangle_normals(tri32).astype(np.float32)
        records["vertices"] = tri32
        body = records.tobytes()

    _LOGGER.info("Serialized %d triangles (%d bytes)", n_faces, HEADER_SIZE + COUNT_SIZE + len(body))
    return make_header(header) + struct.pack("<I", n_faces) + body


def write_binary_stl(
    mesh: MeshGeometry,
    filepath: Union[str, Path],
    header: Optional[Union[str, bytes]] = None,
) -> Path:
    """Serialize and write to disk. Returns the written path."""
    data = serialize_binary_stl(mesh, header=header)
    out = Path(filepath)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(data)
    _LOGGER.info("Wrote %s", out)
    return out


@dataclass
class BinaryStlContents:
    """Parsed binary STL buffer."""
    header: bytes
    normals: np.ndarray
    triangles: np.ndarray
    attributes: np.ndarray

    @property
    def n_triangles(self) -> int:
        return int(len(self.triangles))


def read_triangle_count(data: bytes) -> int:
    if len(data) < HEADER_SIZE + COUNT_SIZE:
        raise ValueError(f"Buffer too short for a binary STL header: {len(data)} bytes")
    return int(struct.unpack_from("<I", data, HEADER_SIZE)[0])


def read_binary_stl(data: bytes) -> BinaryStlContents:
    """
    Parse a binary STL buffer.

    Raises:
        ValueError: truncated buffer or count/length mismatch
    """
    count = read_triangle_count(data)
    expected = HEADER_SIZE + COUNT_SIZE + RECORD_SIZE * count
    if len(data) != expected:
        raise ValueError(f"Binary STL length {len(data)} does not match {count} triangles ({expected} bytes)")

    records = np.frombuffer(data, dtype=STL_RECORD_DTYPE, count=count, offset=HEADER_SIZE + COUNT_SIZE)
    return BinaryStlContents(
        header=bytes(data[:HEADER_SIZE]),
        normals=np.array(records["normal"], dtype=np.float32),
        triangles=np.array(records["vertices"], dtype=np.float32),
        attributes=np.array(records["attribute"], dtype=np.uint16),
    )
