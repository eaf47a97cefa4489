import io
import struct
import tempfile
import unittest
from pathlib import Path

import numpy as np
import trimesh

from lithorelief.core.errors import EmptyMeshError
from lithorelief.core.heightmap import Heightmap
from lithorelief.core.mesh_geometry import MeshGeometry
from lithorelief.core.relief_builder import build_relief_mesh
from lithorelief.core.settings import ModelSettings
from lithorelief.core.stl_writer import (
    HEADER_SIZE,
    make_header,
    read_binary_stl,
    read_triangle_count,
    serialize_binary_stl,
    write_binary_stl,
)


def _slab(width_px: int = 4, height_px: int = 4) -> MeshGeometry:
    hm = Heightmap(values=np.ones((height_px, width_px)))
    return build_relief_mesh(hm, ModelSettings(width=100, height=100, depth=5, base_height=2))


def _single_triangle(corners) -> MeshGeometry:
    return MeshGeometry(vertices=np.asarray(corners, dtype=np.float64), faces=np.asarray([[0, 1, 2]]))


class TestSerializeBinaryStl(unittest.TestCase):
    def test_buffer_length_and_count(self):
        mesh = _slab()
        data = serialize_binary_stl(mesh)
        self.assertEqual(len(data), 84 + 96 * 50)
        self.assertEqual(struct.unpack_from("<I", data, 80)[0], 96)
        self.assertEqual(read_triangle_count(data), mesh.n_faces)

    def test_corners_are_written_in_winding_order(self):
        mesh = _slab(3, 2)
        parsed = read_binary_stl(serialize_binary_stl(mesh))
        self.assertEqual(parsed.n_triangles, mesh.n_faces)
        np.testing.assert_allclose(parsed.triangles, mesh.triangles().astype(np.float32))
        self.assertTrue(np.all(parsed.attributes == 0))

    def test_ccw_triangle_normal_points_up(self):
        mesh = _single_triangle([[0, 0, 0], [1, 0, 0], [0, 1, 0]])
        parsed = read_binary_stl(serialize_binary_stl(mesh))
        np.testing.assert_allclose(parsed.normals[0], [0.0, 0.0, 1.0])

    def test_degenerate_triangle_gets_zero_normal(self):
        mesh = _single_triangle([[0, 0, 0], [1, 1, 1], [2, 2, 2]])
        parsed = read_binary_stl(serialize_binary_stl(mesh))
        self.assertTrue(np.all(np.isfinite(parsed.normals)))
        np.testing.assert_array_equal(parsed.normals[0], [0.0, 0.0, 0.0])

    def test_normals_are_unit_length(self):
        parsed = read_binary_stl(serialize_binary_stl(_slab(5, 3)))
        lengths = np.linalg.norm(parsed.normals, axis=1)
        np.testing.assert_allclose(lengths, 1.0, atol=1e-6)

    def test_empty_mesh_is_rejected(self):
        mesh = MeshGeometry(vertices=np.zeros((3, 3)), faces=np.zeros((0, 3)))
        with self.assertRaises(EmptyMeshError):
            serialize_binary_stl(mesh)

    def test_output_is_deterministic(self):
        mesh = _slab(3, 3)
        self.assertEqual(serialize_binary_stl(mesh), serialize_binary_stl(mesh))

    def test_trimesh_reads_the_buffer(self):
        data = serialize_binary_stl(_slab())
        tm = trimesh.load_mesh(io.BytesIO(data), file_type="stl")
        self.assertEqual(len(tm.faces), 96)
        self.assertTrue(tm.is_watertight)
        self.assertAlmostEqual(float(tm.volume), 70000.0, places=1)


class TestHeader(unittest.TestCase):
    def test_header_is_80_bytes_and_padded(self):
        header = make_header("hello")
        self.assertEqual(len(header), HEADER_SIZE)
        self.assertTrue(header.startswith(b"hello"))
        self.assertEqual(header[5:], b"\0" * 75)

    def test_default_header_is_not_ascii_stl(self):
        data = serialize_binary_stl(_slab(1, 1))
        self.assertFalse(data[:5].lower() == b"solid")

    def test_solid_prefix_is_escaped(self):
        self.assertTrue(make_header("solid relief").startswith(b"binary solid relief"))

    def test_long_header_is_truncated(self):
        self.assertEqual(make_header("x" * 200), b"x" * 80)


class TestReadBinaryStl(unittest.TestCase):
    def test_length_mismatch(self):
        data = serialize_binary_stl(_slab(1, 1))
        with self.assertRaises(ValueError):
            read_binary_stl(data[:-1])
        with self.assertRaises(ValueError):
            read_binary_stl(data[:40])


class TestWriteBinaryStl(unittest.TestCase):
    def test_write_creates_parent_dirs(self):
        mesh = _slab(2, 2)
        with tempfile.TemporaryDirectory() as td:
            out = write_binary_stl(mesh, Path(td) / "out" / "relief.stl", header="test")
            self.assertTrue(out.exists())
            data = out.read_bytes()
        self.assertEqual(len(data), 84 + 50 * mesh.n_faces)
        self.assertTrue(data.startswith(b"test"))


if __name__ == "__main__":
    unittest.main()
