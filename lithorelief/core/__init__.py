"""
Core processing modules for LithoRelief
"""

from .errors import (
    LithoReliefError,
    DecodeError,
    InvalidDimensionsError,
    InvalidModelSettingsError,
    EmptyHeightmapError,
    EmptyMeshError,
)
from .settings import FilterSettings, ModelSettings
from .raster_image import RasterImage, load_image
from .image_filters import ImageProcessor
from .heightmap import Heightmap, extract_heightmap
from .mesh_geometry import MeshGeometry
from .relief_builder import ReliefMeshBuilder, build_relief_mesh
from .stl_writer import serialize_binary_stl, write_binary_stl, read_binary_stl
from .pipeline import LithophaneResult, generate_lithophane, export_stl

__all__ = [
    # Errors
    'LithoReliefError',
    'DecodeError',
    'InvalidDimensionsError',
    'InvalidModelSettingsError',
    'EmptyHeightmapError',
    'EmptyMeshError',
    # Settings
    'FilterSettings',
    'ModelSettings',
    # Raster input
    'RasterImage',
    'load_image',
    # Filter stage
    'ImageProcessor',
    # Heightmap
    'Heightmap',
    'extract_heightmap',
    # Mesh
    'MeshGeometry',
    'ReliefMeshBuilder',
    'build_relief_mesh',
    # STL
    'serialize_binary_stl',
    'write_binary_stl',
    'read_binary_stl',
    # Pipeline
    'LithophaneResult',
    'generate_lithophane',
    'export_stl',
]
