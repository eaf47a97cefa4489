"""
Output path helpers for exports.

Centralizes naming conventions so the CLI and library callers agree on where
the mesh and preview images land next to the source photo.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]

STL_SUFFIX = ".stl"
HEIGHTMAP_SUFFIX = ".heightmap.png"
FILTERED_SUFFIX = ".filtered.png"


def _as_path(value: PathLike) -> Path:
    return value if isinstance(value, Path) else Path(value)


def _resolve_output_path(input_path: PathLike, output_path: Optional[PathLike], suffix: str) -> Path:
    if output_path:
        return _as_path(output_path)
    return _as_path(input_path).with_suffix(suffix)


def stl_output_path(input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
    return _resolve_output_path(input_path, output_path, STL_SUFFIX)


def heightmap_output_path(input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
    return _resolve_output_path(input_path, output_path, HEIGHTMAP_SUFFIX)


def filtered_output_path(input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
    return _resolve_output_path(input_path, output_path, FILTERED_SUFFIX)
