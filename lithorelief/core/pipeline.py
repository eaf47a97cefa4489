"""
End-to-end lithophane pipeline.

image -> filtered pixels -> heightmap -> mesh -> binary STL

Every stage runs to completion and hands a freshly allocated result to the
next one; nothing is cached between calls, so a settings change is simply a
new call.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Optional, Union

from .heightmap import Heightmap, extract_heightmap
from .image_filters import ImageProcessor
from .logging_utils import log_duration
from .mesh_geometry import MeshGeometry
from .raster_image import ImageSource, RasterImage, load_image
from .relief_builder import ReliefMeshBuilder
from .settings import FilterSettings, ModelSettings
from .stl_writer import serialize_binary_stl

_LOGGER = logging.getLogger(__name__)


@dataclass(eq=False)
class LithophaneResult:
    """
    Outputs of one pipeline run.

    Attributes:
        filtered: resized + filtered image (for a processed-image preview)
        heightmap: normalized height field (for a viewport collaborator)
        mesh: closed relief solid
        model_settings: settings the mesh was built with
    """
    filtered: RasterImage
    heightmap: Heightmap
    mesh: MeshGeometry
    model_settings: ModelSettings

    def to_stl_bytes(self, header: Optional[str] = None) -> bytes:
        return serialize_binary_stl(self.mesh, header=header)


def process_heightmap(
    image: RasterImage,
    filter_settings: FilterSettings,
    max_resolution: int,
) -> tuple[RasterImage, Heightmap]:
    """Filter stage + heightmap extraction (the preview half of the pipeline)."""
    filtered = ImageProcessor().process_image(image, filter_settings, max_resolution)
    with log_duration(_LOGGER, "Heightmap extraction"):
        heightmap = extract_heightmap(filtered)
    return filtered, heightmap


def generate_lithophane(
    image: ImageSource,
    filter_settings: Optional[FilterSettings] = None,
    model_settings: Optional[ModelSettings] = None,
    *,
    fit_aspect: bool = False,
) -> LithophaneResult:
    """
    Run the full pipeline.

    Args:
        image: decoded RasterImage or anything `load_image` accepts
        filter_settings: raster filter settings (default: FilterSettings())
        model_settings: physical settings (default: ModelSettings())
        fit_aspect: derive the model height from the filtered image's aspect ratio

    Returns:
        LithophaneResult
    """
    filter_settings = filter_settings or FilterSettings()
    model_settings = model_settings or ModelSettings()

    source = load_image(image)
    _LOGGER.info("Processing %dx%d image", source.width, source.height)

    filtered, heightmap = process_heightmap(source, filter_settings, model_settings.sampling_resolution)
    if fit_aspect:
        model_settings = model_settings.fit_aspect(heightmap.width, heightmap.height)

    mesh = ReliefMeshBuilder().build(heightmap, model_settings)
    return LithophaneResult(
        filtered=filtered,
        heightmap=heightmap,
        mesh=mesh,
        model_settings=model_settings,
    )


def export_stl(
    image: ImageSource,
    output_path: Union[str, Path],
    filter_settings: Optional[FilterSettings] = None,
    model_settings: Optional[ModelSettings] = None,
    *,
    fit_aspect: bool = False,
    header: Optional[str] = None,
) -> Path:
    """
    Run the pipeline and write the binary STL.

    The file is only written once the whole buffer has been produced, so a
    validation failure never leaves a partial file behind.
    """
    result = generate_lithophane(image, filter_settings, model_settings, fit_aspect=fit_aspect)
    data = result.to_stl_bytes(header=header)
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(data)
    _LOGGER.info("Exported %s (%d triangles)", out, result.mesh.n_faces)
    return out
