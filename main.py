"""
LithoRelief - photo to lithophane STL

Main entry point
"""

import argparse
import logging
import sys
from pathlib import Path

# Ensure repository root is on sys.path so "lithorelief" is importable.
ROOT_DIR = Path(__file__).resolve().parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from lithorelief.core.errors import LithoReliefError
from lithorelief.core.logging_utils import format_exception_message, setup_logging
from lithorelief.core.output_paths import (
    filtered_output_path,
    heightmap_output_path,
    stl_output_path,
)
from lithorelief.core.runtime_defaults import DEFAULTS
from lithorelief.core.settings import FilterSettings, ModelSettings
from lithorelief.core.stl_writer import write_binary_stl

_LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    defaults_f = FilterSettings()
    defaults_m = ModelSettings(sampling_resolution=DEFAULTS.sampling_resolution)

    parser = argparse.ArgumentParser(
        description="Convert a photo into a lithophane relief and export it as binary STL."
    )
    parser.add_argument("image", help="Input image (PNG, JPG, BMP, ...).")
    parser.add_argument("-o", "--output", default=None, help="Output STL path (default: <image>.stl).")
    parser.add_argument("--info", action="store_true", help="Only print image and grid info.")
    parser.add_argument("--heightmap-png", nargs="?", const="", default=None,
                        help="Also save the heightmap preview (default: <image>.heightmap.png).")
    parser.add_argument("--filtered-png", nargs="?", const="", default=None,
                        help="Also save the filtered image (default: <image>.filtered.png).")

    f = parser.add_argument_group("image filters")
    f.add_argument("--no-grayscale", dest="grayscale", action="store_false", default=defaults_f.grayscale)
    f.add_argument("--invert", action="store_true", default=defaults_f.invert)
    f.add_argument("--brightness", type=int, default=defaults_f.brightness, help="-100..100")
    f.add_argument("--contrast", type=int, default=defaults_f.contrast, help="-100..100")
    f.add_argument("--gamma", type=float, default=defaults_f.gamma)
    f.add_argument("--blur", type=float, default=defaults_f.blur, help="Gaussian blur radius in px (0..20).")
    f.add_argument("--sharpen", type=int, default=defaults_f.sharpen, help="0..10")
    f.add_argument("--noise-reduction", type=int, default=defaults_f.noise_reduction, help="0..10")

    m = parser.add_argument_group("model")
    m.add_argument("--width", type=float, default=defaults_m.width, help="Image area width in mm.")
    m.add_argument("--height", type=float, default=None,
                   help="Image area height in mm (default: follow the image aspect ratio).")
    m.add_argument("--depth", type=float, default=defaults_m.depth, help="Relief depth in mm.")
    m.add_argument("--base-height", type=float, default=defaults_m.base_height)
    m.add_argument("--frame-width", type=float, default=defaults_m.frame_width)
    m.add_argument("--frame-depth", type=float, default=defaults_m.frame_depth)
    m.add_argument("--curve-angle", type=float, default=defaults_m.curve_angle, help="0 (flat) .. 360 (cylinder).")
    m.add_argument("--smoothing", type=int, default=0, metavar="ITERATIONS",
                   help="Box-blur passes over the heightmap (0 = off).")
    m.add_argument("--resolution", type=int, default=defaults_m.sampling_resolution,
                   help="Max pixel dimension used for the heightmap.")
    return parser


def settings_from_args(args: argparse.Namespace) -> tuple[FilterSettings, ModelSettings]:
    filter_settings = FilterSettings(
        grayscale=args.grayscale,
        invert=args.invert,
        brightness=args.brightness,
        contrast=args.contrast,
        gamma=args.gamma,
        blur=args.blur,
        sharpen=args.sharpen,
        noise_reduction=args.noise_reduction,
    )
    model_settings = ModelSettings(
        width=args.width,
        height=args.height if args.height is not None else args.width,
        depth=args.depth,
        base_height=args.base_height,
        frame_width=args.frame_width,
        frame_depth=args.frame_depth,
        curve_angle=args.curve_angle,
        smoothing=args.smoothing > 0,
        smoothing_iterations=max(0, args.smoothing),
        sampling_resolution=args.resolution,
    )
    return filter_settings, model_settings


def show_image_info(filepath: str, resolution: int) -> None:
    from lithorelief.core.image_filters import fit_within
    from lithorelief.core.raster_image import load_image

    image = load_image(filepath)
    w, h = fit_within(image.width, image.height, resolution)
    print(f"\nImage Info: {filepath}")
    print("-" * 40)
    print(f"  Size: {image.width} x {image.height} px")
    print(f"  Sampled: {w} x {h} px (resolution {resolution})")
    print(f"  Faces (no frame): {4 * w * h + 4 * (w + h):,}")


def run(args: argparse.Namespace) -> int:
    from lithorelief.core.pipeline import generate_lithophane

    filter_settings, model_settings = settings_from_args(args)

    print(f"\n{'=' * 60}")
    print(f"Processing: {args.image}")
    print(f"{'=' * 60}")

    print("\n[1/3] Filtering image and building relief...")
    result = generate_lithophane(
        args.image,
        filter_settings,
        model_settings,
        fit_aspect=args.height is None,
    )
    hm = result.heightmap
    ms = result.model_settings
    print(f"      Heightmap: {hm.width} x {hm.height} px")
    print(f"      Model: {ms.total_width:.1f} x {ms.total_height:.1f} mm, curve {ms.curve_angle:.0f} deg")
    print(f"      Vertices: {result.mesh.n_vertices:,}  Faces: {result.mesh.n_faces:,}")

    print("\n[2/3] Saving previews...")
    if args.heightmap_png is not None:
        path = heightmap_output_path(args.image, args.heightmap_png or None)
        hm.save_preview(path)
        print(f"      Saved: {path}")
    if args.filtered_png is not None:
        path = filtered_output_path(args.image, args.filtered_png or None)
        path.parent.mkdir(parents=True, exist_ok=True)
        result.filtered.to_pil_image().save(str(path))
        print(f"      Saved: {path}")

    print("\n[3/3] Writing STL...")
    out_path = write_binary_stl(result.mesh, stl_output_path(args.image, args.output))
    print(f"      Saved: {out_path}")
    print(f"\n{'=' * 60}")
    print("Done!")
    print(f"{'=' * 60}")
    return 0


def run_cli(argv=None) -> int:
    """명령줄 인터페이스 실행"""
    log_path = setup_logging()
    args = build_parser().parse_args(argv)

    try:
        if args.info:
            show_image_info(args.image, args.resolution)
            return 0
        return run(args)
    except (LithoReliefError, OSError) as e:
        _LOGGER.error("Export failed: %s", e, exc_info=True)
        print(format_exception_message("Export failed.", str(e), log_path=log_path), file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(run_cli())
