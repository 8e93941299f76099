"""
Command-Line Interface for Stamp Generator

Usage:
    stampgen logo.png -o logo.stl
    stampgen logo.png --mode contour --invert --gaussian 2 -o logo
    stampgen logo.png --settings stamp.json --format stl obj -o logo

"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional
import time

from .errors import StampError
from .exporters import default_stl_filename
from .filters import BACKENDS
from .generator import MESH_MODES, StampGenerator
from .settings import FilterSettings, MeshSettings

# CLI flag -> FilterSettings / MeshSettings field
FILTER_FLAGS = {
    "invert": "invert",
    "gaussian": "gaussian_blur_radius",
    "uniform": "uniform_blur_radius",
    "curve": "tone_curve",
}
MESH_FLAGS = {
    "resolution": "resolution",
    "extrusion": "extrusion_height",
    "base": "base_height",
    "width": "width",
    "height": "height",
    "threshold": "outline_threshold",
    "offset": "outline_offset_percent",
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="stampgen",
        description="Stamp Generator - Convert images to 3D-printable relief stamps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  stampgen logo.png -o logo.stl
      Full-rectangle relief stamp

  stampgen logo.png --mode contour --threshold 100 --offset 3 -o logo
      Stamp cut along the logo outline with a 3% margin

  stampgen photo.jpg --gaussian 2 --curve 0.25 0.1 0.75 0.9 -o photo
      Smooth and boost contrast before meshing

Settings file (JSON):
  {"filters": {"invert": true, "gaussian_blur_radius": 2},
   "mesh": {"resolution": 200, "extrusion_height": 5}}
  Command-line flags override values from the file.
        """
    )

    # Input
    parser.add_argument(
        "input",
        help="Input image file"
    )

    # Output
    parser.add_argument(
        "-o", "--output",
        help="Output file path (extension replaced per --format; "
             "default: stamp_<timestamp>)"
    )

    parser.add_argument(
        "-m", "--mode",
        choices=MESH_MODES,
        default="heightfield",
        help="Mesh mode (default: heightfield)"
    )

    parser.add_argument(
        "-f", "--format",
        nargs="+",
        choices=["stl", "obj"],
        default=["stl"],
        help="Output format(s) (default: stl)"
    )

    parser.add_argument(
        "--settings",
        help="JSON file with 'filters' and/or 'mesh' settings"
    )

    # Filter settings
    filters = parser.add_argument_group("filters")
    filters.add_argument(
        "--invert",
        action="store_true",
        default=None,
        help="Invert intensities (dark pixels become high)"
    )
    filters.add_argument(
        "--gaussian",
        type=float,
        help="Gaussian blur radius in pixels (default: 0)"
    )
    filters.add_argument(
        "--uniform",
        type=float,
        help="Uniform disc blur radius in pixels (default: 0)"
    )
    filters.add_argument(
        "--curve",
        type=float,
        nargs=4,
        metavar=("X1", "Y1", "X2", "Y2"),
        help="Tone curve control points (default: 0 0 1 1)"
    )

    # Mesh settings
    mesh = parser.add_argument_group("mesh")
    mesh.add_argument(
        "--resolution",
        type=int,
        help="Segments along the shorter image side, 10-1024 (default: 100)"
    )
    mesh.add_argument(
        "--extrusion",
        type=float,
        help="Relief height for white pixels in mm (default: 10)"
    )
    mesh.add_argument(
        "--base",
        type=float,
        help="Base thickness in mm (default: 2)"
    )
    mesh.add_argument(
        "--width",
        type=float,
        help="Stamp width in mm (default: 100, or height scaled by the image aspect ratio)"
    )
    mesh.add_argument(
        "--height",
        type=float,
        help="Stamp height in mm (default: width scaled by the image aspect ratio)"
    )
    mesh.add_argument(
        "--threshold",
        type=int,
        help="Contour silhouette threshold, 0-255 (default: 127)"
    )
    mesh.add_argument(
        "--offset",
        type=float,
        help="Contour margin in percent of the longer image side (default: 0)"
    )

    # Misc
    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        default="reference",
        help="Filter backend (default: reference)"
    )

    parser.add_argument(
        "--validate",
        action="store_true",
        help="Reject meshes with degenerate triangles before export"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output with timings"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print mesh statistics"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    return parser


def load_settings_file(path: Optional[str]) -> dict:
    """Read a JSON settings file ({} when no path is given)."""
    if not path:
        return {}
    with open(path, "r") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Settings file must contain a JSON object: {path}")
    return data


def build_settings(args, file_settings: dict):
    """
    Merge the settings file and command-line flags.

    Returns:
        (FilterSettings, MeshSettings, size_given) where size_given is the
        set of physical size fields ("width", "height") set explicitly
    """
    filter_values = dict(file_settings.get("filters", {}))
    mesh_values = dict(file_settings.get("mesh", {}))

    for flag, field in FILTER_FLAGS.items():
        value = getattr(args, flag)
        if value is not None:
            filter_values[field] = value
    for flag, field in MESH_FLAGS.items():
        value = getattr(args, flag)
        if value is not None:
            mesh_values[field] = value

    return (
        FilterSettings.from_dict(filter_values),
        MeshSettings.from_dict(mesh_values),
        {"width", "height"} & set(mesh_values),
    )


def print_stats(stats: dict):
    """Print mesh statistics."""
    size = stats["size"]
    print("\nMesh Statistics:")
    print(f"  Mode: {stats['mode']}")
    print(f"  Resolution: {stats['resolution']}")
    print(f"  Vertices: {stats['vertices']}")
    print(f"  Triangles: {stats['triangles']}")
    print(f"  Size: {size[0]:.2f} x {size[1]:.2f} x {size[2]:.2f} mm")
    print(f"  Watertight: {'yes' if stats['watertight'] else 'no'}")
    print(f"  Volume: {stats['volume']:.2f} mm^3")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s: %(message)s"
        )

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    if args.output:
        output_base = Path(args.output)
    else:
        output_base = Path(default_stl_filename()).with_suffix("")

    start_time = time.time()

    try:
        filter_settings, mesh_settings, size_given = build_settings(
            args, load_settings_file(args.settings)
        )

        generator = StampGenerator(
            filter_settings=filter_settings,
            mesh_settings=mesh_settings,
            backend=args.backend,
            fit_to_image=size_given != {"width", "height"}
        )

        if args.verbose:
            print(f"Loading: {input_path}")
        generator.load_image(input_path)
        if size_given == {"height"}:
            generator.set_mesh_settings(height=mesh_settings.height)

        if args.verbose:
            print("Filtering...")
        generator.process()

        if args.verbose:
            print(f"Generating {args.mode} mesh...")
        generator.generate_mesh(mode=args.mode)

        if generator.mesh.is_empty:
            print(
                "Error: Mesh is empty (no pixels above the contour threshold)",
                file=sys.stderr
            )
            return 1

        if args.validate:
            generator.validate()

        if args.stats or args.verbose:
            print_stats(generator.mesh_stats())

        for output_path in generator.export_all(output_base, args.format):
            if args.verbose:
                print(f"Exported: {output_path}")

        elapsed = time.time() - start_time
        if args.verbose:
            print(f"\nCompleted in {elapsed:.2f}s")

        return 0

    except (StampError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
