#!/usr/bin/env python3
"""
Stamp Generator Demo Script

This script demonstrates the full stamp generation pipeline by:
1. Creating synthetic test images (no external images needed)
2. Running the filter pipeline and both mesh generators
3. Exporting to STL and OBJ
4. Printing statistics and a backend comparison

Run with: python examples/demo.py
"""

import sys
from pathlib import Path
import numpy as np
import time

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stamp_generator import StampGenerator
from stamp_generator.buffer import PixelBuffer
from stamp_generator.filters import apply_filters
from stamp_generator.settings import FilterSettings, MeshSettings


def create_test_image_badge(size: int = 128) -> np.ndarray:
    """
    Create a round badge: dark ring and dot on white paper.

    Returns:
        RGBA array of shape (size, size, 4)
    """
    rgba = np.full((size, size, 4), 255, dtype=np.uint8)

    y, x = np.mgrid[0:size, 0:size]
    center = (size - 1) / 2
    dist = np.sqrt((x - center) ** 2 + (y - center) ** 2)

    ring = (dist > size * 0.30) & (dist < size * 0.42)
    dot = dist < size * 0.12
    rgba[ring | dot, :3] = [30, 40, 120]  # Ink blue

    return rgba


def create_test_image_gradient(width: int = 160, height: int = 96) -> np.ndarray:
    """
    Create a horizontal gradient with a bright stripe.

    Returns:
        RGBA array of shape (height, width, 4)
    """
    rgba = np.zeros((height, width, 4), dtype=np.uint8)
    rgba[..., 3] = 255

    ramp = np.linspace(0, 255, width).astype(np.uint8)
    rgba[..., 0] = ramp
    rgba[..., 1] = ramp // 2
    rgba[..., 2] = 255 - ramp

    stripe = slice(height // 3, 2 * height // 3)
    rgba[stripe, :, :3] = 240

    return rgba


def create_test_image_letter(size: int = 96) -> np.ndarray:
    """
    Create a block letter "T" in black on white.

    Returns:
        RGBA array of shape (size, size, 4)
    """
    rgba = np.full((size, size, 4), 255, dtype=np.uint8)
    bar = size // 6

    rgba[bar:2 * bar, bar:size - bar, :3] = 0          # Cross bar
    rgba[2 * bar:size - bar, size // 2 - bar // 2:size // 2 + bar // 2 + 1, :3] = 0  # Stem

    return rgba


def run_demo():
    """Run the demonstration."""
    print("=" * 60)
    print("Stamp Generator - Demo")
    print("=" * 60)
    print()

    # Create output directory
    output_dir = Path(__file__).parent / "output"
    output_dir.mkdir(exist_ok=True)

    # Dark ink should stand up, so the images are inverted
    test_images = [
        ("badge", create_test_image_badge(128), FilterSettings(invert=True, gaussian_blur_radius=1.0)),
        ("gradient", create_test_image_gradient(), FilterSettings(uniform_blur_radius=2.0)),
        ("letter", create_test_image_letter(96),
         FilterSettings(invert=True, tone_curve=(0.25, 0.0, 0.75, 1.0))),
    ]

    total_start = time.time()

    for name, rgba, filters in test_images:
        print(f"\n--- Processing: {name} ---")
        print(f"Input size: {rgba.shape[1]}x{rgba.shape[0]} pixels")

        image_start = time.time()

        generator = StampGenerator(
            filter_settings=filters,
            mesh_settings=MeshSettings(resolution=64, extrusion_height=3, base_height=2, width=60)
        )
        generator.load_array(rgba)

        filter_start = time.time()
        generator.process()
        print(f"  Filtering: {(time.time() - filter_start)*1000:.1f}ms")

        for mode in ("heightfield", "contour"):
            mesh_start = time.time()
            generator.generate_mesh(mode=mode)
            mesh_time = time.time() - mesh_start

            stats = generator.mesh_stats()
            print(f"  {mode}:")
            print(f"    Mesh generation: {mesh_time*1000:.1f}ms")
            print(f"    Vertices: {stats['vertices']}")
            print(f"    Triangles: {stats['triangles']}")
            print(f"    Watertight: {stats['watertight']}")

            if generator.mesh.is_empty:
                print("    (empty silhouette, nothing to export)")
                continue

            base_path = output_dir / f"{name}_{mode}"
            for path in generator.export_all(base_path, ["stl", "obj"]):
                print(f"    Saved: {path}")

        print(f"  Total time: {(time.time() - image_start)*1000:.1f}ms")

    total_time = time.time() - total_start

    print("\n" + "=" * 60)
    print(f"Demo complete! Total time: {total_time:.2f}s")
    print(f"Output files in: {output_dir}")
    print("=" * 60)

    return 0


def benchmark_backends():
    """Compare the reference and Numba filter backends."""
    print("\n--- Filter Backend Benchmark ---\n")

    settings = FilterSettings(gaussian_blur_radius=3.0, uniform_blur_radius=4.0)

    for size in (128, 256, 512):
        rng = np.random.default_rng(size)
        source = PixelBuffer.from_array(rng.integers(0, 256, (size, size, 4), dtype=np.uint8))

        # First call compiles the kernels
        apply_filters(source, settings, backend="numba")

        timings = {}
        results = {}
        for backend in ("reference", "numba"):
            start = time.time()
            results[backend] = apply_filters(source, settings, backend=backend)
            timings[backend] = time.time() - start

        diff = np.abs(
            results["reference"].data.astype(int) - results["numba"].data.astype(int)
        ).max()

        print(f"Image size: {size}x{size}")
        print(f"  Reference: {timings['reference']*1000:.1f}ms")
        print(f"  Numba:     {timings['numba']*1000:.1f}ms")
        print(f"  Max difference: {diff}")
        print()


if __name__ == "__main__":
    run_demo()

    # Uncomment to run benchmark
    # benchmark_backends()
