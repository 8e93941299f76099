"""
Unit tests for the StampGenerator workflow, background worker and CLI.
"""

import json
import sys
import tempfile
from concurrent.futures import Future
from io import BytesIO
from pathlib import Path
from unittest import mock
import numpy as np
import unittest

from PIL import Image

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stamp_generator import StampGenerator, BackgroundGenerator
from stamp_generator.buffer import PixelBuffer
from stamp_generator.cli import main
from stamp_generator.errors import DecodeError, DegenerateGeometry
from stamp_generator.exporters import parse_ascii_stl
from stamp_generator.settings import FilterSettings, MeshSettings
from stamp_generator.worker import GenerationResult, run_generation


def logo_array(width=40, height=20) -> np.ndarray:
    """Dark square logo on a white background, as RGBA."""
    rgba = np.full((height, width, 4), 255, dtype=np.uint8)
    rgba[5:15, 10:30, :3] = 20
    return rgba


def write_png(path: Path, rgba: np.ndarray) -> Path:
    Image.fromarray(rgba, "RGBA").save(path, format="PNG")
    return path


class TestStampGenerator(unittest.TestCase):
    """Tests for the high-level workflow."""

    def test_basic_pipeline(self):
        """Test basic stamp generation."""
        generator = StampGenerator()
        generator.load_array(logo_array())
        generator.generate_mesh()

        assert generator.vertex_count > 0
        assert generator.triangle_count > 0
        assert generator.mesh_stats()["watertight"]

    def test_chaining(self):
        """Test method chaining."""
        generator = StampGenerator()
        result = (
            generator.load_array(logo_array())
            .set_filter_settings(invert=True)
            .set_mesh_settings(resolution=20)
            .process()
            .generate_mesh(mode="contour")
        )
        assert result is generator
        assert generator.mesh_stats()["mode"] == "contour"
        assert generator.silhouette is not None

    def test_height_fitted_to_image(self):
        """Test height fitted on load."""
        generator = StampGenerator(mesh_settings=MeshSettings(width=80))
        generator.load_array(logo_array(40, 20))
        assert generator.mesh_settings.height == 40

        fixed = StampGenerator(mesh_settings=MeshSettings(height=70), fit_to_image=False)
        fixed.load_array(logo_array(40, 20))
        assert fixed.mesh_settings.height == 70

    def test_size_stays_locked_to_aspect(self):
        """Test width and height follow each other after load."""
        generator = StampGenerator().load_array(logo_array(40, 20))

        generator.set_mesh_settings(width=50)
        assert generator.mesh_settings.width == 50
        assert generator.mesh_settings.height == 25

        generator.set_mesh_settings(height=30)
        assert generator.mesh_settings.height == 30
        assert generator.mesh_settings.width == 60

        # Both given: taken as is
        generator.set_mesh_settings(width=10, height=10)
        assert generator.mesh_settings.width == 10
        assert generator.mesh_settings.height == 10

        # Other fields leave the size alone
        generator.set_mesh_settings(resolution=20)
        assert generator.mesh_settings.width == 10

    def test_size_unlocked_without_fit(self):
        """Test fit_to_image=False leaves the size as set."""
        generator = StampGenerator(fit_to_image=False).load_array(logo_array(40, 20))
        generator.set_mesh_settings(width=50)
        assert generator.mesh_settings.width == 50
        assert generator.mesh_settings.height == 100

        unloaded = StampGenerator().set_mesh_settings(width=50)
        assert unloaded.mesh_settings.height == 100

    def test_contour_of_inverted_logo(self):
        """Test contour mode."""
        generator = StampGenerator(mesh_settings=MeshSettings(resolution=20))
        generator.load_array(logo_array())
        generator.set_filter_settings(invert=True).generate_mesh(mode="contour")

        lo, hi = generator.mesh.bounds()
        # The logo covers half the width and half the height
        assert hi[0] - lo[0] < 0.75 * generator.mesh_settings.width
        assert generator.mesh_stats()["watertight"]

    def test_requires_image(self):
        """Test calls before loading."""
        with self.assertRaises(RuntimeError):
            StampGenerator().generate_mesh()
        with self.assertRaises(RuntimeError):
            StampGenerator().process()

    def test_unknown_mode_and_backend(self):
        """Test unknown mode and backend."""
        generator = StampGenerator().load_array(logo_array())
        with self.assertRaises(ValueError):
            generator.generate_mesh(mode="voxels")
        with self.assertRaises(ValueError):
            StampGenerator(backend="opencl")

    def test_settings_change_invalidates(self):
        """Test settings changes drop stale results."""
        generator = StampGenerator().load_array(logo_array()).generate_mesh()
        generator.set_mesh_settings(resolution=20)
        assert generator.mesh is None
        assert generator.filtered is not None

        generator.set_filter_settings(gaussian_blur_radius=1.0)
        assert generator.filtered is None

        generator.generate_mesh()
        assert generator.mesh is not None

    def test_filter_failure_clears_mesh(self):
        """Test filter failure."""
        generator = StampGenerator().load_array(logo_array()).generate_mesh()
        assert generator.mesh is not None

        with mock.patch(
            "stamp_generator.generator.FilterPipeline.run",
            side_effect=RuntimeError("filter failed")
        ):
            with self.assertRaises(RuntimeError):
                generator.process()

        assert generator.mesh is None
        assert generator.filtered is None
        assert generator.preview()["meshed"] is False

    def test_export_failure_keeps_state(self):
        """Test export failure."""
        generator = StampGenerator().load_array(logo_array()).generate_mesh()
        mesh = generator.mesh

        with self.assertRaises(OSError):
            generator.export_stl("/nonexistent/dir/stamp.stl")

        assert generator.mesh is mesh

    def test_export_all(self):
        """Test exporting several formats."""
        generator = StampGenerator().load_array(logo_array())
        with tempfile.TemporaryDirectory() as tmp:
            written = generator.export_all(Path(tmp) / "logo", ["stl", "obj"])
            assert [p.suffix for p in written] == [".stl", ".obj"]
            assert all(p.exists() for p in written)

            _, triangles = parse_ascii_stl(written[0].read_text())
            assert len(triangles) == generator.triangle_count

    def test_validate(self):
        """Test validation."""
        generator = StampGenerator().load_array(logo_array()).generate_mesh()
        assert generator.validate() is generator

        flat = StampGenerator(mesh_settings=MeshSettings(extrusion_height=0, base_height=0))
        flat.load_array(logo_array()).generate_mesh()
        with self.assertRaises(DegenerateGeometry):
            flat.validate()

    def test_load_image_file(self):
        """Test loading from disk."""
        with tempfile.TemporaryDirectory() as tmp:
            path = write_png(Path(tmp) / "logo.png", logo_array())
            generator = StampGenerator().load_image(path)

        info = generator.preview()
        assert info["image_loaded"]
        assert info["image_size"] == (40, 20)
        assert info["source"].endswith("logo.png")
        assert not info["processed"]

    def test_load_bytes_error(self):
        """Test undecodable bytes."""
        with self.assertRaises(DecodeError):
            StampGenerator().load_bytes(b"not an image")

    def test_intermediates(self):
        """Test filter stage outputs."""
        generator = StampGenerator(filter_settings=FilterSettings(invert=True))
        generator.load_array(logo_array()).process(keep_intermediates=True)
        assert set(generator.intermediates) == {"grayscale", "invert"}
        assert generator.source.size == (40, 20)


class TestBackgroundGenerator(unittest.TestCase):
    """Tests for last-write-wins background regeneration."""

    def setUp(self):
        self.source = PixelBuffer.from_array(logo_array())

    def test_run_generation(self):
        """Test a single generation."""
        result = run_generation(1, self.source, FilterSettings(), MeshSettings(resolution=10))
        assert result.ok
        assert result.generation == 1
        assert result.mesh.triangle_count > 0

    def test_run_generation_failure(self):
        """Test a failing generation."""
        result = run_generation(3, None, FilterSettings(), MeshSettings())
        assert not result.ok
        assert result.filtered is None
        assert result.mesh is None

    def test_latest_is_newest_request(self):
        """Test the newest request wins."""
        applied = []
        with BackgroundGenerator(on_result=applied.append) as worker:
            futures = [
                worker.submit(self.source, FilterSettings(), MeshSettings(resolution=r))
                for r in (10, 20, 30)
            ]
            results = [f.result() for f in futures]

        assert [r.generation for r in results] == [1, 2, 3]
        assert worker.latest.generation == 3
        assert worker.applied_generation == 3
        # Applied generations only ever increase
        generations = [r.generation for r in applied]
        assert generations == sorted(generations)

    def test_stale_result_discarded(self):
        """Test stale results are dropped."""
        applied = []
        worker = BackgroundGenerator(on_result=applied.append)
        try:
            for generation in (2, 1, 3):
                future = Future()
                future.set_result(GenerationResult(generation, None, None))
                worker._apply(future)
        finally:
            worker.shutdown()

        assert [r.generation for r in applied] == [2, 3]
        assert worker.latest.generation == 3


class TestCLI(unittest.TestCase):
    """End-to-end tests for the stampgen command."""

    def test_heightfield_stl_and_obj(self):
        """Test CLI heightfield export."""
        with tempfile.TemporaryDirectory() as tmp:
            tmp = Path(tmp)
            image = write_png(tmp / "logo.png", logo_array())
            code = main([
                str(image), "-o", str(tmp / "out"), "--format", "stl", "obj",
                "--resolution", "10", "--gaussian", "1"
            ])
            assert code == 0
            assert (tmp / "out.stl").exists()
            assert (tmp / "out.obj").exists()

            _, triangles = parse_ascii_stl((tmp / "out.stl").read_text())
            assert len(triangles) == 4 * 20 * 10 + 4 * (20 + 10)

    def test_height_flag_derives_width(self):
        """Test CLI size follows the image aspect ratio."""
        with tempfile.TemporaryDirectory() as tmp:
            tmp = Path(tmp)
            image = write_png(tmp / "logo.png", logo_array(40, 20))

            assert main([str(image), "-o", str(tmp / "tall"), "--height", "30"]) == 0
            _, triangles = parse_ascii_stl((tmp / "tall.stl").read_text())
            extent = triangles.reshape(-1, 3).max(axis=0) - triangles.reshape(-1, 3).min(axis=0)
            assert np.allclose(extent[:2], [60, 30], atol=1e-3)

            assert main([
                str(image), "-o", str(tmp / "free"), "--width", "10", "--height", "10"
            ]) == 0
            _, triangles = parse_ascii_stl((tmp / "free.stl").read_text())
            extent = triangles.reshape(-1, 3).max(axis=0) - triangles.reshape(-1, 3).min(axis=0)
            assert np.allclose(extent[:2], [10, 10], atol=1e-3)

    def test_contour_with_settings_file(self):
        """Test CLI settings file."""
        with tempfile.TemporaryDirectory() as tmp:
            tmp = Path(tmp)
            image = write_png(tmp / "logo.png", logo_array())
            settings = tmp / "stamp.json"
            settings.write_text(json.dumps({
                "filters": {"invert": True},
                "mesh": {"resolution": 20, "extrusion_height": 4}
            }))

            code = main([
                str(image), "-o", str(tmp / "logo.stl"), "--mode", "contour",
                "--settings", str(settings), "--curve", "0.25", "0", "0.75", "1",
                "--validate", "--stats"
            ])
            assert code == 0
            _, triangles = parse_ascii_stl((tmp / "logo.stl").read_text())
            assert triangles[:, :, 2].max() <= 2 + 4 + 1e-4

    def test_empty_contour_fails(self):
        """Test CLI empty silhouette."""
        with tempfile.TemporaryDirectory() as tmp:
            tmp = Path(tmp)
            black = np.zeros((8, 8, 4), dtype=np.uint8)
            black[..., 3] = 255
            image = write_png(tmp / "black.png", black)

            code = main([str(image), "-o", str(tmp / "black"), "--mode", "contour"])
            assert code == 1
            assert not (tmp / "black.stl").exists()

    def test_missing_input(self):
        """Test CLI missing input."""
        assert main(["/nonexistent/logo.png"]) == 1

    def test_invalid_settings(self):
        """Test CLI invalid settings."""
        with tempfile.TemporaryDirectory() as tmp:
            tmp = Path(tmp)
            image = write_png(tmp / "logo.png", logo_array())
            assert main([str(image), "-o", str(tmp / "x"), "--extrusion", "-3"]) == 1


if __name__ == "__main__":
    unittest.main(verbosity=2)
