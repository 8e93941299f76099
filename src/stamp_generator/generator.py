"""
Main StampGenerator Class

This is the primary interface for the stamp generation pipeline.
It orchestrates:
1. Image loading (the decoded image doubles as the color source)
2. Filtering into a grayscale height signal
3. Mesh generation (full heightfield or silhouette contour)
4. Validation and export to STL / OBJ

Example Usage:
    generator = StampGenerator()
    generator.load_image("logo.png")
    generator.set_filter_settings(invert=True, gaussian_blur_radius=2)
    generator.generate_mesh(mode="contour")
    generator.export_stl("logo.stl")
"""

from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Union
import logging

import numpy as np

from .buffer import PixelBuffer
from .contour import ContourMesher
from .exporters import OBJExporter, STLExporter, default_stl_filename
from .filters import BACKENDS, FilterPipeline
from .heightfield import HeightfieldMesher
from .ingestion import ImageLoader
from .mesh import StampMesh, mesh_stats, validate_mesh
from .settings import FilterSettings, MeshSettings

logger = logging.getLogger(__name__)

MESH_MODES = ("heightfield", "contour")


class StampGenerator:
    """
    High-level interface for image to stamp conversion.

    Settings changes invalidate everything derived from them: new filter
    settings drop the filtered image and the mesh, new mesh settings drop
    the mesh. Stale results are regenerated on demand.

    Attributes:
        filter_settings: Current FilterSettings
        mesh_settings: Current MeshSettings
        backend: Filter backend ("reference" or "numba")
    """

    def __init__(
        self,
        filter_settings: Optional[FilterSettings] = None,
        mesh_settings: Optional[MeshSettings] = None,
        backend: str = "reference",
        fit_to_image: bool = True
    ):
        """
        Initialize the StampGenerator.

        Args:
            filter_settings: Initial filter parameters
            mesh_settings: Initial mesh parameters
            backend: Filter backend
            fit_to_image: Keep the physical width and height locked to the
                image aspect ratio once an image is loaded
        """
        if backend not in BACKENDS:
            raise ValueError(f"Unknown backend: {backend} (expected one of {BACKENDS})")

        self.filter_settings = filter_settings or FilterSettings()
        self.mesh_settings = mesh_settings or MeshSettings()
        self.backend = backend
        self.fit_to_image = fit_to_image

        self._image_loader: Optional[ImageLoader] = None
        self._filtered: Optional[PixelBuffer] = None
        self._intermediates: Dict[str, PixelBuffer] = {}
        self._mesh: Optional[StampMesh] = None
        self._mode: Optional[str] = None
        self._silhouette: Optional[np.ndarray] = None

    # Loading

    def load_image(self, image_path: Union[str, Path]) -> "StampGenerator":
        """
        Load an image file.

        Args:
            image_path: Path to the image (any format Pillow decodes)

        Returns:
            self for method chaining
        """
        loader = ImageLoader().load(image_path)
        self._set_loader(loader)
        return self

    def load_bytes(self, payload: bytes, source: str = "<bytes>") -> "StampGenerator":
        """
        Load an encoded image held in memory.

        Returns:
            self for method chaining
        """
        self._set_loader(ImageLoader().load_bytes(payload, source))
        return self

    def load_array(self, array: np.ndarray) -> "StampGenerator":
        """
        Load already-decoded pixels.

        Args:
            array: (H, W, 4), (H, W, 3) or (H, W) uint8 array

        Returns:
            self for method chaining
        """
        self._set_loader(ImageLoader().load_from_array(array))
        return self

    def _set_loader(self, loader: ImageLoader):
        self._image_loader = loader
        self._clear_filtered()
        if self.fit_to_image:
            width, height = loader.size
            self.mesh_settings = self.mesh_settings.fit_to_image(width, height)
        logger.debug("Loaded %s (%dx%d)", loader.source, *loader.size)

    # Settings

    def set_filter_settings(
        self,
        settings: Optional[FilterSettings] = None,
        **changes
    ) -> "StampGenerator":
        """
        Replace or update the filter parameters.

        Args:
            settings: Complete new settings, or None to keep the current ones
            **changes: Individual FilterSettings fields to change

        Returns:
            self for method chaining
        """
        settings = settings or self.filter_settings
        self.filter_settings = replace(settings, **changes) if changes else settings
        self._clear_filtered()
        return self

    def set_mesh_settings(
        self,
        settings: Optional[MeshSettings] = None,
        **changes
    ) -> "StampGenerator":
        """
        Replace or update the mesh parameters.

        With fit_to_image on and an image loaded, width and height stay
        locked to the image aspect ratio: changing only one of them
        re-derives the other.

        Args:
            settings: Complete new settings, or None to keep the current ones
            **changes: Individual MeshSettings fields to change

        Returns:
            self for method chaining
        """
        settings = settings or self.mesh_settings
        settings = replace(settings, **changes) if changes else settings

        if self.fit_to_image and self._image_loader is not None:
            image_width, image_height = self._image_loader.size
            if "width" in changes and "height" not in changes:
                settings = settings.fit_to_image(image_width, image_height)
            elif "height" in changes and "width" not in changes:
                settings = settings.fit_width(image_width, image_height)

        self.mesh_settings = settings
        self._clear_mesh()
        return self

    def _clear_filtered(self):
        self._filtered = None
        self._intermediates = {}
        self._clear_mesh()

    def _clear_mesh(self):
        self._mesh = None
        self._mode = None
        self._silhouette = None

    # Pipeline

    def process(self, keep_intermediates: bool = False) -> "StampGenerator":
        """
        Run the filter pipeline on the loaded image.

        On failure the filtered image and the mesh are cleared before the
        error propagates.

        Args:
            keep_intermediates: Keep each filter stage's output for preview

        Returns:
            self for method chaining
        """
        if self._image_loader is None:
            raise RuntimeError("No image loaded. Call load_image() first.")

        self._clear_filtered()
        pipeline = FilterPipeline(self.filter_settings, self.backend, keep_intermediates)
        self._filtered = pipeline.run(self._image_loader.buffer)
        self._intermediates = pipeline.intermediates
        return self

    def generate_mesh(self, mode: str = "heightfield") -> "StampGenerator":
        """
        Build the stamp mesh from the filtered image.

        Runs process() first if the filtered image is missing or stale.

        Args:
            mode: "heightfield" (full rectangle) or "contour" (silhouette)

        Returns:
            self for method chaining
        """
        if mode not in MESH_MODES:
            raise ValueError(f"Unknown mesh mode: {mode} (expected one of {MESH_MODES})")
        if self._filtered is None:
            self.process()

        self._clear_mesh()
        color_source = self._image_loader.buffer

        if mode == "heightfield":
            mesh = HeightfieldMesher(self.mesh_settings).mesh(self._filtered, color_source)
        else:
            mesher = ContourMesher(self.mesh_settings, self.backend)
            mesh = mesher.mesh(self._filtered, color_source)
            self._silhouette = mesher.mask

        self._mesh = mesh
        self._mode = mode
        return self

    def validate(self, min_area: Optional[float] = None) -> "StampGenerator":
        """
        Reject meshes with structural problems or degenerate triangles.

        Returns:
            self for method chaining
        """
        if self._mesh is None:
            raise RuntimeError("No mesh. Call generate_mesh() first.")
        if min_area is None:
            validate_mesh(self._mesh)
        else:
            validate_mesh(self._mesh, min_area)
        return self

    # Export

    def export_stl(self, output_path: Optional[Union[str, Path]] = None) -> Path:
        """
        Export to ASCII STL.

        Args:
            output_path: Output file path (default: timestamped name in the
                current directory)

        Returns:
            Path of the written file
        """
        if self._mesh is None:
            self.generate_mesh()
        return STLExporter().export(self._mesh, output_path or default_stl_filename())

    def export_obj(
        self,
        output_path: Union[str, Path],
        include_colors: bool = True
    ) -> Path:
        """
        Export to Wavefront OBJ format.

        Args:
            output_path: Output file path
            include_colors: Include vertex colors (extended format)

        Returns:
            Path of the written file
        """
        if self._mesh is None:
            self.generate_mesh()
        exporter = OBJExporter(vertex_colors_mode="extended" if include_colors else "none")
        return exporter.export(self._mesh, output_path)

    def export_all(
        self,
        base_path: Union[str, Path],
        formats: Optional[List[str]] = None
    ) -> List[Path]:
        """
        Export to multiple formats at once.

        Args:
            base_path: Base file path (extension is replaced)
            formats: List of formats to export (default: stl)

        Returns:
            Paths of the written files
        """
        base_path = Path(base_path)
        formats = formats or ["stl"]
        written = []

        if "stl" in formats:
            written.append(self.export_stl(base_path.with_suffix(".stl")))

        if "obj" in formats:
            written.append(self.export_obj(base_path.with_suffix(".obj")))

        return written

    # State

    @property
    def source(self) -> Optional[PixelBuffer]:
        """Decoded source image (also the vertex color source)."""
        return self._image_loader.buffer if self._image_loader else None

    @property
    def filtered(self) -> Optional[PixelBuffer]:
        """Filtered grayscale image, if processed."""
        return self._filtered

    @property
    def intermediates(self) -> Dict[str, PixelBuffer]:
        """Per-stage filter outputs of the last process(keep_intermediates=True)."""
        return dict(self._intermediates)

    @property
    def silhouette(self) -> Optional[np.ndarray]:
        """Dilated silhouette mask of the last contour mesh."""
        return self._silhouette

    @property
    def mesh(self) -> Optional[StampMesh]:
        """Get the current mesh data."""
        return self._mesh

    @property
    def vertex_count(self) -> int:
        """Get the number of mesh vertices."""
        if self._mesh is None:
            return 0
        return self._mesh.vertex_count

    @property
    def triangle_count(self) -> int:
        """Get the number of mesh triangles."""
        if self._mesh is None:
            return 0
        return self._mesh.triangle_count

    def mesh_stats(self) -> dict:
        """
        Get statistics of the current mesh.

        Returns:
            Dictionary with mesh statistics (see mesh.mesh_stats)
        """
        if self._mesh is None:
            return {"error": "No mesh"}
        stats = mesh_stats(self._mesh)
        stats["mode"] = self._mode
        stats["resolution"] = self.mesh_settings.resolution
        return stats

    def preview(self) -> dict:
        """
        Get a preview of the current state.

        Returns:
            Dictionary with current state information
        """
        info = {
            "image_loaded": self._image_loader is not None,
            "processed": self._filtered is not None,
            "meshed": self._mesh is not None,
        }

        if self._image_loader:
            info["image_size"] = self._image_loader.size
            info["source"] = self._image_loader.source
            info["physical_size"] = (self.mesh_settings.width, self.mesh_settings.height)

        if self._mesh is not None:
            info["mode"] = self._mode
            info["vertex_count"] = self._mesh.vertex_count
            info["triangle_count"] = self._mesh.triangle_count

        return info
