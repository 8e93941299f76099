"""
Background Regeneration

Runs filter + mesh generation off the caller's thread, e.g. while a user
drags a slider. Requests are never cancelled; instead every request gets a
generation id and a finished result is applied only if no newer request
has been applied already (last write wins). An older job that finishes
late is simply discarded.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, NamedTuple, Optional
import itertools
import logging
import threading

from .buffer import PixelBuffer
from .contour import ContourMesher
from .filters import FilterPipeline
from .heightfield import HeightfieldMesher
from .mesh import StampMesh
from .settings import FilterSettings, MeshSettings

logger = logging.getLogger(__name__)


class GenerationResult(NamedTuple):
    """Outcome of one background request."""
    generation: int
    filtered: Optional[PixelBuffer]
    mesh: Optional[StampMesh]
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_generation(
    generation: int,
    source: PixelBuffer,
    filter_settings: FilterSettings,
    mesh_settings: MeshSettings,
    mode: str = "heightfield",
    backend: str = "reference"
) -> GenerationResult:
    """
    Filter and mesh one snapshot of the inputs.

    A filter failure yields a result without filtered image or mesh.
    """
    try:
        filtered = FilterPipeline(filter_settings, backend).run(source)
    except Exception as e:
        logger.warning("Generation %d: filtering failed: %s", generation, e)
        return GenerationResult(generation, None, None, e)

    try:
        if mode == "contour":
            mesh = ContourMesher(mesh_settings, backend).mesh(filtered, source)
        else:
            mesh = HeightfieldMesher(mesh_settings).mesh(filtered, source)
    except Exception as e:
        logger.warning("Generation %d: meshing failed: %s", generation, e)
        return GenerationResult(generation, filtered, None, e)

    return GenerationResult(generation, filtered, mesh)


class BackgroundGenerator:
    """
    Thread-pool driver with last-write-wins result handling.

    Example:
        worker = BackgroundGenerator(on_result=show)
        worker.submit(source, FilterSettings(invert=True), MeshSettings())
        ...
        worker.latest.mesh
    """

    def __init__(
        self,
        max_workers: int = 2,
        backend: str = "reference",
        on_result: Optional[Callable[[GenerationResult], None]] = None
    ):
        """
        Initialize the worker pool.

        Args:
            max_workers: Concurrent jobs
            backend: Filter backend passed to every job
            on_result: Called (on a pool thread) for each applied result
        """
        self.backend = backend
        self.on_result = on_result
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="stamp-gen"
        )
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._applied = 0
        self._latest: Optional[GenerationResult] = None

    def submit(
        self,
        source: PixelBuffer,
        filter_settings: FilterSettings,
        mesh_settings: MeshSettings,
        mode: str = "heightfield"
    ) -> Future:
        """
        Queue a regeneration.

        Settings are immutable, so the job sees exactly the values passed
        here even if the caller moves on.

        Returns:
            Future resolving to the GenerationResult (applied or not)
        """
        with self._lock:
            generation = next(self._ids)

        future = self._executor.submit(
            run_generation, generation, source,
            filter_settings, mesh_settings, mode, self.backend
        )
        future.add_done_callback(self._apply)
        return future

    def _apply(self, future: Future):
        result = future.result()
        with self._lock:
            if result.generation <= self._applied:
                logger.debug(
                    "Discarding generation %d (already applied %d)",
                    result.generation, self._applied
                )
                return
            self._applied = result.generation
            self._latest = result

        if self.on_result is not None:
            self.on_result(result)

    @property
    def latest(self) -> Optional[GenerationResult]:
        """Newest applied result."""
        with self._lock:
            return self._latest

    @property
    def applied_generation(self) -> int:
        """Generation id of the newest applied result (0 if none)."""
        with self._lock:
            return self._applied

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "BackgroundGenerator":
        return self

    def __exit__(self, *exc):
        self.shutdown()
